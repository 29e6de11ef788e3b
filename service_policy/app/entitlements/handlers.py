"""
Feature handlers.

Each feature that runs code has one handler object. The mapping from
feature name to handler is fixed when the service starts; dispatch
checks the office's entitlement before calling the handler.
"""

from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, Iterator, Mapping, Optional, Protocol

from shared.errors import ForbiddenError, InvalidConfigurationError, NotFoundError
from shared.logging import get_logger


class FeatureHandler(Protocol):
    async def execute(self, office_id: str, payload: Dict[str, Any]) -> Dict[str, Any]: ...


class FeatureHandlers(Mapping[str, FeatureHandler]):
    """Read-only feature name to handler mapping."""

    def __init__(self, handlers: Mapping[str, FeatureHandler]):
        self._handlers = MappingProxyType(dict(handlers))

    @classmethod
    def from_mapping(
        cls,
        handlers: Mapping[str, FeatureHandler],
        known_features: Optional[Iterable[str]] = None
    ) -> "FeatureHandlers":
        """Build the mapping, rejecting names the catalog does not define."""
        for name, handler in handlers.items():
            if not callable(getattr(handler, "execute", None)):
                raise InvalidConfigurationError(
                    f"Handler for feature '{name}' has no execute method",
                    details={"feature": name}
                )
        built = cls(handlers)
        if known_features is not None:
            built.validate_names(known_features)
        return built

    def validate_names(self, known_features: Iterable[str]) -> None:
        """Raise if any handler is registered for a feature the catalog lacks."""
        unknown = sorted(set(self._handlers) - set(known_features))
        if unknown:
            raise InvalidConfigurationError(
                "Handlers registered for unknown features",
                details={"features": unknown}
            )

    def __getitem__(self, name: str) -> FeatureHandler:
        return self._handlers[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)

    def names(self) -> FrozenSet[str]:
        return frozenset(self._handlers)


class FeatureDispatcher:
    """Runs a feature's handler for an office that has the feature."""

    def __init__(self, resolver, handlers: FeatureHandlers):
        self.resolver = resolver
        self.handlers = handlers
        self.logger = get_logger("policy.feature_dispatch")

    async def dispatch(self, office_id: str, feature_name: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        handler = self.handlers.get(feature_name)
        if handler is None:
            raise NotFoundError(
                f"No handler registered for feature '{feature_name}'",
                details={"feature": feature_name}
            )

        if not await self.resolver.is_feature_active(office_id, feature_name):
            self.logger.warning(
                "Feature not active for office",
                office_id=office_id,
                feature=feature_name
            )
            raise ForbiddenError(f"Feature '{feature_name}' is not available for this office")

        return await handler.execute(office_id, payload or {})
