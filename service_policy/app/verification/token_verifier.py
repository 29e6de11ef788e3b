"""
External token verification.

The external system is asked for a verdict on a purchased token name.
There is exactly one attempt per activation; any failure to get a clear
"valid" answer is treated as invalid.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Protocol

import httpx

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from shared.config import BaseConfig
from shared.logging import get_logger
from shared.metrics import MetricsCollector

NOT_CONFIGURED_MESSAGE = "External token validation service not configured"
UNAVAILABLE_MESSAGE = "External token validation service unavailable"
NOT_FOUND_MESSAGE = "Token not found in external system"
BAD_CREDENTIALS_MESSAGE = "Invalid API credentials"
MALFORMED_MESSAGE = "Invalid response from external token validation service"

DEFAULT_MOCK_TOKENS = ("valid123", "test456", "demo789")


@dataclass(frozen=True)
class VerificationResult:
    """Verdict from the external token system."""
    valid: bool
    message: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


class TokenVerifier(Protocol):
    async def verify(self, token_name: str) -> VerificationResult: ...


class HttpTokenVerifier:
    """Verifies tokens against the external ``/validate-token`` endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        circuit_breaker: Optional[CircuitBreaker] = None,
        metrics: Optional[MetricsCollector] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.logger = get_logger("policy.token_verifier")
        self.metrics = metrics
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=60.0,
            name="token_verifier"
        )

    async def verify(self, token_name: str) -> VerificationResult:
        result = await self._verify(token_name)
        if self.metrics:
            self.metrics.record_token_verification(result.valid)
        return result

    async def _verify(self, token_name: str) -> VerificationResult:
        if not self.base_url or not self.api_key:
            self.logger.warning("External token verifier configuration missing")
            return VerificationResult(valid=False, message=NOT_CONFIGURED_MESSAGE)

        async def _post() -> httpx.Response:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/validate-token",
                    json={"tokenName": token_name},
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    }
                )
            # Only server-side failures count against the breaker
            if response.status_code >= 500:
                response.raise_for_status()
            return response

        try:
            response = await self.circuit_breaker.call(_post)
        except CircuitBreakerOpenException:
            self.logger.warning("Token verifier circuit open", token_name=token_name)
            return VerificationResult(valid=False, message=UNAVAILABLE_MESSAGE)
        except httpx.InvalidURL as e:
            # Not an httpx.HTTPError subclass
            self.logger.error("Token verifier URL is invalid", base_url=self.base_url, error=str(e))
            return VerificationResult(valid=False, message=NOT_CONFIGURED_MESSAGE)
        except httpx.HTTPError as e:
            self.logger.warning("Token verification request failed", token_name=token_name, error=str(e))
            return VerificationResult(valid=False, message=UNAVAILABLE_MESSAGE)

        if response.status_code == 404:
            return VerificationResult(valid=False, message=NOT_FOUND_MESSAGE)
        if response.status_code == 401:
            self.logger.warning("Token verifier rejected API credentials")
            return VerificationResult(valid=False, message=BAD_CREDENTIALS_MESSAGE)
        if response.status_code < 200 or response.status_code >= 300:
            self.logger.warning(
                "Unexpected token verifier status",
                token_name=token_name,
                status_code=response.status_code
            )
            return VerificationResult(valid=False, message=UNAVAILABLE_MESSAGE)

        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            self.logger.warning("Malformed token verifier response", token_name=token_name)
            return VerificationResult(valid=False, message=MALFORMED_MESSAGE)

        data = body.get("data")
        result = VerificationResult(
            valid=body.get("valid") is True,
            message=body.get("message"),
            data=data if isinstance(data, dict) else {}
        )
        self.logger.info(
            "Token verification result",
            token_name=token_name,
            valid=result.valid
        )
        return result


class MockTokenVerifier:
    """Fixed allow-list verifier for non-production environments."""

    def __init__(self, valid_tokens: Iterable[str] = DEFAULT_MOCK_TOKENS):
        self.valid_tokens = frozenset(valid_tokens)
        self.logger = get_logger("policy.token_verifier.mock")

    async def verify(self, token_name: str) -> VerificationResult:
        self.logger.warning("Using mock token verifier", token_name=token_name)
        if token_name in self.valid_tokens:
            return VerificationResult(valid=True, message="Token validated (mock)")
        return VerificationResult(valid=False, message="Invalid token")


def build_token_verifier(config: BaseConfig, metrics: Optional[MetricsCollector] = None) -> TokenVerifier:
    """Pick the verifier for this deployment."""
    if config.use_mock_token_verifier:
        return MockTokenVerifier()
    return HttpTokenVerifier(
        config.token_verifier_url,
        config.token_verifier_api_key,
        timeout=config.token_verifier_timeout,
        metrics=metrics
    )
