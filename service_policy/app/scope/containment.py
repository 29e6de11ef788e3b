"""
Scope containment.

Containment is level-asymmetric. A broader scope contains a narrower one
when, at every level from the broader scope's own level up to the country,
the narrower scope's identifiers fall inside the broader scope's. Levels the
broader scope leaves unconstrained (list-form scopes without ancestor ids)
are skipped. A narrower scope can never prove membership by omission: if
the broader scope constrains a level the narrower one does not name, the
answer is no.
"""

from .models import Scope, Location, LEVEL_BREADTH, levels_from


def contains(actor_scope: Scope, target_scope: Scope) -> bool:
    """True if ``target_scope`` lies within ``actor_scope``."""
    actor_breadth = LEVEL_BREADTH[actor_scope.level]
    target_breadth = LEVEL_BREADTH[target_scope.level]

    if actor_breadth < target_breadth:
        return False

    if actor_breadth == target_breadth:
        return actor_scope == target_scope

    for level in levels_from(actor_scope.level):
        allowed = actor_scope.ids_at(level)
        if not allowed:
            continue
        named = target_scope.ids_at(level)
        if not named or not named <= allowed:
            return False

    return True


def covers_location(actor_scope: Scope, location: Location) -> bool:
    """True if an office at ``location`` lies within ``actor_scope``."""
    for level in levels_from(actor_scope.level):
        allowed = actor_scope.ids_at(level)
        if not allowed:
            continue
        if location.id_at(level) not in allowed:
            return False

    return True
