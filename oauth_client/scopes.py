"""Scope parsing and superset checks."""
from collections.abc import Iterable

from oauth_client.errors import InsufficientScope


def parse_scopes(scope_value: str | list | None) -> set[str]:
    """Normalize a scope claim (space-separated string or list) to a set of scope strings."""
    if scope_value is None:
        return set()
    if isinstance(scope_value, list):
        return set(str(s) for s in scope_value if str(s).strip())
    return set(scope_value.split())


def format_scopes(scopes: Iterable[str]) -> str:
    return " ".join(sorted(scopes))


def missing_scopes(required: Iterable[str], granted: Iterable[str]) -> list[str]:
    granted_set = set(granted)
    return sorted(s for s in required if s not in granted_set)


def require_scopes(required: Iterable[str], granted: Iterable[str]) -> None:
    """Raise InsufficientScope unless granted is a superset of required."""
    missing = missing_scopes(required, granted)
    if missing:
        raise InsufficientScope(missing)
