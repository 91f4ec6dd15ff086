"""Admin token predicate consulted by callers before invoking the core."""

import hmac

from land_kpr.exceptions import UnauthorizedError


def is_admin(token: str | None, expected: str | None) -> bool:
    """Return True when ``token`` matches the configured admin token.

    An unconfigured (empty) admin token means nobody is admin.
    """
    expected = (expected or "").strip()
    token = (token or "").strip()
    if not expected or not token:
        return False
    return hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8"))


def require_admin(token: str | None, expected: str | None) -> None:
    """Raise UnauthorizedError unless ``token`` is the admin token."""
    if not (expected or "").strip():
        raise UnauthorizedError("admin token not configured")
    if not is_admin(token, expected):
        raise UnauthorizedError("unauthorized")
