import hmac
from dataclasses import dataclass

from fastapi import Depends, Header, Request

from portal.config.logging import get_logger
from portal.config.settings import AuthMode, Settings, get_settings
from portal.v1.core.exceptions import UnauthorizedError

logger = get_logger(__name__)


@dataclass
class Principal:
    """Represents the current authenticated user/context."""

    user_id: str
    roles: list[str]
    email: str | None = None


async def get_optional_principal(
    x_user_id: str | None = Header(None, alias="X-User-ID"),
    settings: Settings = Depends(get_settings),
) -> Principal | None:
    """
    Resolve the caller, or None when the request carries no identity.

    Behavior based on AUTH_MODE:
    - none: Returns dev defaults with admin role
    - dev: Trusts the X-User-ID header
    - proxy: X-User-ID is set by the authenticating proxy in front of the API
    """
    if settings.auth_mode == AuthMode.NONE:
        return Principal(user_id=settings.dev_user_id, roles=["admin"])
    elif settings.auth_mode == AuthMode.DEV:
        if not x_user_id:
            return None
        return Principal(user_id=x_user_id, roles=["admin"])
    elif settings.auth_mode == AuthMode.PROXY:
        if not x_user_id:
            return None
        return Principal(user_id=x_user_id, roles=["user"])
    else:
        raise ValueError(f"Unknown auth mode: {settings.auth_mode}")


async def get_principal(
    principal: Principal | None = Depends(get_optional_principal),
) -> Principal:
    """Dependency injection function to get the current principal."""
    if principal is None:
        raise UnauthorizedError("X-User-ID header is required")
    return principal


# Convenience type alias for dependency injection
PrincipalDep = Depends(get_principal)
OptionalPrincipalDep = Depends(get_optional_principal)


def _bearer_matches(authorization: str | None, secret: str | None) -> bool:
    if not authorization or not secret:
        return False
    return hmac.compare_digest(authorization.encode(), f"Bearer {secret}".encode())


def verify_cron_request(request: Request, settings: Settings) -> None:
    """
    Check the shared secret on a job trigger request.

    GET (the scheduler) needs ``Authorization: Bearer <CRON_SECRET>`` except
    in development. POST (manual trigger) needs the same secret, or in
    development an ``X-Dev-Key`` equal to a configured DEV_TEST_KEY.
    A missing configured secret rejects everything else.
    """
    authorization = request.headers.get("authorization")

    if request.method == "GET" and settings.is_development:
        return

    if request.method == "POST" and settings.is_development and settings.dev_test_key:
        dev_key = request.headers.get("x-dev-key")
        if dev_key and hmac.compare_digest(dev_key.encode(), settings.dev_test_key.encode()):
            return

    if not settings.cron_secret:
        logger.warning("CRON_SECRET not configured, rejecting trigger")
        raise UnauthorizedError()

    if not _bearer_matches(authorization, settings.cron_secret):
        logger.warning(
            "Rejected job trigger",
            method=request.method,
            has_authorization=authorization is not None,
        )
        raise UnauthorizedError()
