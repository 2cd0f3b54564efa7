import pytest
from starlette.requests import Request

from portal.config.settings import AuthMode, Settings
from portal.v1.core.exceptions import UnauthorizedError
from portal.v1.core.security import (
    Principal,
    get_optional_principal,
    get_principal,
    verify_cron_request,
)


def _request(method: str, headers: dict[str, str] | None = None) -> Request:
    raw_headers = [
        (name.lower().encode(), value.encode()) for name, value in (headers or {}).items()
    ]
    return Request({"type": "http", "method": method, "path": "/", "headers": raw_headers})


@pytest.mark.asyncio
async def test_get_principal_auth_mode_none():
    """Test AUTH_MODE=none returns dev defaults."""
    settings = Settings(auth_mode=AuthMode.NONE, dev_user_id="dev-1")

    principal = await get_optional_principal(x_user_id=None, settings=settings)

    assert isinstance(principal, Principal)
    assert principal.user_id == "dev-1"
    assert principal.roles == ["admin"]
    assert principal.email is None


@pytest.mark.asyncio
async def test_get_principal_auth_mode_dev_requires_header():
    """Test AUTH_MODE=dev trusts X-User-ID and requires it."""
    settings = Settings(auth_mode=AuthMode.DEV)

    assert await get_optional_principal(x_user_id=None, settings=settings) is None
    with pytest.raises(UnauthorizedError, match="X-User-ID header is required"):
        await get_principal(principal=None)

    principal = await get_optional_principal(x_user_id="test-user", settings=settings)
    assert principal.user_id == "test-user"
    assert principal.roles == ["admin"]


@pytest.mark.asyncio
async def test_get_principal_auth_mode_proxy():
    """Test AUTH_MODE=proxy takes the proxy-asserted user with no admin role."""
    settings = Settings(environment="production", auth_mode=AuthMode.PROXY)

    principal = await get_optional_principal(x_user_id="u-42", settings=settings)

    assert principal.user_id == "u-42"
    assert principal.roles == ["user"]


@pytest.mark.asyncio
async def test_get_principal_unknown_auth_mode():
    """Test unknown auth mode raises ValueError."""
    settings = Settings().model_copy(update={"auth_mode": "invalid_mode"})

    with pytest.raises(ValueError, match="Unknown auth mode: invalid_mode"):
        await get_optional_principal(x_user_id=None, settings=settings)


def test_principal_dataclass():
    """Test Principal dataclass functionality."""
    principal = Principal(user_id="user-1", roles=["user"], email="a@example.com")

    assert principal.user_id == "user-1"
    assert principal.roles == ["user"]
    assert principal.email == "a@example.com"


class TestCronVerification:
    def test_bearer_secret_accepted(self):
        settings = Settings(environment="production", auth_mode=AuthMode.PROXY, cron_secret="s3")

        for method in ("GET", "POST"):
            verify_cron_request(_request(method, {"Authorization": "Bearer s3"}), settings)

    @pytest.mark.parametrize(
        "authorization", [None, "s3", "Bearer s4", "bearer s3", "Bearer s3 "]
    )
    def test_wrong_authorization_rejected(self, authorization):
        settings = Settings(environment="production", auth_mode=AuthMode.PROXY, cron_secret="s3")
        headers = {"Authorization": authorization} if authorization else {}

        with pytest.raises(UnauthorizedError):
            verify_cron_request(_request("GET", headers), settings)

    def test_development_get_bypasses_secret(self):
        settings = Settings(environment="development", cron_secret=None)

        verify_cron_request(_request("GET"), settings)

    def test_staging_get_does_not_bypass(self):
        settings = Settings(environment="staging", cron_secret="s3")

        with pytest.raises(UnauthorizedError):
            verify_cron_request(_request("GET"), settings)

    def test_dev_key_only_in_development(self):
        dev = Settings(environment="development", dev_test_key="k")
        staging = Settings(environment="staging", dev_test_key="k", cron_secret="s3")

        verify_cron_request(_request("POST", {"X-Dev-Key": "k"}), dev)
        with pytest.raises(UnauthorizedError):
            verify_cron_request(_request("POST", {"X-Dev-Key": "k"}), staging)

    def test_empty_dev_key_setting_disables_dev_key(self):
        settings = Settings(environment="development", dev_test_key="", cron_secret="s3")

        with pytest.raises(UnauthorizedError):
            verify_cron_request(_request("POST", {"X-Dev-Key": ""}), settings)

    def test_missing_secret_rejects(self):
        settings = Settings(environment="production", auth_mode=AuthMode.PROXY, cron_secret=None)

        with pytest.raises(UnauthorizedError):
            verify_cron_request(_request("GET", {"Authorization": "Bearer None"}), settings)
