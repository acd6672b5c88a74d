from __future__ import annotations

from pathlib import Path

import httpx
import pytest
from jose import jwt

from kubedeck.gateway.client import GatewayClient
from kubedeck.gateway.errors import MissingCredentialError, ServerError, ValidationError
from kubedeck.repositories.storage import (
    ACCESS_TOKEN_KEY,
    REFRESH_TOKEN_KEY,
    InMemoryKeyValueStore,
    TokenStorage,
)
from kubedeck.services.auth_service import AuthService
from kubedeck.services.user_service import UserService

from conftest import FakeBackend, TokenFactory


def _offline_service(
    token: str | None,
    *,
    clock: float | None = None,
    tmp_path: Path,
) -> AuthService:
    storage = TokenStorage(durable=InMemoryKeyValueStore(), ephemeral=InMemoryKeyValueStore())
    if token is not None:
        storage.store_tokens(token, "R1", remember=False)
    gateway = GatewayClient(
        base_url="http://backend.test/api",
        token_storage=storage,
        download_dir=tmp_path,
        transport=httpx.MockTransport(lambda request: httpx.Response(204)),
    )
    if clock is None:
        return AuthService(gateway=gateway, token_storage=storage)
    return AuthService(gateway=gateway, token_storage=storage, clock=lambda: clock)


async def test_login_with_remember_persists_durably(
    auth_service: AuthService,
    durable_store: InMemoryKeyValueStore,
    ephemeral_store: InMemoryKeyValueStore,
) -> None:
    response = await auth_service.login({"username": "admin", "password": "x", "remember": True})

    assert response.success is True
    assert response.data is not None
    assert response.data.user.username == "admin"
    assert durable_store.get(ACCESS_TOKEN_KEY) == response.data.token
    assert durable_store.get(REFRESH_TOKEN_KEY) == "R1"
    assert ephemeral_store.snapshot() == {}
    assert auth_service.is_authenticated() is True


async def test_login_without_remember_uses_ephemeral_tier(
    auth_service: AuthService,
    durable_store: InMemoryKeyValueStore,
    ephemeral_store: InMemoryKeyValueStore,
) -> None:
    await auth_service.login({"username": "admin", "password": "x"})

    assert durable_store.snapshot() == {}
    assert ephemeral_store.get(REFRESH_TOKEN_KEY) == "R1"
    assert auth_service.access_token() == ephemeral_store.get(ACCESS_TOKEN_KEY)


async def test_relogin_without_remember_replaces_durable_session(
    auth_service: AuthService,
    token_storage: TokenStorage,
    durable_store: InMemoryKeyValueStore,
    backend: FakeBackend,
) -> None:
    token_storage.store_tokens("OLD-DURABLE", "OLD-R", remember=True)

    response = await auth_service.login({"username": "admin", "password": "x", "remember": False})
    await auth_service.get_current_user()

    assert response.data is not None
    assert durable_store.snapshot() == {}
    assert auth_service.access_token() == response.data.token
    assert (
        backend.last_request("GET", "/api/auth/me")["headers"]["authorization"]
        == f"Bearer {response.data.token}"
    )


async def test_failed_login_persists_nothing(
    auth_service: AuthService,
    token_storage: TokenStorage,
) -> None:
    with pytest.raises(ServerError) as exc_info:
        await auth_service.login({"username": "admin", "password": "wrong", "remember": True})

    assert exc_info.value.code == 400
    assert exc_info.value.message == "invalid username or password"
    assert token_storage.access_token() is None
    assert auth_service.is_authenticated() is False


async def test_login_rejects_blank_credentials_before_sending(
    auth_service: AuthService,
    backend: FakeBackend,
) -> None:
    with pytest.raises(ValidationError) as exc_info:
        await auth_service.login({"username": "   ", "password": ""})

    fields = {item["field"] for item in exc_info.value.details}
    assert fields == {"username", "password"}
    assert backend.requests == []


async def test_refresh_without_refresh_token_fails_locally(
    auth_service: AuthService,
    backend: FakeBackend,
) -> None:
    with pytest.raises(MissingCredentialError):
        await auth_service.refresh()

    assert backend.requests == []


async def test_refresh_replaces_tokens_in_same_tier(
    auth_service: AuthService,
    backend: FakeBackend,
    durable_store: InMemoryKeyValueStore,
    ephemeral_store: InMemoryKeyValueStore,
) -> None:
    await auth_service.login({"username": "admin", "password": "x", "remember": True})

    response = await auth_service.refresh()

    assert response.data is not None
    assert backend.last_request("POST", "/api/auth/refresh")["json"] == {"refreshToken": "R1"}
    assert durable_store.get(REFRESH_TOKEN_KEY) == "R2"
    assert durable_store.get(ACCESS_TOKEN_KEY) == response.data.token
    assert ephemeral_store.snapshot() == {}


async def test_logout_clears_tokens(
    auth_service: AuthService,
    token_storage: TokenStorage,
) -> None:
    await auth_service.login({"username": "admin", "password": "x", "remember": True})

    await auth_service.logout()

    assert token_storage.access_token() is None
    assert token_storage.refresh_token() is None


async def test_logout_clears_tokens_even_when_backend_fails(tmp_path: Path) -> None:
    storage = TokenStorage(durable=InMemoryKeyValueStore(), ephemeral=InMemoryKeyValueStore())
    storage.store_tokens("T1", "R1", remember=True)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"message": "logout exploded"})

    async with GatewayClient(
        base_url="http://backend.test/api",
        token_storage=storage,
        download_dir=tmp_path,
        transport=httpx.MockTransport(handler),
    ) as gateway:
        service = AuthService(gateway=gateway, token_storage=storage)
        with pytest.raises(ServerError):
            await service.logout()

    assert storage.access_token() is None
    assert storage.refresh_token() is None


async def test_get_current_user_uses_bearer_token(
    auth_service: AuthService,
    backend: FakeBackend,
) -> None:
    await auth_service.login({"username": "admin", "password": "x"})

    response = await auth_service.get_current_user()

    assert response.data is not None
    assert response.data.full_name == "Test Operator"
    assert backend.last_request("GET", "/api/auth/me")["headers"]["authorization"].startswith("Bearer ")


async def test_change_password_rejects_short_password(auth_service: AuthService) -> None:
    with pytest.raises(ValidationError):
        await auth_service.change_password({"currentPassword": "old", "newPassword": "short"})


def test_is_authenticated_respects_expiry_boundary(
    make_token: TokenFactory,
    tmp_path: Path,
) -> None:
    token = make_token(expires_in=60)
    service = _offline_service(token, tmp_path=tmp_path, clock=0.0)
    assert service.is_authenticated() is True

    expires_at = jwt.get_unverified_claims(token)["exp"]
    assert _offline_service(token, tmp_path=tmp_path, clock=expires_at - 1).is_authenticated() is True
    assert _offline_service(token, tmp_path=tmp_path, clock=expires_at).is_authenticated() is False


def test_is_authenticated_false_for_expired_token(
    make_token: TokenFactory,
    tmp_path: Path,
) -> None:
    service = _offline_service(make_token(expires_in=-10), tmp_path=tmp_path)

    assert service.is_authenticated() is False


@pytest.mark.parametrize("token", [None, "not-a-jwt", "a.b.c"])
def test_malformed_or_missing_token_is_unauthenticated(token: str | None, tmp_path: Path) -> None:
    service = _offline_service(token, tmp_path=tmp_path)

    assert service.is_authenticated() is False
    assert service.has_role("viewer") is False
    assert service.is_admin() is False


def test_has_role_exact_match_and_admin_override(
    make_token: TokenFactory,
    tmp_path: Path,
) -> None:
    viewer = _offline_service(make_token(role="viewer"), tmp_path=tmp_path)
    admin = _offline_service(make_token(role="admin"), tmp_path=tmp_path)

    assert viewer.has_role("viewer") is True
    assert viewer.has_role("operator") is False
    assert viewer.is_admin() is False
    assert admin.has_role("operator") is True
    assert admin.is_admin() is True


async def test_user_service_lists_with_filters(gateway: GatewayClient, backend: FakeBackend) -> None:
    users = UserService(gateway=gateway)

    response = await users.get_users(2, 10, search="ad", role=None)

    assert response.data is not None
    assert [item.username for item in response.data.items] == ["admin", "viewer"]
    assert response.data.page == 2
    assert backend.last_request("GET", "/api/users")["query"] == {
        "page": "2",
        "pageSize": "10",
        "search": "ad",
    }


async def test_user_service_validates_new_user(gateway: GatewayClient, backend: FakeBackend) -> None:
    users = UserService(gateway=gateway)

    with pytest.raises(ValidationError) as exc_info:
        await users.create_user(
            {"username": "ops", "email": "not-an-email", "password": "longenough", "role": "viewer"}
        )

    assert [item["field"] for item in exc_info.value.details] == ["email"]
    assert backend.requests == []
