from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

from jose import JWTError, jwt
from pydantic import ValidationError as PydanticValidationError

from kubedeck.gateway.client import GatewayClient
from kubedeck.gateway.errors import MissingCredentialError, validation_error_from_pydantic
from kubedeck.models.auth_contracts import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    RefreshTokenResponse,
    User,
)
from kubedeck.models.envelope_contracts import ApiResponse
from kubedeck.repositories.storage import TokenStorage

LOGGER = logging.getLogger("kubedeck.auth")

DEFAULT_PRIVILEGED_ROLE = "admin"


class AuthService:
    """Session lifecycle plus local, non-authoritative token inspection.

    `is_authenticated` and `has_role` decode the access token without verifying
    its signature. They only gate UI affordances; the backend re-checks every
    request and remains the authorization boundary.
    """

    def __init__(
        self,
        *,
        gateway: GatewayClient,
        token_storage: TokenStorage,
        privileged_role: str = DEFAULT_PRIVILEGED_ROLE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._gateway = gateway
        self._token_storage = token_storage
        self._privileged_role = privileged_role
        self._clock = clock

    async def login(
        self, credentials: LoginRequest | Mapping[str, Any]
    ) -> ApiResponse[LoginResponse]:
        request = _validate_login(credentials)
        response = await self._gateway.post(
            "/auth/login",
            request.to_wire(),
            response_model=LoginResponse,
        )
        if response.success and response.data is not None:
            self._token_storage.store_tokens(
                response.data.token,
                response.data.refresh_token,
                remember=request.remember,
            )
            LOGGER.info(
                "login succeeded username=%s remember=%s",
                request.username,
                request.remember,
            )
        return response

    async def logout(self) -> ApiResponse[None]:
        try:
            return await self._gateway.post("/auth/logout")
        finally:
            self._token_storage.clear()
            LOGGER.info("logged out; local credentials cleared")

    async def refresh(self) -> ApiResponse[RefreshTokenResponse]:
        refresh_token = self._token_storage.refresh_token()
        if not refresh_token:
            raise MissingCredentialError("No refresh token available.")

        response = await self._gateway.post(
            "/auth/refresh",
            {"refreshToken": refresh_token},
            response_model=RefreshTokenResponse,
        )
        if response.success and response.data is not None:
            tier = self._token_storage.replace_tokens(
                response.data.token,
                response.data.refresh_token,
            )
            LOGGER.info("access token refreshed tier=%s", tier)
        return response

    async def get_current_user(self) -> ApiResponse[User]:
        return await self._gateway.get("/auth/me", response_model=User)

    async def change_password(
        self, request: ChangePasswordRequest | Mapping[str, Any]
    ) -> ApiResponse[None]:
        if not isinstance(request, ChangePasswordRequest):
            try:
                request = ChangePasswordRequest.model_validate(dict(request))
            except PydanticValidationError as exc:
                raise validation_error_from_pydantic(
                    exc, message="Password change request is invalid."
                ) from exc
        return await self._gateway.post("/auth/change-password", request.to_wire())

    def access_token(self) -> str | None:
        return self._token_storage.access_token()

    def is_authenticated(self) -> bool:
        claims = self._claims()
        if claims is None:
            return False
        expires_at = claims.get("exp")
        if isinstance(expires_at, bool) or not isinstance(expires_at, int | float):
            return False
        return expires_at > self._clock()

    def has_role(self, role: str) -> bool:
        claims = self._claims()
        if claims is None:
            return False
        claimed = claims.get("role")
        return claimed == role or claimed == self._privileged_role

    def is_admin(self) -> bool:
        return self.has_role(self._privileged_role)

    def _claims(self) -> dict[str, Any] | None:
        token = self._token_storage.access_token()
        if not token:
            return None
        try:
            claims = jwt.get_unverified_claims(token)
        except JWTError:
            LOGGER.debug("access token is not a decodable JWT")
            return None
        if not isinstance(claims, dict):
            return None
        return claims


def _validate_login(credentials: LoginRequest | Mapping[str, Any]) -> LoginRequest:
    if isinstance(credentials, LoginRequest):
        return credentials
    try:
        return LoginRequest.model_validate(dict(credentials))
    except PydanticValidationError as exc:
        raise validation_error_from_pydantic(exc, message="Login credentials are invalid.") from exc
