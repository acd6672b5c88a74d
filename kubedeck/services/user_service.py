from __future__ import annotations

from collections.abc import Mapping
from typing import Any, TypeVar

from pydantic import ValidationError as PydanticValidationError

from kubedeck.gateway.client import GatewayClient, QueryValue
from kubedeck.gateway.errors import validation_error_from_pydantic
from kubedeck.models.auth_contracts import CreateUserRequest, UpdateUserRequest, User
from kubedeck.models.envelope_contracts import ApiResponse, PaginatedResponse, WireModel

ModelT = TypeVar("ModelT", bound=WireModel)


class UserService:
    def __init__(self, *, gateway: GatewayClient) -> None:
        self._gateway = gateway

    async def get_users(
        self,
        page: int = 1,
        page_size: int = 20,
        *,
        search: str | None = None,
        role: str | None = None,
        status: str | None = None,
    ) -> ApiResponse[PaginatedResponse[User]]:
        params: dict[str, QueryValue] = {"page": page, "pageSize": page_size}
        for key, value in (("search", search), ("role", role), ("status", status)):
            if value:
                params[key] = value
        return await self._gateway.get(
            "/users",
            params=params,
            response_model=PaginatedResponse[User],
        )

    async def get_user(self, user_id: int) -> ApiResponse[User]:
        return await self._gateway.get(f"/users/{user_id}", response_model=User)

    async def create_user(
        self, request: CreateUserRequest | Mapping[str, Any]
    ) -> ApiResponse[User]:
        validated = _validate(CreateUserRequest, request, message="User details are invalid.")
        return await self._gateway.post("/users", validated.to_wire(), response_model=User)

    async def update_user(
        self, user_id: int, request: UpdateUserRequest | Mapping[str, Any]
    ) -> ApiResponse[User]:
        validated = _validate(UpdateUserRequest, request, message="User update is invalid.")
        return await self._gateway.put(
            f"/users/{user_id}",
            validated.to_wire(),
            response_model=User,
        )

    async def delete_user(self, user_id: int) -> ApiResponse[None]:
        return await self._gateway.delete(f"/users/{user_id}")

    async def reset_user_password(self, user_id: int, new_password: str) -> ApiResponse[None]:
        return await self._gateway.post(
            f"/users/{user_id}/reset-password",
            {"password": new_password},
        )


def _validate(
    model: type[ModelT],
    value: ModelT | Mapping[str, Any],
    *,
    message: str,
) -> ModelT:
    if isinstance(value, model):
        return value
    try:
        return model.model_validate(dict(value))
    except PydanticValidationError as exc:
        raise validation_error_from_pydantic(exc, message=message) from exc
