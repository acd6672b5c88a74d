from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any, get_args
from urllib.parse import quote

from pydantic import ValidationError as PydanticValidationError

from kubedeck.gateway.client import GatewayClient, QueryValue, RequestHandle
from kubedeck.gateway.errors import ValidationError, validation_error_from_pydantic
from kubedeck.models.container_contracts import (
    CONTAINER_ACTIONS,
    ConfigValidationResult,
    Container,
    ContainerAction,
    ContainerConfig,
    ContainerListParams,
    ContainerLogParams,
    ContainerLogResponse,
    ContainerStats,
    ExecRequest,
    ExecResponse,
    UsageWindow,
)
from kubedeck.models.envelope_contracts import ApiResponse, PaginatedResponse

LOGGER = logging.getLogger("kubedeck.services.containers")

_USAGE_WINDOWS: tuple[str, ...] = get_args(UsageWindow)


class ContainerService:
    """Typed operations over the `/containers` family of endpoints.

    Every lifecycle change goes through `perform_action`.
    """

    def __init__(self, *, gateway: GatewayClient) -> None:
        self._gateway = gateway

    def get_containers(
        self, params: ContainerListParams | Mapping[str, Any] | None = None
    ) -> RequestHandle[ApiResponse[PaginatedResponse[Container]]]:
        query = _validate_list_params(params)
        return self._gateway.request(
            "GET",
            "/containers",
            params=query.to_query(),
            response_model=PaginatedResponse[Container],
        )

    async def get_container(
        self, container_id: str, namespace: str | None = None
    ) -> ApiResponse[Container]:
        return await self._gateway.get(
            f"/containers/{_segment(container_id)}",
            params=_namespace_query(namespace),
            response_model=Container,
        )

    async def create_container(
        self, config: ContainerConfig | Mapping[str, Any], namespace: str
    ) -> ApiResponse[Container]:
        validated = _validate_config(config)
        return await self._gateway.post(
            "/containers",
            {"config": validated.to_wire(), "namespace": namespace},
            response_model=Container,
        )

    async def update_container(
        self,
        container_id: str,
        config: Mapping[str, Any],
        namespace: str | None = None,
    ) -> ApiResponse[Container]:
        body: dict[str, Any] = {"config": dict(config)}
        if namespace is not None:
            body["namespace"] = namespace
        return await self._gateway.put(
            f"/containers/{_segment(container_id)}",
            body,
            response_model=Container,
        )

    async def perform_action(
        self,
        container_id: str,
        action: ContainerAction,
        namespace: str | None = None,
    ) -> ApiResponse[None]:
        _check_action(action)
        body: dict[str, Any] = {"action": action}
        if namespace is not None:
            body["namespace"] = namespace
        LOGGER.info("container action id=%s action=%s", container_id, action)
        return await self._gateway.post(f"/containers/{_segment(container_id)}/action", body)

    async def start_container(self, container_id: str, namespace: str | None = None) -> ApiResponse[None]:
        return await self.perform_action(container_id, "start", namespace)

    async def stop_container(self, container_id: str, namespace: str | None = None) -> ApiResponse[None]:
        return await self.perform_action(container_id, "stop", namespace)

    async def restart_container(self, container_id: str, namespace: str | None = None) -> ApiResponse[None]:
        return await self.perform_action(container_id, "restart", namespace)

    async def pause_container(self, container_id: str, namespace: str | None = None) -> ApiResponse[None]:
        return await self.perform_action(container_id, "pause", namespace)

    async def resume_container(self, container_id: str, namespace: str | None = None) -> ApiResponse[None]:
        return await self.perform_action(container_id, "resume", namespace)

    async def destroy_container(self, container_id: str, namespace: str | None = None) -> ApiResponse[None]:
        return await self.perform_action(container_id, "destroy", namespace)

    async def batch_operation(
        self,
        container_ids: Sequence[str],
        action: ContainerAction,
        namespace: str | None = None,
    ) -> ApiResponse[None]:
        _check_action(action)
        ids = [item for item in dict.fromkeys(container_ids) if item]
        if not ids:
            raise ValidationError(
                "Batch operation needs at least one container id.",
                details=[{"field": "ids", "message": "must not be empty"}],
            )
        body: dict[str, Any] = {"ids": ids, "action": action}
        if namespace is not None:
            body["namespace"] = namespace
        LOGGER.info("container batch action=%s count=%s", action, len(ids))
        return await self._gateway.post("/containers/batch", body)

    async def get_container_logs(
        self, params: ContainerLogParams | Mapping[str, Any]
    ) -> ApiResponse[ContainerLogResponse]:
        if not isinstance(params, ContainerLogParams):
            try:
                params = ContainerLogParams.model_validate(dict(params))
            except PydanticValidationError as exc:
                raise validation_error_from_pydantic(exc, message="Log query is invalid.") from exc
        return await self._gateway.get(
            f"/containers/{_segment(params.container_id)}/logs",
            params=params.to_query(),
            response_model=ContainerLogResponse,
        )

    async def get_container_stats(
        self, container_id: str, namespace: str | None = None
    ) -> ApiResponse[ContainerStats]:
        return await self._gateway.get(
            f"/containers/{_segment(container_id)}/stats",
            params=_namespace_query(namespace),
            response_model=ContainerStats,
        )

    async def get_container_events(
        self,
        container_id: str,
        namespace: str | None = None,
        limit: int = 50,
    ) -> ApiResponse[list[dict[str, Any]]]:
        params: dict[str, QueryValue] = {"limit": limit}
        if namespace:
            params["namespace"] = namespace
        return await self._gateway.get(
            f"/containers/{_segment(container_id)}/events",
            params=params,
        )

    async def exec_command(self, request: ExecRequest | Mapping[str, Any]) -> ApiResponse[ExecResponse]:
        if not isinstance(request, ExecRequest):
            try:
                request = ExecRequest.model_validate(dict(request))
            except PydanticValidationError as exc:
                raise validation_error_from_pydantic(exc, message="Exec request is invalid.") from exc
        return await self._gateway.post(
            "/containers/exec",
            request.to_wire(),
            response_model=ExecResponse,
        )

    async def get_images(self) -> ApiResponse[list[dict[str, Any]]]:
        return await self._gateway.get("/containers/images")

    async def get_available_images(self) -> ApiResponse[list[str]]:
        return await self._gateway.get("/containers/images/available", response_model=list[str])

    async def pull_image(self, image_name: str) -> ApiResponse[None]:
        return await self._gateway.post("/containers/images/pull", {"imageName": image_name})

    async def delete_image(self, image_name: str) -> ApiResponse[None]:
        return await self._gateway.delete(f"/containers/images/{_segment(image_name)}")

    async def get_namespaces(self) -> ApiResponse[list[str]]:
        return await self._gateway.get("/namespaces", response_model=list[str])

    async def validate_config(
        self, config: ContainerConfig | Mapping[str, Any]
    ) -> ApiResponse[ConfigValidationResult]:
        validated = _validate_config(config)
        return await self._gateway.post(
            "/containers/validate",
            {"config": validated.to_wire()},
            response_model=ConfigValidationResult,
        )

    async def get_config_templates(self) -> ApiResponse[list[ContainerConfig]]:
        return await self._gateway.get("/containers/templates", response_model=list[ContainerConfig])

    async def export_config(
        self, container_id: str, namespace: str | None = None
    ) -> ApiResponse[dict[str, Any]]:
        return await self._gateway.get(
            f"/containers/{_segment(container_id)}/export",
            params=_namespace_query(namespace),
        )

    async def import_config(
        self,
        blob: str | bytes | Mapping[str, Any],
        namespace: str | None = None,
    ) -> ApiResponse[Container]:
        config = ContainerConfig.parse_blob(blob if isinstance(blob, (str, bytes)) else dict(blob))
        body: dict[str, Any] = {"config": config.to_wire()}
        if namespace is not None:
            body["namespace"] = namespace
        return await self._gateway.post("/containers/import", body, response_model=Container)

    async def get_resource_usage(
        self,
        container_id: str,
        time_range: UsageWindow = "24h",
        namespace: str | None = None,
    ) -> ApiResponse[list[dict[str, Any]]]:
        if time_range not in _USAGE_WINDOWS:
            raise ValidationError(
                f"Unsupported time range '{time_range}'.",
                details=[{"field": "timeRange", "message": f"expected one of {', '.join(_USAGE_WINDOWS)}"}],
            )
        params: dict[str, QueryValue] = {"timeRange": time_range}
        if namespace:
            params["namespace"] = namespace
        return await self._gateway.get(
            f"/containers/{_segment(container_id)}/usage",
            params=params,
        )


def _validate_list_params(
    params: ContainerListParams | Mapping[str, Any] | None,
) -> ContainerListParams:
    if params is None:
        return ContainerListParams()
    if isinstance(params, ContainerListParams):
        return params
    try:
        return ContainerListParams.model_validate(dict(params))
    except PydanticValidationError as exc:
        raise validation_error_from_pydantic(exc, message="Container list filter is invalid.") from exc


def _validate_config(config: ContainerConfig | Mapping[str, Any]) -> ContainerConfig:
    if isinstance(config, ContainerConfig):
        return config
    return ContainerConfig.parse_blob(dict(config))


def _check_action(action: str) -> None:
    if action not in CONTAINER_ACTIONS:
        raise ValidationError(
            f"Unsupported container action '{action}'.",
            details=[{"field": "action", "message": f"expected one of {', '.join(CONTAINER_ACTIONS)}"}],
        )


def _namespace_query(namespace: str | None) -> dict[str, QueryValue] | None:
    if not namespace:
        return None
    return {"namespace": namespace}


def _segment(value: str) -> str:
    return quote(value, safe="")
