from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any
from urllib.parse import quote

from kubedeck.gateway.client import GatewayClient, RequestHandle
from kubedeck.models.container_contracts import Workload, WorkloadDraft
from kubedeck.models.envelope_contracts import ApiResponse

LOGGER = logging.getLogger("kubedeck.services.k8s")


class K8sService:
    """Pod-level workload operations against the active cluster connection."""

    def __init__(self, *, gateway: GatewayClient) -> None:
        self._gateway = gateway

    def get_containers(self, namespace: str = "default") -> RequestHandle[ApiResponse[list[Workload]]]:
        return self._gateway.request(
            "GET",
            "/k8s/containers",
            params={"namespace": namespace or "default"},
            response_model=list[Workload],
        )

    async def create_container(self, draft: WorkloadDraft) -> ApiResponse[None]:
        LOGGER.info("workload create name=%s namespace=%s", draft.name, draft.namespace)
        return await self._gateway.post("/k8s/containers", draft.to_wire())

    async def start_container(self, namespace: str, pod_name: str) -> ApiResponse[None]:
        return await self._pod_action(namespace, pod_name, "start")

    async def stop_container(self, namespace: str, pod_name: str) -> ApiResponse[None]:
        return await self._pod_action(namespace, pod_name, "stop")

    async def restart_container(self, namespace: str, pod_name: str) -> ApiResponse[None]:
        return await self._pod_action(namespace, pod_name, "restart")

    async def delete_container(self, namespace: str, pod_name: str) -> ApiResponse[None]:
        LOGGER.info("workload delete namespace=%s pod=%s", namespace, pod_name)
        return await self._gateway.delete(_pod_path(namespace, pod_name))

    async def test_connection(self, connection_payload: Mapping[str, Any]) -> ApiResponse[None]:
        return await self._gateway.post("/k8s/test-connection", dict(connection_payload))

    async def _pod_action(self, namespace: str, pod_name: str, action: str) -> ApiResponse[None]:
        LOGGER.info("workload action namespace=%s pod=%s action=%s", namespace, pod_name, action)
        return await self._gateway.post(f"{_pod_path(namespace, pod_name)}/{action}")


def _pod_path(namespace: str, pod_name: str) -> str:
    return f"/k8s/containers/{quote(namespace, safe='')}/{quote(pod_name, safe='')}"
