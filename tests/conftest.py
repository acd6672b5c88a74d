from __future__ import annotations

import time
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

import httpx
import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from jose import jwt

from kubedeck.gateway.client import GatewayClient
from kubedeck.repositories.connection_registry import ConnectionRegistry
from kubedeck.repositories.storage import InMemoryKeyValueStore, TokenStorage
from kubedeck.services.auth_service import AuthService
from kubedeck.services.container_service import ContainerService
from kubedeck.services.k8s_service import K8sService
from kubedeck.store.entity_store import EntityStore

BASE_URL = "http://testserver/api"
TOKEN_SECRET = "test-secret"

TokenFactory = Callable[..., str]


def _make_token(*, expires_in: int = 3600, role: str = "user", subject: str = "1") -> str:
    claims = {"sub": subject, "role": role, "exp": int(time.time()) + expires_in}
    return jwt.encode(claims, TOKEN_SECRET, algorithm="HS256")


def _container(
    container_id: str,
    name: str,
    *,
    namespace: str = "default",
    status: str = "Running",
    image: str = "nginx:1.27",
    restart_count: int = 0,
) -> dict[str, Any]:
    return {
        "id": container_id,
        "name": name,
        "image": image,
        "status": status,
        "namespace": namespace,
        "podName": f"{name}-pod",
        "ports": [{"containerPort": 80, "protocol": "TCP"}],
        "volumes": [],
        "resources": {"cpu": {"request": "100m", "limit": "500m"}},
        "labels": {"app": name},
        "annotations": {},
        "restartCount": restart_count,
        "createdAt": "2026-01-01T00:00:00Z",
        "updatedAt": "2026-01-01T00:00:00Z",
    }


_ACTION_STATUS = {
    "start": "Running",
    "resume": "Running",
    "restart": "Running",
    "stop": "Succeeded",
    "pause": "Pending",
}


class FakeBackend:
    """In-process stand-in for the console backend, served over ASGI."""

    def __init__(self) -> None:
        self.requests: list[dict[str, Any]] = []
        self.containers: dict[str, dict[str, Any]] = {
            "c1": _container("c1", "web"),
            "c2": _container("c2", "worker", status="Pending", restart_count=2),
            "c3": _container("c3", "cache", namespace="ops", status="Failed"),
        }
        self.workloads: list[dict[str, Any]] = [
            {
                "name": "api",
                "namespace": "default",
                "image": "api:2.1",
                "status": "Running",
                "podName": "api-7d9f",
                "restartCount": 1,
                "age": "3h",
                "node": "node-a",
                "labels": {"app": "api"},
            },
        ]
        self.action_failures: dict[str, str] = {}
        self.list_failure: str | None = None
        self.reject_all_with_401 = False
        self.issued_role = "admin"
        self.app = self._build_app()

    def last_request(self, method: str, path: str) -> dict[str, Any]:
        for item in reversed(self.requests):
            if item["method"] == method and item["path"] == path:
                return item
        raise AssertionError(f"no {method} {path} request recorded")

    def _build_app(self) -> FastAPI:
        app = FastAPI()
        backend = self

        @app.middleware("http")
        async def _record(request: Request, call_next: Any) -> Response:
            record: dict[str, Any] = {
                "method": request.method,
                "path": request.url.path,
                "query": dict(request.query_params),
                "headers": dict(request.headers),
                "json": None,
            }
            backend.requests.append(record)
            request.state.record = record
            if backend.reject_all_with_401 and request.url.path != "/api/auth/login":
                return _error(401, "UNAUTHORIZED", "token expired")
            return await call_next(request)

        @app.post("/api/auth/login")
        async def login(request: Request) -> Response:
            payload = await _read_json(request)
            if payload.get("password") != "x":
                return _error(400, "INVALID_CREDENTIALS", "invalid username or password")
            return _ok(
                {
                    "user": {
                        "id": 1,
                        "username": payload["username"],
                        "email": f"{payload['username']}@example.org",
                        "fullName": "Test Operator",
                        "role": backend.issued_role,
                        "status": "active",
                    },
                    "token": _make_token(role=backend.issued_role),
                    "refreshToken": "R1",
                    "expiresIn": 3600,
                }
            )

        @app.post("/api/auth/logout")
        async def logout() -> Response:
            return _ok(None)

        @app.post("/api/auth/refresh")
        async def refresh(request: Request) -> Response:
            payload = await _read_json(request)
            if payload.get("refreshToken") != "R1":
                return _error(400, "INVALID_REFRESH", "refresh token rejected")
            return _ok({"token": _make_token(role="user"), "refreshToken": "R2", "expiresIn": 3600})

        @app.get("/api/auth/me")
        async def me(request: Request) -> Response:
            if not request.headers.get("authorization", "").startswith("Bearer "):
                return _error(401, "UNAUTHORIZED", "missing token")
            return _ok(
                {
                    "id": 1,
                    "username": "admin",
                    "email": "admin@example.org",
                    "fullName": "Test Operator",
                    "role": "admin",
                    "status": "active",
                }
            )

        @app.get("/api/users")
        async def list_users(request: Request) -> Response:
            page = int(request.query_params.get("page", "1"))
            page_size = int(request.query_params.get("pageSize", "20"))
            users = [
                {"id": 1, "username": "admin", "role": "admin"},
                {"id": 2, "username": "viewer", "role": "viewer"},
            ]
            return _ok(
                {"items": users, "total": 2, "page": page, "pageSize": page_size, "totalPages": 1}
            )

        @app.get("/api/containers")
        async def list_containers(request: Request) -> Response:
            if backend.list_failure is not None:
                return _ok_false(backend.list_failure)
            query = request.query_params
            items = list(backend.containers.values())
            if "namespace" in query:
                items = [item for item in items if item["namespace"] == query["namespace"]]
            if query.get("status"):
                items = [item for item in items if item["status"] == query["status"]]
            if query.get("search"):
                items = [item for item in items if query["search"] in item["name"]]
            page = int(query.get("page", "1"))
            page_size = int(query.get("pageSize", "20"))
            window = items[(page - 1) * page_size : page * page_size]
            total_pages = (len(items) + page_size - 1) // page_size
            return _ok(
                {
                    "items": window,
                    "total": len(items),
                    "page": page,
                    "pageSize": page_size,
                    "totalPages": total_pages,
                }
            )

        @app.post("/api/containers/batch")
        async def batch(request: Request) -> Response:
            payload = await _read_json(request)
            for container_id in payload["ids"]:
                if container_id not in backend.containers:
                    return _ok_false(f"container {container_id} not found")
            for container_id in payload["ids"]:
                _apply_action(backend.containers, container_id, payload["action"])
            return _ok(None)

        @app.post("/api/containers")
        async def create_container(request: Request) -> Response:
            payload = await _read_json(request)
            config = payload["config"]
            container_id = f"c{len(backend.containers) + 1}"
            created = _container(
                container_id,
                config["name"],
                namespace=payload["namespace"],
                status="Pending",
                image=config["image"],
            )
            backend.containers[container_id] = created
            return _ok(created)

        @app.get("/api/containers/{container_id}")
        async def get_container(container_id: str) -> Response:
            container = backend.containers.get(container_id)
            if container is None:
                return _error(404, "NOT_FOUND", "container not found")
            return _ok(container)

        @app.put("/api/containers/{container_id}")
        async def update_container(container_id: str, request: Request) -> Response:
            container = backend.containers.get(container_id)
            if container is None:
                return _error(404, "NOT_FOUND", "container not found")
            payload = await _read_json(request)
            container.update({key: value for key, value in payload["config"].items() if key in {"image", "labels"}})
            return _ok(container)

        @app.post("/api/containers/{container_id}/action")
        async def container_action(container_id: str, request: Request) -> Response:
            if container_id in backend.action_failures:
                return _ok_false(backend.action_failures[container_id])
            if container_id not in backend.containers:
                return _error(404, "NOT_FOUND", "container not found")
            payload = await _read_json(request)
            _apply_action(backend.containers, container_id, payload["action"])
            return _ok(None)

        @app.get("/api/k8s/containers")
        async def list_workloads(request: Request) -> Response:
            namespace = request.query_params.get("namespace", "default")
            return _ok([item for item in backend.workloads if item["namespace"] == namespace])

        @app.post("/api/k8s/containers")
        async def create_workload(request: Request) -> Response:
            payload = await _read_json(request)
            backend.workloads.append(
                {
                    "name": payload["name"],
                    "namespace": payload["namespace"],
                    "image": payload["image"],
                    "status": "Pending",
                    "podName": f"{payload['name']}-pod",
                    "restartCount": 0,
                    "age": "0s",
                }
            )
            return _ok(None)

        @app.post("/api/k8s/containers/{namespace}/{pod_name}/{action}")
        async def workload_action(namespace: str, pod_name: str, action: str) -> Response:
            for item in backend.workloads:
                if item["namespace"] == namespace and item["podName"] == pod_name:
                    item["status"] = "Running" if action in {"start", "restart"} else "Succeeded"
                    return _ok(None)
            return _error(404, "NOT_FOUND", "pod not found")

        @app.delete("/api/k8s/containers/{namespace}/{pod_name}")
        async def delete_workload(namespace: str, pod_name: str) -> Response:
            backend.workloads = [
                item
                for item in backend.workloads
                if not (item["namespace"] == namespace and item["podName"] == pod_name)
            ]
            return _ok(None)

        @app.post("/api/k8s/test-connection")
        async def test_connection(request: Request) -> Response:
            payload = await _read_json(request)
            if "unreachable" in payload.get("endpoint", ""):
                return _error(502, "CLUSTER_UNREACHABLE", "cluster unreachable")
            return _ok(None)

        @app.get("/api/files/report")
        async def report() -> Response:
            return Response(content=b"report-bytes", media_type="application/octet-stream")

        @app.post("/api/uploads")
        async def upload(request: Request) -> Response:
            body = await request.body()
            content_type = request.headers.get("content-type", "")
            return _ok({"multipart": content_type.startswith("multipart/form-data"), "size": len(body)})

        return app


async def _read_json(request: Request) -> Any:
    payload = await request.json()
    request.state.record["json"] = payload
    return payload


def _apply_action(containers: dict[str, dict[str, Any]], container_id: str, action: str) -> None:
    if action == "destroy":
        containers.pop(container_id, None)
        return
    containers[container_id]["status"] = _ACTION_STATUS[action]


def _ok(data: Any) -> JSONResponse:
    return JSONResponse({"success": True, "data": data})


def _ok_false(message: str) -> JSONResponse:
    return JSONResponse({"success": False, "message": message})


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        {"success": False, "error": {"code": code, "message": message}},
        status_code=status_code,
    )


@pytest.fixture
def make_token() -> TokenFactory:
    return _make_token


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def durable_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def ephemeral_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def token_storage(
    durable_store: InMemoryKeyValueStore,
    ephemeral_store: InMemoryKeyValueStore,
) -> TokenStorage:
    return TokenStorage(durable=durable_store, ephemeral=ephemeral_store)


@pytest.fixture
def expired_sessions() -> list[str]:
    return []


@pytest.fixture
async def gateway(
    backend: FakeBackend,
    token_storage: TokenStorage,
    expired_sessions: list[str],
    tmp_path: Path,
) -> AsyncIterator[GatewayClient]:
    client = GatewayClient(
        base_url=BASE_URL,
        token_storage=token_storage,
        download_dir=tmp_path / "downloads",
        on_session_expired=expired_sessions.append,
        transport=httpx.ASGITransport(app=backend.app),
    )
    async with client:
        yield client


@pytest.fixture
def registry(k8s_service: K8sService) -> ConnectionRegistry:
    return ConnectionRegistry(storage=InMemoryKeyValueStore(), k8s_service=k8s_service)


@pytest.fixture
def auth_service(gateway: GatewayClient, token_storage: TokenStorage) -> AuthService:
    return AuthService(gateway=gateway, token_storage=token_storage)


@pytest.fixture
def container_service(gateway: GatewayClient) -> ContainerService:
    return ContainerService(gateway=gateway)


@pytest.fixture
def k8s_service(gateway: GatewayClient) -> K8sService:
    return K8sService(gateway=gateway)


@pytest.fixture
async def store(
    container_service: ContainerService,
    k8s_service: K8sService,
    registry: ConnectionRegistry,
) -> AsyncIterator[EntityStore]:
    entity_store = EntityStore(
        container_service=container_service,
        k8s_service=k8s_service,
        registry=registry,
        auto_refresh=False,
    )
    yield entity_store
    await entity_store.aclose()
