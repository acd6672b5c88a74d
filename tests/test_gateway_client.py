from __future__ import annotations

import asyncio
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import httpx
import pytest

from kubedeck.gateway.client import GatewayClient, gather_settled, generate_request_id
from kubedeck.gateway.errors import (
    AuthExpiredError,
    ClientError,
    NetworkError,
    RequestCancelledError,
    ServerError,
    ValidationError,
    is_user_visible,
    unwrap_response,
)
from kubedeck.models.container_contracts import Container
from kubedeck.repositories.storage import InMemoryKeyValueStore, TokenStorage
from kubedeck.telemetry import TelemetryClient

from conftest import FakeBackend


class _CaptureSink:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        self.events.append((event_name, dict(attributes)))


def _mock_gateway(
    tmp_path: Path,
    handler: Any,
    *,
    token_storage: TokenStorage | None = None,
    telemetry: TelemetryClient | None = None,
) -> GatewayClient:
    return GatewayClient(
        base_url="http://backend.test/api",
        token_storage=token_storage
        or TokenStorage(durable=InMemoryKeyValueStore(), ephemeral=InMemoryKeyValueStore()),
        download_dir=tmp_path / "downloads",
        telemetry=telemetry,
        transport=httpx.MockTransport(handler),
    )


def test_generate_request_id_format() -> None:
    request_id = generate_request_id()
    assert re.fullmatch(r"req_\d{13}_[0-9a-z]{9}", request_id)
    assert generate_request_id() != request_id


async def test_gateway_attaches_bearer_and_trace_headers(
    gateway: GatewayClient,
    backend: FakeBackend,
    durable_store: InMemoryKeyValueStore,
) -> None:
    durable_store.set("auth_token", "durable-token")

    response = await gateway.get("/auth/me")

    assert response.success is True
    headers = backend.last_request("GET", "/api/auth/me")["headers"]
    assert headers["authorization"] == "Bearer durable-token"
    assert re.fullmatch(r"req_\d+_[0-9a-z]{9}", headers["x-request-id"])
    assert headers["x-timestamp"].isdigit()


async def test_gateway_falls_back_to_ephemeral_token(
    gateway: GatewayClient,
    backend: FakeBackend,
    ephemeral_store: InMemoryKeyValueStore,
) -> None:
    ephemeral_store.set("auth_token", "session-token")

    await gateway.get("/auth/me")

    headers = backend.last_request("GET", "/api/auth/me")["headers"]
    assert headers["authorization"] == "Bearer session-token"


async def test_gateway_omits_authorization_without_token(
    gateway: GatewayClient,
    backend: FakeBackend,
) -> None:
    await gateway.get("/k8s/containers", params={"namespace": "default"})

    request = backend.last_request("GET", "/api/k8s/containers")
    assert "authorization" not in request["headers"]
    assert request["query"] == {"namespace": "default"}


async def test_gateway_validates_response_model(gateway: GatewayClient) -> None:
    response = await gateway.get("/containers/c1", response_model=Container)

    assert isinstance(response.data, Container)
    assert response.data.identity_key == "c1"
    assert response.data.ports[0].container_port == 80


async def test_gateway_server_error_uses_nested_error_message(gateway: GatewayClient) -> None:
    with pytest.raises(ServerError) as exc_info:
        await gateway.get("/containers/missing")

    assert exc_info.value.code == 404
    assert exc_info.value.message == "container not found"
    api_error = exc_info.value.to_api_error()
    assert api_error.code == 404
    assert api_error.timestamp


async def test_gateway_server_error_prefers_top_level_message(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            409,
            json={"message": "name already taken", "details": {"field": "name"}},
        )

    async with _mock_gateway(tmp_path, handler) as client:
        with pytest.raises(ServerError) as exc_info:
            await client.post("/containers", {"name": "web"})

    assert exc_info.value.code == 409
    assert exc_info.value.message == "name already taken"
    assert exc_info.value.details == {"field": "name"}


async def test_gateway_server_error_falls_back_to_reason_phrase(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="upstream down")

    async with _mock_gateway(tmp_path, handler) as client:
        with pytest.raises(ServerError) as exc_info:
            await client.get("/containers")

    assert exc_info.value.code == 503
    assert exc_info.value.message == "Service Unavailable"


async def test_gateway_401_clears_both_tiers_and_signals_login(
    gateway: GatewayClient,
    backend: FakeBackend,
    token_storage: TokenStorage,
    expired_sessions: list[str],
) -> None:
    token_storage.store_tokens("T1", "R1", remember=True)
    token_storage.store_tokens("T2", "R2", remember=False)
    backend.reject_all_with_401 = True

    with pytest.raises(AuthExpiredError) as exc_info:
        await gateway.get("/containers")

    assert exc_info.value.code == 401
    assert exc_info.value.message == "token expired"
    assert token_storage.access_token() is None
    assert token_storage.refresh_token() is None
    assert expired_sessions == ["/login"]


async def test_gateway_transport_failure_is_network_error(tmp_path: Path) -> None:
    sink = _CaptureSink()

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _mock_gateway(
        tmp_path, handler, telemetry=TelemetryClient(enabled=True, sink=sink)
    ) as client:
        with pytest.raises(NetworkError) as exc_info:
            await client.get("/containers")

    assert exc_info.value.code == 0
    assert exc_info.value.message == "Network error. Please check your connection."
    assert sink.events == [
        (
            "gateway.request.failed",
            {"method": "GET", "path": "/containers", "outcome": "network_error", "code": 0},
        )
    ]


async def test_gateway_timeout_is_network_error(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    async with _mock_gateway(tmp_path, handler) as client:
        with pytest.raises(NetworkError):
            await client.get("/containers")


async def test_gateway_unparsable_body_is_client_error(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>not json</html>")

    async with _mock_gateway(tmp_path, handler) as client:
        with pytest.raises(ClientError) as exc_info:
            await client.get("/containers")

    assert exc_info.value.code == -1


async def test_gateway_contract_mismatch_is_client_error(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": True, "data": {"image": "nginx"}})

    async with _mock_gateway(tmp_path, handler) as client:
        with pytest.raises(ClientError) as exc_info:
            await client.get("/containers/c1", response_model=Container)

    assert exc_info.value.code == -1
    assert any(item["field"] == "name" for item in exc_info.value.details)


async def test_gateway_emits_completion_telemetry(tmp_path: Path) -> None:
    sink = _CaptureSink()

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": True, "data": []})

    async with _mock_gateway(
        tmp_path, handler, telemetry=TelemetryClient(enabled=True, sink=sink)
    ) as client:
        await client.get("/namespaces")

    assert len(sink.events) == 1
    event_name, attributes = sink.events[0]
    assert event_name == "gateway.request.complete"
    assert attributes["status"] == 200
    assert attributes["outcome"] == "ok"


async def test_rejected_envelope_unwraps_to_server_error(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": False, "message": "pod not found"})

    async with _mock_gateway(tmp_path, handler) as client:
        response = await client.post("/containers/c1/action", {"action": "stop"})

    assert response.success is False
    with pytest.raises(ServerError) as exc_info:
        unwrap_response(response)
    assert exc_info.value.code == 400
    assert exc_info.value.message == "pod not found"


async def test_rejected_envelope_reads_nested_error_message(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "success": False,
                "error": {
                    "code": "QUOTA_EXCEEDED",
                    "message": "namespace quota exceeded",
                    "details": {"limit": 10},
                },
            },
        )

    async with _mock_gateway(tmp_path, handler) as client:
        response = await client.get("/containers")

    with pytest.raises(ServerError) as exc_info:
        unwrap_response(response)
    assert exc_info.value.code == 400
    assert exc_info.value.message == "namespace quota exceeded"
    assert exc_info.value.details == {"limit": 10}


async def test_cancelled_request_resolves_as_cancellation(tmp_path: Path) -> None:
    started = asyncio.Event()

    async def handler(request: httpx.Request) -> httpx.Response:
        started.set()
        await asyncio.Event().wait()
        return httpx.Response(200, json={"success": True})

    async with _mock_gateway(tmp_path, handler) as client:
        handle = client.request("GET", "/containers")
        await started.wait()
        assert handle.cancel() is True

        with pytest.raises(RequestCancelledError) as exc_info:
            await handle

    assert handle.cancelled is True
    assert handle.done() is True
    assert exc_info.value.code == -2
    assert exc_info.value.request_id == handle.request_id
    assert is_user_visible(exc_info.value) is False


async def test_cancel_after_completion_is_a_no_op(gateway: GatewayClient) -> None:
    handle = gateway.request("GET", "/k8s/containers")
    response = await handle

    assert handle.cancel() is False
    assert handle.cancelled is False
    assert response.success is True


async def test_upload_sends_multipart_payload(gateway: GatewayClient) -> None:
    response = await gateway.upload("/uploads", b"kind: Pod\n", filename="pod.yaml")

    assert response.data["multipart"] is True
    assert response.data["size"] > len(b"kind: Pod\n")


async def test_download_saves_payload_into_download_dir(
    gateway: GatewayClient,
    tmp_path: Path,
) -> None:
    target = await gateway.download("/files/report", "report.bin")

    assert target == tmp_path / "downloads" / "report.bin"
    assert target.read_bytes() == b"report-bytes"


async def test_download_uses_default_filename(gateway: GatewayClient, tmp_path: Path) -> None:
    target = await gateway.download("/files/report")

    assert target.name == "download"


async def test_download_rejects_path_traversal(gateway: GatewayClient) -> None:
    with pytest.raises(ValidationError):
        await gateway.download("/files/report", "../escape.bin")


async def test_gather_settled_keeps_errors_in_place(gateway: GatewayClient) -> None:
    results = await gather_settled(
        gateway.get("/containers/c1"),
        gateway.get("/containers/missing"),
    )

    assert results[0].success is True
    assert isinstance(results[1], ServerError)
