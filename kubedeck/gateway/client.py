from __future__ import annotations

import asyncio
import logging
import secrets
import string
import time
from collections.abc import Awaitable, Callable, Coroutine, Generator, Mapping
from functools import lru_cache
from pathlib import Path
from types import TracebackType
from typing import Any, Generic, TypeVar, cast

import httpx
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from structlog.contextvars import bound_contextvars

from kubedeck.gateway.errors import (
    UNKNOWN_ERROR_MESSAGE,
    AuthExpiredError,
    ClientError,
    GatewayError,
    NetworkError,
    RequestCancelledError,
    ServerError,
    ValidationError,
    extract_error_details,
    extract_error_message,
)
from kubedeck.models.envelope_contracts import ApiResponse
from kubedeck.repositories.storage import TokenStorage
from kubedeck.telemetry import TelemetryClient

LOGGER = logging.getLogger("kubedeck.gateway")

T = TypeVar("T")

REQUEST_ID_HEADER = "X-Request-ID"
TIMESTAMP_HEADER = "X-Timestamp"
_BASE36_ALPHABET = string.digits + string.ascii_lowercase

SessionExpiredHook = Callable[[str], None]
QueryValue = str | int | float | bool
QueryParams = Mapping[str, QueryValue]


def generate_request_id() -> str:
    suffix = "".join(secrets.choice(_BASE36_ALPHABET) for _ in range(9))
    return f"req_{_epoch_millis()}_{suffix}"


def _epoch_millis() -> int:
    return int(time.time() * 1000)


class RequestHandle(Generic[T]):
    """Awaitable handle for one in-flight call.

    `cancel()` aborts the underlying transport; awaiting a cancelled handle
    raises `RequestCancelledError` instead of one of the failure buckets.
    """

    def __init__(
        self,
        task: asyncio.Future[T],
        *,
        request_id: str,
        on_cancel: Callable[[], object] | None = None,
    ) -> None:
        self._task = task
        self._request_id = request_id
        self._on_cancel = on_cancel
        self._cancel_requested = False

    @property
    def request_id(self) -> str:
        return self._request_id

    @property
    def cancelled(self) -> bool:
        return self._cancel_requested

    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> bool:
        if self._task.done():
            return False
        self._cancel_requested = True
        if self._on_cancel is not None:
            self._on_cancel()
        else:
            self._task.cancel()
        return True

    def __await__(self) -> Generator[Any, None, T]:
        return self._wait().__await__()

    async def _wait(self) -> T:
        try:
            return await self._task
        except asyncio.CancelledError:
            if self._cancel_requested and self._task.cancelled():
                raise RequestCancelledError(self._request_id) from None
            raise


def start_request(
    coroutine: Coroutine[Any, Any, T],
    *,
    request_id: str,
    on_cancel: Callable[[], object] | None = None,
) -> RequestHandle[T]:
    task = asyncio.get_running_loop().create_task(coroutine)
    return RequestHandle(task, request_id=request_id, on_cancel=on_cancel)


class GatewayClient:
    """Single chokepoint for every outbound backend call."""

    def __init__(
        self,
        *,
        base_url: str,
        token_storage: TokenStorage,
        download_dir: Path,
        timeout_seconds: float = 30.0,
        login_path: str = "/login",
        on_session_expired: SessionExpiredHook | None = None,
        telemetry: TelemetryClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token_storage = token_storage
        self._download_dir = download_dir
        self._login_path = login_path
        self._on_session_expired = on_session_expired
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()
        self._http = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(max(1.0, float(timeout_seconds))),
            headers={"Accept": "application/json"},
            transport=transport,
        )

    async def __aenter__(self) -> GatewayClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    @property
    def base_url(self) -> str:
        return self._base_url

    def request(
        self,
        method: str,
        path: str,
        *,
        json: Any | None = None,
        params: QueryParams | None = None,
        files: Mapping[str, tuple[str, bytes, str]] | None = None,
        response_model: Any | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> RequestHandle[ApiResponse[Any]]:
        request_id = generate_request_id()
        return start_request(
            self._send_envelope(
                method.upper(),
                path,
                request_id=request_id,
                json=json,
                params=params,
                files=files,
                response_model=response_model,
                headers=headers,
            ),
            request_id=request_id,
        )

    async def get(
        self,
        path: str,
        *,
        params: QueryParams | None = None,
        response_model: Any | None = None,
    ) -> ApiResponse[Any]:
        return await self.request("GET", path, params=params, response_model=response_model)

    async def post(
        self,
        path: str,
        body: Any | None = None,
        *,
        params: QueryParams | None = None,
        response_model: Any | None = None,
    ) -> ApiResponse[Any]:
        return await self.request(
            "POST", path, json=body, params=params, response_model=response_model
        )

    async def put(
        self,
        path: str,
        body: Any | None = None,
        *,
        params: QueryParams | None = None,
        response_model: Any | None = None,
    ) -> ApiResponse[Any]:
        return await self.request(
            "PUT", path, json=body, params=params, response_model=response_model
        )

    async def patch(
        self,
        path: str,
        body: Any | None = None,
        *,
        params: QueryParams | None = None,
        response_model: Any | None = None,
    ) -> ApiResponse[Any]:
        return await self.request(
            "PATCH", path, json=body, params=params, response_model=response_model
        )

    async def delete(
        self,
        path: str,
        *,
        params: QueryParams | None = None,
        response_model: Any | None = None,
    ) -> ApiResponse[Any]:
        return await self.request("DELETE", path, params=params, response_model=response_model)

    async def upload(
        self,
        path: str,
        content: bytes,
        *,
        filename: str,
        field_name: str = "file",
        content_type: str = "application/octet-stream",
        response_model: Any | None = None,
    ) -> ApiResponse[Any]:
        return await self.request(
            "POST",
            path,
            files={field_name: (filename, content, content_type)},
            response_model=response_model,
        )

    async def download(
        self,
        path: str,
        filename: str | None = None,
        *,
        params: QueryParams | None = None,
    ) -> Path:
        target_name = _safe_filename(filename or "download")
        request_id = generate_request_id()
        handle = start_request(
            self._dispatch(
                "GET",
                path,
                request_id=request_id,
                json=None,
                params=params,
                files=None,
                headers={"Accept": "*/*"},
            ),
            request_id=request_id,
        )
        response = await handle

        try:
            self._download_dir.mkdir(parents=True, exist_ok=True)
            target = self._download_dir / target_name
            target.write_bytes(response.content)
        except OSError as exc:
            raise ClientError(f"Could not save download: {exc}") from exc
        LOGGER.info("download saved path=%s bytes=%s", target, len(response.content))
        return target

    async def _send_envelope(
        self,
        method: str,
        path: str,
        *,
        request_id: str,
        json: Any | None,
        params: QueryParams | None,
        files: Mapping[str, tuple[str, bytes, str]] | None,
        response_model: Any | None,
        headers: Mapping[str, str] | None,
    ) -> ApiResponse[Any]:
        response = await self._dispatch(
            method,
            path,
            request_id=request_id,
            json=json,
            params=params,
            files=files,
            headers=headers,
        )
        return _parse_envelope(response, response_model)

    async def _dispatch(
        self,
        method: str,
        path: str,
        *,
        request_id: str,
        json: Any | None,
        params: QueryParams | None,
        files: Mapping[str, tuple[str, bytes, str]] | None,
        headers: Mapping[str, str] | None,
    ) -> httpx.Response:
        with bound_contextvars(http_request_id=request_id, http_method=method, http_path=path):
            try:
                request = self._build_request(
                    method,
                    path,
                    request_id=request_id,
                    json=json,
                    params=params,
                    files=files,
                    headers=headers,
                )
            except (TypeError, ValueError, httpx.InvalidURL) as exc:
                LOGGER.warning("api request construction failed method=%s path=%s", method, path)
                self._emit_failure(method, path, outcome="client_error", code=-1)
                raise ClientError(str(exc) or UNKNOWN_ERROR_MESSAGE) from exc

            LOGGER.debug("api request method=%s path=%s", method, path)
            started_at = time.perf_counter()
            try:
                response = await self._http.send(request)
            except httpx.TransportError as exc:
                LOGGER.warning(
                    "api network error method=%s path=%s reason=%s",
                    method,
                    path,
                    type(exc).__name__,
                )
                self._emit_failure(method, path, outcome="network_error", code=0)
                raise NetworkError(details={"reason": type(exc).__name__}) from exc

            duration_ms = round((time.perf_counter() - started_at) * 1000, 2)
            LOGGER.debug(
                "api response method=%s path=%s status=%s duration_ms=%s",
                method,
                path,
                response.status_code,
                duration_ms,
            )
            if not response.is_success:
                error = self._classify_server_error(response)
                self._emit_failure(method, path, outcome="server_error", code=error.code)
                raise error

            self._telemetry.emit(
                "gateway.request.complete",
                method=method,
                path=path,
                status=response.status_code,
                duration_ms=duration_ms,
                outcome="ok",
            )
            return response

    def _build_request(
        self,
        method: str,
        path: str,
        *,
        request_id: str,
        json: Any | None,
        params: QueryParams | None,
        files: Mapping[str, tuple[str, bytes, str]] | None,
        headers: Mapping[str, str] | None,
    ) -> httpx.Request:
        request_headers: dict[str, str] = {
            REQUEST_ID_HEADER: request_id,
            TIMESTAMP_HEADER: str(_epoch_millis()),
        }
        token = self._token_storage.access_token()
        if token:
            request_headers["Authorization"] = f"Bearer {token}"
        if headers:
            request_headers.update(headers)

        return self._http.build_request(
            method,
            path,
            json=json,
            params=dict(params) if params is not None else None,
            files=dict(files) if files is not None else None,
            headers=request_headers,
        )

    def _classify_server_error(self, response: httpx.Response) -> ServerError:
        body = _decode_json_object(response)
        message = (
            extract_error_message(body)
            or response.reason_phrase
            or f"Request failed with status {response.status_code}"
        )
        details = extract_error_details(body)
        LOGGER.warning(
            "api server error status=%s path=%s message=%s",
            response.status_code,
            response.request.url.path,
            message,
        )
        if response.status_code == 401:
            self._expire_session()
            return AuthExpiredError(message, details=details)
        return ServerError(message, code=response.status_code, details=details)

    def _expire_session(self) -> None:
        self._token_storage.clear()
        self._telemetry.emit("gateway.session.expired", login_path=self._login_path)
        LOGGER.warning("session expired; credentials cleared login_path=%s", self._login_path)
        if self._on_session_expired is None:
            return
        try:
            self._on_session_expired(self._login_path)
        except Exception:
            LOGGER.exception("session expiry hook failed")

    def _emit_failure(self, method: str, path: str, *, outcome: str, code: int) -> None:
        self._telemetry.emit(
            "gateway.request.failed",
            method=method,
            path=path,
            outcome=outcome,
            code=code,
        )


async def gather_settled(
    *awaitables: Awaitable[T],
) -> list[T | GatewayError]:
    """Await every handle and return results with normalized errors in place."""
    results: list[T | GatewayError] = []
    for awaitable in awaitables:
        try:
            results.append(await awaitable)
        except GatewayError as exc:
            results.append(exc)
    return results


def _parse_envelope(response: httpx.Response, response_model: Any | None) -> ApiResponse[Any]:
    if not response.content.strip():
        return ApiResponse[Any](success=True)
    try:
        payload = response.json()
    except ValueError as exc:
        raise ClientError("Response body is not valid JSON.") from exc

    try:
        envelope = ApiResponse[Any].model_validate(payload)
        if response_model is not None and envelope.success and envelope.data is not None:
            data = _adapter_for(response_model).validate_python(envelope.data)
            envelope = envelope.model_copy(update={"data": data})
    except PydanticValidationError as exc:
        raise ClientError(
            "Response payload did not match the expected contract.",
            details=[{"field": ".".join(str(p) for p in e["loc"]), "message": e["msg"]} for e in exc.errors()],
        ) from exc
    return envelope


@lru_cache(maxsize=128)
def _adapter_for(response_model: Any) -> TypeAdapter[Any]:
    return TypeAdapter(response_model)


def _decode_json_object(response: httpx.Response) -> dict[str, object]:
    if not response.content.strip():
        return {}
    try:
        parsed = response.json()
    except ValueError:
        return {}
    if isinstance(parsed, dict):
        parsed_dict = cast(dict[object, object], parsed)
        return {key: value for key, value in parsed_dict.items() if isinstance(key, str)}
    return {}


def _safe_filename(filename: str) -> str:
    normalized = filename.strip()
    if (
        not normalized
        or normalized in {".", ".."}
        or "/" in normalized
        or "\\" in normalized
        or "\x00" in normalized
    ):
        raise ValidationError(
            "Download filename must be a plain file name.",
            details=[{"field": "filename", "message": "invalid file name"}],
        )
    return normalized
