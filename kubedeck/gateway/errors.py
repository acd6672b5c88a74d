"""Normalized error taxonomy shared by every layer above the transport.

Each failure, whatever its origin, is raised as a `GatewayError` subclass that
carries the same `ApiError` shape: `code` mirrors the HTTP status for server
rejections, `0` for network failures, `-1` for client-side failures and `-2`
for deliberately cancelled requests.
"""

from __future__ import annotations

from typing import Any, TypeVar, cast

from kubedeck.models.envelope_contracts import (
    CANCELLED_ERROR_CODE,
    CLIENT_ERROR_CODE,
    NETWORK_ERROR_CODE,
    ApiError,
    ApiResponse,
    utc_timestamp,
)

T = TypeVar("T")

NETWORK_ERROR_MESSAGE = "Network error. Please check your connection."
UNKNOWN_ERROR_MESSAGE = "Unknown error occurred"
REJECTED_ENVELOPE_CODE = 400


class GatewayError(Exception):
    def __init__(self, message: str, *, code: int, details: Any | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details
        self.timestamp = utc_timestamp()

    def to_api_error(self) -> ApiError:
        return ApiError(
            code=self.code,
            message=self.message,
            details=self.details,
            timestamp=self.timestamp,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class ServerError(GatewayError):
    """The backend answered, but rejected the request."""


class AuthExpiredError(ServerError):
    def __init__(self, message: str, *, details: Any | None = None) -> None:
        super().__init__(message, code=401, details=details)


class NetworkError(GatewayError):
    def __init__(self, message: str = NETWORK_ERROR_MESSAGE, *, details: Any | None = None) -> None:
        super().__init__(message, code=NETWORK_ERROR_CODE, details=details)


class ClientError(GatewayError):
    def __init__(self, message: str = UNKNOWN_ERROR_MESSAGE, *, details: Any | None = None) -> None:
        super().__init__(message, code=CLIENT_ERROR_CODE, details=details)


class ValidationError(ClientError):
    """Boundary input failed its parse/validate step."""


class MissingCredentialError(ClientError):
    pass


class NotFoundError(ClientError):
    pass


class RequestCancelledError(GatewayError):
    def __init__(self, request_id: str) -> None:
        super().__init__(
            f"Request {request_id} was cancelled.",
            code=CANCELLED_ERROR_CODE,
            details={"request_id": request_id},
        )
        self.request_id = request_id


def is_user_visible(error: BaseException) -> bool:
    return isinstance(error, GatewayError) and not isinstance(error, RequestCancelledError)


def unwrap_response(response: ApiResponse[T]) -> T | None:
    """Return `data` of a successful envelope, raise `ServerError` otherwise."""
    if response.success:
        return response.data
    payload = response.model_dump(include={"message", "error", "details"})
    raise ServerError(
        extract_error_message(payload) or "Request was rejected by the server.",
        code=response.code if response.code is not None else REJECTED_ENVELOPE_CODE,
        details=extract_error_details(payload),
    )


def validation_error_from_pydantic(exc: Exception, *, message: str) -> ValidationError:
    errors = getattr(exc, "errors", None)
    details: list[dict[str, Any]] = []
    if callable(errors):
        for item in errors():
            location = ".".join(str(part) for part in item.get("loc", ()))
            details.append({"field": location, "message": str(item.get("msg", ""))})
    return ValidationError(message, details=details or None)


def extract_error_message(payload: dict[str, object]) -> str | None:
    message = _to_optional_text(payload.get("message"))
    if message is not None:
        return message
    error = payload.get("error")
    if isinstance(error, dict):
        nested = _to_optional_text(cast(dict[str, object], error).get("message"))
        if nested is not None:
            return nested
    return _to_optional_text(error)


def extract_error_details(payload: dict[str, object]) -> Any | None:
    details = payload.get("details")
    if details is not None:
        return details
    error = payload.get("error")
    if isinstance(error, dict):
        return cast(dict[str, object], error).get("details")
    return None


def _to_optional_text(value: object) -> str | None:
    if isinstance(value, str):
        stripped = value.strip()
        if stripped:
            return stripped
    return None
