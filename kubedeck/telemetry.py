"""Structured telemetry events for gateway, registry and store activity.

Attributes are flattened to scalars before they reach a sink. Names that look
like credentials are redacted and request paths lose their query string.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Literal, Protocol

import structlog

LOGGER = logging.getLogger("kubedeck.telemetry")

TelemetryEvent = Literal[
    "gateway.request.complete",
    "gateway.request.failed",
    "gateway.session.expired",
    "registry.connection.activated",
    "store.mutation.failed",
]
KNOWN_EVENTS: frozenset[str] = frozenset(
    {
        "gateway.request.complete",
        "gateway.request.failed",
        "gateway.session.expired",
        "registry.connection.activated",
        "store.mutation.failed",
    }
)

REDACTED = "[redacted]"
_SENSITIVE_KEY_FRAGMENTS: tuple[str, ...] = (
    "authorization",
    "body",
    "credential",
    "kubeconfig",
    "password",
    "payload",
    "secret",
    "token",
)
_PATH_KEYS = frozenset({"path", "login_path", "url"})
_MAX_STRING_LENGTH = 160

AttributeValue = bool | int | float | str | None


def is_sensitive_key(key: str) -> bool:
    normalized = key.strip().lower()
    return any(fragment in normalized for fragment in _SENSITIVE_KEY_FRAGMENTS)


class TelemetrySink(Protocol):
    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        ...


class NoOpTelemetrySink:
    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        return None


class StructuredLogTelemetrySink:
    """Writes each event as one record on the `kubedeck.telemetry` logger."""

    def __init__(self, logger_name: str = "kubedeck.telemetry") -> None:
        self._logger = structlog.get_logger(logger_name)

    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        self._logger.info("telemetry", telemetry_event=event_name, **dict(attributes))


_SINK_FACTORIES: dict[str, Callable[[], TelemetrySink]] = {
    "log": StructuredLogTelemetrySink,
}


@dataclass(frozen=True)
class TelemetryClient:
    enabled: bool
    sink: TelemetrySink

    @classmethod
    def disabled(cls) -> TelemetryClient:
        return cls(enabled=False, sink=NoOpTelemetrySink())

    def emit(self, event_name: TelemetryEvent, **attributes: Any) -> None:
        if not self.enabled:
            return
        if event_name not in KNOWN_EVENTS:
            LOGGER.warning("dropping unknown telemetry event name=%s", event_name)
            return
        self.sink.emit(event_name=event_name, attributes=sanitize_attributes(attributes))


def build_telemetry_client(*, enabled: bool, sink: Literal["none", "log"]) -> TelemetryClient:
    factory = _SINK_FACTORIES.get(sink)
    if not enabled or factory is None:
        if enabled and sink != "none":
            LOGGER.warning("unsupported telemetry sink %s; telemetry disabled", sink)
        return TelemetryClient.disabled()
    return TelemetryClient(enabled=True, sink=factory())


def sanitize_attributes(attributes: Mapping[str, Any]) -> dict[str, AttributeValue]:
    sanitized: dict[str, AttributeValue] = {}
    for raw_key, raw_value in attributes.items():
        key = str(raw_key).strip().lower()
        if not key:
            continue
        if is_sensitive_key(key):
            sanitized[key] = REDACTED
        elif key in _PATH_KEYS and isinstance(raw_value, str):
            sanitized[key] = _flatten(raw_value.split("?", 1)[0])
        else:
            sanitized[key] = _flatten(raw_value)
    return sanitized


def _flatten(value: Any) -> AttributeValue:
    if value is None or isinstance(value, bool | int | float):
        return value
    if not isinstance(value, str):
        # Containers and models are reduced to their type name.
        return type(value).__name__
    compact = " ".join(value.split())
    if len(compact) > _MAX_STRING_LENGTH:
        return f"{compact[:_MAX_STRING_LENGTH]}..."
    return compact
