from __future__ import annotations

import json
import re
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from kubedeck.gateway.errors import ValidationError, validation_error_from_pydantic
from kubedeck.models.envelope_contracts import WireModel

ContainerStatus = Literal["Running", "Pending", "Failed", "Succeeded", "Unknown"]
ContainerAction = Literal["start", "stop", "restart", "pause", "resume", "destroy"]
SortOrder = Literal["asc", "desc"]
UsageWindow = Literal["1h", "6h", "24h", "7d"]

CONTAINER_ACTIONS: tuple[ContainerAction, ...] = (
    "start",
    "stop",
    "restart",
    "pause",
    "resume",
    "destroy",
)
MAX_PAGE_SIZE = 500
_STATUS_BY_LOWER: dict[str, ContainerStatus] = {
    "running": "Running",
    "pending": "Pending",
    "failed": "Failed",
    "succeeded": "Succeeded",
    "unknown": "Unknown",
}
_QUANTITY_PATTERN = re.compile(r"\d+(\.\d+)?(m|k|Ki|Mi|Gi|Ti|Pi|Ei|M|G|T|P|E)?")
_DNS_LABEL_PATTERN = re.compile(r"[a-z0-9]([-a-z0-9]*[a-z0-9])?")
_ENV_NAME_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_.-]*")
_RESOURCE_NAMES = frozenset({"cpu", "memory", "storage", "ephemeral-storage"})


def _coerce_status(value: object) -> object:
    if isinstance(value, str):
        return _STATUS_BY_LOWER.get(value.strip().lower(), "Unknown")
    if value is None:
        return "Unknown"
    return value


def is_quantity(value: str) -> bool:
    return bool(_QUANTITY_PATTERN.fullmatch(value.strip()))


class ContainerPort(WireModel):
    name: str | None = None
    container_port: int = Field(ge=1, le=65535)
    protocol: Literal["TCP", "UDP"] = "TCP"
    host_port: int | None = Field(default=None, ge=1, le=65535)
    service_port: int | None = Field(default=None, ge=1, le=65535)


class ContainerVolume(WireModel):
    name: str
    mount_path: str
    volume_type: Literal["configMap", "secret", "persistentVolume", "hostPath"]
    source: str | None = None
    read_only: bool = False


class ResourceRange(WireModel):
    request: str | None = None
    limit: str | None = None

    @field_validator("request", "limit")
    @classmethod
    def _validate_quantity(cls, value: str | None) -> str | None:
        if value is None:
            return None
        if not is_quantity(value):
            raise ValueError(f"'{value}' is not a resource quantity")
        return value.strip()


class ContainerResources(WireModel):
    cpu: ResourceRange | None = None
    memory: ResourceRange | None = None
    storage: ResourceRange | None = None


class Container(WireModel):
    """Container resource as reported by the backend.

    `status` is authoritative from the server only; unrecognized values are
    folded into `Unknown` rather than rejected.
    """

    id: str | None = None
    name: str
    image: str = ""
    status: ContainerStatus = "Unknown"
    namespace: str = "default"
    pod_name: str | None = None
    ports: list[ContainerPort] = Field(default_factory=lambda: [])
    volumes: list[ContainerVolume] = Field(default_factory=lambda: [])
    resources: ContainerResources = Field(default_factory=ContainerResources)
    labels: dict[str, str] = Field(default_factory=lambda: {})
    annotations: dict[str, str] = Field(default_factory=lambda: {})
    restart_count: int = 0
    created_at: str | None = None
    updated_at: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: object) -> object:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: object) -> object:
        return _coerce_status(value)

    @property
    def identity_key(self) -> str:
        if self.id:
            return self.id
        return f"{self.namespace}/{self.name}"


class ContainerConfig(WireModel):
    name: str = Field(min_length=1, max_length=253)
    image: str = Field(min_length=1)
    command: list[str] | None = None
    args: list[str] | None = None
    env: dict[str, str] = Field(default_factory=lambda: {})
    working_dir: str | None = None
    restart_policy: Literal["Always", "OnFailure", "Never"] = "Always"
    ports: list[ContainerPort] = Field(default_factory=lambda: [])
    volumes: list[ContainerVolume] = Field(default_factory=lambda: [])
    resources: ContainerResources = Field(default_factory=ContainerResources)
    labels: dict[str, str] = Field(default_factory=lambda: {})
    annotations: dict[str, str] = Field(default_factory=lambda: {})

    @classmethod
    def parse_blob(cls, blob: str | bytes | dict[str, Any]) -> ContainerConfig:
        """Validate an imported configuration blob (JSON text or mapping)."""
        payload: object = blob
        if isinstance(blob, (str, bytes)):
            try:
                payload = json.loads(blob)
            except ValueError as exc:
                raise ValidationError(
                    "Configuration blob is not valid JSON.",
                    details=[{"field": "config", "message": str(exc)}],
                ) from exc
        if not isinstance(payload, dict):
            raise ValidationError(
                "Configuration blob must be a JSON object.",
                details=[{"field": "config", "message": "expected an object"}],
            )
        try:
            return cls.model_validate(payload)
        except PydanticValidationError as exc:
            raise validation_error_from_pydantic(exc, message="Configuration blob is invalid.") from exc


class ContainerListParams(WireModel):
    page: int | None = Field(default=None, ge=1)
    page_size: int | None = Field(default=None, ge=1, le=MAX_PAGE_SIZE)
    namespace: str | None = None
    status: str | None = None
    search: str | None = None
    sort_by: str | None = None
    sort_order: SortOrder | None = None

    def to_query(self) -> dict[str, str | int]:
        """Query parameters with unset fields left out entirely."""
        return {
            key: value
            for key, value in self.model_dump(by_alias=True).items()
            if value is not None
        }


class ContainerLogParams(WireModel):
    container_id: str = Field(min_length=1)
    namespace: str | None = None
    follow: bool | None = None
    tail: int | None = Field(default=None, ge=0)
    since: str | None = None
    timestamps: bool | None = None

    def to_query(self) -> dict[str, str | int]:
        query: dict[str, str | int] = {}
        for key, value in self.model_dump(by_alias=True, exclude={"container_id"}).items():
            if value is None:
                continue
            query[key] = str(value).lower() if isinstance(value, bool) else value
        return query


class ContainerLogResponse(WireModel):
    logs: list[str] = Field(default_factory=lambda: [])
    has_more: bool = False
    total_lines: int = 0


class CpuStats(WireModel):
    usage: str = ""
    usage_percent: float = 0.0


class MemoryStats(WireModel):
    usage: str = ""
    usage_percent: float = 0.0
    limit: str = ""


class NetworkStats(WireModel):
    rx: str = ""
    tx: str = ""


class FilesystemStats(WireModel):
    reads: str = ""
    writes: str = ""


class ContainerStats(WireModel):
    cpu: CpuStats = Field(default_factory=CpuStats)
    memory: MemoryStats = Field(default_factory=MemoryStats)
    network: NetworkStats = Field(default_factory=NetworkStats)
    fs: FilesystemStats = Field(default_factory=FilesystemStats)
    timestamp: str | None = None


class ExecRequest(WireModel):
    command: list[str] = Field(min_length=1)
    container: str = Field(min_length=1)
    namespace: str | None = None
    tty: bool | None = None
    stdin: bool | None = None


class ExecResponse(WireModel):
    session_id: str
    websocket_url: str


class ConfigValidationResult(WireModel):
    valid: bool
    errors: list[str] = Field(default_factory=lambda: [])


class Workload(WireModel):
    """Pod-level container view served by the cluster workload endpoints."""

    name: str
    namespace: str = "default"
    image: str = ""
    status: ContainerStatus = "Unknown"
    pod_name: str
    restart_count: int = 0
    age: str = ""
    node: str | None = None
    labels: dict[str, str] = Field(default_factory=lambda: {})
    container_id: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: object) -> object:
        return _coerce_status(value)

    @property
    def identity_key(self) -> str:
        return f"{self.namespace}/{self.pod_name}"


class WorkloadDraft(WireModel):
    name: str
    namespace: str = "default"
    image: str = Field(min_length=1)
    command: str | None = None
    ports: list[int] = Field(default_factory=lambda: [])
    env: dict[str, str] = Field(default_factory=lambda: {})
    resources: dict[str, str] = Field(default_factory=lambda: {})

    @field_validator("name", "namespace")
    @classmethod
    def _validate_dns_label(cls, value: str) -> str:
        normalized = value.strip()
        if len(normalized) > 63 or not _DNS_LABEL_PATTERN.fullmatch(normalized):
            raise ValueError("must be a DNS-1123 label")
        return normalized

    @classmethod
    def from_form(
        cls,
        *,
        name: str,
        image: str,
        namespace: str = "default",
        command: str | None = None,
        ports: str = "",
        env: str = "",
        resources: str = "",
    ) -> WorkloadDraft:
        """Parse the free-text workload form into a validated draft.

        `ports` is comma separated (`"80, 443"`), `env` holds one `KEY=VALUE`
        per line and `resources` reads `cpu:100m, memory:128Mi`. Every field is
        checked before raising so the error carries all offending fields.
        """
        details: list[dict[str, str]] = []
        parsed_ports = _parse_ports(ports, details)
        parsed_env = _parse_env(env, details)
        parsed_resources = _parse_resources(resources, details)
        try:
            draft = cls(
                name=name,
                namespace=namespace or "default",
                image=image.strip(),
                command=(command or "").strip() or None,
                ports=parsed_ports,
                env=parsed_env,
                resources=parsed_resources,
            )
        except PydanticValidationError as exc:
            converted = validation_error_from_pydantic(exc, message="Workload form is invalid.")
            details.extend(converted.details or [])
            raise ValidationError("Workload form is invalid.", details=details) from exc
        if details:
            raise ValidationError("Workload form is invalid.", details=details)
        return draft

    def to_wire(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": self.name,
            "namespace": self.namespace,
            "image": self.image,
            "ports": ",".join(str(port) for port in self.ports),
            "env": "\n".join(f"{key}={value}" for key, value in self.env.items()),
            "resources": ",".join(f"{key}:{value}" for key, value in self.resources.items()),
        }
        if self.command:
            payload["command"] = self.command
        return payload


def _parse_ports(raw: str, details: list[dict[str, str]]) -> list[int]:
    ports: list[int] = []
    for part in raw.split(","):
        candidate = part.strip()
        if not candidate:
            continue
        if not candidate.isdigit() or not 1 <= int(candidate) <= 65535:
            details.append({"field": "ports", "message": f"'{candidate}' is not a port number"})
            continue
        ports.append(int(candidate))
    return ports


def _parse_env(raw: str, details: list[dict[str, str]]) -> dict[str, str]:
    env: dict[str, str] = {}
    for line in raw.splitlines():
        entry = line.strip()
        if not entry:
            continue
        key, separator, value = entry.partition("=")
        key = key.strip()
        if not separator or not _ENV_NAME_PATTERN.fullmatch(key):
            details.append({"field": "env", "message": f"'{entry}' is not KEY=VALUE"})
            continue
        env[key] = value.strip()
    return env


def _parse_resources(raw: str, details: list[dict[str, str]]) -> dict[str, str]:
    resources: dict[str, str] = {}
    for part in raw.split(","):
        entry = part.strip()
        if not entry:
            continue
        key, separator, value = entry.partition(":")
        key = key.strip().lower()
        value = value.strip()
        if not separator or key not in _RESOURCE_NAMES:
            details.append({"field": "resources", "message": f"'{entry}' is not name:quantity"})
            continue
        if not is_quantity(value):
            details.append({"field": "resources", "message": f"'{value}' is not a resource quantity"})
            continue
        resources[key] = value
    return resources
