from __future__ import annotations

import re
from typing import Any, Literal
from urllib.parse import urlparse

from pydantic import Field, field_validator

from kubedeck.models.envelope_contracts import WireModel, utc_timestamp

AuthMode = Literal["kubeconfig", "token"]

DEFAULT_NAMESPACE = "default"
_DNS_LABEL_PATTERN = re.compile(r"[a-z0-9]([-a-z0-9]*[a-z0-9])?")


def _normalize_optional_text(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    if not normalized:
        return None
    return normalized


class ConnectionDraft(WireModel):
    """User-supplied fields of a cluster connection before it is catalogued."""

    name: str = Field(min_length=1, max_length=100)
    endpoint: str = Field(max_length=2048)
    auth_mode: AuthMode
    credential_payload: str = Field(min_length=1)
    default_namespace: str = DEFAULT_NAMESPACE

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("endpoint")
    @classmethod
    def _validate_endpoint(cls, value: str) -> str:
        normalized = value.strip()
        if any(ord(character) < 32 for character in normalized):
            raise ValueError("endpoint contains control characters")
        parsed = urlparse(normalized)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError("endpoint must be an absolute http/https URL")
        return normalized.rstrip("/")

    @field_validator("credential_payload")
    @classmethod
    def _validate_credential(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("credential payload must not be blank")
        return value

    @field_validator("default_namespace", mode="before")
    @classmethod
    def _normalize_namespace(cls, value: object) -> object:
        if value is None:
            return DEFAULT_NAMESPACE
        if isinstance(value, str):
            return _normalize_optional_text(value) or DEFAULT_NAMESPACE
        return value

    @field_validator("default_namespace")
    @classmethod
    def _validate_namespace(cls, value: str) -> str:
        if len(value) > 63 or not _DNS_LABEL_PATTERN.fullmatch(value):
            raise ValueError("namespace must be a DNS-1123 label")
        return value

    def to_probe_payload(self) -> dict[str, Any]:
        """Connection shape understood by the backend's test-connection endpoint."""
        payload: dict[str, Any] = {
            "name": self.name,
            "endpoint": self.endpoint,
            "configType": self.auth_mode,
            "namespace": self.default_namespace,
        }
        if self.auth_mode == "kubeconfig":
            payload["config"] = self.credential_payload
        else:
            payload["token"] = self.credential_payload
        return payload


class Connection(ConnectionDraft):
    id: str = Field(min_length=1)
    is_active: bool = False
    created_at: str = Field(default_factory=utc_timestamp)

    def to_draft(self) -> ConnectionDraft:
        return ConnectionDraft.model_validate(
            self.model_dump(exclude={"id", "is_active", "created_at"})
        )

    def to_probe_payload(self) -> dict[str, Any]:
        payload = super().to_probe_payload()
        payload["id"] = self.id
        return payload
