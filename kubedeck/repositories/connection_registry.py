"""Persisted catalogue of cluster connections with single-active arbitration."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from typing import Any
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from kubedeck.gateway.errors import (
    ClientError,
    NotFoundError,
    ValidationError,
    unwrap_response,
    validation_error_from_pydantic,
)
from kubedeck.models.connection_contracts import Connection, ConnectionDraft
from kubedeck.models.envelope_contracts import utc_timestamp
from kubedeck.repositories.storage import KeyValueStore
from kubedeck.services.k8s_service import K8sService
from kubedeck.telemetry import TelemetryClient

LOGGER = logging.getLogger("kubedeck.registry")

CONNECTIONS_KEY = "k8s-connections"

ActiveConnectionListener = Callable[[Connection | None], None]


class ConnectionRegistry:
    def __init__(
        self,
        *,
        storage: KeyValueStore,
        k8s_service: K8sService | None = None,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._storage = storage
        self._k8s_service = k8s_service
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()
        self._listeners: list[ActiveConnectionListener] = []

    def list(self) -> list[Connection]:
        raw = self._storage.get(CONNECTIONS_KEY)
        if raw is None:
            return []
        try:
            payload = json.loads(raw)
        except ValueError:
            LOGGER.warning("connection catalogue is not valid JSON; treating as empty")
            return []
        if not isinstance(payload, list):
            LOGGER.warning("connection catalogue is not a list; treating as empty")
            return []

        connections: list[Connection] = []
        seen_active = False
        for entry in payload:
            try:
                connection = Connection.model_validate(entry)
            except PydanticValidationError:
                LOGGER.warning("discarding malformed connection entry")
                continue
            if connection.is_active:
                if seen_active:
                    connection = connection.model_copy(update={"is_active": False})
                seen_active = True
            connections.append(connection)
        return connections

    def get(self, connection_id: str) -> Connection:
        for connection in self.list():
            if connection.id == connection_id:
                return connection
        raise NotFoundError(
            f"Connection '{connection_id}' not found.",
            details={"id": connection_id},
        )

    def active(self) -> Connection | None:
        for connection in self.list():
            if connection.is_active:
                return connection
        return None

    def create(self, draft: ConnectionDraft | Mapping[str, Any]) -> Connection:
        validated = _validate_draft(draft)
        connection = Connection(
            **validated.model_dump(),
            id=_new_connection_id(),
            is_active=False,
            created_at=utc_timestamp(),
        )
        connections = self.list()
        connections.append(connection)
        self._persist(connections)
        LOGGER.info("connection created id=%s name=%s", connection.id, connection.name)
        return connection

    def activate(self, connection_id: str) -> Connection:
        connections = self.list()
        if not any(connection.id == connection_id for connection in connections):
            raise NotFoundError(
                f"Connection '{connection_id}' not found.",
                details={"id": connection_id},
            )

        updated = [
            connection.model_copy(update={"is_active": connection.id == connection_id})
            for connection in connections
        ]
        self._persist(updated)
        activated = next(connection for connection in updated if connection.is_active)
        LOGGER.info("connection activated id=%s", activated.id)
        self._telemetry.emit("registry.connection.activated", connection_id=activated.id)
        self._notify(activated)
        return activated

    def delete(self, connection_id: str) -> None:
        connections = self.list()
        target = next((item for item in connections if item.id == connection_id), None)
        if target is None:
            raise NotFoundError(
                f"Connection '{connection_id}' not found.",
                details={"id": connection_id},
            )
        self._persist([item for item in connections if item.id != connection_id])
        LOGGER.info("connection deleted id=%s was_active=%s", connection_id, target.is_active)
        if target.is_active:
            self._notify(None)

    async def test_connection(self, draft: ConnectionDraft | Mapping[str, Any]) -> None:
        """Probe a candidate endpoint through the backend; the catalogue is untouched."""
        if self._k8s_service is None:
            raise ClientError("Connection probing requires a cluster service.")
        validated = draft if isinstance(draft, Connection) else _validate_draft(draft)
        response = await self._k8s_service.test_connection(validated.to_probe_payload())
        unwrap_response(response)

    def subscribe(self, listener: ActiveConnectionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def export_json(self) -> str:
        return json.dumps([connection.to_wire() for connection in self.list()], indent=2)

    def import_json(self, blob: str) -> list[Connection]:
        """Append every connection in `blob` as a fresh, inactive entry.

        The whole blob is rejected when any entry fails validation.
        """
        try:
            payload = json.loads(blob)
        except ValueError as exc:
            raise ValidationError(
                "Connection import is not valid JSON.",
                details=[{"field": "blob", "message": str(exc)}],
            ) from exc
        if not isinstance(payload, list):
            raise ValidationError(
                "Connection import must be a JSON array.",
                details=[{"field": "blob", "message": "expected an array"}],
            )

        drafts: list[ConnectionDraft] = []
        for index, entry in enumerate(payload):
            if not isinstance(entry, dict):
                raise ValidationError(
                    f"Connection import entry {index} is not an object.",
                    details=[{"field": f"{index}", "message": "expected an object"}],
                )
            try:
                drafts.append(ConnectionDraft.model_validate(entry))
            except PydanticValidationError as exc:
                raise validation_error_from_pydantic(
                    exc, message=f"Connection import entry {index} is invalid."
                ) from exc

        imported = [
            Connection(
                **draft.model_dump(),
                id=_new_connection_id(),
                is_active=False,
                created_at=utc_timestamp(),
            )
            for draft in drafts
        ]
        self._persist([*self.list(), *imported])
        LOGGER.info("connections imported count=%s", len(imported))
        return imported

    def _persist(self, connections: list[Connection]) -> None:
        self._storage.set(
            CONNECTIONS_KEY,
            json.dumps([connection.to_wire() for connection in connections]),
        )

    def _notify(self, connection: Connection | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(connection)
            except Exception:
                LOGGER.exception("active connection listener failed")


def _validate_draft(draft: ConnectionDraft | Mapping[str, Any]) -> ConnectionDraft:
    if isinstance(draft, ConnectionDraft):
        return ConnectionDraft.model_validate(draft.model_dump())
    try:
        return ConnectionDraft.model_validate(dict(draft))
    except PydanticValidationError as exc:
        raise validation_error_from_pydantic(exc, message="Connection details are invalid.") from exc


def _new_connection_id() -> str:
    return f"conn-{uuid4().hex[:12]}"
