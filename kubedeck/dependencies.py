from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from types import TracebackType

import httpx

from kubedeck.config import AppSettings, load_settings
from kubedeck.gateway.client import GatewayClient, SessionExpiredHook
from kubedeck.repositories.connection_registry import ConnectionRegistry
from kubedeck.repositories.database import Database
from kubedeck.repositories.storage import (
    InMemoryKeyValueStore,
    KeyValueStore,
    SqliteKeyValueStore,
    TokenStorage,
)
from kubedeck.services.auth_service import AuthService
from kubedeck.services.container_service import ContainerService
from kubedeck.services.k8s_service import K8sService
from kubedeck.services.user_service import UserService
from kubedeck.store.entity_store import EntityStore
from kubedeck.telemetry import TelemetryClient, build_telemetry_client


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return load_settings()


@dataclass
class Runtime:
    """Every client-side component wired against one gateway instance."""

    settings: AppSettings
    gateway: GatewayClient
    token_storage: TokenStorage
    registry: ConnectionRegistry
    auth: AuthService
    users: UserService
    containers: ContainerService
    k8s: K8sService
    store: EntityStore

    async def __aenter__(self) -> Runtime:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.store.aclose()
        await self.gateway.aclose()


def build_runtime(
    settings: AppSettings,
    *,
    durable_storage: KeyValueStore | None = None,
    ephemeral_storage: KeyValueStore | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    on_session_expired: SessionExpiredHook | None = None,
    telemetry: TelemetryClient | None = None,
) -> Runtime:
    if durable_storage is None:
        database = Database(settings.state_db_path)
        database.initialize()
        durable_storage = SqliteKeyValueStore(database, tier="durable")
    if ephemeral_storage is None:
        ephemeral_storage = InMemoryKeyValueStore()
    if telemetry is None:
        telemetry = build_telemetry_client(
            enabled=settings.telemetry_enabled,
            sink=settings.telemetry_sink,
        )

    token_storage = TokenStorage(durable=durable_storage, ephemeral=ephemeral_storage)
    gateway = GatewayClient(
        base_url=settings.api_base_url,
        token_storage=token_storage,
        download_dir=settings.download_dir,
        timeout_seconds=settings.http_timeout_seconds,
        login_path=settings.login_path,
        on_session_expired=on_session_expired,
        telemetry=telemetry,
        transport=transport,
    )
    containers = ContainerService(gateway=gateway)
    k8s = K8sService(gateway=gateway)
    registry = ConnectionRegistry(storage=durable_storage, k8s_service=k8s, telemetry=telemetry)
    store = EntityStore(
        container_service=containers,
        k8s_service=k8s,
        registry=registry,
        default_namespace=settings.default_namespace,
        page_size=settings.default_page_size,
        auto_refresh=settings.auto_refresh_enabled,
        refresh_interval_seconds=settings.refresh_interval_seconds,
        telemetry=telemetry,
    )
    return Runtime(
        settings=settings,
        gateway=gateway,
        token_storage=token_storage,
        registry=registry,
        auth=AuthService(
            gateway=gateway,
            token_storage=token_storage,
            privileged_role=settings.privileged_role,
        ),
        users=UserService(gateway=gateway),
        containers=containers,
        k8s=k8s,
        store=store,
    )
