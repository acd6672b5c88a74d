"""In-memory source of truth for connections, containers and workloads.

Reads resolve into slices through a generation guard: every fetch cancels the
previous in-flight fetch of the same slice and resolutions that belong to an
older generation are dropped. Writes are pessimistic; local state is patched
only after the backend confirms, and failures land in the slice's error slot
before being re-raised to the caller.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections import Counter
from collections.abc import Callable, Mapping
from dataclasses import fields
from typing import Any, Literal
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from kubedeck.gateway.client import RequestHandle
from kubedeck.gateway.errors import (
    AuthExpiredError,
    GatewayError,
    RequestCancelledError,
    ValidationError,
    is_user_visible,
    unwrap_response,
    validation_error_from_pydantic,
)
from kubedeck.models.connection_contracts import Connection, ConnectionDraft
from kubedeck.models.container_contracts import (
    MAX_PAGE_SIZE,
    Container,
    ContainerAction,
    ContainerConfig,
    ContainerListParams,
    Workload,
    WorkloadDraft,
)
from kubedeck.models.dashboard_contracts import (
    ActivityStatus,
    DashboardStatistics,
    RecentActivity,
)
from kubedeck.models.envelope_contracts import PaginatedResponse, utc_timestamp
from kubedeck.repositories.connection_registry import ConnectionRegistry
from kubedeck.services.container_service import ContainerService
from kubedeck.services.k8s_service import K8sService
from kubedeck.store.state import (
    ContainerFilter,
    ContainersSlice,
    ConnectionsSlice,
    Notification,
    NotificationType,
    StoreState,
    WorkloadsSlice,
    initial_state,
)
from kubedeck.telemetry import TelemetryClient

LOGGER = logging.getLogger("kubedeck.store")

CONTAINERS_KEY = "containers"
WORKLOADS_KEY = "workloads"

WorkloadAction = Literal["start", "stop", "restart", "delete"]
StoreListener = Callable[[StoreState], None]

_FILTER_FIELDS = frozenset(item.name for item in fields(ContainerFilter))


class EntityStore:
    def __init__(
        self,
        *,
        container_service: ContainerService,
        k8s_service: K8sService,
        registry: ConnectionRegistry,
        default_namespace: str = "default",
        page_size: int = 20,
        auto_refresh: bool = True,
        refresh_interval_seconds: float = 30,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._container_service = container_service
        self._k8s_service = k8s_service
        self._registry = registry
        self._default_namespace = default_namespace
        self._page_size = page_size
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()
        self._state = initial_state(
            namespace=default_namespace,
            page_size=page_size,
            auto_refresh=auto_refresh,
            refresh_interval_seconds=refresh_interval_seconds,
        )
        self._inflight: dict[str, RequestHandle[Any]] = {}
        self._listeners: list[StoreListener] = []
        self._refresh_task: asyncio.Task[None] | None = None
        self._unsubscribe_registry = registry.subscribe(self._on_active_connection_changed)

        self.load_connections()
        active = self._active_connection()
        if active is not None:
            self._state.containers.filter.namespace = active.default_namespace
            self._state.workloads.namespace = active.default_namespace

    @property
    def state(self) -> StoreState:
        return self._state

    def containers(self) -> list[Container]:
        return self._state.containers.ordered()

    def workloads(self) -> list[Workload]:
        return list(self._state.workloads.items.values())

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def aclose(self) -> None:
        await self.stop_auto_refresh()
        for key in (CONTAINERS_KEY, WORKLOADS_KEY):
            self._cancel_inflight(key)
        self._unsubscribe_registry()

    # Containers

    def fetch_containers(self) -> RequestHandle[None]:
        loop = asyncio.get_running_loop()
        slice_ = self._state.containers
        params = _list_params(slice_)
        self._cancel_inflight(CONTAINERS_KEY)
        slice_.generation += 1
        generation = slice_.generation
        slice_.status = "loading"
        self._set_loading(CONTAINERS_KEY, True)

        handle = self._container_service.get_containers(params)
        task = loop.create_task(self._settle_containers(handle, generation))
        fetch = RequestHandle(task, request_id=handle.request_id, on_cancel=handle.cancel)
        self._inflight[CONTAINERS_KEY] = fetch
        self._emit()
        return fetch

    def set_filter(self, **changes: str | None) -> RequestHandle[None]:
        unknown = sorted(set(changes) - _FILTER_FIELDS)
        if unknown:
            raise ValidationError(
                f"Unknown container filter field(s): {', '.join(unknown)}.",
                details=[{"field": name, "message": "unknown filter"} for name in unknown],
            )
        sort_order = changes.get("sort_order")
        if sort_order not in (None, "asc", "desc"):
            raise ValidationError(
                f"Unsupported sort order '{sort_order}'.",
                details=[{"field": "sortOrder", "message": "expected asc or desc"}],
            )
        slice_ = self._state.containers
        namespace = changes.get("namespace")
        if "namespace" in changes and namespace != slice_.filter.namespace:
            slice_.filter = ContainerFilter(namespace=namespace or self._default_namespace)
            slice_.items = {}
            slice_.selected_id = None
        for name, value in changes.items():
            if name != "namespace":
                setattr(slice_.filter, name, value)
        slice_.pagination.page = 1
        slice_.error = None
        return self.fetch_containers()

    def set_page(self, page: int, page_size: int | None = None) -> RequestHandle[None]:
        if page < 1:
            raise ValidationError(
                "Page must be positive.",
                details=[{"field": "page", "message": "must be >= 1"}],
            )
        if page_size is not None and not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValidationError(
                f"Page size must be between 1 and {MAX_PAGE_SIZE}.",
                details=[{"field": "pageSize", "message": f"must be within 1..{MAX_PAGE_SIZE}"}],
            )
        slice_ = self._state.containers
        slice_.pagination.page = page
        if page_size is not None and page_size != slice_.pagination.page_size:
            slice_.pagination.page_size = page_size
            slice_.pagination.page = 1
        slice_.error = None
        return self.fetch_containers()

    def select_container(self, container_id: str | None) -> None:
        self._state.containers.selected_id = container_id
        self._emit()

    async def create_container(
        self,
        config: ContainerConfig | Mapping[str, Any],
        namespace: str | None = None,
    ) -> Container | None:
        slice_ = self._state.containers
        target_namespace = namespace or slice_.filter.namespace
        try:
            response = await self._container_service.create_container(config, target_namespace)
            created = unwrap_response(response)
        except GatewayError as exc:
            self._fail_mutation(slice_, exc, operation="container.create")
            self._record_activity("create", _config_name(config), target_namespace, "failed", exc.message)
            raise

        if created is not None:
            slice_.items[created.identity_key] = created
            slice_.pagination.total += 1
            self._record_activity("create", created.name, created.namespace, "success")
        self._recompute_statistics()
        self._emit()
        return created

    async def update_container(
        self,
        container_id: str,
        config: Mapping[str, Any],
        namespace: str | None = None,
    ) -> Container | None:
        slice_ = self._state.containers
        target_namespace = namespace or self._namespace_of(container_id)
        try:
            response = await self._container_service.update_container(
                container_id, config, target_namespace
            )
            updated = unwrap_response(response)
        except GatewayError as exc:
            self._fail_mutation(slice_, exc, operation="container.update")
            self._record_activity("update", container_id, target_namespace, "failed", exc.message)
            raise

        if updated is not None:
            self._replace_container(container_id, updated)
        self._record_activity("update", container_id, target_namespace, "success")
        self._recompute_statistics()
        self._emit()
        return updated

    async def perform_action(
        self,
        container_id: str,
        action: ContainerAction,
        namespace: str | None = None,
    ) -> None:
        slice_ = self._state.containers
        target_namespace = namespace or self._namespace_of(container_id)
        slice_.pending_actions[container_id] = action
        self._emit()
        try:
            response = await self._container_service.perform_action(
                container_id, action, target_namespace
            )
            unwrap_response(response)
        except RequestCancelledError:
            raise
        except GatewayError as exc:
            self._fail_mutation(slice_, exc, operation=f"container.{action}")
            self._record_activity(action, container_id, target_namespace, "failed", exc.message)
            raise
        finally:
            slice_.pending_actions.pop(container_id, None)
            self._emit()

        if action == "destroy":
            self._remove_container(container_id)
        else:
            await self._reread_container(container_id, target_namespace)
        self._record_activity(action, container_id, target_namespace, "success")
        self._recompute_statistics()
        self._emit()

    async def delete_container(self, container_id: str, namespace: str | None = None) -> None:
        await self.perform_action(container_id, "destroy", namespace)

    async def batch_action(
        self,
        container_ids: list[str],
        action: ContainerAction,
        namespace: str | None = None,
    ) -> None:
        slice_ = self._state.containers
        for container_id in container_ids:
            slice_.pending_actions[container_id] = action
        self._emit()
        try:
            response = await self._container_service.batch_operation(
                container_ids, action, namespace
            )
            unwrap_response(response)
        except RequestCancelledError:
            raise
        except GatewayError as exc:
            self._fail_mutation(slice_, exc, operation=f"container.batch.{action}")
            self._record_activity(
                action, ",".join(container_ids), namespace or slice_.filter.namespace, "failed", exc.message
            )
            raise
        finally:
            for container_id in container_ids:
                slice_.pending_actions.pop(container_id, None)
            self._emit()

        for container_id in container_ids:
            if action == "destroy":
                self._remove_container(container_id)
            else:
                await self._reread_container(container_id, namespace or self._namespace_of(container_id))
        self._record_activity(
            action, ",".join(container_ids), namespace or slice_.filter.namespace, "success"
        )
        self._recompute_statistics()
        self._emit()

    # Cluster workloads

    def fetch_workloads(self, namespace: str | None = None) -> RequestHandle[None]:
        loop = asyncio.get_running_loop()
        slice_ = self._state.workloads
        if namespace is not None and namespace != slice_.namespace:
            slice_.namespace = namespace
            slice_.items = {}
        self._cancel_inflight(WORKLOADS_KEY)
        slice_.generation += 1
        generation = slice_.generation
        slice_.status = "loading"
        self._set_loading(WORKLOADS_KEY, True)

        handle = self._k8s_service.get_containers(slice_.namespace)
        task = loop.create_task(self._settle_workloads(handle, generation))
        fetch = RequestHandle(task, request_id=handle.request_id, on_cancel=handle.cancel)
        self._inflight[WORKLOADS_KEY] = fetch
        self._emit()
        return fetch

    async def create_workload(self, draft: WorkloadDraft) -> None:
        slice_ = self._state.workloads
        try:
            unwrap_response(await self._k8s_service.create_container(draft))
        except GatewayError as exc:
            self._fail_mutation(slice_, exc, operation="workload.create")
            self._record_activity("create", draft.name, draft.namespace, "failed", exc.message)
            raise
        self._record_activity("create", draft.name, draft.namespace, "success")
        await self.fetch_workloads()

    async def workload_action(self, namespace: str, pod_name: str, action: WorkloadAction) -> None:
        slice_ = self._state.workloads
        key = f"{namespace}/{pod_name}"
        operations = {
            "start": self._k8s_service.start_container,
            "stop": self._k8s_service.stop_container,
            "restart": self._k8s_service.restart_container,
            "delete": self._k8s_service.delete_container,
        }
        operation = operations.get(action)
        if operation is None:
            raise ValidationError(
                f"Unsupported workload action '{action}'.",
                details=[{"field": "action", "message": "expected start, stop, restart or delete"}],
            )

        slice_.pending_actions[key] = action
        self._emit()
        try:
            unwrap_response(await operation(namespace, pod_name))
        except RequestCancelledError:
            raise
        except GatewayError as exc:
            self._fail_mutation(slice_, exc, operation=f"workload.{action}")
            self._record_activity(action, pod_name, namespace, "failed", exc.message)
            raise
        finally:
            slice_.pending_actions.pop(key, None)
            self._emit()

        self._record_activity(action, pod_name, namespace, "success")
        if action == "delete":
            slice_.items.pop(key, None)
            self._emit()
            return
        # No single-pod read endpoint exists, so the namespace view is reloaded.
        await self.fetch_workloads()

    # Connections

    def load_connections(self) -> list[Connection]:
        slice_ = self._state.connections
        slice_.items = self._registry.list()
        slice_.active_id = next((item.id for item in slice_.items if item.is_active), None)
        slice_.status = "populated"
        slice_.error = None
        self._emit()
        return slice_.items

    def create_connection(self, draft: ConnectionDraft | Mapping[str, Any]) -> Connection:
        try:
            connection = self._registry.create(draft)
        except GatewayError as exc:
            self._fail_mutation(self._state.connections, exc, operation="connection.create")
            raise
        self.load_connections()
        self.notify("success", "Connection saved", f"Connection '{connection.name}' was added.")
        return connection

    def activate_connection(self, connection_id: str) -> Connection:
        try:
            return self._registry.activate(connection_id)
        except GatewayError as exc:
            self._fail_mutation(self._state.connections, exc, operation="connection.activate")
            raise

    def delete_connection(self, connection_id: str) -> None:
        try:
            self._registry.delete(connection_id)
        except GatewayError as exc:
            self._fail_mutation(self._state.connections, exc, operation="connection.delete")
            raise
        self.load_connections()

    async def test_connection(self, draft: ConnectionDraft | Mapping[str, Any]) -> None:
        try:
            await self._registry.test_connection(draft)
        except RequestCancelledError:
            raise
        except GatewayError as exc:
            self._fail_mutation(self._state.connections, exc, operation="connection.test")
            raise
        self.notify("success", "Connection reachable", "The cluster endpoint accepted the credentials.")

    def import_connections(self, blob: str) -> list[Connection]:
        try:
            imported = self._registry.import_json(blob)
        except GatewayError as exc:
            self._fail_mutation(self._state.connections, exc, operation="connection.import")
            raise
        self.load_connections()
        return imported

    def export_connections(self) -> str:
        return self._registry.export_json()

    # Dashboard

    def start_auto_refresh(self) -> None:
        dashboard = self._state.dashboard
        dashboard.auto_refresh = True
        if self._refresh_task is not None and not self._refresh_task.done():
            return
        self._refresh_task = asyncio.get_running_loop().create_task(self._auto_refresh_loop())
        LOGGER.info("auto refresh started interval_seconds=%s", dashboard.refresh_interval_seconds)

    async def stop_auto_refresh(self) -> None:
        self._state.dashboard.auto_refresh = False
        task = self._refresh_task
        self._refresh_task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        LOGGER.info("auto refresh stopped")

    def set_refresh_interval(self, seconds: float) -> None:
        if seconds <= 0:
            raise ValidationError(
                "Refresh interval must be positive.",
                details=[{"field": "refreshInterval", "message": "must be > 0"}],
            )
        self._state.dashboard.refresh_interval_seconds = seconds
        self._emit()

    async def _auto_refresh_loop(self) -> None:
        dashboard = self._state.dashboard
        while dashboard.auto_refresh:
            await asyncio.sleep(dashboard.refresh_interval_seconds)
            if not dashboard.auto_refresh:
                break
            try:
                await self.fetch_containers()
            except GatewayError as exc:
                LOGGER.warning("auto refresh skipped code=%s message=%s", exc.code, exc.message)

    # Notifications

    def notify(self, kind: NotificationType, title: str, message: str) -> Notification:
        notification = Notification(
            id=uuid4().hex,
            type=kind,
            title=title,
            message=message,
            timestamp=int(time.time() * 1000),
        )
        self._state.ui.notifications.append(notification)
        self._emit()
        return notification

    def dismiss_notification(self, notification_id: str) -> None:
        ui = self._state.ui
        ui.notifications = [item for item in ui.notifications if item.id != notification_id]
        self._emit()

    def clear_notifications(self) -> None:
        self._state.ui.notifications = []
        self._emit()

    # Internals

    async def _settle_containers(self, handle: RequestHandle[Any], generation: int) -> None:
        slice_ = self._state.containers
        try:
            page = unwrap_response(await handle)
        except RequestCancelledError:
            self._restore_after_cancel(slice_, CONTAINERS_KEY, generation)
            LOGGER.debug("container fetch cancelled generation=%s", generation)
            return
        except asyncio.CancelledError:
            self._restore_after_cancel(slice_, CONTAINERS_KEY, generation)
            raise
        except GatewayError as exc:
            if generation != slice_.generation:
                return
            self._finish_fetch(CONTAINERS_KEY)
            self._fail_read(slice_, exc, operation="containers.list")
            return

        if generation != slice_.generation:
            LOGGER.debug(
                "discarding stale container page generation=%s current=%s",
                generation,
                slice_.generation,
            )
            return
        self._finish_fetch(CONTAINERS_KEY)
        resolved: PaginatedResponse[Container] = page or PaginatedResponse[Container]()
        slice_.items = {item.identity_key: item for item in resolved.items}
        slice_.pagination.total = resolved.total
        slice_.pagination.total_pages = resolved.total_pages
        slice_.pagination.page = resolved.page
        slice_.pagination.page_size = resolved.page_size
        slice_.status = slice_.settled_status = "populated"
        slice_.error = None
        self._state.dashboard.last_refresh = utc_timestamp()
        self._recompute_statistics()
        self._emit()

    async def _settle_workloads(self, handle: RequestHandle[Any], generation: int) -> None:
        slice_ = self._state.workloads
        try:
            items = unwrap_response(await handle)
        except RequestCancelledError:
            self._restore_after_cancel(slice_, WORKLOADS_KEY, generation)
            return
        except asyncio.CancelledError:
            self._restore_after_cancel(slice_, WORKLOADS_KEY, generation)
            raise
        except GatewayError as exc:
            if generation != slice_.generation:
                return
            self._finish_fetch(WORKLOADS_KEY)
            self._fail_read(slice_, exc, operation="workloads.list")
            return

        if generation != slice_.generation:
            LOGGER.debug("discarding stale workload list generation=%s", generation)
            return
        self._finish_fetch(WORKLOADS_KEY)
        slice_.items = {item.identity_key: item for item in items or []}
        slice_.status = slice_.settled_status = "populated"
        slice_.error = None
        self._emit()

    def _restore_after_cancel(
        self,
        slice_: ContainersSlice | WorkloadsSlice,
        key: str,
        generation: int,
    ) -> None:
        if generation != slice_.generation:
            return
        slice_.status = slice_.settled_status
        self._finish_fetch(key)
        self._emit()

    async def _reread_container(self, container_id: str, namespace: str | None) -> None:
        try:
            container = unwrap_response(
                await self._container_service.get_container(container_id, namespace)
            )
        except GatewayError as exc:
            LOGGER.warning(
                "container re-read failed; keeping cached entity id=%s code=%s",
                container_id,
                exc.code,
            )
            return
        if container is not None:
            self._replace_container(container_id, container)

    def _replace_container(self, previous_key: str, container: Container) -> None:
        items = self._state.containers.items
        if previous_key in items and previous_key != container.identity_key:
            rebuilt = {
                (container.identity_key if key == previous_key else key): (
                    container if key == previous_key else value
                )
                for key, value in items.items()
            }
            self._state.containers.items = rebuilt
            return
        items[container.identity_key] = container

    def _remove_container(self, container_id: str) -> None:
        slice_ = self._state.containers
        if slice_.items.pop(container_id, None) is not None:
            slice_.pagination.total = max(0, slice_.pagination.total - 1)
        if slice_.selected_id == container_id:
            slice_.selected_id = None

    def _namespace_of(self, container_id: str) -> str | None:
        container = self._state.containers.items.get(container_id)
        if container is not None:
            return container.namespace
        return None

    def _on_active_connection_changed(self, connection: Connection | None) -> None:
        for key in (CONTAINERS_KEY, WORKLOADS_KEY):
            self._cancel_inflight(key)
        namespace = connection.default_namespace if connection else self._default_namespace
        self._reset_resource_slices(namespace)
        self.load_connections()
        LOGGER.info(
            "active connection changed id=%s namespace=%s",
            connection.id if connection else None,
            namespace,
        )
        if connection is None:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        self.fetch_containers()
        self.fetch_workloads()

    def _reset_resource_slices(self, namespace: str) -> None:
        containers = self._state.containers
        containers.generation += 1
        containers.filter = ContainerFilter(namespace=namespace)
        containers.pagination.page = 1
        containers.pagination.page_size = self._page_size
        containers.pagination.total = 0
        containers.pagination.total_pages = 0
        containers.items = {}
        containers.pending_actions = {}
        containers.selected_id = None
        containers.status = containers.settled_status = "idle"
        containers.error = None

        workloads = self._state.workloads
        workloads.generation += 1
        workloads.namespace = namespace
        workloads.items = {}
        workloads.pending_actions = {}
        workloads.status = workloads.settled_status = "idle"
        workloads.error = None

        for key in (CONTAINERS_KEY, WORKLOADS_KEY):
            self._state.ui.loading[key] = False
        self._recompute_statistics()

    def _clear_session_data(self) -> None:
        for key in (CONTAINERS_KEY, WORKLOADS_KEY):
            self._cancel_inflight(key)
        self._reset_resource_slices(self._state.containers.filter.namespace)

    def _fail_read(
        self,
        slice_: ContainersSlice | WorkloadsSlice,
        exc: GatewayError,
        *,
        operation: str,
    ) -> None:
        if isinstance(exc, AuthExpiredError):
            self._clear_session_data()
        slice_.status = slice_.settled_status = "errored"
        slice_.error = exc.message
        LOGGER.warning("read failed operation=%s code=%s", operation, exc.code)
        self.notify("error", "Failed to load data", exc.message)

    def _fail_mutation(
        self,
        slice_: ContainersSlice | WorkloadsSlice | ConnectionsSlice,
        exc: GatewayError,
        *,
        operation: str,
    ) -> None:
        if not is_user_visible(exc):
            return
        if isinstance(exc, AuthExpiredError):
            self._clear_session_data()
        slice_.error = exc.message
        LOGGER.warning("mutation failed operation=%s code=%s", operation, exc.code)
        self._telemetry.emit("store.mutation.failed", operation=operation, code=exc.code)
        self.notify("error", "Operation failed", exc.message)

    def _record_activity(
        self,
        action: str,
        resource: str,
        namespace: str | None,
        status: ActivityStatus,
        details: str | None = None,
    ) -> None:
        self._state.dashboard.record(
            RecentActivity(
                id=uuid4().hex,
                action=action,
                resource=resource,
                namespace=namespace or self._state.containers.filter.namespace,
                status=status,
                details=details,
            )
        )

    def _recompute_statistics(self) -> None:
        containers = self._state.containers.ordered()
        counts = Counter(container.status for container in containers)
        self._state.dashboard.statistics = DashboardStatistics(
            total_containers=len(containers),
            running_containers=counts["Running"],
            pending_containers=counts["Pending"],
            failed_containers=counts["Failed"],
            succeeded_containers=counts["Succeeded"],
            unknown_containers=counts["Unknown"],
            total_restarts=sum(container.restart_count for container in containers),
            namespaces=sorted({container.namespace for container in containers}),
        )

    def _active_connection(self) -> Connection | None:
        active_id = self._state.connections.active_id
        return next((item for item in self._state.connections.items if item.id == active_id), None)

    def _cancel_inflight(self, key: str) -> None:
        handle = self._inflight.pop(key, None)
        if handle is not None and handle.cancel():
            LOGGER.debug("cancelled in-flight fetch key=%s request_id=%s", key, handle.request_id)
        self._state.ui.loading[key] = False

    def _finish_fetch(self, key: str) -> None:
        self._inflight.pop(key, None)
        self._set_loading(key, False)

    def _set_loading(self, key: str, value: bool) -> None:
        self._state.ui.loading[key] = value

    def _emit(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                LOGGER.exception("store listener failed")


def _list_params(slice_: ContainersSlice) -> ContainerListParams:
    try:
        return ContainerListParams(
            page=slice_.pagination.page,
            page_size=slice_.pagination.page_size,
            namespace=slice_.filter.namespace or None,
            status=slice_.filter.status,
            search=slice_.filter.search,
            sort_by=slice_.filter.sort_by,
            sort_order=slice_.filter.sort_order,
        )
    except PydanticValidationError as exc:
        raise validation_error_from_pydantic(exc, message="Container list filter is invalid.") from exc


def _config_name(config: ContainerConfig | Mapping[str, Any]) -> str:
    if isinstance(config, ContainerConfig):
        return config.name
    return str(config.get("name", ""))
