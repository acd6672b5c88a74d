from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from kubedeck.models.connection_contracts import Connection
from kubedeck.models.container_contracts import (
    Container,
    ContainerAction,
    SortOrder,
    Workload,
)
from kubedeck.models.dashboard_contracts import DashboardStatistics, RecentActivity

LoadStatus = Literal["idle", "loading", "populated", "errored"]
NotificationType = Literal["success", "error", "warning", "info"]

MAX_RECENT_ACTIVITIES = 100


@dataclass
class ContainerFilter:
    namespace: str = "default"
    status: str | None = None
    search: str | None = None
    sort_by: str | None = None
    sort_order: SortOrder | None = None


@dataclass
class Pagination:
    page: int = 1
    page_size: int = 20
    total: int = 0
    total_pages: int = 0


@dataclass
class ContainersSlice:
    filter: ContainerFilter
    pagination: Pagination
    items: dict[str, Container] = field(default_factory=lambda: {})
    status: LoadStatus = "idle"
    settled_status: LoadStatus = "idle"
    error: str | None = None
    selected_id: str | None = None
    pending_actions: dict[str, ContainerAction] = field(default_factory=lambda: {})
    generation: int = 0

    @property
    def loading(self) -> bool:
        return self.status == "loading"

    def ordered(self) -> list[Container]:
        return list(self.items.values())


@dataclass
class WorkloadsSlice:
    namespace: str = "default"
    items: dict[str, Workload] = field(default_factory=lambda: {})
    status: LoadStatus = "idle"
    settled_status: LoadStatus = "idle"
    error: str | None = None
    pending_actions: dict[str, str] = field(default_factory=lambda: {})
    generation: int = 0

    @property
    def loading(self) -> bool:
        return self.status == "loading"


@dataclass
class ConnectionsSlice:
    items: list[Connection] = field(default_factory=lambda: [])
    active_id: str | None = None
    status: LoadStatus = "idle"
    error: str | None = None


@dataclass
class DashboardSlice:
    statistics: DashboardStatistics = field(default_factory=DashboardStatistics)
    recent_activities: list[RecentActivity] = field(default_factory=lambda: [])
    auto_refresh: bool = True
    refresh_interval_seconds: int = 30
    last_refresh: str | None = None

    def record(self, activity: RecentActivity) -> None:
        self.recent_activities.insert(0, activity)
        del self.recent_activities[MAX_RECENT_ACTIVITIES:]


@dataclass(frozen=True)
class Notification:
    id: str
    type: NotificationType
    title: str
    message: str
    timestamp: int


@dataclass
class UiSlice:
    notifications: list[Notification] = field(default_factory=lambda: [])
    loading: dict[str, bool] = field(default_factory=lambda: {})


@dataclass
class StoreState:
    containers: ContainersSlice
    workloads: WorkloadsSlice
    connections: ConnectionsSlice = field(default_factory=ConnectionsSlice)
    dashboard: DashboardSlice = field(default_factory=DashboardSlice)
    ui: UiSlice = field(default_factory=UiSlice)


def initial_state(
    *,
    namespace: str = "default",
    page_size: int = 20,
    auto_refresh: bool = True,
    refresh_interval_seconds: int = 30,
) -> StoreState:
    return StoreState(
        containers=ContainersSlice(
            filter=ContainerFilter(namespace=namespace),
            pagination=Pagination(page_size=page_size),
        ),
        workloads=WorkloadsSlice(namespace=namespace),
        dashboard=DashboardSlice(
            auto_refresh=auto_refresh,
            refresh_interval_seconds=refresh_interval_seconds,
        ),
    )
