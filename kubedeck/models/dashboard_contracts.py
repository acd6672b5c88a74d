from __future__ import annotations

from typing import Literal

from pydantic import Field

from kubedeck.models.envelope_contracts import WireModel, utc_timestamp

ActivityStatus = Literal["success", "failed", "pending"]


class DashboardStatistics(WireModel):
    total_containers: int = 0
    running_containers: int = 0
    pending_containers: int = 0
    failed_containers: int = 0
    succeeded_containers: int = 0
    unknown_containers: int = 0
    total_restarts: int = 0
    namespaces: list[str] = Field(default_factory=lambda: [])


class RecentActivity(WireModel):
    id: str
    type: str = "container"
    action: str
    resource: str
    namespace: str = "default"
    user: str = ""
    status: ActivityStatus
    timestamp: str = Field(default_factory=utc_timestamp)
    details: str | None = None
