"""Container status snapshot and the status report built from it.

The snapshot comes from one `polis-query.sh status` call:
    {"uptime": <seconds|null>, "containers": [{"Service", "State", "Health"}, ...]}
"""

import json
from enum import StrEnum

from pydantic import BaseModel, Field, ValidationError

from polis.core.domain.instance import InstanceState

WORKSPACE_SERVICE = "workspace"


class AgentHealth(StrEnum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    STARTING = "starting"
    STOPPED = "stopped"


class ContainerStatus(BaseModel):
    """One compose service as reported by `docker compose ps --format json`."""

    service: str = Field(alias="Service")
    state: str | None = Field(default=None, alias="State")
    health: str | None = Field(default=None, alias="Health")

    model_config = {"frozen": True, "populate_by_name": True}

    @property
    def running(self) -> bool:
        return self.state == "running"

    @property
    def healthy(self) -> bool:
        return self.running and self.health == "healthy"

    def agent_health(self) -> AgentHealth:
        if not self.running:
            return AgentHealth.STOPPED
        if self.health == "healthy":
            return AgentHealth.HEALTHY
        if self.health == "unhealthy":
            return AgentHealth.UNHEALTHY
        return AgentHealth.STARTING

    def describe(self) -> str:
        """Short reason used when the container is not ready."""
        if self.running:
            return f"health: {self.health or 'none'}"
        return f"state: {self.state or 'unknown'}"


class ContainerStatusSnapshot(BaseModel):
    """Service name -> container status, recomputed on every query."""

    uptime: float | None = None
    containers: dict[str, ContainerStatus] = Field(default_factory=dict)

    model_config = {"frozen": True}

    def get(self, service: str) -> ContainerStatus | None:
        return self.containers.get(service)

    def is_running(self, service: str) -> bool:
        container = self.containers.get(service)
        return container is not None and container.running


class _StatusDocument(BaseModel):
    uptime: float | None = Field(default=None, allow_inf_nan=False)
    containers: list[ContainerStatus] = Field(default_factory=list)


def parse_status_document(raw: bytes) -> ContainerStatusSnapshot:
    """Parse the consolidated status document.

    Raises:
        ValueError: Output is not a status document.
    """
    try:
        document = _StatusDocument.model_validate(json.loads(raw))
    except (UnicodeDecodeError, json.JSONDecodeError, ValidationError) as exc:
        raise ValueError(f"invalid status document: {exc}") from exc

    return ContainerStatusSnapshot(
        uptime=document.uptime,
        containers={c.service: c for c in document.containers},
    )


class WorkspaceStatus(BaseModel):
    status: InstanceState
    uptime_seconds: int | None = None

    model_config = {"frozen": True}


class SecurityStatus(BaseModel):
    traffic_inspection: bool = False
    credential_protection: bool = False
    malware_scanning: bool = False

    model_config = {"frozen": True}


class AgentStatus(BaseModel):
    name: str
    status: AgentHealth

    model_config = {"frozen": True}


class StatusReport(BaseModel):
    """Output of status gathering. Always produced, never an error."""

    workspace: WorkspaceStatus
    security: SecurityStatus = Field(default_factory=SecurityStatus)
    agent: AgentStatus | None = None

    model_config = {"frozen": True}
