"""Domain models and enums."""

from polis.core.domain.health import (
    DoctorChecks,
    ImageCheckResult,
    NetworkChecks,
    PrerequisiteChecks,
    SecurityChecks,
    WorkspaceChecks,
    collect_issues,
)
from polis.core.domain.identity import (
    WorkspaceIdentity,
    generate_workspace_id,
    validate_workspace_id,
)
from polis.core.domain.instance import (
    InstanceSpec,
    InstanceState,
    parse_instance_ip,
    parse_instance_state,
)
from polis.core.domain.status import (
    AgentHealth,
    ContainerStatus,
    ContainerStatusSnapshot,
    StatusReport,
)

__all__ = [
    # Instance
    "InstanceSpec",
    "InstanceState",
    "parse_instance_ip",
    "parse_instance_state",
    # Identity
    "WorkspaceIdentity",
    "generate_workspace_id",
    "validate_workspace_id",
    # Diagnostics
    "DoctorChecks",
    "ImageCheckResult",
    "NetworkChecks",
    "PrerequisiteChecks",
    "SecurityChecks",
    "WorkspaceChecks",
    "collect_issues",
    # Status
    "AgentHealth",
    "ContainerStatus",
    "ContainerStatusSnapshot",
    "StatusReport",
]
