"""Workspace status gathering. Infallible: failures degrade to absent/false values."""

import logging

from polis.core.domain.instance import InstanceState
from polis.core.domain.status import (
    WORKSPACE_SERVICE,
    AgentStatus,
    SecurityStatus,
    StatusReport,
    WorkspaceStatus,
)
from polis.core.interfaces import InstanceView
from polis.services import lifecycle
from polis.services.health import query_status

logger = logging.getLogger(__name__)


async def gather_status(
    instance: InstanceView,
    instance_name: str,
    query_script: str,
) -> StatusReport:
    """Build the status report from one state lookup and one status query."""
    current = await lifecycle.state(instance, instance_name)
    if current != InstanceState.RUNNING:
        return StatusReport(workspace=WorkspaceStatus(status=current))

    snapshot = await query_status(instance, query_script)
    if snapshot is None:
        logger.debug("Status query unavailable, reporting %s", InstanceState.STARTING)
        return StatusReport(workspace=WorkspaceStatus(status=InstanceState.STARTING))

    running = snapshot.is_running(WORKSPACE_SERVICE)
    uptime = int(snapshot.uptime) if snapshot.uptime is not None else None
    security = SecurityStatus(
        traffic_inspection=snapshot.is_running("gate"),
        credential_protection=snapshot.is_running("sentinel"),
        malware_scanning=snapshot.is_running("scanner"),
    )

    container = snapshot.get(WORKSPACE_SERVICE)
    agent = (
        AgentStatus(name=WORKSPACE_SERVICE, status=container.agent_health())
        if container is not None
        else None
    )

    return StatusReport(
        workspace=WorkspaceStatus(
            status=InstanceState.RUNNING if running else InstanceState.STARTING,
            uptime_seconds=uptime,
        ),
        security=security,
        agent=agent,
    )
