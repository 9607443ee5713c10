"""Readiness wait after (re)starting the service group."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from polis.app.config import HealthConfig, WorkspaceConfig
from polis.core.domain.status import WORKSPACE_SERVICE, ContainerStatusSnapshot, parse_status_document
from polis.core.errors import PolisError, ProvisioningError
from polis.core.interfaces import ShellExecutor

logger = logging.getLogger(__name__)


async def query_status(shell: ShellExecutor, query_script: str) -> ContainerStatusSnapshot | None:
    """One consolidated status query. None if it fails or returns garbage."""
    try:
        result = await shell.exec([query_script, "status"])
    except PolisError as exc:
        logger.debug("Status query failed: %s", exc.message)
        return None
    if not result.success:
        return None
    try:
        return parse_status_document(result.stdout)
    except ValueError as exc:
        logger.debug("Status query returned garbage: %s", exc)
        return None


async def wait_ready(
    shell: ShellExecutor,
    workspace: WorkspaceConfig,
    health: HealthConfig,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    """Poll until the workspace container is running and healthy.

    Raises:
        ProvisioningError: Not healthy after max_attempts polls.
    """
    reason = "status unavailable"
    for attempt in range(1, health.max_attempts + 1):
        snapshot = await query_status(shell, workspace.query_script)
        container = snapshot.get(WORKSPACE_SERVICE) if snapshot else None
        if container is not None and container.healthy:
            logger.info("Workspace healthy after %d attempt(s)", attempt)
            return
        if container is not None:
            reason = container.describe()
        logger.info("Waiting for workspace (%s)", reason)
        if attempt < health.max_attempts:
            await sleep(health.interval)

    raise ProvisioningError(
        f"Workspace did not start properly. Reason: {reason}. "
        "Diagnose: polis doctor. View logs: polis logs"
    )
