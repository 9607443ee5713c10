"""Config reconciliation and update protocol.

The desired hash (SHA-256 of the local config bundle) is compared with the
applied hash stored in the instance. Equal hashes mean UpToDate with no side
effects. Otherwise the migration runs strictly in order:

    stop_services -> transfer_config -> pull_images -> verify_digests
    -> restart_services -> write_hash

Any step failure propagates immediately, tagged with the step name. The
applied hash is written last, so an interrupted migration leaves it pointing
at the last known-good config and the next run re-executes the whole
sequence.
"""

import asyncio
import logging
from enum import StrEnum

from polis.app.config import ReconcileConfig, WorkspaceConfig
from polis.core.domain.instance import InstanceState
from polis.core.errors import InstanceNotRunningError
from polis.core.interfaces import InstanceInspector, InstanceProvisioner, ProgressReporter
from polis.core.logging_schema import Component, LogEvent
from polis.infra.bundle import load_digest_manifest, sha256_file
from polis.services import integrity, lifecycle, provision
from polis.services.steps import require_success, workflow_step

logger = logging.getLogger(__name__)


class ReconcileOutcome(StrEnum):
    UP_TO_DATE = "up_to_date"
    UPDATED = "updated"


class ConfigReconciler:
    """Detects config drift and migrates the instance to the desired bundle."""

    def __init__(
        self,
        instance: InstanceProvisioner,
        instance_name: str,
        workspace: WorkspaceConfig,
        config: ReconcileConfig,
        reporter: ProgressReporter,
    ) -> None:
        self._instance = instance
        self._name = instance_name
        self._workspace = workspace
        self._config = config
        self._reporter = reporter

    async def desired_hash(self) -> str:
        return await asyncio.to_thread(sha256_file, self._workspace.tarball_path)

    async def should_update(self) -> bool:
        """A reconciliation only makes sense against a running instance."""
        return await lifecycle.state(self._instance, self._name) == InstanceState.RUNNING

    async def run(self) -> ReconcileOutcome:
        """Reconcile, rejecting non-running instances up front.

        Raises:
            InstanceNotRunningError: Instance is not Running.
        """
        current = await lifecycle.state(self._instance, self._name)
        if current != InstanceState.RUNNING:
            raise InstanceNotRunningError(current.value)
        return await self.reconcile()

    async def reconcile(self) -> ReconcileOutcome:
        ws = self._workspace
        shell = self._instance

        with workflow_step("compute_hash", Component.RECONCILE):
            desired = await self.desired_hash()
        with workflow_step("read_hash", Component.RECONCILE):
            applied = await integrity.read_config_hash(shell, ws.config_hash_path)

        if desired == applied:
            logger.info(
                "Workspace config is up to date",
                extra={
                    "event": LogEvent.CONFIG_UP_TO_DATE,
                    "component": Component.RECONCILE,
                    "config_hash": desired,
                },
            )
            return ReconcileOutcome.UP_TO_DATE

        logger.info(
            "Workspace config drift detected",
            extra={
                "event": LogEvent.CONFIG_DRIFT,
                "component": Component.RECONCILE,
                "desired_hash": desired,
                "applied_hash": applied or None,
            },
        )

        self._reporter.step("stopping services...")
        with workflow_step("stop_services", Component.RECONCILE):
            require_success(
                await shell.exec(["docker", "compose", "-f", ws.compose_path, "down"]),
                "docker compose down",
            )

        self._reporter.step("transferring configuration...")
        with workflow_step("transfer_config", Component.RECONCILE):
            await provision.transfer_config(shell, ws)

        self._reporter.step("pulling images...")
        with workflow_step("pull_images", Component.RECONCILE):
            await provision.pull_images(shell, ws, self._config)

        self._reporter.step("verifying image digests...")
        with workflow_step("verify_digests", Component.RECONCILE):
            manifest = await asyncio.to_thread(load_digest_manifest, ws.manifest_path)
            await integrity.verify_image_digests(shell, manifest)

        self._reporter.step("restarting services...")
        with workflow_step("restart_services", Component.RECONCILE):
            require_success(
                await shell.exec(["docker", "compose", "-f", ws.compose_path, "up", "-d"]),
                "docker compose up",
            )

        with workflow_step("write_hash", Component.RECONCILE):
            await integrity.write_config_hash(shell, ws.config_hash_path, desired)

        self._reporter.success("workspace config updated")
        logger.info(
            "Workspace config updated",
            extra={
                "event": LogEvent.CONFIG_UPDATED,
                "component": Component.RECONCILE,
                "config_hash": desired,
            },
        )
        return ReconcileOutcome.UPDATED


async def should_update_vm_config(inspector: InstanceInspector, instance_name: str) -> bool:
    """Read-only companion check: is the instance Running?"""
    return await lifecycle.state(inspector, instance_name) == InstanceState.RUNNING
