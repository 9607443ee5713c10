"""Workspace start use case: create, restart, or confirm the running workload."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel

from polis.app.config import HealthConfig, InstanceConfig, ReconcileConfig, WorkspaceConfig
from polis.core.domain.identity import WorkspaceIdentity, generate_workspace_id
from polis.core.domain.instance import InstanceState
from polis.core.domain.workspace import is_valid_agent_name
from polis.core.errors import ConflictingWorkloadError, InvalidAgentError
from polis.core.interfaces import InstanceProvisioner, ProgressReporter, WorkspaceStateStore
from polis.core.logging_schema import Component, LogEvent
from polis.infra.bundle import load_digest_manifest, sha256_file
from polis.services import health, integrity, lifecycle, provision
from polis.services.steps import workflow_step

logger = logging.getLogger(__name__)


class StartStatus(StrEnum):
    CREATED = "created"
    RESTARTED = "restarted"
    ALREADY_RUNNING = "already_running"


class StartOutcome(BaseModel):
    status: StartStatus
    agent: str | None = None

    model_config = {"frozen": True}


class WorkspaceStarter:
    """Bring the workspace to Running with the requested agent.

    NotFound -> full provisioning (Created)
    Running  -> same agent is a no-op (AlreadyRunning), a different one is a conflict
    other    -> start the existing instance (Restarted)
    """

    def __init__(
        self,
        provisioner: InstanceProvisioner,
        state_store: WorkspaceStateStore,
        instance: InstanceConfig,
        workspace: WorkspaceConfig,
        reconcile: ReconcileConfig,
        health_config: HealthConfig,
        reporter: ProgressReporter,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._provisioner = provisioner
        self._store = state_store
        self._instance = instance
        self._workspace = workspace
        self._reconcile = reconcile
        self._health = health_config
        self._reporter = reporter
        self._sleep = sleep

    async def start(self, agent: str | None = None) -> StartOutcome:
        """Start the workspace.

        Raises:
            PrerequisiteError: Unsupported host or instance CLI.
            InvalidAgentError: Malformed agent name, or no manifest for it.
            ConflictingWorkloadError: Running with a different agent.
            PolisError: Any provisioning step failed (tagged with the step).
        """
        lifecycle.check_architecture()
        if agent is not None and not is_valid_agent_name(agent):
            raise InvalidAgentError(agent, "invalid agent name")

        current = await lifecycle.state(self._provisioner, self._instance.name)

        if current == InstanceState.RUNNING:
            return await self._check_running(agent)
        if current == InstanceState.NOT_FOUND:
            return await self._create(agent)
        return await self._restart(agent)

    async def _check_running(self, agent: str | None) -> StartOutcome:
        identity = await self._store.load()
        active = identity.active_agent if identity else None
        if active != agent:
            logger.warning(
                "Workspace already running with a different agent",
                extra={
                    "event": LogEvent.WORKLOAD_CONFLICT,
                    "component": Component.LIFECYCLE,
                    "active_agent": active,
                    "requested_agent": agent,
                },
            )
            raise ConflictingWorkloadError(active, agent)
        self._reporter.success("workspace is already running")
        return StartOutcome(status=StartStatus.ALREADY_RUNNING, agent=agent)

    async def _create(self, agent: str | None) -> StartOutcome:
        shell = self._provisioner
        ws = self._workspace
        component = Component.LIFECYCLE

        with workflow_step("compute_hash", component):
            desired = await asyncio.to_thread(sha256_file, ws.tarball_path)

        with workflow_step("create_instance", component):
            await lifecycle.create(self._provisioner, self._instance, ws, self._reporter)

        self._reporter.step("configuring workspace...")
        with workflow_step("transfer_config", component):
            await provision.transfer_config(shell, ws)
        with workflow_step("generate_certs", component):
            await provision.generate_certs_and_secrets(shell, ws.vm_root)
        self._reporter.success("workspace configured")

        self._reporter.step("pulling images...")
        with workflow_step("pull_images", component):
            await provision.pull_images(shell, ws, self._reconcile)
        with workflow_step("verify_digests", component):
            manifest = await asyncio.to_thread(load_digest_manifest, ws.manifest_path)
            await integrity.verify_image_digests(shell, manifest)
        self._reporter.success("images ready")

        if agent is not None:
            with workflow_step("setup_agent", component):
                await provision.setup_agent(shell, ws.vm_root, agent)

        self._reporter.step("starting services...")
        with workflow_step("compose_up", component):
            await provision.compose_up(shell, ws.vm_root, agent)
        with workflow_step("wait_ready", component):
            await health.wait_ready(shell, ws, self._health, self._sleep)
        self._reporter.success("services started")

        with workflow_step("write_hash", component):
            await integrity.write_config_hash(shell, ws.config_hash_path, desired)

        identity = self._new_identity(agent)
        with workflow_step("save_identity", component):
            await self._store.save(identity)

        logger.info(
            "Workspace %s created",
            identity.workspace_id,
            extra={"event": LogEvent.INSTANCE_STARTED, "component": component},
        )
        return StartOutcome(status=StartStatus.CREATED, agent=agent)

    def _new_identity(self, agent: str | None) -> WorkspaceIdentity:
        return WorkspaceIdentity(
            workspace_id=generate_workspace_id(),
            created_at=datetime.now(UTC),
            image_source=self._instance.image,
            active_agent=agent,
        )

    async def _restart(self, agent: str | None) -> StartOutcome:
        shell = self._provisioner
        ws = self._workspace
        component = Component.LIFECYCLE

        with workflow_step("start_instance", component):
            await lifecycle.restart(self._provisioner, self._reporter)

        if agent is not None:
            with workflow_step("setup_agent", component):
                await provision.setup_agent(shell, ws.vm_root, agent)
            with workflow_step("compose_up", component):
                await provision.compose_up(shell, ws.vm_root, agent)

        # a lost or never-written state file gets a fresh identity
        identity = await self._store.load()
        if identity is None:
            updated = self._new_identity(agent)
        elif identity.active_agent != agent:
            updated = identity.with_agent(agent)
        else:
            updated = None
        if updated is not None:
            with workflow_step("save_identity", component):
                await self._store.save(updated)

        self._reporter.step("waiting for services...")
        with workflow_step("wait_ready", component):
            await health.wait_ready(shell, ws, self._health, self._sleep)
        self._reporter.success("workspace ready")
        return StartOutcome(status=StartStatus.RESTARTED, agent=agent)
