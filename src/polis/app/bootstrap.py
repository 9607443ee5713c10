"""Composition root.

build_app() constructs every component once from Settings and wires them by
constructor injection. PolisApp is the facade the CLI layer calls: mutating
workflows (start, stop, delete, reconcile, repair) run under the instance
lock and a fresh trace id; read-only ones (status, doctor, ip) do not lock.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from polis.adapters.instance import MultipassProvisioner
from polis.app.config import Settings, get_settings
from polis.app.logging import clear_trace_context, set_trace_id, setup_logging
from polis.core.domain.health import DoctorChecks
from polis.core.domain.instance import InstanceState
from polis.core.domain.status import StatusReport
from polis.core.interfaces import LoggingReporter, ProgressReporter
from polis.infra import AsyncCommandRunner, InstanceLock, JsonStateStore, SocketNetworkProbe
from polis.services import (
    ConfigReconciler,
    DiagnosticsService,
    ReconcileOutcome,
    RepairOutcome,
    RepairWorkflow,
    StartOutcome,
    WorkspaceStarter,
    gather_status,
    lifecycle,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PolisApp:
    """Entry points for the CLI layer."""

    def __init__(
        self,
        settings: Settings,
        cmd_runner: AsyncCommandRunner,
        provisioner: MultipassProvisioner,
        state_store: JsonStateStore,
        lock: InstanceLock,
        network_probe: SocketNetworkProbe,
        reporter: ProgressReporter,
    ) -> None:
        self.settings = settings
        self.cmd_runner = cmd_runner
        self.provisioner = provisioner
        self.state_store = state_store
        self.lock = lock
        self.network_probe = network_probe
        self.reporter = reporter

    async def _locked(self, operation: str, workflow: Callable[[], Awaitable[T]]) -> T:
        trace_id = set_trace_id()
        try:
            with self.lock.hold():
                logger.debug("Running %s (trace_id=%s)", operation, trace_id)
                return await workflow()
        finally:
            clear_trace_context()

    # Mutating workflows

    async def start(self, agent: str | None = None) -> StartOutcome:
        s = self.settings
        starter = WorkspaceStarter(
            self.provisioner,
            self.state_store,
            s.instance,
            s.workspace,
            s.reconcile,
            s.health,
            self.reporter,
        )
        return await self._locked("start", lambda: starter.start(agent))

    async def stop(self) -> None:
        await self._locked("stop", lambda: lifecycle.stop(self.provisioner))

    async def delete(self) -> None:
        async def _delete() -> None:
            await lifecycle.delete(self.provisioner)
            await self.state_store.clear()

        await self._locked("delete", _delete)

    async def reconcile(self) -> ReconcileOutcome:
        s = self.settings
        reconciler = ConfigReconciler(
            self.provisioner, s.instance.name, s.workspace, s.reconcile, self.reporter
        )
        return await self._locked("reconcile", reconciler.run)

    async def repair(self, health_checks_failed: bool = False) -> RepairOutcome:
        s = self.settings
        workflow = RepairWorkflow(self.provisioner, s.workspace, s.repair, self.reporter)
        return await self._locked("repair", lambda: workflow.run(health_checks_failed))

    # Read-only workflows

    async def state(self) -> InstanceState:
        return await lifecycle.state(self.provisioner, self.settings.instance.name)

    async def ip(self) -> str:
        return await lifecycle.resolve_ip(self.provisioner, self.settings.instance.name)

    async def status(self) -> StatusReport:
        s = self.settings
        return await gather_status(self.provisioner, s.instance.name, s.workspace.query_script)

    def diagnostics(self) -> DiagnosticsService:
        s = self.settings
        return DiagnosticsService(
            self.cmd_runner,
            self.provisioner.with_timeout(s.doctor.probe_timeout),
            self.network_probe,
            s.instance,
            s.workspace,
            s.doctor,
            self.reporter,
        )

    async def doctor(self) -> tuple[DoctorChecks, list[str]]:
        service = self.diagnostics()
        checks = await service.run()
        return checks, service.issues(checks)


def build_app(
    settings: Settings | None = None, reporter: ProgressReporter | None = None
) -> PolisApp:
    settings = settings or get_settings()
    setup_logging(settings.logging)

    cli = settings.instance.cli
    windows_dir = settings.instance.windows_install_dir
    cmd_runner = AsyncCommandRunner(
        settings.executor.cmd_timeout,
        kill_grace=settings.executor.kill_grace,
        instance_cli=cli,
        windows_install_dir=windows_dir,
    )
    exec_runner = AsyncCommandRunner(
        settings.executor.exec_timeout,
        kill_grace=settings.executor.kill_grace,
        instance_cli=cli,
        windows_install_dir=windows_dir,
    )

    return PolisApp(
        settings=settings,
        cmd_runner=cmd_runner,
        provisioner=MultipassProvisioner(cmd_runner, exec_runner, settings.instance),
        state_store=JsonStateStore(settings.state.state_path),
        lock=InstanceLock(settings.state.lock_path),
        network_probe=SocketNetworkProbe(settings.doctor.network_timeout),
        reporter=reporter or LoggingReporter(),
    )
