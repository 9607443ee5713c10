"""Repair workflow: ordered, idempotent check-then-fix steps.

Each step first checks whether its condition already holds and only acts
when it does not. Checks never raise (a failing check means "fix needed");
fixes are fatal, so a failed fix aborts the run with the step tagged on the
error. Later steps assume the earlier ones succeeded.
"""

import logging

from pydantic import BaseModel

from polis.app.config import RepairConfig, WorkspaceConfig
from polis.core.errors import PolisError
from polis.core.interfaces import ConfigTransport, ProgressReporter, ShellExecutor
from polis.core.logging_schema import Component, LogEvent
from polis.services import provision
from polis.services.steps import require_success, workflow_step

logger = logging.getLogger(__name__)


class RepairOutcome(BaseModel):
    config_retransferred: bool = False
    docker_restarted: bool = False
    runtime_restarted: bool = False
    certs_regenerated: bool = False
    service_enabled: bool = False

    model_config = {"frozen": True}


async def _check(shell: ShellExecutor, args: list[str]) -> str | None:
    """Run a check command; stdout on exit 0, None on any failure."""
    try:
        result = await shell.exec(args)
    except PolisError as exc:
        logger.debug("Check %s failed: %s", args[0], exc.message)
        return None
    return result.stdout_text if result.success else None


class RepairWorkflow:
    def __init__(
        self,
        instance: ConfigTransport,
        workspace: WorkspaceConfig,
        config: RepairConfig,
        reporter: ProgressReporter,
    ) -> None:
        self._instance = instance
        self._workspace = workspace
        self._config = config
        self._reporter = reporter

    async def _fix(self, args: list[str], what: str) -> None:
        require_success(await self._instance.exec(args), what)

    async def run(self, health_checks_failed: bool = False) -> RepairOutcome:
        """Repair the workspace.

        Args:
            health_checks_failed: Upstream diagnostics failed; the instance's
                config cannot be trusted and is re-transferred unconditionally.

        Raises:
            PolisError: A fix failed. error.step names the repair step.
        """
        shell = self._instance
        ws = self._workspace
        reporter = self._reporter
        component = Component.REPAIR
        outcome: dict[str, bool] = {}

        if health_checks_failed:
            reporter.step("re-transferring config (health checks failed, instance state untrusted)...")
            with workflow_step("force_transfer_config", component):
                await provision.transfer_config(shell, ws)
            outcome["config_retransferred"] = True
            reporter.success("config re-transferred")

        reporter.step("checking container daemon...")
        with workflow_step("container_daemon", component):
            if await _check(shell, ["docker", "info"]) is not None:
                reporter.success("container daemon running")
            else:
                await self._fix(["sudo", "systemctl", "restart", "docker"], "restart docker")
                outcome["docker_restarted"] = True
                reporter.success("container daemon restarted")

        reporter.step("checking sandbox runtime...")
        with workflow_step("sandbox_runtime", component):
            runtimes = await _check(shell, ["docker", "info", "--format", "{{.Runtimes}}"])
            if runtimes is not None and "sysbox-runc" in runtimes:
                reporter.success("sandbox runtime registered")
            else:
                # Runtimes are read by the daemon at startup: runtime first, then daemon
                await self._fix(["sudo", "systemctl", "restart", "sysbox"], "restart sysbox")
                await self._fix(["sudo", "systemctl", "restart", "docker"], "restart docker")
                outcome["runtime_restarted"] = True
                reporter.success("sandbox runtime and container daemon restarted")

        reporter.step(f"checking {ws.vm_root} config...")
        with workflow_step("config_present", component):
            if await _check(shell, ["test", "-f", ws.env_path]) is not None:
                reporter.success("config present")
            else:
                await provision.transfer_config(shell, ws)
                outcome["config_retransferred"] = True
                reporter.success("config re-transferred")

        reporter.step("checking certificates...")
        with workflow_step("certificates", component):
            certs_ready = await _check(shell, ["test", "-f", ws.certs_ready_path]) is not None
            certs_fresh = certs_ready and await _check(
                shell,
                [
                    "openssl",
                    "x509",
                    "-in",
                    f"{ws.vm_root}/certs/valkey/server.crt",
                    "-checkend",
                    str(self._config.cert_expiry_window),
                    "-noout",
                ],
            ) is not None
            if certs_fresh:
                reporter.success("certificates present and valid")
            else:
                if certs_ready:
                    reporter.step("certificates expiring soon, forcing regeneration...")
                    await self._fix(["rm", "-f", ws.certs_ready_path], "invalidate certs-ready")
                await provision.generate_certs_and_secrets(shell, ws.vm_root)
                outcome["certs_regenerated"] = True
                reporter.success("certificates generated")

        reporter.step("checking polis.service...")
        with workflow_step("service_unit", component):
            enabled = await _check(shell, ["systemctl", "is-enabled", "polis.service"])
            if enabled is not None and enabled.strip() == "enabled":
                reporter.success("polis.service enabled")
            else:
                await self._fix(
                    ["sudo", "systemctl", "enable", "polis.service"], "enable polis.service"
                )
                outcome["service_enabled"] = True
                reporter.success("polis.service enabled")

        with workflow_step("restart_services", component):
            if outcome.get("certs_regenerated"):
                # `up` alone does not reload certificate material in running containers
                reporter.step("stopping services for clean restart...")
                await self._fix(
                    ["docker", "compose", "-f", ws.compose_path, "down"], "docker compose down"
                )
            reporter.step("restarting services...")
            await self._fix(
                [
                    "docker",
                    "compose",
                    "-f",
                    ws.compose_path,
                    "--env-file",
                    ws.env_path,
                    "up",
                    "-d",
                    "--remove-orphans",
                ],
                "docker compose up",
            )
            reporter.success("services restarted")

        result = RepairOutcome(**outcome)
        logger.info(
            "Repair complete",
            extra={
                "event": LogEvent.REPAIR_COMPLETE,
                "component": component,
                **result.model_dump(),
            },
        )
        return result
