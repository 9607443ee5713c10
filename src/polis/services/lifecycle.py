"""Instance lifecycle state machine over the instance ports.

    NotFound --launch--> Stopped|Running
    Stopped  --start---> Running
    Running  --stop----> Stopped
    {Stopped,Running} --delete--> NotFound (soft), then purge reclaims storage

Starting, Stopping and Error are observed, never driver-initiated. State is
recomputed from a live `info` call every time; nothing is cached.
"""

import logging
import platform
import sys

from packaging.version import InvalidVersion, Version

from polis.app.config import InstanceConfig, WorkspaceConfig
from polis.core.domain.instance import (
    InstanceSpec,
    InstanceState,
    is_not_found,
    parse_cli_version,
    parse_instance_ip,
    parse_instance_state,
)
from polis.core.domain.workspace import CLOUD_INIT_LOG, RECOVERY_COMMAND
from polis.core.errors import (
    CommandTimeoutError,
    PolisError,
    PrerequisiteError,
    ProvisioningError,
    SpawnFailedError,
    StateUnrecognizedError,
    UnexpectedExitError,
)
from polis.core.interfaces import (
    InstanceInspector,
    InstanceLifecycle,
    InstanceProvisioner,
    ProgressReporter,
    ShellExecutor,
)
from polis.core.logging_schema import Component, ErrorClass, LogEvent

logger = logging.getLogger(__name__)


async def state(inspector: InstanceInspector, name: str) -> InstanceState:
    """Derive the instance state. Total: never raises.

    - info fails with a "does not exist" signal -> NotFound
    - info cannot run, times out, or fails otherwise -> Error
    - unknown state string or malformed document -> Error
    """
    try:
        result = await inspector.info()
    except (SpawnFailedError, CommandTimeoutError) as exc:
        logger.warning(
            "Instance info failed: %s",
            exc.message,
            extra={"event": LogEvent.STATE_OBSERVED, "component": Component.LIFECYCLE},
        )
        return InstanceState.ERROR

    if not result.success:
        if is_not_found(result.stderr):
            return InstanceState.NOT_FOUND
        logger.warning(
            "Instance info exited with %d: %s",
            result.exit_status,
            result.stderr_text.strip(),
            extra={"event": LogEvent.STATE_OBSERVED, "component": Component.LIFECYCLE},
        )
        return InstanceState.ERROR

    try:
        return parse_instance_state(result.stdout, name)
    except StateUnrecognizedError as exc:
        logger.warning(
            exc.message,
            extra={
                "event": LogEvent.STATE_UNRECOGNIZED,
                "component": Component.LIFECYCLE,
                "raw_state": exc.raw,
            },
        )
        return InstanceState.ERROR


async def exists(inspector: InstanceInspector) -> bool:
    try:
        result = await inspector.info()
    except PolisError:
        return False
    return result.success


async def resolve_ip(inspector: InstanceInspector, name: str) -> str:
    """Primary IPv4 address of the instance.

    Raises:
        UnexpectedExitError: info failed.
        StateUnrecognizedError: No address in the info document.
    """
    result = await inspector.info()
    if not result.success:
        raise UnexpectedExitError("instance info", result.exit_status, result.stderr_text)
    return parse_instance_ip(result.stdout, name)


def check_architecture() -> None:
    """The sandbox runtime (sysbox) only supports amd64 hosts."""
    if platform.machine().lower() in ("arm64", "aarch64"):
        raise PrerequisiteError(
            "Polis requires an amd64 host; the sandbox runtime does not support arm64."
        )


async def check_prerequisites(inspector: InstanceInspector, min_version: str) -> None:
    """Ensure the instance CLI is installed and recent enough.

    An unparseable version string is accepted.
    """
    try:
        result = await inspector.version()
    except PolisError as exc:
        raise PrerequisiteError(
            "Workspace runtime not available. Run 'polis doctor' to diagnose and fix."
        ) from exc

    raw = parse_cli_version(result.stdout)
    if raw is None:
        return
    try:
        too_old = Version(raw) < Version(min_version)
    except InvalidVersion:
        return
    if too_old:
        raise PrerequisiteError(
            f"Workspace runtime {raw} needs update (need >= {min_version}). "
            "Run 'polis doctor' to diagnose and fix."
        )


async def verify_cloud_init(shell: ShellExecutor) -> None:
    """Wait for cloud-init inside a fresh instance (output streams to the terminal).

    Exit 0 is success; 1 (critical), 2 (degraded), any other code or a
    signal are provisioning failures.
    """
    status = await shell.exec_status(["cloud-init", "status", "--wait"])
    if status == 0:
        return

    if status == 1:
        summary = "Cloud-init reported a critical failure."
    elif status == 2:
        summary = "Cloud-init completed in a degraded state."
    elif status < 0:
        summary = "Cloud-init was terminated by a signal."
    else:
        summary = f"Cloud-init exited with unexpected code {status}."
    raise ProvisioningError(
        f"{summary} Check the log for details: {CLOUD_INIT_LOG}. "
        f"To recover, run: {RECOVERY_COMMAND}"
    )


async def create(
    provisioner: InstanceProvisioner,
    instance: InstanceConfig,
    workspace: WorkspaceConfig,
    reporter: ProgressReporter,
) -> None:
    """Launch a new instance with cloud-init and wait for cloud-init to finish."""
    await check_prerequisites(provisioner, instance.min_cli_version)

    cloud_init = workspace.cloud_init_path
    if sys.platform != "win32" and cloud_init.exists():
        # The hypervisor daemon reads the file as another user
        cloud_init.chmod(0o644)

    reporter.step("preparing workspace...")
    result = await provisioner.launch(
        InstanceSpec(
            image=instance.image,
            cpus=instance.cpus,
            memory=instance.memory,
            disk=instance.disk,
            cloud_init=str(cloud_init.resolve()),
            timeout=instance.launch_timeout,
        )
    )
    if not result.success:
        raise ProvisioningError(
            "Failed to create workspace. Run 'polis doctor' to diagnose. "
            f"{result.stderr_text.strip()}"
        )
    reporter.success("workspace prepared")
    logger.info(
        "Launched instance %s",
        instance.name,
        extra={"event": LogEvent.INSTANCE_LAUNCHED, "component": Component.LIFECYCLE},
    )

    await verify_cloud_init(provisioner)


async def start(lifecycle: InstanceLifecycle) -> None:
    result = await lifecycle.start()
    if not result.success:
        raise UnexpectedExitError("instance start", result.exit_status, result.stderr_text)
    logger.info(
        "Instance started",
        extra={"event": LogEvent.INSTANCE_STARTED, "component": Component.LIFECYCLE},
    )


async def start_services(shell: ShellExecutor) -> None:
    """Kick the compose systemd unit. Best-effort: the health wait reports failures."""
    try:
        await shell.exec(["sudo", "systemctl", "start", "polis"])
    except PolisError as exc:
        logger.warning("Starting polis.service failed: %s", exc.message)


async def restart(provisioner: InstanceProvisioner, reporter: ProgressReporter) -> None:
    reporter.step("starting workspace...")
    await start(provisioner)
    reporter.success("workspace started")
    await start_services(provisioner)


async def stop(provisioner: InstanceProvisioner) -> None:
    """Stop every polis- container (agent sidecars included), then the instance."""
    try:
        await provisioner.exec(
            ["bash", "-c", "docker ps -q --filter name=polis- | xargs -r docker stop"]
        )
    except PolisError as exc:
        logger.warning(
            "Stopping containers failed, stopping instance anyway: %s",
            exc.message,
            extra={"component": Component.LIFECYCLE, "error_class": ErrorClass.COMMAND},
        )

    result = await provisioner.stop()
    if not result.success:
        raise UnexpectedExitError("instance stop", result.exit_status, result.stderr_text)
    logger.info(
        "Instance stopped",
        extra={"event": LogEvent.INSTANCE_STOPPED, "component": Component.LIFECYCLE},
    )


async def delete(lifecycle: InstanceLifecycle) -> None:
    """Soft delete then purge. Both are best-effort: the instance may already be gone."""
    for action, call in (("delete", lifecycle.delete), ("purge", lifecycle.purge)):
        try:
            result = await call()
        except PolisError as exc:
            logger.warning("Instance %s failed: %s", action, exc.message)
            continue
        if not result.success:
            logger.warning(
                "Instance %s exited with %d: %s",
                action,
                result.exit_status,
                result.stderr_text.strip(),
            )

    logger.info(
        "Instance deleted",
        extra={"event": LogEvent.INSTANCE_DELETED, "component": Component.LIFECYCLE},
    )
