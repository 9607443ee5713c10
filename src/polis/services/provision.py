"""Provisioning steps run inside the instance: config, certificates, images, compose."""

import asyncio
import logging

from polis.app.config import ReconcileConfig, WorkspaceConfig
from polis.core.domain.workspace import (
    REMOTE_TARBALL_PATH,
    compose_files,
    generate_env_content,
    is_valid_agent_name,
)
from polis.core.errors import CommandTimeoutError, InvalidAgentError, PolisError
from polis.core.interfaces import ConfigTransport, ShellExecutor
from polis.infra.bundle import validate_tarball_paths
from polis.services.steps import require_success

logger = logging.getLogger(__name__)

# `timeout` exits 124 when it had to kill the command
TIMEOUT_EXIT_STATUS = 124
# host-side deadline on top of the in-instance `timeout`
PULL_HEADROOM = 60.0


async def transfer_config(instance: ConfigTransport, workspace: WorkspaceConfig) -> None:
    """Ship the config bundle into <vm_root> and pin image versions.

    validate (host) -> transfer -> extract -> remove temp tarball -> write .env
    (stdin, no shell interpolation) -> chmod +x *.sh -> strip CRLF.
    """
    tarball = workspace.tarball_path
    await asyncio.to_thread(validate_tarball_paths, tarball)

    require_success(
        await instance.transfer(str(tarball), REMOTE_TARBALL_PATH),
        "transfer config bundle",
    )
    require_success(
        await instance.exec(
            ["tar", "xf", REMOTE_TARBALL_PATH, "-C", workspace.vm_root, "--no-same-owner"]
        ),
        "extract config bundle",
    )

    try:
        await instance.exec(["rm", "-f", REMOTE_TARBALL_PATH])
    except PolisError as exc:
        logger.warning("Removing %s failed: %s", REMOTE_TARBALL_PATH, exc.message)

    env_content = generate_env_content(workspace.release_version)
    require_success(
        await instance.exec_with_stdin(["tee", workspace.env_path], env_content.encode()),
        "write .env",
    )
    require_success(
        await instance.exec(
            ["find", workspace.vm_root, "-name", "*.sh", "-exec", "chmod", "+x", "{}", "+"]
        ),
        "fix script permissions",
    )
    require_success(
        await instance.exec(
            ["find", workspace.vm_root, "-name", "*.sh", "-exec", "sed", "-i", "s/\\r//", "{}", "+"]
        ),
        "strip CRLF from scripts",
    )
    logger.info("Transferred config bundle %s", tarball.name)


async def generate_certs_and_secrets(shell: ShellExecutor, vm_root: str) -> None:
    """Run the idempotent certificate/secret scripts in dependency order."""
    scripts = [
        ("generate CA certificate", f"{vm_root}/scripts/generate-ca.sh {vm_root}/certs/ca"),
        (
            "generate state certificates",
            f"{vm_root}/services/state/scripts/generate-certs.sh {vm_root}/certs/valkey",
        ),
        (
            "generate state secrets",
            f"{vm_root}/services/state/scripts/generate-secrets.sh {vm_root}/secrets {vm_root}",
        ),
        (
            "generate toolbox certificates",
            f"{vm_root}/services/toolbox/scripts/generate-certs.sh "
            f"{vm_root}/certs/toolbox {vm_root}/certs/ca",
        ),
        ("fix certificate ownership", f"{vm_root}/scripts/fix-cert-ownership.sh {vm_root}"),
    ]
    for what, command in scripts:
        require_success(await shell.exec(["sudo", "bash", "-c", command]), what)

    try:
        await shell.exec(["logger", "-t", "polis", "Certificate and secret generation completed"])
    except PolisError as exc:
        logger.debug("Syslog marker failed: %s", exc.message)


async def pull_images(
    shell: ShellExecutor, workspace: WorkspaceConfig, reconcile: ReconcileConfig
) -> None:
    """Pull compose images, bounded by `timeout` inside the instance.

    The host-side deadline sits PULL_HEADROOM past pull_timeout so the
    in-instance `timeout` fires first and its exit status is observed.

    Raises:
        CommandTimeoutError: The pull hit pull_timeout (exit 124).
        UnexpectedExitError: Any other pull failure.
    """
    result = await shell.exec_with_timeout(
        [
            "timeout",
            str(reconcile.pull_timeout),
            "docker",
            "compose",
            "-f",
            workspace.compose_path,
            "pull",
        ],
        reconcile.pull_timeout + PULL_HEADROOM,
    )
    if result.exit_status == TIMEOUT_EXIT_STATUS:
        raise CommandTimeoutError("docker compose pull", reconcile.pull_timeout)
    require_success(result, "docker compose pull")


async def setup_agent(shell: ShellExecutor, vm_root: str, agent: str) -> None:
    """Generate the compose overlay for an agent from its manifest."""
    if not is_valid_agent_name(agent):
        raise InvalidAgentError(agent, "invalid agent name")

    manifest = f"{vm_root}/agents/{agent}/agent.yaml"
    if not (await shell.exec(["test", "-f", manifest])).success:
        raise InvalidAgentError(agent)

    require_success(
        await shell.exec(["bash", f"{vm_root}/scripts/generate-agent.sh", agent, f"{vm_root}/agents"]),
        f"generate agent artifacts for {agent}",
    )


async def compose_up(shell: ShellExecutor, vm_root: str, agent: str | None = None) -> None:
    """`docker compose up -d --remove-orphans`, with the agent overlay when given."""
    args = ["docker", "compose", *compose_files(vm_root, agent), "up", "-d", "--remove-orphans"]
    require_success(await shell.exec(args), "docker compose up")
