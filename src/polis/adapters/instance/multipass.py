"""Multipass implementation of the instance port set.

Every call is translated into one instance-CLI invocation through a
CommandRunner: `cmd_runner` for management commands, `exec_runner` for
commands run inside the instance (they carry different default timeouts).
"""

import logging

from polis.app.config import InstanceConfig
from polis.core.domain.instance import InstanceSpec
from polis.core.interfaces import (
    CommandResult,
    CommandRunner,
    InstanceProvisioner,
    InstanceView,
    ManagedProcess,
)

logger = logging.getLogger(__name__)

# seconds on top of `launch --timeout` for the CLI to report back
LAUNCH_HEADROOM = 60.0


class MultipassProvisioner(InstanceProvisioner):
    """Drives the `multipass` CLI for one named instance."""

    def __init__(
        self,
        cmd_runner: CommandRunner,
        exec_runner: CommandRunner,
        config: InstanceConfig,
    ) -> None:
        self._cmd = cmd_runner
        self._exec = exec_runner
        self._config = config

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def cli(self) -> str:
        return self._config.cli

    def with_timeout(self, timeout: float) -> "TimeoutView":
        """View whose info/version/exec calls use a custom timeout."""
        return TimeoutView(self, timeout)

    def _exec_args(self, args: list[str]) -> list[str]:
        return ["exec", self.name, "--", *args]

    def _info_args(self) -> list[str]:
        return ["info", self.name, "--format", "json"]

    # Lifecycle

    async def launch(self, spec: InstanceSpec) -> CommandResult:
        args = [
            "launch",
            spec.image,
            "--name",
            self.name,
            "--cpus",
            spec.cpus,
            "--memory",
            spec.memory,
            "--disk",
            spec.disk,
            "--timeout",
            str(spec.timeout if spec.timeout is not None else self._config.launch_timeout),
        ]
        if spec.cloud_init is not None:
            args.extend(["--cloud-init", spec.cloud_init])

        timeout = float(spec.timeout or self._config.launch_timeout) + LAUNCH_HEADROOM
        logger.info("Launching instance %s (image=%s)", self.name, spec.image)
        return await self._cmd.run_with_timeout(self.cli, args, timeout)

    async def start(self) -> CommandResult:
        return await self._cmd.run(self.cli, ["start", self.name])

    async def stop(self) -> CommandResult:
        return await self._cmd.run(self.cli, ["stop", self.name])

    async def delete(self) -> CommandResult:
        return await self._cmd.run(self.cli, ["delete", self.name])

    async def purge(self) -> CommandResult:
        return await self._cmd.run(self.cli, ["purge"])

    # Inspector

    async def info(self) -> CommandResult:
        return await self._cmd.run(self.cli, self._info_args())

    async def version(self) -> CommandResult:
        return await self._cmd.run(self.cli, ["version"])

    # FileTransfer

    async def transfer(self, local: str, remote: str) -> CommandResult:
        return await self._cmd.run(self.cli, ["transfer", local, f"{self.name}:{remote}"])

    async def transfer_recursive(self, local: str, remote: str) -> CommandResult:
        return await self._cmd.run(
            self.cli, ["transfer", "--recursive", local, f"{self.name}:{remote}"]
        )

    # ShellExecutor

    async def exec(self, args: list[str]) -> CommandResult:
        return await self._exec.run(self.cli, self._exec_args(args))

    async def exec_with_timeout(self, args: list[str], timeout: float) -> CommandResult:
        return await self._exec.run_with_timeout(self.cli, self._exec_args(args), timeout)

    async def exec_with_stdin(self, args: list[str], input_data: bytes) -> CommandResult:
        return await self._exec.run_with_stdin(self.cli, self._exec_args(args), input_data)

    async def exec_spawn(self, args: list[str]) -> ManagedProcess:
        return await self._cmd.spawn(self.cli, self._exec_args(args))

    async def exec_status(self, args: list[str]) -> int:
        return await self._cmd.run_status(self.cli, self._exec_args(args))


class TimeoutView(InstanceView):
    """Provisioner view with a scoped timeout override.

    Used by probes that must fail fast instead of waiting out the default.
    """

    def __init__(self, provisioner: MultipassProvisioner, timeout: float) -> None:
        self._provisioner = provisioner
        self._timeout = timeout

    async def info(self) -> CommandResult:
        p = self._provisioner
        return await p._cmd.run_with_timeout(p.cli, p._info_args(), self._timeout)

    async def version(self) -> CommandResult:
        p = self._provisioner
        return await p._cmd.run_with_timeout(p.cli, ["version"], self._timeout)

    async def exec(self, args: list[str]) -> CommandResult:
        p = self._provisioner
        return await p._exec.run_with_timeout(p.cli, p._exec_args(args), self._timeout)

    async def exec_with_timeout(self, args: list[str], timeout: float) -> CommandResult:
        return await self._provisioner.exec_with_timeout(args, timeout)

    async def exec_with_stdin(self, args: list[str], input_data: bytes) -> CommandResult:
        # Stdin runs keep the exec runner's own timeout
        return await self._provisioner.exec_with_stdin(args, input_data)

    async def exec_spawn(self, args: list[str]) -> ManagedProcess:
        return await self._provisioner.exec_spawn(args)

    async def exec_status(self, args: list[str]) -> int:
        return await self._provisioner.exec_status(args)
