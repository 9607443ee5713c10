"""Instance port set: lifecycle, inspection, shell execution and file transfer.

A single adapter (MultipassProvisioner) implements all four. Components take
only the narrow port they use so tests can substitute deterministic fakes.
"""

from abc import ABC, abstractmethod

from polis.core.domain.instance import InstanceSpec
from polis.core.interfaces.process import CommandResult, ManagedProcess


class InstanceLifecycle(ABC):
    """Create, start, stop and remove the instance."""

    @abstractmethod
    async def launch(self, spec: InstanceSpec) -> CommandResult: ...

    @abstractmethod
    async def start(self) -> CommandResult: ...

    @abstractmethod
    async def stop(self) -> CommandResult: ...

    @abstractmethod
    async def delete(self) -> CommandResult:
        """Soft delete (recoverable until purge)."""
        ...

    @abstractmethod
    async def purge(self) -> CommandResult:
        """Reclaim storage of all soft-deleted instances."""
        ...


class InstanceInspector(ABC):
    """Read-only queries against the instance CLI."""

    @abstractmethod
    async def info(self) -> CommandResult:
        """`info <name> --format json`."""
        ...

    @abstractmethod
    async def version(self) -> CommandResult: ...


class ShellExecutor(ABC):
    """Run commands inside the instance."""

    @abstractmethod
    async def exec(self, args: list[str]) -> CommandResult:
        """Run args inside the instance, returning its raw exit status and output."""
        ...

    @abstractmethod
    async def exec_with_timeout(self, args: list[str], timeout: float) -> CommandResult:
        """Run args inside the instance under an explicit host-side deadline."""
        ...

    @abstractmethod
    async def exec_with_stdin(self, args: list[str], input_data: bytes) -> CommandResult:
        """Run args with input_data on stdin (no shell interpolation of the payload)."""
        ...

    @abstractmethod
    async def exec_spawn(self, args: list[str]) -> ManagedProcess:
        """Start args as a detached child owned by the caller."""
        ...

    @abstractmethod
    async def exec_status(self, args: list[str]) -> int:
        """Run args with inherited stdio and return the exit status."""
        ...


class FileTransfer(ABC):
    """Copy host files into the instance."""

    @abstractmethod
    async def transfer(self, local: str, remote: str) -> CommandResult: ...

    @abstractmethod
    async def transfer_recursive(self, local: str, remote: str) -> CommandResult: ...


class ConfigTransport(ShellExecutor, FileTransfer):
    """Shell plus file transfer, for shipping the config bundle."""


class InstanceView(InstanceInspector, ShellExecutor):
    """Inspector plus shell, for read-only workflows (status, diagnostics)."""


class InstanceProvisioner(InstanceLifecycle, InstanceView, ConfigTransport):
    """All four instance ports, for workflows that need more than one."""
