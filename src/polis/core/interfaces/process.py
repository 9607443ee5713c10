"""Process execution interface and the caller-owned child handle."""

import asyncio
import contextlib
import weakref
from abc import ABC, abstractmethod
from dataclasses import dataclass
from types import TracebackType


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a finished child process.

    exit_status is negative when the child was killed by a signal.
    """

    exit_status: int
    stdout: bytes = b""
    stderr: bytes = b""

    @property
    def success(self) -> bool:
        return self.exit_status == 0

    @property
    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")


def kill_process(process: asyncio.subprocess.Process) -> None:
    """Kill the child if it is still running."""
    if process.returncode is None:
        with contextlib.suppress(ProcessLookupError):
            process.kill()


class ManagedProcess:
    """Detached child owned by the caller.

    Use as an async context manager, or call wait() yourself. If the handle
    is garbage collected while the child still runs, the child is killed.
    """

    def __init__(self, program: str, process: asyncio.subprocess.Process) -> None:
        self.program = program
        self._process = process
        self._finalizer = weakref.finalize(self, kill_process, process)

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    @property
    def stdin(self) -> asyncio.StreamWriter | None:
        return self._process.stdin

    @property
    def stdout(self) -> asyncio.StreamReader | None:
        return self._process.stdout

    async def wait(self) -> int:
        returncode = await self._process.wait()
        self._finalizer.detach()
        return returncode

    def kill(self) -> None:
        kill_process(self._process)

    async def __aenter__(self) -> "ManagedProcess":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._process.returncode is None:
            self.kill()
        await self.wait()


class CommandRunner(ABC):
    """Interface for running external programs.

    A non-zero exit status is not an error at this layer; callers inspect
    CommandResult.exit_status themselves.

    Implementations: AsyncCommandRunner
    """

    @abstractmethod
    async def run(self, program: str, args: list[str]) -> CommandResult:
        """Run with the default timeout and captured output.

        Raises:
            SpawnFailedError: The program could not be started.
            CommandTimeoutError: The child exceeded the timeout and was killed.
        """
        ...

    @abstractmethod
    async def run_with_timeout(
        self, program: str, args: list[str], timeout: float
    ) -> CommandResult:
        """Run with a custom timeout."""
        ...

    @abstractmethod
    async def run_with_stdin(
        self, program: str, args: list[str], input_data: bytes
    ) -> CommandResult:
        """Run with input_data piped to stdin."""
        ...

    @abstractmethod
    async def spawn(self, program: str, args: list[str]) -> ManagedProcess:
        """Start a detached child with piped stdio and no timeout.

        The caller owns the lifetime. The child is killed if the handle is
        dropped without being waited on.
        """
        ...

    @abstractmethod
    async def run_status(self, program: str, args: list[str]) -> int:
        """Run with inherited stdio (no capture) and return the exit status."""
        ...
