"""Test doubles for the instance ports and bundle helpers."""

import io
import json
import tarfile
from collections.abc import Callable
from pathlib import Path

from polis.core.domain.identity import WorkspaceIdentity
from polis.core.domain.instance import InstanceSpec
from polis.core.interfaces import (
    CommandResult,
    InstanceProvisioner,
    ProgressReporter,
    WorkspaceStateStore,
)

LIFECYCLE_CALLS = {"launch", "start", "stop", "delete", "purge"}
EXEC_CALLS = {"exec", "exec_with_timeout", "exec_with_stdin"}
SHELL_CALLS = EXEC_CALLS | {"exec_status", "transfer", "transfer_recursive"}

Responder = CommandResult | Exception | Callable[[list[str]], CommandResult]


class FakeProvisioner(InstanceProvisioner):
    """Deterministic instance double.

    Lifecycle calls move `state` the way the real CLI would. A tiny in-memory
    filesystem backs `cat`, `tee`, `test -f` and `rm -f`, so sentinel files
    behave across calls. Any other exec answers with the most recent
    matching `respond()` registration, or exit 0 with no output.
    """

    def __init__(self, name: str = "polis", state: str | None = "Running") -> None:
        self.name = name
        self.state = state  # None: instance does not exist
        self.files: dict[str, bytes] = {}
        self.calls: list[tuple] = []
        self.launch_result = CommandResult(0)
        self.exec_status_code = 0
        self.cli_version = "1.16.1"
        self._responses: list[tuple[tuple[str, ...], Responder]] = []

    def respond(self, prefix: list[str], result: Responder) -> None:
        """Answer exec calls whose args start with prefix. An exception is raised."""
        self._responses.append((tuple(prefix), result))

    def calls_of(self, kinds: set[str]) -> list[tuple]:
        return [c for c in self.calls if c[0] in kinds]

    @property
    def lifecycle_calls(self) -> list[tuple]:
        return self.calls_of(LIFECYCLE_CALLS)

    @property
    def shell_calls(self) -> list[tuple]:
        return self.calls_of(SHELL_CALLS)

    @property
    def exec_args(self) -> list[list[str]]:
        """Args of every exec call, in order."""
        return [list(c[1]) for c in self.calls if c[0] in EXEC_CALLS]

    # Lifecycle

    async def launch(self, spec: InstanceSpec) -> CommandResult:
        self.calls.append(("launch", spec))
        if self.launch_result.success:
            self.state = "Running"
        return self.launch_result

    async def start(self) -> CommandResult:
        self.calls.append(("start",))
        self.state = "Running"
        return CommandResult(0)

    async def stop(self) -> CommandResult:
        self.calls.append(("stop",))
        self.state = "Stopped"
        return CommandResult(0)

    async def delete(self) -> CommandResult:
        self.calls.append(("delete",))
        self.state = None
        return CommandResult(0)

    async def purge(self) -> CommandResult:
        self.calls.append(("purge",))
        return CommandResult(0)

    # Inspector

    async def info(self) -> CommandResult:
        self.calls.append(("info",))
        if self.state is None:
            return CommandResult(
                1, stderr=f'info failed: instance "{self.name}" does not exist\n'.encode()
            )
        document = {"info": {self.name: {"state": self.state, "ipv4": ["10.0.0.5"]}}}
        return CommandResult(0, stdout=json.dumps(document).encode())

    async def version(self) -> CommandResult:
        self.calls.append(("version",))
        return CommandResult(0, stdout=f"multipass   {self.cli_version}\n".encode())

    # Shell

    async def exec(self, args: list[str]) -> CommandResult:
        self.calls.append(("exec", tuple(args)))
        return self._answer(args)

    async def exec_with_timeout(self, args: list[str], timeout: float) -> CommandResult:
        self.calls.append(("exec_with_timeout", tuple(args), timeout))
        return self._answer(args)

    def _answer(self, args: list[str]) -> CommandResult:
        for prefix, result in reversed(self._responses):
            if tuple(args[: len(prefix)]) == prefix:
                if isinstance(result, Exception):
                    raise result
                return result(args) if callable(result) else result
        return self._builtin(args)

    async def exec_with_stdin(self, args: list[str], input_data: bytes) -> CommandResult:
        self.calls.append(("exec_with_stdin", tuple(args), input_data))
        if args[0] == "tee":
            self.files[args[1]] = input_data
            return CommandResult(0, stdout=input_data)
        return CommandResult(0)

    async def exec_spawn(self, args: list[str]):
        raise NotImplementedError

    async def exec_status(self, args: list[str]) -> int:
        self.calls.append(("exec_status", tuple(args)))
        return self.exec_status_code

    def _builtin(self, args: list[str]) -> CommandResult:
        match args:
            case ["cat", path]:
                if path in self.files:
                    return CommandResult(0, stdout=self.files[path])
                return CommandResult(1, stderr=f"cat: {path}: No such file or directory".encode())
            case ["test", "-f", path]:
                return CommandResult(0 if path in self.files else 1)
            case ["rm", "-f", path]:
                self.files.pop(path, None)
                return CommandResult(0)
        return CommandResult(0)

    # File transfer

    async def transfer(self, local: str, remote: str) -> CommandResult:
        self.calls.append(("transfer", local, remote))
        return CommandResult(0)

    async def transfer_recursive(self, local: str, remote: str) -> CommandResult:
        self.calls.append(("transfer_recursive", local, remote))
        return CommandResult(0)


class RecordingReporter(ProgressReporter):
    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def step(self, message: str) -> None:
        self.messages.append(("step", message))

    def success(self, message: str) -> None:
        self.messages.append(("success", message))

    def warn(self, message: str) -> None:
        self.messages.append(("warn", message))


def status_document(**containers: tuple[str, str | None]) -> bytes:
    """Consolidated status query output: service=(state, health)."""
    return json.dumps(
        {
            "uptime": 3600.5,
            "containers": [
                {"Service": service, "State": state, "Health": health}
                for service, (state, health) in containers.items()
            ],
        }
    ).encode()


def write_bundle(assets_dir: Path, members: dict[str, bytes] | None = None) -> Path:
    """Write a config tarball into assets_dir and return its path."""
    members = members if members is not None else {"docker-compose.yml": b"services: {}\n"}
    tarball = assets_dir / "polis-setup.config.tar"
    with tarfile.open(tarball, "w") as archive:
        for name, data in members.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            archive.addfile(info, io.BytesIO(data))
    return tarball


async def no_sleep(_seconds: float) -> None:
    return None


class InMemoryStateStore(WorkspaceStateStore):
    def __init__(self, identity: WorkspaceIdentity | None = None) -> None:
        self.identity = identity
        self.saves = 0

    async def load(self) -> WorkspaceIdentity | None:
        return self.identity

    async def save(self, identity: WorkspaceIdentity) -> None:
        self.identity = identity
        self.saves += 1

    async def clear(self) -> None:
        self.identity = None
