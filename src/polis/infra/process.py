"""asyncio implementation of the CommandRunner port.

Every captured run races three sibling tasks (wait for exit, drain stdout,
drain stderr), plus a stdin feeder when input is given, against the timeout.
Draining concurrently with the wait keeps a child that writes more than the
OS pipe buffer from blocking forever. On timeout the child is killed
explicitly, the kill is awaited, and buffered output is drained (bounded by
kill_grace) before CommandTimeoutError is raised, so no orphan is left.
"""

import asyncio
import contextlib
import logging
import os
import shutil
import sys
import time

from polis.core.errors import CommandTimeoutError, SpawnFailedError
from polis.core.interfaces.process import (
    CommandResult,
    CommandRunner,
    ManagedProcess,
    kill_process,
)
from polis.core.logging_schema import Component, ErrorClass, LogEvent

logger = logging.getLogger(__name__)


async def _feed_stdin(stdin: asyncio.StreamWriter, data: bytes) -> None:
    # Child may exit without reading all input; its exit status tells the story
    with contextlib.suppress(BrokenPipeError, ConnectionResetError):
        stdin.write(data)
        await stdin.drain()
    stdin.close()
    with contextlib.suppress(BrokenPipeError, ConnectionResetError):
        await stdin.wait_closed()


class AsyncCommandRunner(CommandRunner):
    """Runs external programs with enforced timeouts.

    Holds only immutable settings, so one instance is safely shared by
    concurrent calls.
    """

    def __init__(
        self,
        timeout: float,
        kill_grace: float = 5.0,
        instance_cli: str | None = None,
        windows_install_dir: str | None = None,
    ) -> None:
        self._timeout = timeout
        self._kill_grace = kill_grace
        self._instance_cli = instance_cli
        self._windows_install_dir = windows_install_dir

    @property
    def timeout(self) -> float:
        return self._timeout

    async def run(self, program: str, args: list[str]) -> CommandResult:
        return await self._run(program, args, self._timeout)

    async def run_with_timeout(
        self, program: str, args: list[str], timeout: float
    ) -> CommandResult:
        return await self._run(program, args, timeout)

    async def run_with_stdin(
        self, program: str, args: list[str], input_data: bytes
    ) -> CommandResult:
        return await self._run(program, args, self._timeout, input_data)

    async def spawn(self, program: str, args: list[str]) -> ManagedProcess:
        process = await self._spawn(
            program,
            args,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=None,
        )
        return ManagedProcess(program, process)

    async def run_status(self, program: str, args: list[str]) -> int:
        process = await self._spawn(program, args, stdin=None, stdout=None, stderr=None)
        try:
            return await process.wait()
        finally:
            kill_process(process)

    def _child_env(self, program: str) -> dict[str, str] | None:
        """Append the instance CLI's default install dir to PATH on Windows."""
        if (
            sys.platform != "win32"
            or program != self._instance_cli
            or not self._windows_install_dir
        ):
            return None
        env = os.environ.copy()
        current = env.get("PATH", "")
        if self._windows_install_dir not in current.split(os.pathsep):
            env["PATH"] = os.pathsep.join(filter(None, [current, self._windows_install_dir]))
        return env

    async def _spawn(
        self,
        program: str,
        args: list[str],
        *,
        stdin: int | None,
        stdout: int | None,
        stderr: int | None,
    ) -> asyncio.subprocess.Process:
        env = self._child_env(program)
        executable = program
        if env is not None:
            # CreateProcess searches the parent's PATH, not the child's
            executable = shutil.which(program, path=env["PATH"]) or program

        try:
            return await asyncio.create_subprocess_exec(
                executable, *args, stdin=stdin, stdout=stdout, stderr=stderr, env=env
            )
        except OSError as exc:
            logger.error(
                "Failed to spawn %s: %s",
                program,
                exc,
                extra={
                    "event": LogEvent.COMMAND_SPAWN_FAILED,
                    "component": Component.EXEC,
                    "error_class": ErrorClass.ENVIRONMENT,
                    "program": program,
                },
            )
            raise SpawnFailedError(program, str(exc)) from exc

    async def _run(
        self,
        program: str,
        args: list[str],
        timeout: float,
        input_data: bytes | None = None,
    ) -> CommandResult:
        started = time.monotonic()
        process = await self._spawn(
            program,
            args,
            stdin=asyncio.subprocess.PIPE if input_data is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            result = await self._collect(program, process, timeout, input_data)
        finally:
            # Outer cancellation must not leave the child running
            kill_process(process)

        logger.debug(
            "%s exited with %d",
            program,
            result.exit_status,
            extra={
                "event": LogEvent.COMMAND_COMPLETE,
                "component": Component.EXEC,
                "program": program,
                "exit_status": result.exit_status,
                "duration_ms": int((time.monotonic() - started) * 1000),
            },
        )
        return result

    async def _collect(
        self,
        program: str,
        process: asyncio.subprocess.Process,
        timeout: float,
        input_data: bytes | None,
    ) -> CommandResult:
        assert process.stdout is not None and process.stderr is not None

        wait_task = asyncio.create_task(process.wait())
        stdout_task = asyncio.create_task(process.stdout.read())
        stderr_task = asyncio.create_task(process.stderr.read())
        tasks = [wait_task, stdout_task, stderr_task]
        if input_data is not None:
            assert process.stdin is not None
            tasks.append(asyncio.create_task(_feed_stdin(process.stdin, input_data)))

        try:
            _, pending = await asyncio.wait(tasks, timeout=timeout)
            if pending:
                await self._kill_after_timeout(program, process, wait_task, tasks, timeout)
                raise CommandTimeoutError(program, timeout)

            for task in tasks:
                task.result()  # re-raise any reader/feeder failure
            return CommandResult(
                exit_status=wait_task.result(),
                stdout=stdout_task.result(),
                stderr=stderr_task.result(),
            )
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _kill_after_timeout(
        self,
        program: str,
        process: asyncio.subprocess.Process,
        wait_task: asyncio.Task,
        tasks: list[asyncio.Task],
        timeout: float,
    ) -> None:
        logger.warning(
            "%s timed out after %gs, killing pid %d",
            program,
            timeout,
            process.pid,
            extra={
                "event": LogEvent.COMMAND_TIMEOUT,
                "component": Component.EXEC,
                "error_class": ErrorClass.TIMEOUT,
                "program": program,
                "timeout": timeout,
            },
        )
        kill_process(process)

        # Await the kill acknowledgement and whatever output is still buffered.
        # Grandchildren holding the pipes open are cut off by the grace bound.
        await asyncio.wait(tasks, timeout=self._kill_grace)
        if not wait_task.done():
            logger.error(
                "%s (pid %d) did not exit within %gs of kill",
                program,
                process.pid,
                self._kill_grace,
                extra={"event": LogEvent.PROCESS_KILLED, "component": Component.EXEC},
            )
