"""Unit tests for MultipassProvisioner."""

from unittest.mock import AsyncMock

import pytest

from polis.adapters.instance.multipass import LAUNCH_HEADROOM, MultipassProvisioner
from polis.app.config import ExecutorConfig, InstanceConfig, ReconcileConfig, WorkspaceConfig
from polis.core.domain.instance import InstanceSpec
from polis.core.interfaces import CommandResult, CommandRunner
from polis.services.provision import PULL_HEADROOM, pull_images


class TestMultipassProvisioner:
    """Each port call maps to one CLI invocation."""

    @pytest.fixture
    def cmd_runner(self) -> AsyncMock:
        runner = AsyncMock(spec=CommandRunner)
        runner.run.return_value = CommandResult(0)
        runner.run_with_timeout.return_value = CommandResult(0)
        runner.run_status.return_value = 0
        return runner

    @pytest.fixture
    def exec_runner(self) -> AsyncMock:
        runner = AsyncMock(spec=CommandRunner)
        runner.run.return_value = CommandResult(0, stdout=b"ok")
        runner.run_with_stdin.return_value = CommandResult(0)
        runner.run_with_timeout.return_value = CommandResult(0)
        return runner

    @pytest.fixture
    def provisioner(self, cmd_runner: AsyncMock, exec_runner: AsyncMock) -> MultipassProvisioner:
        return MultipassProvisioner(
            cmd_runner, exec_runner, InstanceConfig(name="polis", cli="multipass", launch_timeout=900)
        )

    async def test_launch_args(self, provisioner: MultipassProvisioner, cmd_runner: AsyncMock) -> None:
        spec = InstanceSpec(
            image="24.04", cpus="2", memory="8G", disk="40G", cloud_init="/tmp/ci.yaml", timeout=600
        )

        await provisioner.launch(spec)

        cmd_runner.run_with_timeout.assert_awaited_once_with(
            "multipass",
            [
                "launch", "24.04",
                "--name", "polis",
                "--cpus", "2",
                "--memory", "8G",
                "--disk", "40G",
                "--timeout", "600",
                "--cloud-init", "/tmp/ci.yaml",
            ],
            600 + LAUNCH_HEADROOM,
        )

    async def test_launch_defaults_to_configured_timeout(
        self, provisioner: MultipassProvisioner, cmd_runner: AsyncMock
    ) -> None:
        await provisioner.launch(InstanceSpec(image="24.04", cpus="2", memory="8G", disk="40G"))

        args, timeout = cmd_runner.run_with_timeout.await_args.args[1:]
        assert args[-2:] == ["--timeout", "900"]
        assert "--cloud-init" not in args
        assert timeout == 900 + LAUNCH_HEADROOM

    @pytest.mark.parametrize(
        ("method", "expected"),
        [
            ("start", ["start", "polis"]),
            ("stop", ["stop", "polis"]),
            ("delete", ["delete", "polis"]),
            ("purge", ["purge"]),
            ("info", ["info", "polis", "--format", "json"]),
            ("version", ["version"]),
        ],
    )
    async def test_management_commands(
        self, provisioner: MultipassProvisioner, cmd_runner: AsyncMock, method: str, expected: list[str]
    ) -> None:
        await getattr(provisioner, method)()

        cmd_runner.run.assert_awaited_once_with("multipass", expected)

    async def test_transfer(self, provisioner: MultipassProvisioner, cmd_runner: AsyncMock) -> None:
        await provisioner.transfer("/tmp/a.tar", "/tmp/b.tar")
        await provisioner.transfer_recursive("/tmp/dir", "/opt/polis")

        assert [c.args for c in cmd_runner.run.await_args_list] == [
            ("multipass", ["transfer", "/tmp/a.tar", "polis:/tmp/b.tar"]),
            ("multipass", ["transfer", "--recursive", "/tmp/dir", "polis:/opt/polis"]),
        ]

    async def test_exec_uses_exec_runner(
        self, provisioner: MultipassProvisioner, cmd_runner: AsyncMock, exec_runner: AsyncMock
    ) -> None:
        result = await provisioner.exec(["docker", "info"])

        assert result.stdout == b"ok"
        exec_runner.run.assert_awaited_once_with(
            "multipass", ["exec", "polis", "--", "docker", "info"]
        )
        cmd_runner.run.assert_not_awaited()

    async def test_exec_with_timeout_overrides_exec_runner_default(
        self, provisioner: MultipassProvisioner, exec_runner: AsyncMock
    ) -> None:
        compose = "/opt/polis/docker-compose.yml"
        pull = ["timeout", "600", "docker", "compose", "-f", compose, "pull"]

        await provisioner.exec_with_timeout(pull, 600 + PULL_HEADROOM)

        exec_runner.run_with_timeout.assert_awaited_once_with(
            "multipass", ["exec", "polis", "--", *pull], 600 + PULL_HEADROOM
        )
        exec_runner.run.assert_not_awaited()

    async def test_image_pull_outlasts_exec_timeout(
        self,
        provisioner: MultipassProvisioner,
        exec_runner: AsyncMock,
        workspace_config: WorkspaceConfig,
    ) -> None:
        await pull_images(provisioner, workspace_config, ReconcileConfig(pull_timeout=600))

        args, timeout = exec_runner.run_with_timeout.await_args.args[1:]
        assert args[3:6] == ["timeout", "600", "docker"]
        assert timeout == 600 + PULL_HEADROOM
        assert timeout > ExecutorConfig().exec_timeout
        exec_runner.run.assert_not_awaited()

    async def test_exec_with_stdin(
        self, provisioner: MultipassProvisioner, exec_runner: AsyncMock
    ) -> None:
        await provisioner.exec_with_stdin(["tee", "/opt/polis/.config-hash"], b"abc")

        exec_runner.run_with_stdin.assert_awaited_once_with(
            "multipass", ["exec", "polis", "--", "tee", "/opt/polis/.config-hash"], b"abc"
        )

    async def test_exec_status_inherits_stdio(
        self, provisioner: MultipassProvisioner, cmd_runner: AsyncMock
    ) -> None:
        status = await provisioner.exec_status(["cloud-init", "status", "--wait"])

        assert status == 0
        cmd_runner.run_status.assert_awaited_once_with(
            "multipass", ["exec", "polis", "--", "cloud-init", "status", "--wait"]
        )

    async def test_exec_spawn_hands_back_the_process(
        self, provisioner: MultipassProvisioner, cmd_runner: AsyncMock
    ) -> None:
        managed = object()
        cmd_runner.spawn.return_value = managed

        assert await provisioner.exec_spawn(["bash", "-l"]) is managed
        cmd_runner.spawn.assert_awaited_once_with(
            "multipass", ["exec", "polis", "--", "bash", "-l"]
        )


class TestTimeoutView:
    async def test_overrides_timeout(self) -> None:
        cmd_runner = AsyncMock(spec=CommandRunner)
        exec_runner = AsyncMock(spec=CommandRunner)
        cmd_runner.run_with_timeout.return_value = CommandResult(0)
        exec_runner.run_with_timeout.return_value = CommandResult(0)
        view = MultipassProvisioner(cmd_runner, exec_runner, InstanceConfig()).with_timeout(5.0)

        await view.info()
        await view.version()
        await view.exec(["sysbox-runc", "--version"])

        assert [c.args for c in cmd_runner.run_with_timeout.await_args_list] == [
            ("multipass", ["info", "polis", "--format", "json"], 5.0),
            ("multipass", ["version"], 5.0),
        ]
        exec_runner.run_with_timeout.assert_awaited_once_with(
            "multipass", ["exec", "polis", "--", "sysbox-runc", "--version"], 5.0
        )
        cmd_runner.run.assert_not_awaited()
