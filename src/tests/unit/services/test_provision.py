"""Unit tests for the in-instance provisioning steps."""

from pathlib import Path

import pytest

from polis.app.config import ReconcileConfig, WorkspaceConfig
from polis.core.domain.workspace import REMOTE_TARBALL_PATH
from polis.core.errors import (
    CommandTimeoutError,
    InvalidAgentError,
    InvalidBundleError,
    SpawnFailedError,
    UnexpectedExitError,
)
from polis.core.interfaces import CommandResult
from polis.services import provision
from tests.unit.fakes import FakeProvisioner, write_bundle

VM_ROOT = "/opt/polis"


class TestTransferConfig:
    async def test_sequence(
        self, provisioner: FakeProvisioner, workspace_config: WorkspaceConfig
    ) -> None:
        await provision.transfer_config(provisioner, workspace_config)

        assert provisioner.calls[0] == (
            "transfer",
            str(workspace_config.tarball_path),
            REMOTE_TARBALL_PATH,
        )
        assert provisioner.exec_args == [
            ["tar", "xf", REMOTE_TARBALL_PATH, "-C", VM_ROOT, "--no-same-owner"],
            ["rm", "-f", REMOTE_TARBALL_PATH],
            ["tee", workspace_config.env_path],
            ["find", VM_ROOT, "-name", "*.sh", "-exec", "chmod", "+x", "{}", "+"],
            ["find", VM_ROOT, "-name", "*.sh", "-exec", "sed", "-i", "s/\\r//", "{}", "+"],
        ]
        env = provisioner.files[workspace_config.env_path].decode()
        assert env.startswith("# Generated by polis CLI v0.4.0\n")

    @pytest.mark.parametrize("bad_member", ["/etc/passwd", "../escape.sh", "scripts/../../x"])
    async def test_unsafe_bundle_rejected_before_transfer(
        self,
        provisioner: FakeProvisioner,
        workspace_config: WorkspaceConfig,
        assets_dir: Path,
        bad_member: str,
    ) -> None:
        write_bundle(assets_dir, {"docker-compose.yml": b"", bad_member: b"x"})

        with pytest.raises(InvalidBundleError):
            await provision.transfer_config(provisioner, workspace_config)

        assert provisioner.calls == []

    async def test_temp_tarball_cleanup_is_best_effort(
        self, provisioner: FakeProvisioner, workspace_config: WorkspaceConfig
    ) -> None:
        provisioner.respond(["rm", "-f"], SpawnFailedError("multipass", "gone"))

        await provision.transfer_config(provisioner, workspace_config)

        assert ["tee", workspace_config.env_path] in provisioner.exec_args

    async def test_extract_failure(
        self, provisioner: FakeProvisioner, workspace_config: WorkspaceConfig
    ) -> None:
        provisioner.respond(["tar"], CommandResult(2, stderr=b"tar: Error is not recoverable"))

        with pytest.raises(UnexpectedExitError) as exc_info:
            await provision.transfer_config(provisioner, workspace_config)

        assert exc_info.value.exit_status == 2
        assert workspace_config.env_path not in provisioner.files


class TestCertificates:
    async def test_scripts_run_in_dependency_order(self, provisioner: FakeProvisioner) -> None:
        await provision.generate_certs_and_secrets(provisioner, VM_ROOT)

        commands = [a[3] for a in provisioner.exec_args if a[:3] == ["sudo", "bash", "-c"]]
        assert [c.split()[0] for c in commands] == [
            f"{VM_ROOT}/scripts/generate-ca.sh",
            f"{VM_ROOT}/services/state/scripts/generate-certs.sh",
            f"{VM_ROOT}/services/state/scripts/generate-secrets.sh",
            f"{VM_ROOT}/services/toolbox/scripts/generate-certs.sh",
            f"{VM_ROOT}/scripts/fix-cert-ownership.sh",
        ]

    async def test_failure_stops_the_chain(self, provisioner: FakeProvisioner) -> None:
        provisioner.respond(
            ["sudo", "bash", "-c", f"{VM_ROOT}/scripts/generate-ca.sh {VM_ROOT}/certs/ca"],
            CommandResult(1, stderr=b"openssl: not found"),
        )

        with pytest.raises(UnexpectedExitError) as exc_info:
            await provision.generate_certs_and_secrets(provisioner, VM_ROOT)

        assert exc_info.value.program == "generate CA certificate"
        assert len(provisioner.exec_args) == 1


class TestPullImages:
    async def test_pull_is_bounded(
        self, provisioner: FakeProvisioner, workspace_config: WorkspaceConfig
    ) -> None:
        await provision.pull_images(provisioner, workspace_config, ReconcileConfig(pull_timeout=42))

        assert provisioner.exec_args == [
            ["timeout", "42", "docker", "compose", "-f", workspace_config.compose_path, "pull"]
        ]

    async def test_host_deadline_outlasts_pull_timeout(
        self, provisioner: FakeProvisioner, workspace_config: WorkspaceConfig
    ) -> None:
        await provision.pull_images(provisioner, workspace_config, ReconcileConfig(pull_timeout=600))

        [call] = provisioner.calls_of({"exec_with_timeout"})
        assert call[1][:2] == ("timeout", "600")
        assert call[2] == 600 + provision.PULL_HEADROOM
        assert provisioner.calls_of({"exec"}) == []

    async def test_exit_124_is_a_timeout(
        self, provisioner: FakeProvisioner, workspace_config: WorkspaceConfig
    ) -> None:
        provisioner.respond(["timeout"], CommandResult(124))

        with pytest.raises(CommandTimeoutError) as exc_info:
            await provision.pull_images(provisioner, workspace_config, ReconcileConfig(pull_timeout=42))

        assert exc_info.value.timeout == 42

    async def test_other_failure(
        self, provisioner: FakeProvisioner, workspace_config: WorkspaceConfig
    ) -> None:
        provisioner.respond(["timeout"], CommandResult(1, stderr=b"manifest unknown"))

        with pytest.raises(UnexpectedExitError):
            await provision.pull_images(provisioner, workspace_config, ReconcileConfig())


class TestAgents:
    async def test_setup_agent(self, provisioner: FakeProvisioner) -> None:
        provisioner.files[f"{VM_ROOT}/agents/openclaw/agent.yaml"] = b"name: openclaw\n"

        await provision.setup_agent(provisioner, VM_ROOT, "openclaw")

        assert provisioner.exec_args[-1] == [
            "bash",
            f"{VM_ROOT}/scripts/generate-agent.sh",
            "openclaw",
            f"{VM_ROOT}/agents",
        ]

    async def test_unknown_agent(self, provisioner: FakeProvisioner) -> None:
        with pytest.raises(InvalidAgentError) as exc_info:
            await provision.setup_agent(provisioner, VM_ROOT, "ghost")

        assert exc_info.value.agent == "ghost"
        assert not any("generate-agent.sh" in " ".join(a) for a in provisioner.exec_args)

    @pytest.mark.parametrize("name", ["../x", "Claude", "-rf", ""])
    async def test_malformed_name_never_reaches_the_shell(
        self, provisioner: FakeProvisioner, name: str
    ) -> None:
        with pytest.raises(InvalidAgentError):
            await provision.setup_agent(provisioner, VM_ROOT, name)

        assert provisioner.calls == []

    async def test_compose_up_with_overlay(self, provisioner: FakeProvisioner) -> None:
        await provision.compose_up(provisioner, VM_ROOT, "openclaw")

        assert provisioner.exec_args == [
            [
                "docker",
                "compose",
                "-f",
                f"{VM_ROOT}/docker-compose.yml",
                "-f",
                f"{VM_ROOT}/agents/openclaw/.generated/compose.agent.yaml",
                "up",
                "-d",
                "--remove-orphans",
            ]
        ]

    async def test_compose_up_base_only(self, provisioner: FakeProvisioner) -> None:
        await provision.compose_up(provisioner, VM_ROOT)

        assert provisioner.exec_args == [
            ["docker", "compose", "-f", f"{VM_ROOT}/docker-compose.yml", "up", "-d", "--remove-orphans"]
        ]
