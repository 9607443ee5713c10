"""Unit tests for the config hash sentinel and digest verification."""

import pytest

from polis.core.errors import DigestMismatchError, UnexpectedExitError
from polis.core.interfaces import CommandResult
from polis.services import integrity
from tests.unit.fakes import FakeProvisioner

HASH_PATH = "/opt/polis/.config-hash"
IMAGE = "ghcr.io/odralabshq/polis-gate-oss:v0.4.0"
DIGEST = "sha256:" + "ab" * 32


class TestConfigHash:
    async def test_missing_sentinel_reads_empty(self, provisioner: FakeProvisioner) -> None:
        assert await integrity.read_config_hash(provisioner, HASH_PATH) == ""

    async def test_write_then_read(self, provisioner: FakeProvisioner) -> None:
        await integrity.write_config_hash(provisioner, HASH_PATH, "f" * 64)

        assert provisioner.calls[-1] == ("exec_with_stdin", ("tee", HASH_PATH), b"f" * 64)
        assert await integrity.read_config_hash(provisioner, HASH_PATH) == "f" * 64


class TestVerifyImageDigests:
    async def test_empty_manifest_skips(self, provisioner: FakeProvisioner) -> None:
        await integrity.verify_image_digests(provisioner, {})

        assert provisioner.calls == []

    async def test_matching_repo_digest(self, provisioner: FakeProvisioner) -> None:
        provisioner.respond(
            ["docker", "inspect"],
            CommandResult(0, stdout=f"ghcr.io/odralabshq/polis-gate-oss@{DIGEST}\n".encode()),
        )

        await integrity.verify_image_digests(provisioner, {IMAGE: DIGEST})

        assert provisioner.exec_args == [
            ["docker", "inspect", "--format", "{{index .RepoDigests 0}}", IMAGE]
        ]

    async def test_mismatch(self, provisioner: FakeProvisioner) -> None:
        provisioner.respond(
            ["docker", "inspect"],
            CommandResult(0, stdout=b"ghcr.io/odralabshq/polis-gate-oss@sha256:0000\n"),
        )

        with pytest.raises(DigestMismatchError) as exc_info:
            await integrity.verify_image_digests(provisioner, {IMAGE: DIGEST})

        assert exc_info.value.service == IMAGE
        assert exc_info.value.expected == DIGEST

    @pytest.mark.parametrize("expected", [DIGEST[:16], "sha256:", DIGEST[7:], ""])
    async def test_partial_digest_is_a_mismatch(
        self, provisioner: FakeProvisioner, expected: str
    ) -> None:
        provisioner.respond(
            ["docker", "inspect"],
            CommandResult(0, stdout=f"ghcr.io/odralabshq/polis-gate-oss@{DIGEST}\n".encode()),
        )

        with pytest.raises(DigestMismatchError) as exc_info:
            await integrity.verify_image_digests(provisioner, {IMAGE: expected})

        assert exc_info.value.actual == f"ghcr.io/odralabshq/polis-gate-oss@{DIGEST}"

    async def test_image_without_repo_digest(self, provisioner: FakeProvisioner) -> None:
        provisioner.respond(["docker", "inspect"], CommandResult(0, stdout=b"\n"))

        with pytest.raises(DigestMismatchError) as exc_info:
            await integrity.verify_image_digests(provisioner, {IMAGE: DIGEST})

        assert exc_info.value.actual == "<none>"

    async def test_inspect_failure_is_not_a_mismatch(self, provisioner: FakeProvisioner) -> None:
        provisioner.respond(["docker", "inspect"], CommandResult(1, stderr=b"No such image"))

        with pytest.raises(UnexpectedExitError):
            await integrity.verify_image_digests(provisioner, {IMAGE: DIGEST})
