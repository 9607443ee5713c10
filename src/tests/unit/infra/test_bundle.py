"""Unit tests for config bundle helpers."""

import hashlib
import json
from pathlib import Path

import pytest

from polis.core.errors import InvalidBundleError
from polis.infra.bundle import load_digest_manifest, sha256_file, validate_tarball_paths
from tests.unit.fakes import write_bundle

GATE = "ghcr.io/odralabsHQ/polis-gate:v0.4.0"
DIGEST = "sha256:" + "c3" * 32


class TestSha256File:
    def test_matches_hashlib(self, tmp_path: Path) -> None:
        path = tmp_path / "bundle.tar"
        path.write_bytes(b"x" * 3_000_000)

        assert sha256_file(path) == hashlib.sha256(b"x" * 3_000_000).hexdigest()

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(InvalidBundleError):
            sha256_file(tmp_path / "missing.tar")


class TestValidateTarballPaths:
    def test_accepts_relative_members(self, tmp_path: Path) -> None:
        tarball = write_bundle(
            tmp_path, {"docker-compose.yml": b"", "scripts/generate-ca.sh": b"#!/bin/sh\n"}
        )

        validate_tarball_paths(tarball)

    @pytest.mark.parametrize(
        ("member", "reason"),
        [
            ("/etc/passwd", "absolute path"),
            ("../outside.sh", "path traversal"),
            ("scripts/../../outside.sh", "path traversal"),
        ],
    )
    def test_rejects_unsafe_members(self, tmp_path: Path, member: str, reason: str) -> None:
        tarball = write_bundle(tmp_path, {member: b"payload"})

        with pytest.raises(InvalidBundleError, match=reason):
            validate_tarball_paths(tarball)

    def test_rejects_non_archive(self, tmp_path: Path) -> None:
        path = tmp_path / "polis-setup.config.tar"
        path.write_bytes(b"not a tar archive")

        with pytest.raises(InvalidBundleError):
            validate_tarball_paths(path)


class TestLoadDigestManifest:
    def test_loads_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "image-digests.json"
        path.write_text(json.dumps({GATE: DIGEST}))

        assert load_digest_manifest(path) == {GATE: DIGEST}

    def test_empty_manifest_is_valid(self, tmp_path: Path) -> None:
        path = tmp_path / "image-digests.json"
        path.write_text("{}")

        assert load_digest_manifest(path) == {}

    @pytest.mark.parametrize("content", ["[]", '{"gate": 1}', "{oops"])
    def test_rejects_malformed(self, tmp_path: Path, content: str) -> None:
        path = tmp_path / "image-digests.json"
        path.write_text(content)

        with pytest.raises(InvalidBundleError):
            load_digest_manifest(path)

    @pytest.mark.parametrize(
        "digest",
        [
            "",
            "sha256:",
            "sha256:dead",
            DIGEST[:-1],
            DIGEST.upper(),
            "md5:" + "c3" * 16,
            f" {DIGEST}",
        ],
    )
    def test_rejects_values_that_are_not_full_digests(self, tmp_path: Path, digest: str) -> None:
        path = tmp_path / "image-digests.json"
        path.write_text(json.dumps({GATE: digest}))

        with pytest.raises(InvalidBundleError, match="invalid digest"):
            load_digest_manifest(path)
