"""Host-side access to the configuration bundle and its digest manifest."""

import hashlib
import json
import re
import tarfile
from pathlib import Path, PurePosixPath

from polis.core.errors import InvalidBundleError

_CHUNK_SIZE = 1024 * 1024
DIGEST_PATTERN = re.compile(r"sha256:[0-9a-f]{64}")


def sha256_file(path: Path) -> str:
    """Hex-encoded SHA-256 of a file's content."""
    digest = hashlib.sha256()
    try:
        with path.open("rb") as f:
            for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
                digest.update(chunk)
    except OSError as exc:
        raise InvalidBundleError(f"Cannot read config bundle {path}: {exc}") from exc
    return digest.hexdigest()


def validate_tarball_paths(path: Path) -> None:
    """Reject archives with absolute or parent-relative member paths.

    Raises:
        InvalidBundleError: Archive is unreadable or contains an unsafe path.
    """
    try:
        with tarfile.open(path, mode="r:*") as archive:
            names = archive.getnames()
    except (OSError, tarfile.TarError) as exc:
        raise InvalidBundleError(f"Cannot read config bundle {path}: {exc}") from exc

    for name in names:
        member = PurePosixPath(name)
        if name.startswith("/") or member.is_absolute():
            raise InvalidBundleError(
                f"Config bundle contains absolute path entry: {name}. "
                "This may indicate a compromised build artifact."
            )
        if ".." in member.parts:
            raise InvalidBundleError(
                f"Config bundle contains path traversal entry: {name}. "
                "This may indicate a compromised build artifact."
            )


def load_digest_manifest(path: Path) -> dict[str, str]:
    """Load the image -> expected digest manifest.

    An empty manifest is valid (local development build).

    Raises:
        InvalidBundleError: Manifest is missing, not a string -> string map,
            or holds a value that is not a full sha256 digest.
    """
    try:
        manifest = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise InvalidBundleError(f"Cannot load image digest manifest {path}: {exc}") from exc

    if not isinstance(manifest, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in manifest.items()
    ):
        raise InvalidBundleError(f"Image digest manifest {path} must map image names to digests")
    for image, digest in manifest.items():
        if not DIGEST_PATTERN.fullmatch(digest):
            raise InvalidBundleError(
                f"Image digest manifest {path} has an invalid digest for {image}: {digest!r}"
            )
    return manifest
