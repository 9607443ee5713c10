"""Applied-config hash sentinel and image digest verification."""

import logging

from polis.core.errors import DigestMismatchError
from polis.core.interfaces import ShellExecutor
from polis.core.logging_schema import Component, ErrorClass, LogEvent
from polis.services.steps import require_success

logger = logging.getLogger(__name__)


async def read_config_hash(shell: ShellExecutor, path: str) -> str:
    """Applied hash inside the instance; empty if the sentinel is missing."""
    result = await shell.exec(["cat", path])
    if not result.success:
        return ""
    return result.stdout_text.strip()


async def write_config_hash(shell: ShellExecutor, path: str, config_hash: str) -> None:
    """Persist the applied hash via `tee` with the hash on stdin."""
    require_success(
        await shell.exec_with_stdin(["tee", path], config_hash.encode()),
        "write config hash",
    )


async def verify_image_digests(shell: ShellExecutor, manifest: dict[str, str]) -> None:
    """Check each pulled image's repo digest against the release manifest.

    An empty manifest (local development build) skips verification with a
    warning. A failed `docker inspect` is a command failure; a digest that
    differs is a DigestMismatchError and is never retried.
    """
    if not manifest:
        logger.warning(
            "Image digest manifest is empty, verification skipped (local dev build)",
            extra={"event": LogEvent.DIGEST_VERIFY_SKIPPED, "component": Component.RECONCILE},
        )
        return

    for image, expected in manifest.items():
        result = require_success(
            await shell.exec(["docker", "inspect", "--format", "{{index .RepoDigests 0}}", image]),
            f"docker inspect {image}",
        )
        # RepoDigests entries read <repository>@<digest>
        actual = result.stdout_text.strip()
        if actual.rpartition("@")[2] != expected:
            logger.error(
                "Image digest mismatch for %s",
                image,
                extra={
                    "event": LogEvent.DIGEST_MISMATCH,
                    "component": Component.RECONCILE,
                    "error_class": ErrorClass.INTEGRITY,
                    "expected": expected,
                    "actual": actual,
                },
            )
            raise DigestMismatchError(image, expected, actual or "<none>")
