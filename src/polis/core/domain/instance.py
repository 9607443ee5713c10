"""Instance domain: logical state and parsers for `info`/`version` output.

Every parser here targets one version of the instance CLI's output. Any shape
deviation raises StateUnrecognizedError instead of guessing.
"""

import json
from enum import StrEnum
from typing import Any

from pydantic import BaseModel

from polis.core.errors import StateUnrecognizedError

# stderr fragments the instance CLI prints for an unknown instance name
NOT_FOUND_MARKERS = ("does not exist", "was not found")


class InstanceState(StrEnum):
    """Instance state, derived from a live `info` call and never stored."""

    NOT_FOUND = "NotFound"
    STOPPED = "Stopped"
    STARTING = "Starting"
    RUNNING = "Running"
    STOPPING = "Stopping"
    ERROR = "Error"


# State strings reported by the instance CLI
_KNOWN_STATES = {
    "Running": InstanceState.RUNNING,
    "Stopped": InstanceState.STOPPED,
    "Starting": InstanceState.STARTING,
    "Stopping": InstanceState.STOPPING,
}


class InstanceSpec(BaseModel):
    """Launch parameters for a new instance."""

    image: str
    cpus: str
    memory: str
    disk: str
    cloud_init: str | None = None
    timeout: int | None = None

    model_config = {"frozen": True}


def is_not_found(stderr: bytes) -> bool:
    """Check if `info` stderr signals that the instance does not exist."""
    text = stderr.decode("utf-8", errors="replace")
    return any(marker in text for marker in NOT_FOUND_MARKERS)


def _instance_entry(stdout: bytes, name: str) -> dict[str, Any]:
    try:
        document = json.loads(stdout)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise StateUnrecognizedError(
            stdout[:80].decode("utf-8", errors="replace"),
            f"Invalid JSON from instance info: {exc}",
        ) from exc

    info = document.get("info") if isinstance(document, dict) else None
    entry = info.get(name) if isinstance(info, dict) else None
    if not isinstance(entry, dict):
        raise StateUnrecognizedError("", f"Instance info has no entry for {name!r}")
    return entry


def parse_instance_state(stdout: bytes, name: str) -> InstanceState:
    """Map `info --format json` output onto InstanceState.

    Raises:
        StateUnrecognizedError: Document is malformed or the state string is unknown.
    """
    raw = _instance_entry(stdout, name).get("state")
    if not isinstance(raw, str) or raw not in _KNOWN_STATES:
        raise StateUnrecognizedError(str(raw))
    return _KNOWN_STATES[raw]


def parse_instance_ip(stdout: bytes, name: str) -> str:
    """Extract the primary IPv4 address (first entry of info.<name>.ipv4).

    Raises:
        StateUnrecognizedError: Document is malformed or has no address.
    """
    addresses = _instance_entry(stdout, name).get("ipv4")
    if not isinstance(addresses, list) or not addresses or not isinstance(addresses[0], str):
        raise StateUnrecognizedError("", f"No IPv4 address found for instance {name!r}")
    return addresses[0]


def parse_cli_version(stdout: bytes) -> str | None:
    """Parse `<tool> <version>` from the first line of `version` output."""
    lines = stdout.decode("utf-8", errors="replace").splitlines()
    if not lines:
        return None
    parts = lines[0].split()
    return parts[1] if len(parts) > 1 else None
