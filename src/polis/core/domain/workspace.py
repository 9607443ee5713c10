"""Workspace constants and pure helpers for the compose project in the instance."""

import re

# Must match the rule enforced by generate-agent.sh before any path interpolation
AGENT_NAME_PATTERN = re.compile(r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$")

# Image version variables pinned in <vm_root>/.env
IMAGE_VERSION_VARS = (
    "POLIS_RESOLVER_VERSION",
    "POLIS_CERTGEN_VERSION",
    "POLIS_GATE_VERSION",
    "POLIS_SENTINEL_VERSION",
    "POLIS_SCANNER_VERSION",
    "POLIS_WORKSPACE_VERSION",
    "POLIS_HOST_INIT_VERSION",
    "POLIS_STATE_VERSION",
    "POLIS_TOOLBOX_VERSION",
)

REMOTE_TARBALL_PATH = "/tmp/polis-setup.config.tar"
CLOUD_INIT_LOG = "/var/log/cloud-init-output.log"
RECOVERY_COMMAND = "polis delete && polis start"


def generate_env_content(version: str) -> str:
    """Render the .env file pinning every image to v<version>."""
    tag = f"v{version}"
    lines = [f"# Generated by polis CLI v{version}"]
    lines.extend(f"{var}={tag}" for var in IMAGE_VERSION_VARS)
    return "\n".join(lines) + "\n"


def is_valid_agent_name(name: str) -> bool:
    return AGENT_NAME_PATTERN.fullmatch(name) is not None


def compose_files(vm_root: str, agent: str | None = None) -> list[str]:
    """Compose `-f` arguments: base file plus the generated agent overlay."""
    args = ["-f", f"{vm_root}/docker-compose.yml"]
    if agent is not None:
        args.extend(["-f", f"{vm_root}/agents/{agent}/.generated/compose.agent.yaml"])
    return args
