"""Workspace identity record persisted to the local state file."""

import re
import secrets
from datetime import datetime

from pydantic import AliasChoices, BaseModel, Field, field_validator

WORKSPACE_ID_PATTERN = re.compile(r"^polis-[0-9a-f]{16}$")


def generate_workspace_id() -> str:
    """Generate `polis-` followed by 16 lowercase hex characters."""
    return f"polis-{secrets.token_hex(8)}"


def validate_workspace_id(workspace_id: str) -> str:
    """Return workspace_id unchanged, or raise ValueError if malformed."""
    if not WORKSPACE_ID_PATTERN.fullmatch(workspace_id):
        raise ValueError(
            f"invalid workspace id {workspace_id!r} (expected polis- followed by 16 hex chars)"
        )
    return workspace_id


class WorkspaceIdentity(BaseModel):
    """Identity of the local workspace.

    Created on first successful start, active_agent replaced on agent switch,
    removed on delete. created_at also accepts the legacy "started_at" key.
    """

    workspace_id: str
    created_at: datetime = Field(validation_alias=AliasChoices("created_at", "started_at"))
    image_sha256: str | None = None
    image_source: str | None = None
    active_agent: str | None = None

    model_config = {"frozen": True}

    @field_validator("workspace_id")
    @classmethod
    def _check_workspace_id(cls, value: str) -> str:
        return validate_workspace_id(value)

    def with_agent(self, agent: str | None) -> "WorkspaceIdentity":
        return self.model_copy(update={"active_agent": agent})
