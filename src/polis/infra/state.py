"""JSON file implementation of the WorkspaceStateStore port.

Writes go to a temp file in the same directory, get 0600 permissions where
the platform supports it, and replace the target with os.replace, so a
reader never observes a half-written record.
"""

import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from pydantic import ValidationError

from polis.core.domain.identity import WorkspaceIdentity
from polis.core.errors import IdentityCorruptError
from polis.core.interfaces.state import WorkspaceStateStore
from polis.core.logging_schema import Component, ErrorClass, LogEvent

logger = logging.getLogger(__name__)


class JsonStateStore(WorkspaceStateStore):
    """Identity record at <state_dir>/state.json."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    async def load(self) -> WorkspaceIdentity | None:
        return await asyncio.to_thread(self._load_sync)

    async def save(self, identity: WorkspaceIdentity) -> None:
        await asyncio.to_thread(self._save_sync, identity)

    async def clear(self) -> None:
        await asyncio.to_thread(self._clear_sync)

    def _load_sync(self) -> WorkspaceIdentity | None:
        try:
            raw = self._path.read_bytes()
        except FileNotFoundError:
            return None

        try:
            return WorkspaceIdentity.model_validate(json.loads(raw.decode("utf-8")))
        except (UnicodeDecodeError, json.JSONDecodeError, ValidationError) as exc:
            # Surfaced to the caller; the file is left in place for inspection
            logger.error(
                "Workspace state file is corrupt: %s",
                self._path,
                extra={
                    "event": LogEvent.IDENTITY_CORRUPT,
                    "component": Component.STATE,
                    "error_class": ErrorClass.INTEGRITY,
                },
            )
            raise IdentityCorruptError(str(self._path), str(exc)) from exc

    def _save_sync(self, identity: WorkspaceIdentity) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        content = json.dumps(identity.model_dump(mode="json", exclude_none=True), indent=2)

        temp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        temp_path.write_text(content, encoding="utf-8")
        if sys.platform != "win32":
            os.chmod(temp_path, 0o600)
        os.replace(temp_path, self._path)

        logger.info(
            "Saved workspace identity %s",
            identity.workspace_id,
            extra={"event": LogEvent.IDENTITY_SAVED, "component": Component.STATE},
        )

    def _clear_sync(self) -> None:
        try:
            self._path.unlink()
        except FileNotFoundError:
            return
        logger.info(
            "Removed workspace state file %s",
            self._path,
            extra={"event": LogEvent.IDENTITY_CLEARED, "component": Component.STATE},
        )
