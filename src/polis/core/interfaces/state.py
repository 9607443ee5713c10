"""Workspace identity persistence interface."""

from abc import ABC, abstractmethod

from polis.core.domain.identity import WorkspaceIdentity


class WorkspaceStateStore(ABC):
    """Interface for the local identity record.

    Implementations: JsonStateStore
    """

    @abstractmethod
    async def load(self) -> WorkspaceIdentity | None:
        """Load the identity record.

        Returns:
            None if no record exists

        Raises:
            IdentityCorruptError: The record exists but fails validation.
        """
        ...

    @abstractmethod
    async def save(self, identity: WorkspaceIdentity) -> None:
        """Persist atomically (no reader ever sees a partial file)."""
        ...

    @abstractmethod
    async def clear(self) -> None:
        """Remove the record, if present."""
        ...
