"""Error handling module for polis.

This module defines error codes, exception classes, and response models.
The CLI layer maps ErrorCode to user messages and exit_code to the process
exit status; the core never formats user-facing prose itself.

Error Response Format:
{
    "error": {
        "code": "DIGEST_MISMATCH",
        "message": "Image digest mismatch for gate",
        "step": "verify_digests"
    }
}

Usage:
    from polis.core.errors import CommandTimeoutError, SpawnFailedError

    raise SpawnFailedError("multipass", "No such file or directory")
    raise CommandTimeoutError("multipass", 30.0)
"""

from enum import Enum

from pydantic import BaseModel


class ErrorCode(str, Enum):
    """Error codes."""

    SPAWN_FAILED = "SPAWN_FAILED"
    TIMEOUT = "TIMEOUT"
    UNEXPECTED_EXIT = "UNEXPECTED_EXIT"
    STATE_UNRECOGNIZED = "STATE_UNRECOGNIZED"
    DIGEST_MISMATCH = "DIGEST_MISMATCH"
    IDENTITY_CORRUPT = "IDENTITY_CORRUPT"
    CONFLICTING_WORKLOAD = "CONFLICTING_WORKLOAD"
    INSTANCE_NOT_RUNNING = "INSTANCE_NOT_RUNNING"
    INSTANCE_LOCKED = "INSTANCE_LOCKED"
    INVALID_BUNDLE = "INVALID_BUNDLE"
    PREREQUISITE_MISSING = "PREREQUISITE_MISSING"
    PROVISIONING_FAILED = "PROVISIONING_FAILED"
    INVALID_AGENT = "INVALID_AGENT"


class ErrorDetail(BaseModel):
    """Error detail containing code, message and the failing step (if any)."""

    code: str
    message: str
    step: str | None = None


class ErrorResponse(BaseModel):
    """Error response format."""

    error: ErrorDetail


class PolisError(Exception):
    """Base exception for polis.

    All polis specific exceptions should inherit from this class.

    Attributes:
        code: The error code from ErrorCode enum
        message: Human-readable error message
        exit_code: Process exit status for the CLI layer
        step: Workflow step that failed, set by reconcile/repair/provision
    """

    def __init__(self, code: ErrorCode, message: str, exit_code: int = 1) -> None:
        self.code = code
        self.message = message
        self.exit_code = exit_code
        self.step: str | None = None
        super().__init__(message)

    def with_step(self, step: str) -> "PolisError":
        """Tag the failing workflow step, keeping the innermost tag."""
        if self.step is None:
            self.step = step
        return self

    def to_response(self) -> ErrorResponse:
        """Convert exception to ErrorResponse model."""
        return ErrorResponse(
            error=ErrorDetail(code=self.code.value, message=self.message, step=self.step)
        )


class SpawnFailedError(PolisError):
    """Could not start a child process (environment problem, not retried)."""

    def __init__(self, program: str, reason: str = "") -> None:
        self.program = program
        message = f"Failed to spawn {program}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(ErrorCode.SPAWN_FAILED, message, 127)


class CommandTimeoutError(PolisError):
    """Child exceeded its bound. The child is killed before this is raised."""

    def __init__(self, program: str, timeout: float) -> None:
        self.program = program
        self.timeout = timeout
        super().__init__(
            ErrorCode.TIMEOUT, f"{program} timed out after {timeout:g}s", 124
        )


class UnexpectedExitError(PolisError):
    """Command ran but returned a failure status."""

    def __init__(
        self, program: str, exit_status: int, stderr: str = "", message: str | None = None
    ) -> None:
        self.program = program
        self.exit_status = exit_status
        self.stderr = stderr
        if message is None:
            message = f"{program} exited with status {exit_status}"
            if stderr.strip():
                message = f"{message}: {stderr.strip()}"
        super().__init__(ErrorCode.UNEXPECTED_EXIT, message)


class StateUnrecognizedError(PolisError):
    """Instance reported a state outside the known set, or an unparseable document."""

    def __init__(self, raw: str, message: str | None = None) -> None:
        self.raw = raw
        super().__init__(
            ErrorCode.STATE_UNRECOGNIZED, message or f"Unrecognized instance state: {raw!r}"
        )


class DigestMismatchError(PolisError):
    """Supply-chain integrity failure. Always fatal, never retried."""

    def __init__(self, service: str, expected: str, actual: str) -> None:
        self.service = service
        self.expected = expected
        self.actual = actual
        super().__init__(
            ErrorCode.DIGEST_MISMATCH,
            f"Image digest mismatch for {service}: expected {expected}, got {actual}",
            3,
        )


class IdentityCorruptError(PolisError):
    """On-disk identity record fails validation. Surfaced, never auto-deleted."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(
            ErrorCode.IDENTITY_CORRUPT, f"Workspace state file {path} is corrupt: {reason}"
        )


class ConflictingWorkloadError(PolisError):
    """Requested workload differs from the one currently active."""

    def __init__(self, active: str | None, requested: str | None) -> None:
        self.active = active
        self.requested = requested
        super().__init__(
            ErrorCode.CONFLICTING_WORKLOAD,
            f"Workspace is running with agent {active or 'none'}; "
            f"requested agent {requested or 'none'}. Stop the workspace first.",
        )


class InstanceNotRunningError(PolisError):
    """Operation requires a running instance."""

    def __init__(self, state: str) -> None:
        self.state = state
        super().__init__(
            ErrorCode.INSTANCE_NOT_RUNNING, f"Instance is not running (state: {state})"
        )


class InstanceLockedError(PolisError):
    """Another client process holds the instance lock."""

    def __init__(self, lock_path: str) -> None:
        self.lock_path = lock_path
        super().__init__(
            ErrorCode.INSTANCE_LOCKED,
            f"Another polis process is operating on this workspace ({lock_path})",
            75,
        )


class InvalidBundleError(PolisError):
    """Config bundle or digest manifest failed validation on the host."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.INVALID_BUNDLE, message, 3)


class PrerequisiteError(PolisError):
    """Instance CLI is missing or older than the supported minimum."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.PREREQUISITE_MISSING, message, 69)


class ProvisioningError(PolisError):
    """Instance provisioning failed (cloud-init, health wait)."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.PROVISIONING_FAILED, message)


class InvalidAgentError(PolisError):
    """Agent name is malformed or has no manifest in the instance."""

    def __init__(self, agent: str, reason: str = "unknown agent") -> None:
        self.agent = agent
        super().__init__(ErrorCode.INVALID_AGENT, f"{reason}: {agent!r}", 2)
