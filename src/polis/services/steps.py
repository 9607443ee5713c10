"""Step tagging for ordered workflows (provision, reconcile, repair).

A failing step tags the propagating PolisError with its name and logs it;
the error is never swallowed.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from polis.core.errors import ErrorCode, PolisError, UnexpectedExitError
from polis.core.interfaces.process import CommandResult
from polis.core.logging_schema import Component, ErrorClass, LogEvent

logger = logging.getLogger(__name__)

_ERROR_CLASSES = {
    ErrorCode.SPAWN_FAILED: ErrorClass.ENVIRONMENT,
    ErrorCode.PREREQUISITE_MISSING: ErrorClass.ENVIRONMENT,
    ErrorCode.TIMEOUT: ErrorClass.TIMEOUT,
    ErrorCode.DIGEST_MISMATCH: ErrorClass.INTEGRITY,
    ErrorCode.INVALID_BUNDLE: ErrorClass.INTEGRITY,
    ErrorCode.IDENTITY_CORRUPT: ErrorClass.INTEGRITY,
}


@contextmanager
def workflow_step(step: str, component: Component) -> Iterator[None]:
    try:
        yield
    except PolisError as exc:
        # Nested steps: only the innermost one tags and logs
        if exc.step is None:
            exc.with_step(step)
            logger.error(
                "Step %s failed: %s",
                step,
                exc.message,
                extra={
                    "event": LogEvent.STEP_FAILED,
                    "component": component,
                    "error_class": _ERROR_CLASSES.get(exc.code, ErrorClass.COMMAND),
                    "step": step,
                    "error_code": exc.code.value,
                },
            )
        raise


def require_success(result: CommandResult, what: str) -> CommandResult:
    """Raise UnexpectedExitError unless the command exited 0."""
    if not result.success:
        raise UnexpectedExitError(what, result.exit_status, result.stderr_text)
    return result
