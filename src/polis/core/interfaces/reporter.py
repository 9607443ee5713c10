"""Progress reporting interface.

Workflows report a status line before and after each step. Rendering
(spinners, colors) belongs to the CLI layer; LoggingReporter is the default
used when no renderer is attached.
"""

import logging
from abc import ABC, abstractmethod

from polis.core.logging_schema import LogEvent

logger = logging.getLogger(__name__)


class ProgressReporter(ABC):
    @abstractmethod
    def step(self, message: str) -> None: ...

    @abstractmethod
    def success(self, message: str) -> None: ...

    @abstractmethod
    def warn(self, message: str) -> None: ...


class LoggingReporter(ProgressReporter):
    """Report progress as structured log lines."""

    def step(self, message: str) -> None:
        logger.info(message, extra={"event": LogEvent.STEP_STARTED})

    def success(self, message: str) -> None:
        logger.info(message, extra={"event": LogEvent.STEP_SUCCESS})

    def warn(self, message: str) -> None:
        logger.warning(message, extra={"event": LogEvent.STEP_SKIPPED})
