"""Core interfaces (ports) consumed by the services."""

from polis.core.interfaces.instance import (
    ConfigTransport,
    FileTransfer,
    InstanceInspector,
    InstanceLifecycle,
    InstanceProvisioner,
    InstanceView,
    ShellExecutor,
)
from polis.core.interfaces.network import NetworkProbe
from polis.core.interfaces.process import CommandResult, CommandRunner, ManagedProcess
from polis.core.interfaces.reporter import LoggingReporter, ProgressReporter
from polis.core.interfaces.state import WorkspaceStateStore

__all__ = [
    # Process execution
    "CommandResult",
    "CommandRunner",
    "ManagedProcess",
    # Instance ports
    "ConfigTransport",
    "FileTransfer",
    "InstanceInspector",
    "InstanceLifecycle",
    "InstanceProvisioner",
    "InstanceView",
    "ShellExecutor",
    # Host probes
    "NetworkProbe",
    # Progress
    "LoggingReporter",
    "ProgressReporter",
    # State
    "WorkspaceStateStore",
]
