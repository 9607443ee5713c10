"""Infrastructure implementations of the core ports."""

from polis.infra.lock import InstanceLock
from polis.infra.network import SocketNetworkProbe
from polis.infra.process import AsyncCommandRunner
from polis.infra.state import JsonStateStore

__all__ = [
    "AsyncCommandRunner",
    "InstanceLock",
    "JsonStateStore",
    "SocketNetworkProbe",
]
