"""Host network probe interface."""

from abc import ABC, abstractmethod


class NetworkProbe(ABC):
    """Interface for host-side connectivity checks.

    Implementations: SocketNetworkProbe
    """

    @abstractmethod
    async def check_tcp_connectivity(self, host: str, port: int) -> bool:
        """Check that a TCP connection to host:port can be opened."""
        ...

    @abstractmethod
    async def check_dns_resolution(self, hostname: str) -> bool:
        """Check that hostname resolves to at least one address."""
        ...
