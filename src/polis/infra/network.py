"""asyncio socket implementation of the NetworkProbe port."""

import asyncio
import contextlib
import logging
import socket

from polis.core.interfaces.network import NetworkProbe
from polis.core.logging_schema import Component, LogEvent

logger = logging.getLogger(__name__)


class SocketNetworkProbe(NetworkProbe):
    """Connectivity checks bounded by a per-call timeout. Never raises."""

    def __init__(self, timeout: float = 3.0) -> None:
        self._timeout = timeout

    async def check_tcp_connectivity(self, host: str, port: int) -> bool:
        try:
            async with asyncio.timeout(self._timeout):
                _, writer = await asyncio.open_connection(host, port)
        except (OSError, TimeoutError) as exc:
            logger.debug(
                "TCP probe to %s:%d failed: %s",
                host,
                port,
                exc,
                extra={"event": LogEvent.PROBE_FAILED, "component": Component.DOCTOR},
            )
            return False

        writer.close()
        with contextlib.suppress(OSError):
            await writer.wait_closed()
        return True

    async def check_dns_resolution(self, hostname: str) -> bool:
        loop = asyncio.get_running_loop()
        try:
            async with asyncio.timeout(self._timeout):
                addresses = await loop.getaddrinfo(hostname, None, type=socket.SOCK_STREAM)
        except (OSError, TimeoutError) as exc:
            logger.debug(
                "DNS probe for %s failed: %s",
                hostname,
                exc,
                extra={"event": LogEvent.PROBE_FAILED, "component": Component.DOCTOR},
            )
            return False
        return bool(addresses)
