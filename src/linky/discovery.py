"""Find the LinkyPIC on the local network by UDP broadcast.

From every IPv4 address of every interface that is up, the probe
``b"LinkyPIC"`` is broadcast to the discovery port.  The device
answers with its own IPv4 address as 4 raw bytes.  The first answer
wins; if nobody answers on any interface the discovery fails.

Example:
    >>> from linky.discovery import discover
    >>> discover()
    IPv4Address('192.168.1.40')
"""

import ipaddress
import logging
import socket

import psutil

from linky.config import (
    DISCOVERY_ATTEMPTS,
    DISCOVERY_PORT,
    DISCOVERY_PROBE,
    DISCOVERY_TIMEOUT_S,
)

log = logging.getLogger(__name__)

_LIMITED_BROADCAST = "255.255.255.255"
_REPLY_LEN = 4
_MAX_REPLY = 64


class DiscoveryError(Exception):
    """No device answered the broadcast probe on any interface."""


class Discoverer:
    """UDP broadcast handshake with the LinkyPIC.

    Args:
        port: Discovery port the device listens on.
        attempts: Probes sent from each local address.
        timeout_s: Time to wait for a reply after each probe.

    Example:
        >>> Discoverer(attempts=2, timeout_s=0.5).discover()
        IPv4Address('192.168.1.40')
    """

    def __init__(self, port: int = DISCOVERY_PORT,
                 attempts: int = DISCOVERY_ATTEMPTS,
                 timeout_s: float = DISCOVERY_TIMEOUT_S):
        self._port = port
        self._attempts = attempts
        self._timeout_s = timeout_s

    def interfaces(self) -> list[tuple[str, str]]:
        """List ``(local address, broadcast address)`` pairs to probe from.

        Only interfaces that are up and carry an IPv4 address are
        returned, in the order psutil reports them.
        """
        stats = psutil.net_if_stats()
        pairs = []
        for name, addrs in psutil.net_if_addrs().items():
            if name not in stats or not stats[name].isup:
                continue
            for addr in addrs:
                if addr.family != socket.AF_INET:
                    continue
                pairs.append((addr.address, _broadcast_for(addr)))
        return pairs

    def probe(self, local: str, broadcast: str) -> ipaddress.IPv4Address | None:
        """Broadcast the probe from *local* and wait for an answer.

        Returns:
            The device address, or None if every attempt timed out.

        Raises:
            OSError: On any socket error other than a receive timeout.
        """
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock.bind((local, 0))
            sock.settimeout(self._timeout_s)

            for attempt in range(1, self._attempts + 1):
                log.debug(
                    "probe %d/%d from %s to %s:%d",
                    attempt, self._attempts, local, broadcast, self._port,
                )
                sock.sendto(DISCOVERY_PROBE, (broadcast, self._port))
                try:
                    data, peer = sock.recvfrom(_MAX_REPLY)
                except socket.timeout:
                    continue

                if len(data) == _REPLY_LEN:
                    return ipaddress.IPv4Address(data)
                log.debug("ignoring %d-byte reply from %s", len(data), peer[0])

        return None

    def discover(self) -> ipaddress.IPv4Address:
        """Probe from every local address until the device answers.

        Raises:
            DiscoveryError: If no address got an answer.  The last
                socket error met, if any, is chained as the cause.
        """
        last_error = None
        for local, broadcast in self.interfaces():
            try:
                found = self.probe(local, broadcast)
            except OSError as exc:
                log.warning("discovery from %s failed: %s", local, exc)
                last_error = exc
                continue

            if found is not None:
                log.info("found LinkyPIC at %s (probing from %s)", found, local)
                return found

        raise DiscoveryError(
            "could not find LinkyPIC on the network"
        ) from last_error


def _broadcast_for(addr) -> str:
    """Return the subnet broadcast address of a psutil ``snicaddr``."""
    if addr.broadcast:
        return addr.broadcast
    if addr.netmask:
        iface = ipaddress.IPv4Interface("%s/%s" % (addr.address, addr.netmask))
        return str(iface.network.broadcast_address)
    return _LIMITED_BROADCAST


def discover(port: int = DISCOVERY_PORT) -> ipaddress.IPv4Address:
    """Find the device with the default retry budget and timeout."""
    return Discoverer(port).discover()
