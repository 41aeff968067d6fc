"""TCP link to the LinkyPIC telemetry port.

The device streams TIC bytes on a plain TCP socket.  Connection owns
that socket, reads it with a timeout and reconnects when the stream
stalls or drops.  Socket, read size and address live together in one
ConnectionState which is replaced as a whole on every reconnect, so
a reader can never pair a new socket with stale state.

Example:
    >>> from linky.connection import Connection
    >>> conn = Connection("192.168.1.40")
    >>> conn.reconnect()
    >>> for chunk in conn.chunks(shutdown):
    ...     handle(chunk)
    >>> conn.close()
"""

import logging
import select
import socket
import threading
import time
from dataclasses import dataclass
from typing import Iterator

from linky.config import (
    READ_TIMEOUT_S,
    RECONNECT_ATTEMPTS,
    RECONNECT_DELAY_S,
    TELEMETRY_PORT,
)

log = logging.getLogger(__name__)


class ReadTimeout(Exception):
    """No byte arrived within the read timeout."""


class ReconnectError(Exception):
    """Every connect attempt of a reconnect failed."""


@dataclass(frozen=True)
class ConnectionState:
    """One live connection: the socket and what was learnt when opening it."""

    sock: socket.socket
    address: str
    port: int
    bufsize: int
    opened_at: float


class Connection:
    """Supervised TCP connection with a bounded reconnect budget.

    Args:
        address: Device IPv4 address.
        port: Telemetry TCP port.
        timeout_s: Read (and connect) timeout in seconds.
        attempts: Connect attempts per reconnect.
        delay_s: Pause between two failed connect attempts.
    """

    def __init__(self, address: str, port: int = TELEMETRY_PORT,
                 timeout_s: float = READ_TIMEOUT_S,
                 attempts: int = RECONNECT_ATTEMPTS,
                 delay_s: float = RECONNECT_DELAY_S):
        self._address = str(address)
        self._port = port
        self._timeout_s = timeout_s
        self._attempts = attempts
        self._delay_s = delay_s
        self._state: ConnectionState | None = None

    @property
    def state(self) -> ConnectionState | None:
        """The current connection, or None when not connected."""
        return self._state

    def connect(self) -> ConnectionState:
        """Open one new connection (single attempt).

        Raises:
            OSError: If the device cannot be reached.
        """
        sock = socket.create_connection(
            (self._address, self._port), timeout=self._timeout_s
        )
        try:
            # Fails on a socket that is not connected to anything.
            sock.getpeername()
            bufsize = sock.getsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF)
        except OSError:
            sock.close()
            raise
        sock.settimeout(self._timeout_s)
        return ConnectionState(
            sock=sock,
            address=self._address,
            port=self._port,
            bufsize=bufsize,
            opened_at=time.monotonic(),
        )

    def reconnect(self) -> ConnectionState:
        """Drop the current connection and open a new one.

        Tries up to ``attempts`` times.  Only socket errors are retried;
        anything else propagates at once.

        Raises:
            ReconnectError: After the last attempt failed, chained to
                the last socket error.
        """
        self._drop()

        last_error = None
        for attempt in range(1, self._attempts + 1):
            try:
                self._state = self.connect()
            except OSError as exc:
                last_error = exc
                log.warning(
                    "connect to %s:%d failed (%d/%d): %s",
                    self._address, self._port, attempt, self._attempts, exc,
                )
                if attempt < self._attempts and self._delay_s > 0:
                    time.sleep(self._delay_s)
                continue

            log.info(
                "connected to %s:%d (read size %d)",
                self._address, self._port, self._state.bufsize,
            )
            return self._state

        raise ReconnectError(
            "cannot connect to %s:%d after %d attempts"
            % (self._address, self._port, self._attempts)
        ) from last_error

    def read_chunk(self) -> bytes:
        """Read whatever the device sent, up to the receive buffer size.

        Raises:
            ReadTimeout: If nothing arrived within the read timeout.
            ConnectionError: If the device closed the connection.
            OSError: On any other socket error.
        """
        state = self._state
        if state is None:
            raise ConnectionError("not connected")
        try:
            data = state.sock.recv(state.bufsize)
        except socket.timeout:
            raise ReadTimeout(
                "no data from %s within %.1fs" % (state.address, self._timeout_s)
            ) from None
        if not data:
            raise ConnectionError("connection closed by %s" % state.address)
        return data

    def data_available(self) -> bool:
        """True if a read would return immediately."""
        state = self._state
        if state is None:
            return False
        readable, _, _ = select.select([state.sock], [], [], 0)
        return bool(readable)

    def chunks(self, shutdown: threading.Event) -> Iterator[bytes]:
        """Yield chunks until *shutdown* is set, reconnecting as needed.

        Each round waits (with timeout) for one chunk, then drains
        everything already buffered before waiting again.  A timeout, a
        closed stream or a socket error leads to a reconnect; the
        interrupted read is lost.

        Raises:
            ReconnectError: When a reconnect exhausts its budget.
        """
        if self._state is None:
            self.reconnect()

        while not shutdown.is_set():
            try:
                yield self.read_chunk()
                while not shutdown.is_set() and self.data_available():
                    yield self.read_chunk()
            except ReadTimeout as exc:
                log.warning("%s, reconnecting", exc)
                self.reconnect()
            except OSError as exc:
                log.warning("connection lost: %s, reconnecting", exc)
                self.reconnect()

    def _drop(self) -> None:
        """Close and forget the current socket, if any."""
        state, self._state = self._state, None
        if state is None:
            return
        try:
            state.sock.close()
        except OSError:
            pass

    def close(self) -> None:
        """Close the connection."""
        self._drop()

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
