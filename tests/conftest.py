"""Shared test doubles and frame builders for linky tests."""

import socket
import threading

from linky.frame import Frame
from linky.protocol import encode_frame, encode_line


def make_frame_bytes(groups: list[tuple[str, str]]) -> bytes:
    """Build an STX ... ETX frame from (tag, value) pairs."""
    return encode_frame([encode_line(tag, value) for tag, value in groups])


BASE_GROUPS = [
    ("ADCO", "021728123456"),
    ("OPTARIF", "BASE"),
    ("ISOUSC", "30"),
    ("BASE", "012345678"),
    ("PTEC", "TH.."),
    ("IINST", "003"),
    ("IMAX", "090"),
    ("PAPP", "00690"),
]

# Valid frame, as read off the wire.
VALID_FRAME = make_frame_bytes(BASE_GROUPS)

# Non-empty frame without the mandatory fields.
INVALID_FRAME = make_frame_bytes([("ADCO", "021728123456"), ("OPTARIF", "BASE")])

# What the device sends with no meter attached.
EMPTY_FRAME = b"\x02\n\r\x03"


def valid_frame() -> Frame:
    return Frame.from_values({"IINST": "003", "PAPP": "00690", "BASE": "012345678"})


def invalid_frame() -> Frame:
    return Frame.from_values({"ADCO": "021728123456"})


def empty_frame() -> Frame:
    return Frame.from_values({})


def find_free_port(kind=socket.SOCK_STREAM) -> int:
    """Find an available port on localhost."""
    with socket.socket(socket.AF_INET, kind) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class FakeSink:
    """Test double for a sink: records frames, canned result."""

    def __init__(self, result: bool = True):
        self.result = result
        self.frames = []
        self.closed = False
        self._cond = threading.Condition()

    def send(self, frame: Frame) -> bool:
        with self._cond:
            self.frames.append(frame)
            self._cond.notify_all()
        return self.result

    def wait_for(self, count: int, timeout: float = 2.0) -> bool:
        """Block until *count* frames were sent to this sink."""
        with self._cond:
            return self._cond.wait_for(lambda: len(self.frames) >= count, timeout)

    def close(self) -> None:
        self.closed = True


class FakeState:
    """Stand-in for ConnectionState; only its identity matters."""


class FakeConnection:
    """Test double for Connection: yields canned chunks once.

    Each reconnect() swaps in a new state object, like the real one.
    """

    def __init__(self, chunks: list[bytes]):
        self._chunks = list(chunks)
        self.state = FakeState()
        self.reconnects = 0

    def reconnect(self):
        self.reconnects += 1
        self.state = FakeState()
        return self.state

    def chunks(self, shutdown):
        while self._chunks and not shutdown.is_set():
            yield self._chunks.pop(0)
        shutdown.set()
