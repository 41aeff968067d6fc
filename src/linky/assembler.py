"""Re-segment the raw TCP byte stream into STX/ETX delimited frames.

Reads off the socket come in arbitrary sizes: a frame may span many
chunks and one chunk may close a frame and open the next.  The
assembler keeps the bytes of the frame in progress between calls.

Example:
    >>> from linky.assembler import FrameAssembler
    >>> asm = FrameAssembler()
    >>> asm.feed(b"\\x02\\nIINST 00")
    []
    >>> asm.feed(b"3 Z\\r\\x03\\x02\\nPAPP")
    [b'\\nIINST 003 Z']
    >>> asm.in_frame
    True
"""

import logging

from linky.protocol import ETX, STX

log = logging.getLogger(__name__)


class FrameAssembler:
    """Accumulates stream bytes and hands out complete frame contents.

    Bytes before the first STX are dropped (the stream is not in sync
    yet).  An ETX closes the open frame; the byte just before the ETX
    is the CR terminating the last group and is not part of the
    returned content.  A new STX always discards whatever was being
    accumulated.
    """

    def __init__(self):
        """Start out of sync, with no frame open."""
        self._buffer = bytearray()
        self._open = False

    @property
    def in_frame(self) -> bool:
        """True between an STX and the ETX that closes it."""
        return self._open

    def reset(self) -> None:
        """Drop the frame in progress, e.g. after a reconnect."""
        if self._open:
            log.debug("dropping %d buffered bytes", len(self._buffer))
        self._buffer = bytearray()
        self._open = False

    def feed(self, chunk: bytes) -> list[bytes]:
        """Consume one chunk and return the frames it completed, in order.

        Args:
            chunk: Bytes as read from the socket (any length).

        Returns:
            list[bytes]: Contents of each frame closed by this chunk,
                STX/ETX and the byte preceding ETX excluded.  Empty
                if no frame was completed.
        """
        frames = []
        start = 0

        for pos, byte in enumerate(chunk):
            if byte == STX:
                if self._open and self._buffer:
                    log.debug("STX inside open frame, restarting")
                self._buffer = bytearray()
                self._open = True
                start = pos + 1
            elif byte == ETX:
                if self._open:
                    self._buffer += chunk[start:pos]
                    if self._buffer:
                        frames.append(bytes(self._buffer[:-1]))
                self._buffer = bytearray()
                self._open = False
                start = pos + 1

        if self._open:
            self._buffer += chunk[start:]

        return frames
