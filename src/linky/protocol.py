"""Line decoding for the TIC (tele-information client) historic protocol.

A frame is a block of ASCII lines between STX (0x02) and ETX (0x03).
Each line carries one group::

    TAG SP VALUE SP CHECKSUM

The checksum covers ``TAG SP VALUE`` (the separator in front of the
checksum character is not included): sum the bytes, keep the low
6 bits, add 0x20.

Example:
    >>> from linky.protocol import checksum, encode_line, decode_frame
    >>> chr(checksum(b"IINST 003"))
    'Z'
    >>> encode_line("IINST", "003")
    b'IINST 003 Z'
    >>> decode_frame(b"\\nIINST 003 Z\\r").instantaneous_current
    3
"""

import logging
from datetime import datetime
from typing import Iterable

from linky.frame import INVALID_PREFIX, Frame

log = logging.getLogger(__name__)

# -- Protocol constants ------------------------------------------------------

STX = 0x02
ETX = 0x03
LF = 0x0A
CR = 0x0D
SEP = 0x20

# A data line has at least TAG, VALUE and the checksum field.
_MIN_FIELDS = 3

# -- Checksum ----------------------------------------------------------------


def checksum(data: bytes) -> int:
    """Compute the TIC checksum character over *data*.

    Args:
        data: The checked part of a line (tag, separator, value).

    Returns:
        int: Checksum byte, always in the printable range 0x20-0x5F.

    Example:
        >>> checksum(b"IINST 003")
        90
    """
    return (sum(data) & 0x3F) + 0x20


def verify_line(line: bytes) -> bool:
    """Return True if the last byte of *line* is the checksum of the rest.

    The last two bytes (separator and checksum character) are excluded
    from the sum.  The checksum character is taken from the end of the
    line rather than from the third field, since it may itself be a
    space.
    """
    if len(line) < 2:
        return False
    return checksum(line[:-2]) == line[-1]


# -- Encoding ----------------------------------------------------------------


def encode_line(tag: str, value: str) -> bytes:
    """Build one checksummed group line (without LF/CR).

    Example:
        >>> encode_line("PAPP", "00690")
        b'PAPP 00690 0'
    """
    data = "{} {}".format(tag, value).encode("ascii")
    return data + bytes([SEP, checksum(data)])


def encode_frame(lines: Iterable[bytes]) -> bytes:
    """Wrap encoded *lines* the way the device puts them on the wire.

    Each group is framed by LF and CR, the whole frame by STX and ETX.

    Example:
        >>> encode_frame([encode_line("IINST", "003")])
        b'\\x02\\nIINST 003 Z\\r\\x03'
    """
    body = b"".join(bytes([LF]) + line + bytes([CR]) for line in lines)
    return bytes([STX]) + body + bytes([ETX])


# -- Decoding ----------------------------------------------------------------


def decode_frame(data: bytes, captured_at: datetime | None = None) -> Frame:
    """Decode the content of one frame (the bytes between STX and ETX).

    Lines with fewer than three space-separated fields are ignored.
    A line whose checksum does not match is kept under
    ``INVALID_PREFIX + tag`` so that a corrupted frame is not mistaken
    for an empty one.  When a tag shows up twice, the first occurrence
    wins.

    Args:
        data: Frame content, STX and ETX excluded.
        captured_at: Timestamp to stamp the frame with (default: now, UTC).

    Returns:
        Frame: The decoded frame.  Decoding never raises on bad content.

    Example:
        >>> f = decode_frame(b"\\nIINST 003 Z\\r\\nIINST 004 [\\r")
        >>> dict(f.values)
        {'IINST': '003'}
    """
    values: dict[str, str] = {}

    for line in data.splitlines():
        fields = line.split(b" ")
        if len(fields) < _MIN_FIELDS:
            continue

        tag = fields[0].decode("ascii", errors="replace")
        value = fields[1].decode("ascii", errors="replace")

        if not verify_line(line):
            log.debug("checksum mismatch on %r", line)
            tag = INVALID_PREFIX + tag

        # Retransmissions after a line error can repeat a group.
        if tag not in values:
            values[tag] = value

    return Frame.from_values(values, captured_at)
