"""Decoded TIC frame: raw tag/value pairs plus the fields we care about.

A Frame is built once from the lines between one STX and the next ETX
and never modified afterwards.  Fields that could not be parsed keep a
sentinel: ``-1`` for integers, ``None`` for strings.

Example:
    >>> from linky.frame import Frame
    >>> f = Frame.from_values({"IINST": "003", "PAPP": "00690", "BASE": "012345678"})
    >>> f.instantaneous_current, f.apparent_power, f.index
    (3, 690, 12345678)
    >>> f.is_valid
    True
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Mapping

# Tags read from historic-mode frames.
TAG_CURRENT = "IINST"
TAG_POWER = "PAPP"
TAG_CONTRACT = "OPTARIF"
TAG_PERIOD = "PTEC"

# Index tags, in the order they are examined.  The last one present
# becomes the primary index (HCHP for an HC contract, BASE otherwise).
INDEX_TAGS = ("BASE", "HCHC", "HCHP")

# Prefix marking a value whose line failed checksum verification.
INVALID_PREFIX = "!"

_INT_RE = re.compile(r"[+-]?[0-9]+")


@dataclass(frozen=True)
class Frame:
    """One decoded reading window.

    ``values`` maps tag to raw value; tags whose checksum failed are
    stored as ``INVALID_PREFIX + tag``.  Use :meth:`from_values` rather
    than the constructor so the derived fields are consistent with it.
    """

    captured_at: datetime
    values: Mapping[str, str]
    instantaneous_current: int = -1
    apparent_power: int = -1
    index: int = -1
    indexes: Mapping[str, int] = field(default_factory=dict)
    contract: str | None = None
    period: str | None = None

    @classmethod
    def from_values(cls, values: Mapping[str, str],
                    captured_at: datetime | None = None) -> "Frame":
        """Build a Frame and derive the typed fields from *values*.

        Example:
            >>> Frame.from_values({"OPTARIF": "HC..", "PTEC": "HP.."}).contract
            'HC'
        """
        if captured_at is None:
            captured_at = datetime.now(timezone.utc)
        values = dict(values)

        indexes = {}
        primary = -1
        for tag in INDEX_TAGS:
            value = _int_value(values, tag)
            if value >= 0:
                indexes[tag] = value
                primary = value

        return cls(
            captured_at=captured_at,
            values=MappingProxyType(values),
            instantaneous_current=_int_value(values, TAG_CURRENT),
            apparent_power=_int_value(values, TAG_POWER),
            index=primary,
            indexes=MappingProxyType(indexes),
            contract=_stripped_value(values, TAG_CONTRACT),
            period=_stripped_value(values, TAG_PERIOD),
        )

    @property
    def is_empty(self) -> bool:
        """True when no line at all was decoded, not even a corrupted one."""
        return len(self.values) == 0

    @property
    def is_valid(self) -> bool:
        """True when current, power and primary index were all decoded."""
        return (
            not self.is_empty
            and self.apparent_power >= 0
            and self.instantaneous_current >= 0
            and self.index >= 0
        )

    def invalid_tags(self) -> list[str]:
        """Return the tags that were received with a bad checksum."""
        return [
            key[len(INVALID_PREFIX):] for key in self.values
            if key.startswith(INVALID_PREFIX)
        ]

    def to_document(self) -> dict:
        """Return the record handed to sinks, ready for ``json.dumps``.

        Key names match the index mapping used by existing dashboards.

        Example:
            >>> doc = Frame.from_values({"IINST": "003"}).to_document()
            >>> doc["instantaneousCurrent"]
            3
        """
        return {
            "timeStamp": self.captured_at.isoformat(),
            "instantaneousCurrent": self.instantaneous_current,
            "apparentPower": self.apparent_power,
            "index": self.index,
            "indexes": dict(self.indexes),
            "contract": self.contract,
            "period": self.period,
        }


def _int_value(values: Mapping[str, str], tag: str) -> int:
    """Parse the value of *tag* as an int, or -1 if absent or malformed."""
    raw = values.get(tag)
    if raw is None or not _INT_RE.fullmatch(raw):
        return -1
    return int(raw)


def _stripped_value(values: Mapping[str, str], tag: str) -> str | None:
    """Return the value of *tag* without its trailing dots, or None."""
    raw = values.get(tag)
    if raw is None:
        return None
    return raw.rstrip(".")


def format_frame(frame: Frame) -> str:
    """Format a frame for logging, one field per line.

    Example:
        >>> print(format_frame(Frame.from_values({"IINST": "003"})))  # doctest: +ELLIPSIS
        captured at: ...
        current: 3 A
        ...
    """
    def _num(value, unit=""):
        return "--" if value < 0 else f"{value}{unit}"

    indexes = ", ".join(f"{tag}={value}" for tag, value in frame.indexes.items())
    lines = [
        f"captured at: {frame.captured_at.isoformat()}",
        f"current: {_num(frame.instantaneous_current, ' A')}",
        f"power: {_num(frame.apparent_power, ' VA')}",
        f"index: {_num(frame.index)}",
        f"indexes: [{indexes}]",
        f"contract: {frame.contract or '(none)'}",
        f"period: {frame.period or '(none)'}",
        f"values: [{len(frame.values)}]",
    ]
    for tag, value in frame.values.items():
        lines.append(f"  {tag} = {value}")
    return "\n".join(lines)
