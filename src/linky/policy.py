"""Decide what to do with each decoded frame.

The device fails in two unrelated ways.  It may go silent (empty
frames, usually a loose wire or noise on the TIC input), which is
logged once and otherwise waited out.  Or it may keep sending frames
that lack the mandatory fields, which points at a desynchronized link
and is cured by reconnecting once it has lasted long enough.

Example:
    >>> from linky.policy import FailurePolicy, Action
    >>> policy = FailurePolicy(limit=10)
    >>> policy.evaluate(valid_frame)
    <Action.FORWARD: 'forward'>
"""

import enum
import logging

from linky.config import INVALID_FRAME_LIMIT
from linky.frame import Frame

log = logging.getLogger(__name__)


class LinkState(enum.Enum):
    """Health of the telemetry link as seen through decoded frames."""

    STREAMING = "streaming"
    SILENT = "silent"
    DEGRADED = "degraded"


class Action(enum.Enum):
    """What the caller should do with the frame just evaluated."""

    FORWARD = "forward"
    DROP = "drop"
    RECONNECT = "reconnect"


class FailurePolicy:
    """State machine over consecutive frames.

    Args:
        limit: Number of consecutive invalid frames tolerated; the next
            one asks for a reconnect.

    Example:
        >>> policy = FailurePolicy()
        >>> policy.state
        <LinkState.STREAMING: 'streaming'>
    """

    def __init__(self, limit: int = INVALID_FRAME_LIMIT):
        """Start in the streaming state with a zero invalid count."""
        self._limit = limit
        self._state = LinkState.STREAMING
        self._invalid_count = 0
        self._previous_empty = False

    @property
    def state(self) -> LinkState:
        return self._state

    @property
    def invalid_count(self) -> int:
        """Consecutive invalid frames seen since the last reset."""
        return self._invalid_count

    def reset(self) -> None:
        """Forget all history."""
        self._state = LinkState.STREAMING
        self._invalid_count = 0
        self._previous_empty = False

    def evaluate(self, frame: Frame) -> Action:
        """Update the state with *frame* and return the action to take.

        Empty frames never force a reconnect and only the first of a run
        is logged.  A valid frame clears the invalid count.  The frame
        that pushes the invalid count past the limit returns
        ``Action.RECONNECT`` and the count starts over.
        """
        if frame.is_empty:
            if not self._previous_empty:
                log.warning("empty frame received, is the meter connected?")
            self._previous_empty = True
            self._state = LinkState.SILENT
            return Action.DROP

        self._previous_empty = False

        if frame.is_valid:
            if self._state is not LinkState.STREAMING:
                log.info("valid frames again after %s period", self._state.value)
            self._invalid_count = 0
            self._state = LinkState.STREAMING
            return Action.FORWARD

        self._invalid_count += 1
        log.debug(
            "invalid frame %d/%d (bad checksum on: %s)",
            self._invalid_count, self._limit,
            ", ".join(frame.invalid_tags()) or "none",
        )
        if self._invalid_count > self._limit:
            log.warning(
                "%d consecutive invalid frames, forcing reconnect",
                self._invalid_count,
            )
            self._invalid_count = 0
            self._state = LinkState.DEGRADED
            return Action.RECONNECT

        self._state = LinkState.DEGRADED
        return Action.DROP
