"""Glue between the telemetry stream and the sink.

Chunks from the connection go through the assembler, complete frames
through the decoder and the failure policy.  Valid frames are handed
to the sink on a background thread so a slow sink never holds up the
socket; the sink reports its own failures and nothing is retried.
At most ``backlog`` sink calls may be outstanding; frames arriving beyond
that are dropped.

Example:
    >>> from linky.collector import Collector
    >>> collector = Collector(connection, sink)
    >>> collector.run(shutdown)
    1234
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor

from linky.assembler import FrameAssembler
from linky.config import SINK_BACKLOG
from linky.frame import Frame, format_frame
from linky.policy import Action, FailurePolicy
from linky.protocol import decode_frame

log = logging.getLogger(__name__)


class Collector:
    """Reads frames off a connection and forwards the valid ones.

    Args:
        connection: Object with ``chunks(shutdown)``, ``reconnect()``
            and a ``state`` attribute replaced on every reconnect.
        sink: Object with ``send(frame) -> bool``.
        policy: Failure policy (a fresh FailurePolicy by default).
        backlog: Sink calls allowed to be pending at once.
    """

    def __init__(self, connection, sink, policy: FailurePolicy | None = None,
                 backlog: int = SINK_BACKLOG):
        self._connection = connection
        self._sink = sink
        self._policy = policy or FailurePolicy()
        self._assembler = FrameAssembler()
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="linky-sink"
        )
        self._backlog = backlog
        self._pending = 0
        self._dropping = False
        self._lock = threading.Lock()
        self._state = None
        self.forwarded = 0
        self.sent = 0
        self.failed = 0
        self.dropped = 0

    @property
    def pending(self) -> int:
        """Sink calls queued or running."""
        with self._lock:
            return self._pending

    def process(self, chunk: bytes) -> list[Frame]:
        """Feed one chunk and act on every frame it completes.

        Returns:
            list[Frame]: The frames decoded from this chunk, whatever
                the policy decided for them.
        """
        if self._connection.state is not self._state:
            self._new_stream()

        frames = []
        for content in self._assembler.feed(chunk):
            frame = decode_frame(content)
            frames.append(frame)
            if log.isEnabledFor(logging.DEBUG):
                log.debug("frame:\n%s", format_frame(frame))

            action = self._policy.evaluate(frame)
            if action is Action.FORWARD:
                self._forward(frame)
            elif action is Action.RECONNECT:
                self._connection.reconnect()
                self._new_stream()
                # The rest of this chunk belongs to the old stream.
                break
        return frames

    def run(self, shutdown: threading.Event) -> int:
        """Process chunks until *shutdown* is set.

        Returns:
            int: Number of frames forwarded to the sink.

        Raises:
            ReconnectError: When the connection cannot be re-established.
        """
        for chunk in self._connection.chunks(shutdown):
            log.debug("read %d bytes", len(chunk))
            self.process(chunk)
        return self.forwarded

    def _new_stream(self) -> None:
        """Forget everything learnt from the previous connection."""
        self._assembler.reset()
        self._policy.reset()
        self._state = self._connection.state

    def _forward(self, frame: Frame) -> None:
        """Queue *frame* for the sink, or drop it if the backlog is full."""
        with self._lock:
            if self._pending >= self._backlog:
                self.dropped += 1
                if not self._dropping:
                    log.warning(
                        "sink is %d frames behind, dropping frames", self._pending
                    )
                self._dropping = True
                return
            if self._dropping:
                log.info("sink caught up, %d frames dropped so far", self.dropped)
            self._dropping = False
            self._pending += 1
        self.forwarded += 1
        future = self._executor.submit(self._sink.send, frame)
        future.add_done_callback(self._on_sent)

    def _on_sent(self, future: Future) -> None:
        """Count the outcome of one sink call."""
        with self._lock:
            self._pending -= 1
            if future.cancelled():
                self.dropped += 1
                return
        exc = future.exception()
        if exc is not None:
            self.failed += 1
            log.error("sink raised: %r", exc)
        elif future.result():
            self.sent += 1
        else:
            self.failed += 1

    def close(self, drain: bool = False) -> None:
        """Stop the sink worker.

        The sink call in progress always completes.  Frames still queued
        are dropped unless *drain* is true.
        """
        self._executor.shutdown(wait=True, cancel_futures=not drain)
