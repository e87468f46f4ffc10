"""
Follow a build's console output while it runs.

Jenkins exposes ``logText/progressiveText?start=N``: the body is the log text
from byte N, ``X-Text-Size`` is the new total size and ``X-More-Data: true``
means more output is buffered.  There is no push notification, so the
streamer polls until the build has finished *and* nothing is pending; a
finished build can still have unsent log output.

States:
  POLLING   build still running
  DRAINING  build finished, server still reports pending data
  DONE      terminal

Cancellation is a ``threading.Event``.  It is checked before every request
and interrupts the wait between polls; once it is seen no further request is
made.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator, Sequence
from enum import Enum

from requests.structures import CaseInsensitiveDict

from .builds import get_build_info
from .client import JenkinsClient
from .errors import LogRetrievalError, ProtocolViolation, TransportError
from .models import LogChunk, LogCursor, ProgressiveText, StreamEnd, StreamEvent
from .paths import build_url, join_job_path, parse_job_path

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0


class StreamState(str, Enum):
    POLLING = "polling"
    DRAINING = "draining"
    DONE = "done"


def fetch_progressive_text(
    client: JenkinsClient, job: str | Sequence[str], build_number: int, start: int = 0,
) -> ProgressiveText:
    """One chunk of console output starting at byte *start*."""
    job_path = parse_job_path(job)
    path = build_url(job_path, build_number, f"logText/progressiveText?start={start}")
    try:
        reply = client.get(path, text=True)
    except TransportError as exc:
        raise LogRetrievalError(join_job_path(job_path), build_number, str(exc)) from exc
    headers = CaseInsensitiveDict(reply.headers)
    raw_size = headers.get("X-Text-Size")
    try:
        size = int(raw_size)
    except (TypeError, ValueError):
        raise ProtocolViolation(
            f"progressiveText for {path} has no valid X-Text-Size header ({raw_size!r})"
        ) from None
    has_more = str(headers.get("X-More-Data", "")).lower() == "true"
    return ProgressiveText(text=reply.data or "", size=size, has_more=has_more)


class LogStreamer:
    """Incremental reader of one build's console log.

    Iterate ``events()`` to receive ``LogChunk`` items in order followed by a
    single ``StreamEnd``.  ``cancel()`` may be called from any thread, any
    number of times.
    """

    def __init__(
        self,
        client: JenkinsClient,
        job: str | Sequence[str],
        build_number: int,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        cancel_event: threading.Event | None = None,
    ) -> None:
        if poll_interval <= 0:
            raise ValueError(f"poll_interval must be > 0, got {poll_interval}")
        self.client = client
        self.job = parse_job_path(job)
        self.build_number = build_number
        self.poll_interval = poll_interval
        self.cursor = LogCursor()
        self.state = StreamState.POLLING
        self._cancel = cancel_event or threading.Event()
        self._result: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def cancel(self) -> None:
        self._cancel.set()

    def _advance(self, chunk: ProgressiveText) -> None:
        if chunk.size < self.cursor.offset:
            raise ProtocolViolation(
                f"Log of {join_job_path(self.job)} #{self.build_number} went backwards: "
                f"size {chunk.size} < cursor {self.cursor.offset}"
            )
        self.cursor.offset = chunk.size
        self.cursor.total_size_known = True

    def _finish(self, cancelled: bool) -> StreamEnd:
        self.state = StreamState.DONE
        self.cursor.is_complete = not cancelled
        return StreamEnd(result=self._result or "UNKNOWN", cancelled=cancelled)

    def events(self) -> Iterator[StreamEvent]:
        if self.state is StreamState.DONE:
            return
        name = join_job_path(self.job)
        try:
            while True:
                if self.cancelled:
                    break
                start = self.cursor.offset
                chunk = fetch_progressive_text(self.client, self.job, self.build_number, start)
                self._advance(chunk)
                if chunk.text:
                    yield LogChunk(text=chunk.text, offset=start, size=chunk.size)

                if self.cancelled:
                    break
                build = get_build_info(self.client, self.job, self.build_number)
                self._result = build.result

                if not build.building and not chunk.has_more:
                    logger.debug("%s #%d finished at offset %d", name, self.build_number, self.cursor.offset)
                    yield self._finish(cancelled=False)
                    return
                self.state = StreamState.POLLING if build.building else StreamState.DRAINING

                if self._cancel.wait(self.poll_interval):
                    break
        except BaseException:
            self.state = StreamState.DONE
            raise

        logger.debug("Streaming of %s #%d cancelled at offset %d", name, self.build_number, self.cursor.offset)
        yield self._finish(cancelled=True)


def stream_build_log(
    client: JenkinsClient,
    job: str | Sequence[str],
    build_number: int,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    cancel_event: threading.Event | None = None,
) -> Iterator[StreamEvent]:
    """Shorthand for ``LogStreamer(...).events()``."""
    return LogStreamer(client, job, build_number, poll_interval, cancel_event).events()
