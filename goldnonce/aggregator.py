"""Collect worker results from the output queue into one outcome."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Set

from .config import SearchSettings
from .errors import AggregationTimeout, ChannelError, DecodeError, SearchCancelled
from .messages import decode_result
from .network.channel import MessageChannel
from .network.message import QueueMessage
from .results import Found, NotFound, WorkerResult

logger = logging.getLogger(__name__)


class ResultAggregator:
    """Wait for the first :class:`Found` or for every worker to report.

    ``receive`` blocks for at most ``poll_wait`` seconds (never past the
    deadline), so the loop never spins.  Results are counted once per
    ``TaskId``; messages without one are counted individually.
    """

    def __init__(
        self,
        channel: MessageChannel,
        *,
        settings: SearchSettings | None = None,
        stop_event: threading.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.channel = channel
        self.settings = settings or SearchSettings()
        self.stop_event = stop_event or threading.Event()
        self._clock = clock
        self.received = 0
        self._responders: Set[int] = set()

    def _record(self, task_id: int | None) -> None:
        if task_id is None:
            self.received += 1
        elif task_id not in self._responders:
            self._responders.add(task_id)
            self.received += 1

    def _pause(self, seconds: float, deadline: float) -> None:
        if seconds > 0:
            self.stop_event.wait(min(seconds, max(0.0, deadline - self._clock())))

    def _ack(self, message: QueueMessage) -> None:
        try:
            self.channel.delete(message.receipt_handle)
        except ChannelError as exc:
            # The lease expires and the result comes back; TaskId dedup absorbs it.
            logger.warning("Couldn't delete result %s: %s", message.message_id, exc)

    def wait(self, expected_responders: int, timeout_seconds: float) -> WorkerResult:
        """Return the overall outcome of the run.

        * :class:`Found` as soon as any worker reports one;
        * :class:`NotFound` once ``expected_responders`` reported nothing;
        * :class:`AggregationTimeout` if the deadline passes first;
        * :class:`SearchCancelled` if ``stop_event`` is set.

        Transport errors while polling are logged and retried until the
        deadline.
        """
        deadline = self._clock() + timeout_seconds
        while True:
            if self.stop_event.is_set():
                raise SearchCancelled("Search interrupted while waiting for results")
            remaining = deadline - self._clock()
            if remaining <= 0:
                raise AggregationTimeout(timeout_seconds, self.received, expected_responders)

            try:
                message = self.channel.receive(wait=min(self.settings.poll_wait, remaining))
            except ChannelError as exc:
                logger.warning("Something went wrong getting output message: %s", exc)
                self._pause(self.settings.error_backoff, deadline)
                continue
            if message is None:
                self._pause(self.settings.poll_interval, deadline)
                continue

            try:
                result, task_id = decode_result(message)
            except DecodeError as exc:
                logger.warning("Discarding malformed result %s: %s", message.message_id, exc)
                self._ack(message)
                continue
            self._ack(message)

            if isinstance(result, Found):
                logger.info("Got golden nonce %d (%s)", result.nonce, result.hash_hex)
                return result

            self._record(task_id)
            logger.info(
                "Worker reported no nonce (%d/%d): %s",
                self.received,
                expected_responders,
                result.reason,
            )
            if self.received >= expected_responders:
                return NotFound(
                    f"no golden value found: all {expected_responders} workers exhausted their ranges"
                )


def await_result(
    channel: MessageChannel,
    expected_responders: int,
    timeout_seconds: float,
    *,
    settings: SearchSettings | None = None,
    stop_event: threading.Event | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> WorkerResult:
    """Functional wrapper around :meth:`ResultAggregator.wait`."""
    aggregator = ResultAggregator(channel, settings=settings, stop_event=stop_event, clock=clock)
    return aggregator.wait(expected_responders, timeout_seconds)


__all__ = ["ResultAggregator", "await_result"]
