"""In-memory queues with visibility timeouts."""

from __future__ import annotations

import itertools
import threading
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict

from .channel import MessageChannel
from .message import QueueMessage

DEFAULT_VISIBILITY = 30.0


@dataclass
class _Entry:
    message_id: str
    attributes: Dict[str, str]
    body: str
    visible_at: float = 0.0
    receipt_handle: str | None = None
    receive_count: int = 0


class LocalQueue(MessageChannel):
    """Thread-safe queue shared by threads of one process.

    Claimed messages are hidden until their visibility timeout expires, then
    delivered again, which mirrors the at-least-once behaviour of a hosted
    queue.
    """

    def __init__(
        self,
        name: str = "queue",
        *,
        default_visibility: float = DEFAULT_VISIBILITY,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.default_visibility = default_visibility
        self._clock = clock
        self._entries: "OrderedDict[str, _Entry]" = OrderedDict()
        self._cond = threading.Condition()
        self._ids = itertools.count(1)
        self._closed = False

    # ------------------------------------------------------------------
    # Internal helpers

    def _next_visible(self, now: float) -> _Entry | None:
        for entry in self._entries.values():
            if entry.visible_at <= now:
                return entry
        return None

    def _next_expiry(self, now: float) -> float | None:
        pending = [e.visible_at - now for e in self._entries.values() if e.visible_at > now]
        return min(pending) if pending else None

    # ------------------------------------------------------------------
    # MessageChannel API

    def send(self, attributes: Dict[str, str], body: str = "") -> str:
        with self._cond:
            seq = next(self._ids)
            message_id = f"{self.name}-{seq}"
            self._entries[message_id] = _Entry(
                message_id=message_id,
                attributes={str(k): str(v) for k, v in attributes.items()},
                body=body,
            )
            self._cond.notify_all()
        return message_id

    def receive(
        self,
        wait: float | None = None,
        visibility_timeout: float | None = None,
    ) -> QueueMessage | None:
        visibility = self.default_visibility if visibility_timeout is None else visibility_timeout
        end = None if wait is None else self._clock() + max(0.0, wait)
        with self._cond:
            while True:
                now = self._clock()
                entry = self._next_visible(now)
                if entry is not None:
                    entry.visible_at = now + visibility
                    entry.receipt_handle = uuid.uuid4().hex
                    entry.receive_count += 1
                    return QueueMessage(
                        message_id=entry.message_id,
                        receipt_handle=entry.receipt_handle,
                        attributes=dict(entry.attributes),
                        body=entry.body,
                        receive_count=entry.receive_count,
                    )
                if self._closed:
                    return None
                remaining = None if end is None else end - now
                if remaining is not None and remaining <= 0:
                    return None
                expiry = self._next_expiry(now)
                timeouts = [t for t in (remaining, expiry) if t is not None]
                self._cond.wait(min(timeouts) if timeouts else None)

    def delete(self, receipt_handle: str) -> None:
        with self._cond:
            for message_id, entry in self._entries.items():
                if entry.receipt_handle == receipt_handle:
                    del self._entries[message_id]
                    return

    def purge(self) -> None:
        with self._cond:
            self._entries.clear()

    def approximate_count(self) -> int:
        with self._cond:
            return len(self._entries)

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()


class LocalBroker:
    """Registry of named :class:`LocalQueue` instances."""

    def __init__(self, *, default_visibility: float = DEFAULT_VISIBILITY) -> None:
        self.default_visibility = default_visibility
        self._queues: Dict[str, LocalQueue] = {}
        self._lock = threading.Lock()

    def queue(self, name: str) -> LocalQueue:
        """Return the queue called ``name``, creating it on first use."""
        with self._lock:
            q = self._queues.get(name)
            if q is None:
                q = LocalQueue(name, default_visibility=self.default_visibility)
                self._queues[name] = q
            return q

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._queues)

    def close(self) -> None:
        with self._lock:
            for q in self._queues.values():
                q.close()


__all__ = ["LocalQueue", "LocalBroker", "DEFAULT_VISIBILITY"]
