"""Abstract base class for queue channels."""

from __future__ import annotations

import abc
from typing import Dict

from .message import QueueMessage


class MessageChannel(abc.ABC):
    """Point-to-point queue with lease based (at-least-once) delivery."""

    @abc.abstractmethod
    def send(self, attributes: Dict[str, str], body: str = "") -> str:
        """Enqueue a message and return its id."""

    @abc.abstractmethod
    def receive(
        self,
        wait: float | None = None,
        visibility_timeout: float | None = None,
    ) -> QueueMessage | None:
        """Claim the next visible message, blocking for at most ``wait`` seconds.

        A claimed message stays hidden for ``visibility_timeout`` seconds and
        is delivered again if it has not been deleted by then.  Returns
        ``None`` when nothing arrived in time.
        """

    @abc.abstractmethod
    def delete(self, receipt_handle: str) -> None:
        """Acknowledge a claimed message so it is never delivered again."""

    @abc.abstractmethod
    def purge(self) -> None:
        """Drop every message, visible or claimed."""

    @abc.abstractmethod
    def approximate_count(self) -> int:
        """Return the number of messages currently held, claimed or not."""

    def close(self) -> None:
        """Release transport resources."""
