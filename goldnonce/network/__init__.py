"""Queue channels used to move tasks and results between processes."""

from .channel import MessageChannel
from .message import QueueMessage
from .local import LocalQueue, LocalBroker

__all__ = [
    "MessageChannel",
    "QueueMessage",
    "LocalQueue",
    "LocalBroker",
]
