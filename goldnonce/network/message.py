"""Messages as delivered by a queue channel."""

from dataclasses import dataclass, field
from typing import Dict


@dataclass
class QueueMessage:
    """A received message plus the handle needed to acknowledge it."""

    message_id: str
    receipt_handle: str
    attributes: Dict[str, str] = field(default_factory=dict)
    body: str = ""
    receive_count: int = 1
