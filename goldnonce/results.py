"""Work items and worker results exchanged through the queues."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

HASH_HEX_LENGTH = 64
MAX_TARGET = 256
_U32_LIMIT = 2**32


@dataclass(frozen=True)
class SearchTask:
    """One contiguous candidate range assigned to a single worker.

    ``upper_bound`` is exclusive.
    """

    payload: bytes
    lower_bound: int
    upper_bound: int
    target: int
    debug_label: str = ""
    task_id: int | None = None

    def __post_init__(self) -> None:
        if isinstance(self.payload, str):
            object.__setattr__(self, "payload", self.payload.encode("utf-8"))
        try:
            # Payloads travel as queue message text.
            self.payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ValueError(f"payload is not valid UTF-8: {exc}") from None
        if not 0 <= self.lower_bound < _U32_LIMIT or not 0 <= self.upper_bound < _U32_LIMIT:
            raise ValueError("bounds must be 32-bit unsigned values")
        if self.lower_bound >= self.upper_bound:
            raise ValueError(
                f"lower bound {self.lower_bound} must be below upper bound {self.upper_bound}"
            )
        if not 0 <= self.target <= MAX_TARGET:
            raise ValueError(f"target must be in [0, {MAX_TARGET}], got {self.target}")

    @property
    def size(self) -> int:
        return self.upper_bound - self.lower_bound


@dataclass(frozen=True)
class Found:
    """A golden nonce and the hex digest that qualified it."""

    nonce: int
    hash_hex: str

    success = True


@dataclass(frozen=True)
class NotFound:
    """A completed search with no qualifying candidate."""

    reason: str

    success = False


WorkerResult = Union[Found, NotFound]


__all__ = [
    "HASH_HEX_LENGTH",
    "MAX_TARGET",
    "SearchTask",
    "Found",
    "NotFound",
    "WorkerResult",
]
