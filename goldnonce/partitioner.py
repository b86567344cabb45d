"""Split the 32-bit candidate space between workers."""

from __future__ import annotations

from typing import List, Tuple

from .config import MAX_NONCE
from .results import SearchTask


def partition(worker_count: int, max_value: int = MAX_NONCE) -> List[Tuple[int, int]]:
    """Return ``worker_count`` contiguous ``(lower, upper)`` ranges.

    Every range is ``max_value // worker_count`` wide except the last, whose
    upper bound is pinned to ``max_value`` so the truncated remainder is not
    lost.  Upper bounds are exclusive.
    """
    if worker_count < 1:
        raise ValueError("worker_count must be at least 1")
    split = max_value // worker_count
    if split < 1:
        raise ValueError(f"cannot split {max_value} candidates between {worker_count} workers")
    ranges: List[Tuple[int, int]] = []
    for i in range(worker_count):
        lower = i * split
        upper = max_value if i == worker_count - 1 else (i + 1) * split
        ranges.append((lower, upper))
    return ranges


def build_tasks(
    payload: bytes | str,
    target: int,
    worker_count: int,
    *,
    max_value: int = MAX_NONCE,
) -> List[SearchTask]:
    """Return one :class:`SearchTask` per partition, numbered from zero."""
    tasks = []
    for idx, (lower, upper) in enumerate(partition(worker_count, max_value)):
        tasks.append(
            SearchTask(
                payload=payload,
                lower_bound=lower,
                upper_bound=upper,
                target=target,
                debug_label=f"Worker {idx}: searching [{lower}, {upper}) for {target} leading zeros",
                task_id=idx,
            )
        )
    return tasks


__all__ = ["partition", "build_tasks"]
