"""Sequential scan of a candidate range for a golden nonce."""

from __future__ import annotations

import hashlib
import struct
import time
from typing import Callable

from .results import Found, NotFound, SearchTask, WorkerResult
from .scorer import leading_zero_bits

_pack = struct.Struct(">I").pack


def search(payload: bytes | str, lower: int, upper: int, target: int) -> WorkerResult:
    """Return the first candidate in ``[lower, upper)`` scoring at least ``target``.

    Candidates are tried in increasing order so the smallest qualifying one
    wins.  Exhausting the range is an expected outcome and yields
    :class:`NotFound`.
    """
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    # The payload prefix is identical for every candidate; hash it once.
    prefix = hashlib.sha256(payload)
    sha256 = hashlib.sha256
    for candidate in range(lower, upper):
        first = prefix.copy()
        first.update(_pack(candidate))
        digest = sha256(first.digest()).digest()
        if leading_zero_bits(digest) >= target:
            return Found(candidate, digest.hex())
    return NotFound(
        f"No nonce found of length {target} between {lower} and {upper}"
    )


def search_task(task: SearchTask) -> WorkerResult:
    """Run :func:`search` over the range described by ``task``."""
    return search(task.payload, task.lower_bound, task.upper_bound, task.target)


def measure_throughput(
    payload: bytes | str,
    seconds: float = 1.0,
    *,
    batch: int = 10_000,
    clock: Callable[[], float] = time.perf_counter,
) -> int:
    """Return how many candidates per second one scan loop evaluates.

    The scan uses an unreachable target so every candidate is hashed.
    """
    scanned = 0
    start = clock()
    elapsed = 0.0
    while True:
        lower = scanned % (2**32 - batch)
        search(payload, lower, lower + batch, 257)
        scanned += batch
        elapsed = clock() - start
        if elapsed >= seconds:
            break
    if elapsed <= 0:
        return scanned
    return int(scanned / elapsed)


__all__ = ["search", "search_task", "measure_throughput"]
