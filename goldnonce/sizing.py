"""Derive the worker count from a time budget and a confidence level.

Confidence is treated as the fraction of the candidate space that should be
covered within the timeout: 100% asks for enough workers to scan everything,
50% for half of that.  This is a linear approximation, not a calibrated
probability.
"""

from __future__ import annotations

import math

from .config import MAX_NONCE, MAX_WORKERS
from .errors import ConfigurationError, InfeasibleSizingError


def compute_worker_count(
    timeout_seconds: int,
    confidence_percent: int,
    throughput_per_worker: int,
    *,
    max_workers: int = MAX_WORKERS,
    total_space: int = MAX_NONCE,
) -> int:
    """Return the number of workers needed to meet ``confidence_percent``.

    Raises :class:`InfeasibleSizingError` if more than ``max_workers`` would be
    required.
    """
    if timeout_seconds <= 0:
        raise ConfigurationError("Invalid timeout, must be greater than 0")
    if throughput_per_worker <= 0:
        raise ConfigurationError("Invalid throughput, must be greater than 0")
    if not 0 < confidence_percent <= 100:
        raise ConfigurationError("Invalid confidence, must be in range (0, 100]")

    seconds_with_one_worker = total_space / throughput_per_worker
    workers_for_full_coverage = seconds_with_one_worker / timeout_seconds
    needed = math.ceil(workers_for_full_coverage * confidence_percent / 100)
    needed = max(needed, 1)
    if needed > max_workers:
        raise InfeasibleSizingError(needed, max_workers)
    return needed


__all__ = ["compute_worker_count"]
