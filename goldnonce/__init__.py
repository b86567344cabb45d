"""Distributed golden nonce search over a pool of queue-fed workers."""

from .results import SearchTask, Found, NotFound, WorkerResult
from .scorer import score
from .searcher import search
from .partitioner import partition
from .sizing import compute_worker_count

__all__ = [
    "SearchTask",
    "Found",
    "NotFound",
    "WorkerResult",
    "score",
    "search",
    "partition",
    "compute_worker_count",
]
