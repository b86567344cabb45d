"""Configuration defaults and validated run configuration for goldnonce."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigurationError

# Highest candidate boundary expressible as a u32 on the wire.  Partitions end
# here and the sizing model searches this many candidates.
MAX_NONCE = 2**32 - 1

# Candidates a single worker scans per second; measured on the reference
# worker image, recalibrate with ``goldnonce benchmark``.
NONCES_PER_SECOND = 470_000

# One less than the assumed hard limit of 32 concurrently running workers.
MAX_WORKERS = 31

INPUT_QUEUE = "INPUT_QUEUE"
OUTPUT_QUEUE = "OUTPUT_QUEUE"

DEFAULT_PAYLOAD = "COMSM0010cloud"
DEFAULT_LEADING_ZEROS = 20
DEFAULT_TIMEOUT = 360
DEFAULT_CONFIDENCE = 95

DEFAULT_POLL_WAIT = 10.0
DEFAULT_VISIBILITY_TIMEOUT = 900.0


@dataclass(frozen=True)
class SearchSettings:
    """Tunables shared by sizing, dispatch, workers and aggregation."""

    throughput_per_worker: int = NONCES_PER_SECOND
    max_workers: int = MAX_WORKERS
    input_queue: str = INPUT_QUEUE
    output_queue: str = OUTPUT_QUEUE
    poll_wait: float = DEFAULT_POLL_WAIT
    poll_interval: float = 0.0
    error_backoff: float = 1.0
    visibility_timeout: float = DEFAULT_VISIBILITY_TIMEOUT


class WorkerPoolConfig(BaseModel):
    """Validated parameters for a single search run."""

    model_config = ConfigDict(frozen=True)

    payload: str = Field(min_length=1)
    leading_zero_target: int = Field(gt=0, le=256)
    timeout_seconds: int = Field(gt=0)
    worker_count: int = Field(ge=1)
    confidence_percent: int = Field(default=100, gt=0, le=100)

    @classmethod
    def direct(
        cls,
        payload: str,
        leading_zero_target: int,
        timeout_seconds: int,
        worker_count: int,
        *,
        settings: SearchSettings | None = None,
    ) -> "WorkerPoolConfig":
        """Build a config with an explicit worker count."""
        settings = settings or SearchSettings()
        config = _build(
            payload=payload,
            leading_zero_target=leading_zero_target,
            timeout_seconds=timeout_seconds,
            worker_count=worker_count,
            confidence_percent=100,
        )
        _check_ceiling(config.worker_count, settings)
        return config

    @classmethod
    def from_confidence(
        cls,
        payload: str,
        leading_zero_target: int,
        timeout_seconds: int,
        confidence_percent: int,
        *,
        settings: SearchSettings | None = None,
    ) -> "WorkerPoolConfig":
        """Build a config whose worker count is derived from ``confidence_percent``.

        Raises :class:`~goldnonce.errors.InfeasibleSizingError` when the
        derived count exceeds ``settings.max_workers``.
        """
        from .sizing import compute_worker_count

        settings = settings or SearchSettings()
        # Validate everything except the worker count before sizing.
        _build(
            payload=payload,
            leading_zero_target=leading_zero_target,
            timeout_seconds=timeout_seconds,
            worker_count=1,
            confidence_percent=confidence_percent,
        )
        workers = compute_worker_count(
            timeout_seconds,
            confidence_percent,
            settings.throughput_per_worker,
            max_workers=settings.max_workers,
        )
        return _build(
            payload=payload,
            leading_zero_target=leading_zero_target,
            timeout_seconds=timeout_seconds,
            worker_count=workers,
            confidence_percent=confidence_percent,
        )

    def describe(self) -> Dict[str, Any]:
        return {
            "payload": self.payload,
            "timeout": self.timeout_seconds,
            "leading_zeros": self.leading_zero_target,
            "workers": self.worker_count,
            "confidence": self.confidence_percent,
        }


def _build(**values: Any) -> WorkerPoolConfig:
    try:
        return WorkerPoolConfig(**values)
    except ValidationError as exc:
        err = exc.errors()[0]
        field = ".".join(str(part) for part in err.get("loc", ())) or "config"
        raise ConfigurationError(f"Invalid {field}: {err.get('msg')}") from exc


def _check_ceiling(worker_count: int, settings: SearchSettings) -> None:
    if worker_count > settings.max_workers:
        raise ConfigurationError(
            f"Invalid worker_count: must be in range [1, {settings.max_workers}]"
        )


__all__ = [
    "MAX_NONCE",
    "NONCES_PER_SECOND",
    "MAX_WORKERS",
    "INPUT_QUEUE",
    "OUTPUT_QUEUE",
    "DEFAULT_PAYLOAD",
    "DEFAULT_LEADING_ZEROS",
    "DEFAULT_TIMEOUT",
    "DEFAULT_CONFIDENCE",
    "DEFAULT_POLL_WAIT",
    "DEFAULT_VISIBILITY_TIMEOUT",
    "SearchSettings",
    "WorkerPoolConfig",
]
