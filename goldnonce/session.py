"""Lifecycle of one distributed search run.

A :class:`SearchSession` provisions the workers, dispatches the tasks, waits
for the outcome and always tears everything down again.  Cleanup is
idempotent and may run concurrently with the wait loop when an operator
interrupts the run.
"""

from __future__ import annotations

import logging
import signal
import threading
from typing import Any, Callable, List, Tuple

from .aggregator import ResultAggregator
from .config import SearchSettings, WorkerPoolConfig
from .dispatcher import dispatch
from .errors import SearchCancelled
from .network.channel import MessageChannel
from .partitioner import build_tasks
from .provisioning import Provisioner, WorkerPoolHandle
from .results import WorkerResult

logger = logging.getLogger(__name__)


class SearchSession:
    """Coordinator for a single search run."""

    def __init__(
        self,
        config: WorkerPoolConfig,
        input_channel: MessageChannel,
        output_channel: MessageChannel,
        provisioner: Provisioner,
        *,
        settings: SearchSettings | None = None,
    ) -> None:
        self.config = config
        self.settings = settings or SearchSettings()
        self.input_channel = input_channel
        self.output_channel = output_channel
        self.provisioner = provisioner
        self.handle: WorkerPoolHandle | None = None
        self.stop_event = threading.Event()
        self._cleanup_lock = threading.Lock()
        self._cleaned = False
        self._previous_handlers: List[Tuple[int, Any]] = []

    def log_config(self) -> None:
        logger.info("--- Configuration ---")
        for key, value in self.config.describe().items():
            logger.info("%s: %s", key.replace("_", " ").capitalize(), value)
        logger.info("---------------------")

    def run(self) -> WorkerResult:
        """Execute the run and return :class:`Found` or :class:`NotFound`.

        :class:`~goldnonce.errors.AggregationTimeout`,
        :class:`~goldnonce.errors.DispatchError` and
        :class:`~goldnonce.errors.SearchCancelled` propagate after cleanup.
        """
        try:
            self.handle = self.provisioner.provision(self.config.worker_count)
            if self.stop_event.is_set():
                # Interrupted while provisioning; cleanup may already have run.
                self.provisioner.teardown(self.handle)
                raise SearchCancelled("Search interrupted during provisioning")
            tasks = build_tasks(
                self.config.payload,
                self.config.leading_zero_target,
                self.config.worker_count,
            )
            dispatch(tasks, self.input_channel)
            aggregator = ResultAggregator(
                self.output_channel,
                settings=self.settings,
                stop_event=self.stop_event,
            )
            return aggregator.wait(len(tasks), self.config.timeout_seconds)
        finally:
            self.cleanup()

    def cleanup(self) -> None:
        """Tear down workers and queues, logging (not raising) step failures."""
        with self._cleanup_lock:
            if self._cleaned:
                return
            self._cleaned = True

        steps: List[Tuple[str, Callable[[], None]]] = []
        if self.handle is not None:
            handle = self.handle
            steps.append(("stop workers", lambda: self.provisioner.teardown(handle)))
        steps.extend(
            [
                ("clear input queue", self.input_channel.purge),
                ("clear output queue", self.output_channel.purge),
                ("close input queue", self.input_channel.close),
                ("close output queue", self.output_channel.close),
            ]
        )
        for name, step in steps:
            try:
                step()
                logger.info("Cleanup: %s done", name)
            except Exception:
                logger.exception("Cleanup: %s failed", name)

    # ------------------------------------------------------------------
    # Interrupt handling

    def interrupt(self) -> threading.Thread:
        """Stop the wait loop and clean up from a background thread."""
        logger.warning("Interrupt received, cleaning up")
        self.stop_event.set()
        t = threading.Thread(target=self.cleanup, name="goldnonce-cleanup", daemon=False)
        t.start()
        return t

    def install_signal_handlers(self, signals: Tuple[int, ...] = (signal.SIGINT, signal.SIGTERM)) -> None:
        """Route ``signals`` to :meth:`interrupt`; must run on the main thread."""

        def _handler(signum: int, frame: Any) -> None:
            self.interrupt()

        for sig in signals:
            self._previous_handlers.append((sig, signal.signal(sig, _handler)))

    def restore_signal_handlers(self) -> None:
        while self._previous_handlers:
            sig, previous = self._previous_handlers.pop()
            signal.signal(sig, previous)

    def __enter__(self) -> "SearchSession":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.cleanup()
        self.restore_signal_handlers()


__all__ = ["SearchSession"]
