"""Local worker provisioners.

Cloud provisioning is outside the core; these provisioners start workers as
threads (sharing in-memory queues) or as processes (talking to a queue
broker).  ``teardown`` may be called any number of times.
"""

from __future__ import annotations

import abc
import logging
import multiprocessing as mp
import threading
from dataclasses import dataclass, field
from typing import Any, List

from .config import SearchSettings
from .network.channel import MessageChannel
from .worker import run_worker, run_worker_process

logger = logging.getLogger(__name__)


@dataclass
class WorkerPoolHandle:
    """Running workers started by a provisioner."""

    count: int
    workers: List[Any] = field(default_factory=list)
    stop_event: threading.Event = field(default_factory=threading.Event)
    torn_down: bool = False


class Provisioner(abc.ABC):
    """Starts and stops a pool of workers."""

    @abc.abstractmethod
    def provision(self, count: int) -> WorkerPoolHandle:
        """Start ``count`` workers and return a handle to them."""

    @abc.abstractmethod
    def teardown(self, handle: WorkerPoolHandle) -> None:
        """Stop the workers of ``handle``; safe to call repeatedly."""


class ThreadProvisioner(Provisioner):
    """Run batch workers as daemon threads of the current process."""

    def __init__(
        self,
        input_channel: MessageChannel,
        output_channel: MessageChannel,
        settings: SearchSettings | None = None,
        *,
        join_timeout: float = 1.0,
    ) -> None:
        self.input_channel = input_channel
        self.output_channel = output_channel
        self.settings = settings or SearchSettings()
        self.join_timeout = join_timeout

    def _run(self, worker_id: str, stop_event: threading.Event) -> None:
        try:
            run_worker(
                self.input_channel,
                self.output_channel,
                wait=self.settings.poll_wait,
                visibility_timeout=self.settings.visibility_timeout,
                stop_event=stop_event,
                worker_id=worker_id,
            )
        except Exception:
            logger.exception("%s failed", worker_id)

    def _start(self, idx: int, handle: WorkerPoolHandle) -> None:
        t = threading.Thread(
            target=self._run,
            args=(f"worker-{idx}", handle.stop_event),
            name=f"goldnonce-worker-{idx}",
            daemon=True,
        )
        handle.workers.append(t)
        t.start()

    def provision(self, count: int) -> WorkerPoolHandle:
        handle = WorkerPoolHandle(count=count)
        try:
            for idx in range(count):
                self._start(idx, handle)
        except BaseException:
            logger.error("Provisioning failed, stopping the partial pool of %d", count)
            self.teardown(handle)
            raise
        logger.info("Started %d worker threads", count)
        return handle

    def teardown(self, handle: WorkerPoolHandle) -> None:
        if handle.torn_down:
            return
        handle.torn_down = True
        handle.stop_event.set()
        # A thread cannot be killed mid-scan; daemon threads die with the process.
        for t in handle.workers:
            if t.ident is not None:
                t.join(timeout=self.join_timeout)
        alive = sum(1 for t in handle.workers if t.is_alive())
        if alive:
            logger.info("%d worker threads still scanning, left as daemons", alive)


class ProcessProvisioner(Provisioner):
    """Run batch workers as separate processes connected to a queue broker."""

    def __init__(
        self,
        broker_url: str,
        settings: SearchSettings | None = None,
        *,
        join_timeout: float = 5.0,
    ) -> None:
        self.broker_url = broker_url
        self.settings = settings or SearchSettings()
        self.join_timeout = join_timeout

    def _start(self, idx: int, handle: WorkerPoolHandle) -> None:
        p = mp.Process(
            target=run_worker_process,
            args=(self.broker_url, self.settings.input_queue, self.settings.output_queue),
            kwargs={
                "wait": self.settings.poll_wait,
                "visibility_timeout": self.settings.visibility_timeout,
                "worker_id": f"worker-{idx}",
            },
            daemon=True,
        )
        handle.workers.append(p)
        p.start()

    def provision(self, count: int) -> WorkerPoolHandle:
        handle = WorkerPoolHandle(count=count)
        try:
            for idx in range(count):
                self._start(idx, handle)
        except BaseException:
            logger.error("Provisioning failed, stopping the partial pool of %d", count)
            self.teardown(handle)
            raise
        logger.info("Started %d worker processes", count)
        return handle

    def teardown(self, handle: WorkerPoolHandle) -> None:
        if handle.torn_down:
            return
        handle.torn_down = True
        handle.stop_event.set()
        started = [p for p in handle.workers if p.pid is not None]
        for p in started:
            if p.is_alive():
                p.terminate()
        for p in started:
            p.join(timeout=self.join_timeout)
            if p.is_alive():
                logger.warning("Worker process %d ignored SIGTERM, killing it", p.pid)
                p.kill()
                p.join(timeout=self.join_timeout)
        alive = sum(1 for p in started if p.is_alive())
        if alive:
            logger.error("%d worker processes still running after teardown", alive)
        else:
            logger.info("Stopped %d worker processes", len(started))


__all__ = [
    "WorkerPoolHandle",
    "Provisioner",
    "ThreadProvisioner",
    "ProcessProvisioner",
]
