"""Worker runtime: claim a task, scan its range, report the result.

A worker moves through ``Idle -> Claimed -> Computing -> Reporting -> Idle``
for every task.  Batch deployments handle a single task and exit; continuous
deployments call :meth:`Worker.serve`.
"""

from __future__ import annotations

import logging
import signal
import threading

from .config import DEFAULT_POLL_WAIT, DEFAULT_VISIBILITY_TIMEOUT
from .errors import DecodeError
from .messages import decode_task, encode_result
from .network.channel import MessageChannel
from .results import Found, WorkerResult
from .searcher import search_task

logger = logging.getLogger(__name__)


class WorkerState:
    IDLE = "Idle"
    CLAIMED = "Claimed"
    COMPUTING = "Computing"
    REPORTING = "Reporting"


class Worker:
    """Pulls tasks from ``input_channel`` and publishes to ``output_channel``."""

    def __init__(
        self,
        input_channel: MessageChannel,
        output_channel: MessageChannel,
        *,
        visibility_timeout: float = DEFAULT_VISIBILITY_TIMEOUT,
        worker_id: str = "worker",
    ) -> None:
        self.input = input_channel
        self.output = output_channel
        self.visibility_timeout = visibility_timeout
        self.worker_id = worker_id
        self.state = WorkerState.IDLE
        self.processed = 0

    def run_once(self, wait: float | None = DEFAULT_POLL_WAIT) -> WorkerResult | None:
        """Process a single task.

        Returns ``None`` if no task was claimed within ``wait`` seconds.  A
        malformed task raises :class:`DecodeError` and is left on the queue;
        the lease expires and the queue decides what happens next.
        """
        message = self.input.receive(wait=wait, visibility_timeout=self.visibility_timeout)
        if message is None:
            return None
        try:
            self.state = WorkerState.CLAIMED
            try:
                task = decode_task(message)
            except DecodeError as exc:
                logger.error(
                    "%s couldn't decode message %s: %s", self.worker_id, message.message_id, exc
                )
                raise
            logger.info("%s claimed %s", self.worker_id, task.debug_label or message.message_id)

            self.state = WorkerState.COMPUTING
            result = search_task(task)

            self.state = WorkerState.REPORTING
            attributes, body = encode_result(result, task.task_id)
            self.output.send(attributes, body)
            self.input.delete(message.receipt_handle)
        finally:
            self.state = WorkerState.IDLE

        self.processed += 1
        if isinstance(result, Found):
            logger.info("%s: nonce is %d for hash: %s", self.worker_id, result.nonce, result.hash_hex)
        else:
            logger.info("%s: %s", self.worker_id, result.reason)
        return result

    def serve(
        self,
        stop_event: threading.Event | None = None,
        *,
        wait: float = DEFAULT_POLL_WAIT,
        max_tasks: int | None = None,
        idle_exit: bool = False,
    ) -> int:
        """Process tasks until stopped; return how many were handled.

        With ``idle_exit`` the loop ends after the first empty poll.
        """
        stop_event = stop_event or threading.Event()
        handled = 0
        while not stop_event.is_set():
            if max_tasks is not None and handled >= max_tasks:
                break
            result = self.run_once(wait=wait)
            if result is None:
                if idle_exit:
                    break
                continue
            handled += 1
        return handled


def run_worker(
    input_channel: MessageChannel,
    output_channel: MessageChannel,
    *,
    serve: bool = False,
    wait: float = DEFAULT_POLL_WAIT,
    visibility_timeout: float = DEFAULT_VISIBILITY_TIMEOUT,
    stop_event: threading.Event | None = None,
    worker_id: str = "worker",
) -> int:
    """Entry point shared by the provisioners and the ``worker`` command."""
    worker = Worker(
        input_channel,
        output_channel,
        visibility_timeout=visibility_timeout,
        worker_id=worker_id,
    )
    if serve:
        return worker.serve(stop_event, wait=wait)
    if worker.run_once(wait=wait) is None:
        logger.warning("%s: no messages returned", worker_id)
        return 0
    return 1


def run_worker_process(
    broker_url: str,
    input_queue: str,
    output_queue: str,
    *,
    serve: bool = False,
    wait: float = DEFAULT_POLL_WAIT,
    visibility_timeout: float = DEFAULT_VISIBILITY_TIMEOUT,
    worker_id: str = "worker",
    log_level: int = logging.INFO,
) -> None:
    """Process target: run one worker against a queue broker."""
    from .network.ws_broker import RemoteQueue

    # A forked child inherits the coordinator's interrupt handlers; terminate
    # must stop the worker, not run a copy of the session cleanup.
    signal.signal(signal.SIGTERM, signal.SIG_DFL)
    signal.signal(signal.SIGINT, signal.SIG_DFL)
    logging.basicConfig(level=log_level, format="%(message)s")
    inbound = RemoteQueue(broker_url, input_queue)
    outbound = RemoteQueue(broker_url, output_queue)
    try:
        run_worker(
            inbound,
            outbound,
            serve=serve,
            wait=wait,
            visibility_timeout=visibility_timeout,
            worker_id=worker_id,
        )
    except DecodeError:
        raise SystemExit(1)
    finally:
        inbound.close()
        outbound.close()


__all__ = ["WorkerState", "Worker", "run_worker", "run_worker_process"]
