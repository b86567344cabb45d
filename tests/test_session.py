import signal
import threading

import pytest

from goldnonce.config import SearchSettings, WorkerPoolConfig
from goldnonce.errors import AggregationTimeout, ChannelError, DispatchError, SearchCancelled
from goldnonce.messages import decode_task, encode_result
from goldnonce.network.local import LocalQueue
from goldnonce.provisioning import Provisioner, ThreadProvisioner, WorkerPoolHandle
from goldnonce.results import Found, NotFound
from goldnonce.scorer import score
from goldnonce.session import SearchSession

SETTINGS = SearchSettings(poll_wait=2.0)


class IdleProvisioner(Provisioner):
    """Starts nothing; records teardown calls."""

    def __init__(self):
        self.teardowns = 0

    def provision(self, count):
        return WorkerPoolHandle(count=count)

    def teardown(self, handle):
        self.teardowns += 1
        handle.torn_down = True


class ExhaustedProvisioner(IdleProvisioner):
    """Answers every task with a not-found report from a helper thread."""

    def __init__(self, input_queue, output_queue):
        super().__init__()
        self.input = input_queue
        self.output = output_queue

    def _respond(self, stop_event):
        while not stop_event.is_set():
            msg = self.input.receive(wait=0.1)
            if msg is None:
                continue
            task = decode_task(msg)
            self.output.send(*encode_result(NotFound("range exhausted"), task.task_id))
            self.input.delete(msg.receipt_handle)

    def provision(self, count):
        handle = super().provision(count)
        t = threading.Thread(target=self._respond, args=(handle.stop_event,), daemon=True)
        t.start()
        handle.workers.append(t)
        return handle

    def teardown(self, handle):
        super().teardown(handle)
        handle.stop_event.set()
        for t in handle.workers:
            t.join(timeout=2)


class BrokenProvisioner(IdleProvisioner):
    def teardown(self, handle):
        super().teardown(handle)
        raise RuntimeError("teardown exploded")


class RejectingQueue(LocalQueue):
    def send(self, attributes, body=""):
        raise ChannelError("queue unavailable")


def test_threaded_search_finds_nonce(payload, input_queue, output_queue):
    config = WorkerPoolConfig.direct(payload, 1, 10, 1)
    provisioner = ThreadProvisioner(input_queue, output_queue, SETTINGS)
    session = SearchSession(config, input_queue, output_queue, provisioner, settings=SETTINGS)

    result = session.run()
    assert isinstance(result, Found)
    assert result.nonce == 0
    assert score(payload, result.nonce) >= 1
    assert session.handle.torn_down
    assert input_queue.approximate_count() == 0
    assert output_queue.approximate_count() == 0


def test_all_workers_exhausted(payload, input_queue, output_queue):
    config = WorkerPoolConfig.direct(payload, 20, 10, 3)
    provisioner = ExhaustedProvisioner(input_queue, output_queue)
    session = SearchSession(config, input_queue, output_queue, provisioner, settings=SETTINGS)

    result = session.run()
    assert isinstance(result, NotFound)
    assert "all 3 workers" in result.reason
    assert provisioner.teardowns == 1


def test_timeout_still_cleans_up(payload, input_queue, output_queue):
    config = WorkerPoolConfig.direct(payload, 20, 1, 2)
    provisioner = IdleProvisioner()
    session = SearchSession(
        config, input_queue, output_queue, provisioner, settings=SearchSettings(poll_wait=0.2)
    )
    with pytest.raises(AggregationTimeout):
        session.run()
    assert provisioner.teardowns == 1
    assert input_queue.approximate_count() == 0


def test_dispatch_failure_tears_down(payload, output_queue):
    config = WorkerPoolConfig.direct(payload, 20, 10, 2)
    provisioner = IdleProvisioner()
    session = SearchSession(config, RejectingQueue(), output_queue, provisioner, settings=SETTINGS)
    with pytest.raises(DispatchError) as exc_info:
        session.run()
    assert exc_info.value.published == 0
    assert provisioner.teardowns == 1


def test_cleanup_is_idempotent(payload, input_queue, output_queue):
    config = WorkerPoolConfig.direct(payload, 20, 10, 1)
    provisioner = IdleProvisioner()
    session = SearchSession(config, input_queue, output_queue, provisioner)
    session.handle = provisioner.provision(1)
    session.cleanup()
    session.cleanup()
    assert provisioner.teardowns == 1


def test_cleanup_logs_failures_and_continues(payload, input_queue, output_queue, caplog):
    input_queue.send({"k": "v"})
    config = WorkerPoolConfig.direct(payload, 20, 10, 1)
    provisioner = BrokenProvisioner()
    session = SearchSession(config, input_queue, output_queue, provisioner)
    session.handle = provisioner.provision(1)

    session.cleanup()
    assert "Cleanup: stop workers failed" in caplog.text
    assert "Cleanup: clear input queue done" in caplog.text
    assert input_queue.approximate_count() == 0


def test_interrupt_cancels_running_search(payload, input_queue, output_queue):
    config = WorkerPoolConfig.direct(payload, 20, 30, 1)
    provisioner = IdleProvisioner()
    session = SearchSession(
        config, input_queue, output_queue, provisioner, settings=SearchSettings(poll_wait=0.1)
    )
    cleanup_threads = []
    timer = threading.Timer(0.2, lambda: cleanup_threads.append(session.interrupt()))
    timer.start()
    with pytest.raises(SearchCancelled):
        session.run()
    timer.join()
    cleanup_threads[0].join(timeout=5)
    assert session.stop_event.is_set()
    assert provisioner.teardowns == 1


def test_signal_handler_routes_to_interrupt(payload, input_queue, output_queue):
    config = WorkerPoolConfig.direct(payload, 20, 10, 1)
    session = SearchSession(config, input_queue, output_queue, IdleProvisioner())
    previous = signal.getsignal(signal.SIGUSR1)
    with session:
        session.install_signal_handlers((signal.SIGUSR1,))
        handler = signal.getsignal(signal.SIGUSR1)
        assert handler is not previous
        handler(signal.SIGUSR1, None)
        assert session.stop_event.is_set()
    assert signal.getsignal(signal.SIGUSR1) is previous


def test_log_config(payload, input_queue, output_queue, caplog):
    config = WorkerPoolConfig.direct(payload, 20, 360, 4)
    SearchSession(config, input_queue, output_queue, IdleProvisioner()).log_config()
    assert "Payload: COMSM0010cloud" in caplog.text
    assert "Leading zeros: 20" in caplog.text
    assert "Workers: 4" in caplog.text


class HalfStartedProvisioner(ThreadProvisioner):
    """Fails to start the second worker thread."""

    def _start(self, idx, handle):
        if idx == 1:
            self.partial = handle
            raise RuntimeError("out of threads")
        super()._start(idx, handle)


def test_failed_provisioning_stops_started_workers(payload, input_queue, output_queue):
    provisioner = HalfStartedProvisioner(input_queue, output_queue, SearchSettings(poll_wait=0.1))
    config = WorkerPoolConfig.direct(payload, 20, 10, 3)
    session = SearchSession(config, input_queue, output_queue, provisioner, settings=SETTINGS)

    with pytest.raises(RuntimeError):
        session.run()
    handle = provisioner.partial
    assert handle.torn_down
    assert handle.stop_event.is_set()
    assert len(handle.workers) == 1
    assert not handle.workers[0].is_alive()
    assert session.handle is None
