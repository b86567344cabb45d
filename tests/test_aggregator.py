import threading

import pytest

from goldnonce.aggregator import ResultAggregator, await_result
from goldnonce.config import SearchSettings
from goldnonce.errors import AggregationTimeout, ChannelError, SearchCancelled
from goldnonce.messages import encode_result
from goldnonce.network.local import LocalQueue
from goldnonce.results import Found, NotFound

GOLDEN_HASH = "00f9a29f36ecb8fe8cab25143a7c4aafb3a996f23182f03177e3e670b6177dd5"
FAST = SearchSettings(poll_wait=0.05)


def _report(queue, result, task_id=None):
    attributes, body = encode_result(result, task_id)
    queue.send(attributes, body)


def test_found_short_circuits(output_queue):
    _report(output_queue, NotFound("exhausted"), 0)
    _report(output_queue, NotFound("exhausted"), 1)
    _report(output_queue, Found(330, GOLDEN_HASH), 2)
    _report(output_queue, NotFound("exhausted"), 3)
    _report(output_queue, NotFound("exhausted"), 4)

    aggregator = ResultAggregator(output_queue, settings=FAST)
    assert aggregator.wait(5, 10) == Found(330, GOLDEN_HASH)
    assert aggregator.received == 2
    assert output_queue.approximate_count() == 2


def test_all_workers_exhausted_before_deadline(output_queue):
    for idx in range(3):
        _report(output_queue, NotFound("exhausted"), idx)
    result = await_result(output_queue, 3, 60, settings=FAST)
    assert isinstance(result, NotFound)
    assert "all 3 workers" in result.reason
    assert output_queue.approximate_count() == 0


def test_duplicate_reports_counted_once(output_queue):
    _report(output_queue, NotFound("exhausted"), 0)
    _report(output_queue, NotFound("exhausted"), 0)
    _report(output_queue, NotFound("exhausted"), 1)
    aggregator = ResultAggregator(output_queue, settings=FAST)
    assert isinstance(aggregator.wait(2, 10), NotFound)
    assert aggregator.received == 2
    assert output_queue.approximate_count() == 0


def test_reports_without_task_id_count_individually(output_queue):
    _report(output_queue, NotFound("exhausted"))
    _report(output_queue, NotFound("exhausted"))
    aggregator = ResultAggregator(output_queue, settings=FAST)
    assert isinstance(aggregator.wait(2, 10), NotFound)


def test_malformed_result_is_discarded(output_queue, caplog):
    output_queue.send({"Success": "maybe"})
    _report(output_queue, NotFound("exhausted"), 0)
    aggregator = ResultAggregator(output_queue, settings=FAST)
    assert isinstance(aggregator.wait(1, 10), NotFound)
    assert aggregator.received == 1
    assert output_queue.approximate_count() == 0
    assert "Discarding malformed result" in caplog.text


def test_timeout_with_fake_clock(output_queue):
    _report(output_queue, NotFound("exhausted"), 0)
    clock = iter(range(100))
    aggregator = ResultAggregator(
        output_queue,
        settings=SearchSettings(poll_wait=0),
        clock=lambda: next(clock),
    )
    with pytest.raises(AggregationTimeout) as exc_info:
        aggregator.wait(3, 5)
    assert exc_info.value.received == 1
    assert exc_info.value.expected == 3
    assert "1/3 responses" in str(exc_info.value)


def test_timeout_with_real_clock(output_queue):
    with pytest.raises(AggregationTimeout):
        await_result(output_queue, 1, 0.2, settings=FAST)


def test_poll_interval_sleeps_between_empty_polls(output_queue):
    settings = SearchSettings(poll_wait=0, poll_interval=0.05)
    with pytest.raises(AggregationTimeout):
        await_result(output_queue, 1, 0.2, settings=settings)


def test_stop_event_cancels_wait(output_queue):
    stop = threading.Event()
    stop.set()
    with pytest.raises(SearchCancelled):
        ResultAggregator(output_queue, settings=FAST, stop_event=stop).wait(1, 10)


def test_stop_event_set_while_waiting(output_queue):
    stop = threading.Event()
    threading.Timer(0.1, stop.set).start()
    with pytest.raises(SearchCancelled):
        ResultAggregator(output_queue, settings=FAST, stop_event=stop).wait(1, 10)


def test_late_result_arrives_while_waiting(output_queue):
    timer = threading.Timer(0.1, _report, args=(output_queue, Found(330, GOLDEN_HASH), 0))
    timer.start()
    assert await_result(output_queue, 1, 10, settings=SearchSettings(poll_wait=5)) == Found(330, GOLDEN_HASH)
    timer.join()


class FlakyReceiveQueue(LocalQueue):
    """Fails the first ``failures`` receives."""

    def __init__(self, failures=1):
        super().__init__("flaky")
        self.failures = failures

    def receive(self, wait=None, visibility_timeout=None):
        if self.failures:
            self.failures -= 1
            raise ChannelError("transient receive failure")
        return super().receive(wait, visibility_timeout)


def test_transient_receive_failure_is_retried(caplog):
    q = FlakyReceiveQueue(failures=2)
    _report(q, Found(330, GOLDEN_HASH), 0)
    settings = SearchSettings(poll_wait=0.05, error_backoff=0.01)
    assert await_result(q, 1, 5, settings=settings) == Found(330, GOLDEN_HASH)
    assert caplog.text.count("Something went wrong getting output message") == 2


def test_persistent_receive_failure_times_out():
    q = FlakyReceiveQueue(failures=10**6)
    settings = SearchSettings(poll_wait=0.05, error_backoff=0.05)
    with pytest.raises(AggregationTimeout):
        await_result(q, 1, 0.3, settings=settings)
