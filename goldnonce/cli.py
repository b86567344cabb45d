"""Command line interface for goldnonce."""

from __future__ import annotations

import argparse
import logging
import sys
import threading

from .config import (
    DEFAULT_CONFIDENCE,
    DEFAULT_LEADING_ZEROS,
    DEFAULT_PAYLOAD,
    DEFAULT_POLL_WAIT,
    DEFAULT_TIMEOUT,
    DEFAULT_VISIBILITY_TIMEOUT,
    INPUT_QUEUE,
    NONCES_PER_SECOND,
    OUTPUT_QUEUE,
    SearchSettings,
    WorkerPoolConfig,
)
from .errors import (
    AggregationTimeout,
    ConfigurationError,
    DecodeError,
    DispatchError,
    GoldNonceError,
    InfeasibleSizingError,
    SearchCancelled,
)
from .network.local import LocalBroker
from .provisioning import ProcessProvisioner, ThreadProvisioner
from .results import Found
from .searcher import measure_throughput
from .session import SearchSession
from .sizing import compute_worker_count
from .worker import run_worker

EXIT_FOUND = 0
EXIT_NOT_FOUND = 1
EXIT_CONFIG = 2
EXIT_TIMEOUT = 3
EXIT_DISPATCH = 4
EXIT_ERROR = 5
EXIT_INTERRUPTED = 130


def _fail(message: str, code: int) -> SystemExit:
    print(message, file=sys.stderr)
    return SystemExit(code)


def _settings(args: argparse.Namespace) -> SearchSettings:
    return SearchSettings(
        throughput_per_worker=args.throughput,
        poll_wait=args.poll_wait,
        visibility_timeout=args.visibility_timeout,
    )


def _build_config(args: argparse.Namespace, settings: SearchSettings) -> WorkerPoolConfig:
    if args.workers is not None:
        return WorkerPoolConfig.direct(
            args.payload, args.leading_zeros, args.timeout, args.workers, settings=settings
        )
    return WorkerPoolConfig.from_confidence(
        args.payload, args.leading_zeros, args.timeout, args.confidence, settings=settings
    )


def cmd_search(args: argparse.Namespace) -> None:
    """Run a distributed search and report the golden nonce."""
    settings = _settings(args)
    try:
        config = _build_config(args, settings)
    except (ConfigurationError, InfeasibleSizingError) as exc:
        raise _fail(str(exc), EXIT_CONFIG)

    if args.deployment == "threads" and config.worker_count > 1:
        logging.warning(
            "Thread workers share one interpreter and scan one at a time;"
            " %d threads give roughly single worker throughput",
            config.worker_count,
        )

    server = None
    if args.deployment == "processes":
        from .network.ws_broker import QueueBrokerServer, RemoteQueue

        server = QueueBrokerServer(host=args.broker_host, port=args.broker_port)
        inbound = RemoteQueue(server.url, settings.input_queue)
        outbound = RemoteQueue(server.url, settings.output_queue)
        provisioner = ProcessProvisioner(server.url, settings)
    else:
        broker = LocalBroker(default_visibility=settings.visibility_timeout)
        inbound = broker.queue(settings.input_queue)
        outbound = broker.queue(settings.output_queue)
        provisioner = ThreadProvisioner(inbound, outbound, settings)

    session = SearchSession(config, inbound, outbound, provisioner, settings=settings)
    session.log_config()
    logging.info("Deployment strategy: %s", args.deployment)
    try:
        with session:
            session.install_signal_handlers()
            result = session.run()
    except AggregationTimeout as exc:
        raise _fail(f"Timed out: {exc}", EXIT_TIMEOUT)
    except DispatchError as exc:
        raise _fail(f"Dispatch failed: {exc}", EXIT_DISPATCH)
    except SearchCancelled as exc:
        raise _fail(str(exc), EXIT_INTERRUPTED)
    except GoldNonceError as exc:
        raise _fail(f"Search failed: {exc}", EXIT_ERROR)
    finally:
        if server is not None:
            server.close()

    if isinstance(result, Found):
        print(f"Nonce is {result.nonce} for hash: {result.hash_hex}")
        return
    print(f"No nonce found: {result.reason}")
    raise SystemExit(EXIT_NOT_FOUND)


def cmd_worker(args: argparse.Namespace) -> None:
    """Run a worker against a queue broker."""
    from .network.ws_broker import RemoteQueue

    inbound = RemoteQueue(args.broker_url, args.input_queue)
    outbound = RemoteQueue(args.broker_url, args.output_queue)
    try:
        handled = run_worker(
            inbound,
            outbound,
            serve=args.serve,
            wait=args.wait,
            visibility_timeout=args.visibility_timeout,
            worker_id=args.worker_id,
        )
    except DecodeError as exc:
        raise _fail(f"Couldn't decode message: {exc}", 1)
    except KeyboardInterrupt:
        raise SystemExit(EXIT_INTERRUPTED)
    finally:
        inbound.close()
        outbound.close()
    if handled == 0 and not args.serve:
        raise _fail("No messages returned", 1)


def cmd_broker(args: argparse.Namespace) -> None:
    """Serve the task and result queues until interrupted."""
    from .network.ws_broker import QueueBrokerServer

    server = QueueBrokerServer(
        LocalBroker(default_visibility=args.visibility_timeout),
        host=args.host,
        port=args.port,
    )
    print(server.url, flush=True)
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        pass
    finally:
        server.close()


def cmd_benchmark(args: argparse.Namespace) -> None:
    """Measure single-worker throughput to calibrate ``--throughput``."""
    rate = measure_throughput(args.payload, args.seconds)
    print(f"Throughput: {rate} candidates/s")
    try:
        workers = compute_worker_count(args.timeout, args.confidence, rate)
    except InfeasibleSizingError as exc:
        print(str(exc))
        return
    print(f"Workers for {args.confidence}% in {args.timeout}s: {workers}")


def _add_search_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--payload", "--block", default=DEFAULT_PAYLOAD, help="Data the nonce is appended to")
    p.add_argument("-d", "--leading-zeros", type=int, default=DEFAULT_LEADING_ZEROS, help="Number of leading zero bits")
    p.add_argument("--timeout", type=int, default=DEFAULT_TIMEOUT, help="Timeout in seconds")
    mode = p.add_mutually_exclusive_group(required=True)
    mode.add_argument("-n", "--workers", type=int, help="Number of workers")
    mode.add_argument(
        "--confidence",
        type=int,
        help="Confidence in finding the result, as a percentage",
    )
    p.add_argument(
        "--deployment",
        choices=("processes", "threads"),
        default="processes",
        help="How workers are started; threads run one at a time under the GIL,"
        " so only processes scale with the worker count",
    )
    p.add_argument("--throughput", type=int, default=NONCES_PER_SECOND, help="Candidates per second per worker")
    p.add_argument("--poll-wait", type=float, default=DEFAULT_POLL_WAIT, help="Seconds a result poll may block")
    p.add_argument(
        "--visibility-timeout",
        type=float,
        default=DEFAULT_VISIBILITY_TIMEOUT,
        help="Task lease in seconds",
    )
    p.add_argument("--broker-host", default="127.0.0.1", help="Broker bind address (processes)")
    p.add_argument("--broker-port", type=int, default=0, help="Broker port (processes)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="goldnonce",
        description="Distributed golden nonce search",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Logging verbosity",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_search = sub.add_parser("search", help="Search for a golden nonce")
    _add_search_args(p_search)
    p_search.set_defaults(func=cmd_search)

    p_worker = sub.add_parser("worker", help="Run a worker against a broker")
    p_worker.add_argument("--broker-url", required=True, help="ws:// URL of the queue broker")
    p_worker.add_argument("--input-queue", default=INPUT_QUEUE, help="Task queue name")
    p_worker.add_argument("--output-queue", default=OUTPUT_QUEUE, help="Result queue name")
    p_worker.add_argument("--serve", action="store_true", help="Keep processing tasks")
    p_worker.add_argument("--wait", type=float, default=DEFAULT_POLL_WAIT, help="Seconds to wait for a task")
    p_worker.add_argument(
        "--visibility-timeout",
        type=float,
        default=DEFAULT_VISIBILITY_TIMEOUT,
        help="Task lease in seconds",
    )
    p_worker.add_argument("--worker-id", default="worker", help="Name used in log lines")
    p_worker.set_defaults(func=cmd_worker)

    p_broker = sub.add_parser("broker", help="Serve the queues over WebSockets")
    p_broker.add_argument("--host", default="127.0.0.1", help="Bind address")
    p_broker.add_argument("--port", type=int, default=8765, help="Bind port")
    p_broker.add_argument(
        "--visibility-timeout",
        type=float,
        default=DEFAULT_VISIBILITY_TIMEOUT,
        help="Default task lease in seconds",
    )
    p_broker.set_defaults(func=cmd_broker)

    p_bench = sub.add_parser("benchmark", help="Measure single worker throughput")
    p_bench.add_argument("--payload", default=DEFAULT_PAYLOAD, help="Data the nonce is appended to")
    p_bench.add_argument("--seconds", type=float, default=2.0, help="Benchmark duration")
    p_bench.add_argument("--timeout", type=int, default=DEFAULT_TIMEOUT, help="Timeout used for the sizing hint")
    p_bench.add_argument(
        "--confidence", type=int, default=DEFAULT_CONFIDENCE, help="Confidence used for the sizing hint"
    )
    p_bench.set_defaults(func=cmd_benchmark)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(message)s")
    args.func(args)


if __name__ == "__main__":
    main()


__all__ = [
    "main",
    "build_parser",
    "cmd_search",
    "cmd_worker",
    "cmd_broker",
    "cmd_benchmark",
]
