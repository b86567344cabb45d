"""WebSocket queue broker so worker processes can share the queues."""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import logging
import threading
import time
from dataclasses import asdict
from typing import Any, Coroutine, Dict, TypeVar

import websockets

from ..errors import ChannelError
from .channel import MessageChannel
from .local import LocalBroker
from .message import QueueMessage

logger = logging.getLogger(__name__)

# Upper bound for a single blocking receive on the server.  Longer waits are
# split into several requests by the client.
MAX_REMOTE_WAIT = 20.0

T = TypeVar("T")


class _LoopThread:
    """Private asyncio loop running on a daemon thread."""

    def __init__(self, name: str) -> None:
        self._loop = asyncio.new_event_loop()
        self._loop_thread = threading.Thread(target=self._loop.run_forever, name=name, daemon=True)
        self._loop_thread.start()

    def _submit(self, coro: Coroutine[Any, Any, T]) -> "concurrent.futures.Future[T]":
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def _stop_loop(self) -> None:
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._loop_thread.join()


class QueueBrokerServer(_LoopThread):
    """Serve the queues of a :class:`LocalBroker` over WebSockets.

    Every frame is a JSON request ``{"op": ..., "queue": ...}`` answered by one
    JSON reply carrying ``"ok"``.
    """

    def __init__(
        self,
        broker: LocalBroker | None = None,
        host: str = "127.0.0.1",
        port: int = 0,
    ) -> None:
        super().__init__("goldnonce-broker")
        self.broker = broker or LocalBroker()
        self._server: Any = None
        self._submit(self._start_server(host, port)).result()
        self.host, self.port = self._server.sockets[0].getsockname()[:2]
        logger.info("Queue broker listening on %s", self.url)

    @property
    def url(self) -> str:
        return f"ws://{self.host}:{self.port}"

    async def _start_server(self, host: str, port: int) -> None:
        self._server = await websockets.serve(self._handler, host, port)

    async def _handler(self, websocket: Any) -> None:
        try:
            async for raw in websocket:
                reply = await self._dispatch(raw)
                await websocket.send(json.dumps(reply))
        except websockets.exceptions.ConnectionClosed:
            return

    async def _dispatch(self, raw: str | bytes) -> Dict[str, Any]:
        try:
            request = json.loads(raw)
            op = request["op"]
            queue = self.broker.queue(str(request["queue"]))
        except (json.JSONDecodeError, KeyError, TypeError) as exc:
            return {"ok": False, "error": f"malformed request: {exc!r}"}

        if op == "send":
            message_id = queue.send(request.get("attributes") or {}, request.get("body", ""))
            return {"ok": True, "message_id": message_id}
        if op == "receive":
            wait = min(float(request.get("wait") or 0.0), MAX_REMOTE_WAIT)
            msg = await asyncio.to_thread(
                queue.receive, wait, request.get("visibility_timeout")
            )
            return {"ok": True, "message": asdict(msg) if msg is not None else None}
        if op == "delete":
            queue.delete(str(request.get("receipt_handle", "")))
            return {"ok": True}
        if op == "purge":
            queue.purge()
            return {"ok": True}
        if op == "count":
            return {"ok": True, "count": queue.approximate_count()}
        return {"ok": False, "error": f"unknown op {op!r}"}

    # ------------------------------------------------------------------
    # Lifecycle

    def close(self) -> None:
        if self._server is None:
            return
        # Wake up receives blocked in worker threads before stopping the loop.
        self.broker.close()

        async def _close() -> None:
            self._server.close()
            await self._server.wait_closed()

        self._submit(_close()).result()
        self._server = None
        self._stop_loop()
        logger.info("Queue broker stopped")


class RemoteQueue(_LoopThread, MessageChannel):
    """Client side of one named queue on a :class:`QueueBrokerServer`."""

    def __init__(self, url: str, name: str, *, request_timeout: float = 30.0) -> None:
        self.url = url
        self.name = name
        self.request_timeout = request_timeout
        self._closed = False
        super().__init__(f"goldnonce-queue-{name}")

    def _request(self, op: str, *, wait: float = 0.0, **fields: Any) -> Dict[str, Any]:
        payload = {"op": op, "queue": self.name, "wait": wait, **fields}

        async def _call() -> str | bytes:
            async with websockets.connect(self.url) as ws:
                await ws.send(json.dumps(payload))
                return await ws.recv()

        fut = self._submit(_call())
        try:
            raw = fut.result(timeout=self.request_timeout + wait)
        except concurrent.futures.TimeoutError as exc:
            fut.cancel()
            raise ChannelError(f"{op} on {self.name} timed out") from exc
        except (OSError, websockets.exceptions.WebSocketException) as exc:
            raise ChannelError(f"{op} on {self.name} failed: {exc}") from exc
        reply = json.loads(raw)
        if not reply.get("ok"):
            raise ChannelError(str(reply.get("error", "broker error")))
        return reply

    # ------------------------------------------------------------------
    # MessageChannel API

    def send(self, attributes: Dict[str, str], body: str = "") -> str:
        reply = self._request(
            "send",
            attributes={str(k): str(v) for k, v in attributes.items()},
            body=body,
        )
        return str(reply["message_id"])

    def receive(
        self,
        wait: float | None = None,
        visibility_timeout: float | None = None,
    ) -> QueueMessage | None:
        end = None if wait is None else time.monotonic() + max(0.0, wait)
        while True:
            remaining = MAX_REMOTE_WAIT if end is None else max(0.0, end - time.monotonic())
            chunk = min(remaining, MAX_REMOTE_WAIT)
            reply = self._request(
                "receive",
                wait=chunk,
                visibility_timeout=visibility_timeout,
            )
            data = reply.get("message")
            if data is not None:
                return QueueMessage(**data)
            if end is not None and time.monotonic() >= end:
                return None

    def delete(self, receipt_handle: str) -> None:
        self._request("delete", receipt_handle=receipt_handle)

    def purge(self) -> None:
        self._request("purge")

    def approximate_count(self) -> int:
        return int(self._request("count")["count"])

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._stop_loop()


__all__ = ["QueueBrokerServer", "RemoteQueue", "MAX_REMOTE_WAIT"]
