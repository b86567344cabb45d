"""Encoding of tasks and results as queue message attributes.

Task messages carry ``Message``, ``LowerBound``, ``UpperBound`` and
``Target``; result messages carry ``Success`` and, on success, ``Nonce`` and
``Hash``.  Both may carry ``TaskId``.  Every value is a string.
"""

from __future__ import annotations

import re
from typing import Dict, Tuple

from .errors import DecodeError
from .network.message import QueueMessage
from .results import HASH_HEX_LENGTH, Found, NotFound, SearchTask, WorkerResult

TASK_ATTRIBUTES = ("Message", "LowerBound", "UpperBound", "Target")

_HEX = re.compile(r"^[0-9a-f]+$")
_TRUE = {"true", "1"}
_FALSE = {"false", "0"}


def _require(attributes: Dict[str, str], key: str) -> str:
    try:
        return attributes[key]
    except KeyError:
        raise DecodeError(f"Message didn't contain key {key}") from None


def _parse_int(attributes: Dict[str, str], key: str, *, limit: int | None = None) -> int:
    raw = _require(attributes, key)
    try:
        value = int(raw, 10)
    except (TypeError, ValueError):
        raise DecodeError(f"{key} is not a decimal integer: {raw!r}") from None
    if value < 0 or (limit is not None and value >= limit):
        raise DecodeError(f"{key} out of range: {value}")
    return value


def _task_id(attributes: Dict[str, str]) -> int | None:
    if "TaskId" not in attributes:
        return None
    return _parse_int(attributes, "TaskId")


def encode_task(task: SearchTask) -> Tuple[Dict[str, str], str]:
    """Return ``(attributes, body)`` for ``task``."""
    attributes = {
        "Message": task.payload.decode("utf-8"),
        "LowerBound": str(task.lower_bound),
        "UpperBound": str(task.upper_bound),
        "Target": str(task.target),
    }
    if task.task_id is not None:
        attributes["TaskId"] = str(task.task_id)
    return attributes, task.debug_label


def decode_task(message: QueueMessage) -> SearchTask:
    """Rebuild a :class:`SearchTask`, raising :class:`DecodeError` if malformed."""
    attrs = message.attributes
    missing = [key for key in TASK_ATTRIBUTES if key not in attrs]
    if missing:
        raise DecodeError(f"Message didn't contain key {', '.join(missing)}")
    payload = attrs["Message"]
    lower = _parse_int(attrs, "LowerBound", limit=2**32)
    upper = _parse_int(attrs, "UpperBound", limit=2**32)
    target = _parse_int(attrs, "Target")
    try:
        return SearchTask(
            payload=payload,
            lower_bound=lower,
            upper_bound=upper,
            target=target,
            debug_label=message.body,
            task_id=_task_id(attrs),
        )
    except ValueError as exc:
        raise DecodeError(str(exc)) from exc


def encode_result(result: WorkerResult, task_id: int | None = None) -> Tuple[Dict[str, str], str]:
    """Return ``(attributes, body)`` for a worker result."""
    if isinstance(result, Found):
        attributes = {
            "Success": "true",
            "Nonce": str(result.nonce),
            "Hash": result.hash_hex,
        }
        body = f"Nonce is {result.nonce} for hash: {result.hash_hex}"
    else:
        attributes = {"Success": "false"}
        body = result.reason
    if task_id is not None:
        attributes["TaskId"] = str(task_id)
    return attributes, body


def decode_result(message: QueueMessage) -> Tuple[WorkerResult, int | None]:
    """Return ``(result, task_id)`` from a result message."""
    attrs = message.attributes
    flag = _require(attrs, "Success").strip().lower()
    if flag in _TRUE:
        nonce = _parse_int(attrs, "Nonce", limit=2**32)
        digest = _require(attrs, "Hash")
        if len(digest) != HASH_HEX_LENGTH or not _HEX.match(digest):
            raise DecodeError(f"Hash is not {HASH_HEX_LENGTH} lowercase hex chars: {digest!r}")
        result: WorkerResult = Found(nonce, digest)
    elif flag in _FALSE:
        result = NotFound(message.body or "no nonce found")
    else:
        raise DecodeError(f"Success is not a boolean: {flag!r}")
    return result, _task_id(attrs)


__all__ = [
    "TASK_ATTRIBUTES",
    "encode_task",
    "decode_task",
    "encode_result",
    "decode_result",
]
