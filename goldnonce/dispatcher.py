"""Publish search tasks onto the input queue."""

from __future__ import annotations

import logging
from typing import Iterable, List

from .errors import ChannelError, DispatchError
from .messages import encode_task
from .network.channel import MessageChannel
from .results import SearchTask

logger = logging.getLogger(__name__)


def dispatch(tasks: Iterable[SearchTask], channel: MessageChannel) -> List[str]:
    """Send one message per task and return the message ids.

    The first failed publish aborts the remaining tasks and raises
    :class:`DispatchError`; tasks sent before it stay on the queue.
    """
    message_ids: List[str] = []
    for task in tasks:
        attributes, body = encode_task(task)
        try:
            message_id = channel.send(attributes, body)
        except (ChannelError, OSError) as exc:
            raise DispatchError(
                f"Couldn't send task {task.task_id} [{task.lower_bound}, {task.upper_bound}): {exc}",
                published=len(message_ids),
            ) from exc
        logger.debug("Dispatched %s as %s", body or task.task_id, message_id)
        message_ids.append(message_id)
    logger.info("Dispatched %d tasks", len(message_ids))
    return message_ids


__all__ = ["dispatch"]
