"""Synchronous in-process bus carrying trip lifecycle events to their handlers."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable

from pydantic import BaseModel

logger = logging.getLogger(__name__)

Handler = Callable[[BaseModel], None]


class EventBus:
    """Routes each published event to the handlers subscribed to its exact class.

    Dispatch follows registration order. A handler that raises stops dispatch
    and the error reaches the publisher.
    """

    def __init__(self) -> None:
        self._handlers: dict[type[BaseModel], list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: type[BaseModel], handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def publish(self, event: BaseModel) -> int:
        """Deliver ``event`` and return how many handlers received it."""
        handlers = self._handlers.get(type(event), [])
        logger.debug("Dispatching %s to %d handler(s)", type(event).__name__, len(handlers))
        for handler in handlers:
            handler(event)
        return len(handlers)
