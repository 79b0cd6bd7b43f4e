"""
Event bus for billing domain events.

Synchronous in-process pub/sub. Handlers execute immediately in the same
thread as the publisher. Handler errors are logged but never propagate;
the primary operation (store write + audit) has already committed.
"""

import logging
from typing import Callable

from billing.events import LedgerEvent

logger = logging.getLogger(__name__)


class EventBus:
    """
    In-process event bus for billing domain events.

    Subscribe by event class. A subscription to a base class such as
    InvoiceEvent receives every subclass too. Handlers are called in
    subscription order, most specific event class first.
    """

    def __init__(self):
        self._subscribers: dict[type[LedgerEvent], list[Callable]] = {}

    def subscribe(self, event_type: type[LedgerEvent], callback: Callable) -> None:
        """
        Subscribe to events of a type and its subclasses.

        Args:
            event_type: Event class to subscribe to (e.g. InvoicePaid)
            callback: Function to call when a matching event is published
        """
        self._subscribers.setdefault(event_type, []).append(callback)

    def publish(self, event: LedgerEvent) -> None:
        """
        Publish an event to all matching subscribers.

        Args:
            event: LedgerEvent instance to publish
        """
        for event_type in type(event).__mro__:
            for callback in self._subscribers.get(event_type, ()):
                try:
                    callback(event)
                except Exception:
                    logger.exception(
                        "Handler %s failed for %s (event_id=%s)",
                        getattr(callback, "__name__", repr(callback)),
                        type(event).__name__,
                        event.event_id,
                    )
