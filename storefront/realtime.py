"""
Real-time payment events

In-process publish/subscribe keyed by checkout request id (payment events)
or order id (order updates). A socket adapter calls publish() for each
message it receives; the status poller subscribes while waiting.
"""

import asyncio
import logging
from collections import OrderedDict, defaultdict
from typing import Any, Callable, Optional

from .models.payment import PaymentEvent

logger = logging.getLogger(__name__)

PAYMENT_INITIATED = "payment_initiated"
PAYMENT_SUCCESS = "payment_success"
PAYMENT_FAILED = "payment_failed"
PAYMENT_CANCELLED = "payment_cancelled"
ORDER_UPDATED = "order_updated"


class Subscription:
    """Queue of events for one key; use as an async iterator or call get()"""

    def __init__(self, channel: "PaymentEventChannel", key: str):
        self.channel = channel
        self.key = key
        self._queue: asyncio.Queue[PaymentEvent] = asyncio.Queue()
        self.closed = False

    def _deliver(self, event: PaymentEvent) -> None:
        self._queue.put_nowait(event)

    async def get(self) -> PaymentEvent:
        return await self._queue.get()

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.channel._unsubscribe(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> PaymentEvent:
        if self.closed:
            raise StopAsyncIteration
        return await self.get()

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class PaymentEventChannel:
    """
    Asynchronous payment/order update events.

    The last event per key is retained so a subscriber that attaches after
    the provider already answered still sees the result. Only the most
    recent max_retained keys are kept.
    """

    def __init__(self, max_retained: int = 256):
        self.max_retained = max_retained
        self._subscriptions: dict[str, list[Subscription]] = defaultdict(list)
        self._listeners: dict[str, list[Callable[[PaymentEvent], Any]]] = defaultdict(list)
        self._last: OrderedDict[str, PaymentEvent] = OrderedDict()

    def subscribe(self, key: str, replay: bool = True) -> Subscription:
        """Subscribe to events for a checkout request id or order id"""
        subscription = Subscription(self, key)
        self._subscriptions[key].append(subscription)
        if replay and key in self._last:
            subscription._deliver(self._last[key])
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        subs = self._subscriptions.get(subscription.key, [])
        if subscription in subs:
            subs.remove(subscription)
        if not subs:
            self._subscriptions.pop(subscription.key, None)

    def add_listener(self, key: str, callback: Callable[[PaymentEvent], Any]) -> Callable[[], None]:
        """Register a synchronous callback; returns a function that removes it"""
        self._listeners[key].append(callback)

        def remove() -> None:
            callbacks = self._listeners.get(key, [])
            if callback in callbacks:
                callbacks.remove(callback)
            if not callbacks:
                self._listeners.pop(key, None)

        return remove

    def publish(self, event_type: str, key: str, payload: Optional[dict[str, Any]] = None) -> PaymentEvent:
        """Deliver an event to every subscriber and listener of key"""
        event = PaymentEvent(type=event_type, key=key, payload=dict(payload or {}))
        self._last[key] = event
        self._last.move_to_end(key)
        while len(self._last) > self.max_retained:
            self._last.popitem(last=False)
        subscribers = list(self._subscriptions.get(key, []))
        listeners = list(self._listeners.get(key, []))
        logger.debug(f"Event {event_type} for {key} -> {len(subscribers) + len(listeners)} receivers")

        for subscription in subscribers:
            subscription._deliver(event)
        for callback in listeners:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Listener for {key} failed on {event_type}: {e}", exc_info=True)
        return event

    def last_event(self, key: str) -> Optional[PaymentEvent]:
        return self._last.get(key)

    def subscriber_count(self, key: str) -> int:
        return len(self._subscriptions.get(key, []))

    def listener_count(self, key: str) -> int:
        return len(self._listeners.get(key, []))

    @property
    def retained(self) -> int:
        """Number of keys whose last event is kept for replay"""
        return len(self._last)
