"""Broadcast bridge routing inbound webhooks to in-process consumers.

The HTTP layer publishes every decoded delivery into the bridge; each
provider consumer subscribes and filters by its own endpoint path. The
bridge knows nothing about providers or web frameworks.
"""

import asyncio
import threading
from collections import deque
from typing import Any

import structlog

from paybridge.config import settings
from paybridge.errors import BridgeLaggedError, SubscriptionClosedError
from paybridge.webhooks.message import WebhookMessage

logger = structlog.get_logger(__name__)

DEFAULT_BRIDGE_CAPACITY = 100


class WebhookSubscription:
    """Independent cursor into the bridge, starting at subscription time.

    Messages are buffered up to ``capacity``. When the buffer is full the
    oldest unread message is dropped and the next ``recv()`` raises
    ``BridgeLaggedError`` before delivery resumes.
    """

    def __init__(
        self,
        bridge: "WebhookBridge",
        capacity: int,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self._bridge = bridge
        self._capacity = capacity
        self._loop = loop
        self._buffer: deque[WebhookMessage] = deque()
        self._lagged = 0
        self._closed = False
        self._lock = threading.Lock()
        self._wakeup = asyncio.Event()

    @property
    def is_closed(self) -> bool:
        """Check if the subscription has been closed."""
        return self._closed

    @property
    def pending(self) -> int:
        """Number of buffered, unread messages."""
        with self._lock:
            return len(self._buffer)

    def _deliver(self, message: WebhookMessage) -> bool:
        with self._lock:
            if self._closed:
                return False
            if len(self._buffer) >= self._capacity:
                self._buffer.popleft()
                self._lagged += 1
            self._buffer.append(message)
        self._notify()
        return True

    def _notify(self) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._wakeup.set()
        elif not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._wakeup.set)

    async def recv(self) -> WebhookMessage:
        """Wait for the next message.

        Raises:
            BridgeLaggedError: If messages were dropped since the last receive.
            SubscriptionClosedError: If the subscription is closed and drained.
        """
        while True:
            with self._lock:
                if self._lagged:
                    skipped, self._lagged = self._lagged, 0
                    raise BridgeLaggedError(skipped)
                if self._buffer:
                    return self._buffer.popleft()
                if self._closed:
                    raise SubscriptionClosedError()
                self._wakeup.clear()
            await self._wakeup.wait()

    def close(self) -> None:
        """Detach from the bridge. Buffered messages can still be drained."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._bridge._unsubscribe(self)
        self._notify()

    def __aiter__(self) -> "WebhookSubscription":
        return self

    async def __anext__(self) -> WebhookMessage:
        try:
            return await self.recv()
        except SubscriptionClosedError:
            raise StopAsyncIteration from None

    async def __aenter__(self) -> "WebhookSubscription":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


class WebhookBridge:
    """Fan-out channel from the HTTP layer to webhook consumers.

    ``publish`` never blocks and never fails because of subscriber
    behaviour. Each subscriber sees every message published after it
    subscribed, in publish order.

    Example:
        bridge = WebhookBridge()
        async with bridge.subscribe() as subscription:
            message = await subscription.recv()
    """

    def __init__(self, capacity: int = DEFAULT_BRIDGE_CAPACITY) -> None:
        """Initialize the bridge.

        Args:
            capacity: Pending messages buffered per subscriber.
        """
        if capacity < 1:
            raise ValueError("Bridge capacity must be at least 1")
        self.capacity = capacity
        self._subscribers: list[WebhookSubscription] = []
        self._lock = threading.Lock()
        self._logger = logger.bind(component="webhook_bridge")

    @property
    def subscriber_count(self) -> int:
        """Number of attached subscribers."""
        with self._lock:
            return len(self._subscribers)

    def subscribe(self) -> WebhookSubscription:
        """Attach a new subscriber.

        Must be called from within a running event loop; the subscription
        is bound to that loop.
        """
        subscription = WebhookSubscription(self, self.capacity, asyncio.get_running_loop())
        with self._lock:
            self._subscribers.append(subscription)
            count = len(self._subscribers)
        self._logger.debug("bridge_subscribed", subscribers=count)
        return subscription

    def _unsubscribe(self, subscription: WebhookSubscription) -> None:
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)
            count = len(self._subscribers)
        self._logger.debug("bridge_unsubscribed", subscribers=count)

    def publish(self, message: WebhookMessage) -> int:
        """Send a message to every current subscriber.

        Args:
            message: Decoded webhook delivery.

        Returns:
            Number of subscribers the message was queued for. Zero means
            the message was discarded.
        """
        with self._lock:
            subscribers = list(self._subscribers)

        delivered = sum(1 for subscription in subscribers if subscription._deliver(message))

        if delivered == 0:
            self._logger.debug(
                "webhook_discarded_no_subscribers",
                endpoint=message.endpoint,
            )
        else:
            self._logger.debug(
                "webhook_published",
                endpoint=message.endpoint,
                subscribers=delivered,
            )
        return delivered


# Global bridge instance
_bridge: WebhookBridge | None = None
_bridge_lock = threading.Lock()


def get_webhook_bridge() -> WebhookBridge:
    """Get the process-wide webhook bridge.

    Intended for the composition root; components receive the bridge as a
    constructor argument.

    Returns:
        Singleton WebhookBridge.
    """
    global _bridge
    if _bridge is None:
        with _bridge_lock:
            if _bridge is None:
                _bridge = WebhookBridge(capacity=settings.WEBHOOK_BRIDGE_CAPACITY)
    return _bridge


def set_webhook_bridge(bridge: WebhookBridge | None) -> None:
    """Set the process-wide webhook bridge.

    Useful for testing.

    Args:
        bridge: WebhookBridge instance, or None to recreate lazily.
    """
    global _bridge
    _bridge = bridge
