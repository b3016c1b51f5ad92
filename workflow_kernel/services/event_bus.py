"""
EventBus -- in-process publish/subscribe channel for committed events.

Responsibility:
    Fans committed ``EventEnvelope`` objects out to subscribers, in sequence
    order, after the unit of work that produced them has committed.

Architecture position:
    Kernel > Services.  The workflow engine is the only publisher.  The bus
    knows nothing about the database; replay of older events goes through
    ``WorkflowEngine.events_since``.

Invariants enforced:
    - Per-subscriber ordering: a subscriber sees envelopes in enqueue
      order and never sees envelope N+1 before N has been handled.
    - One delivering thread per subscriber: whoever claims a subscription
      drains its queue, including envelopes other threads enqueue
      meanwhile.  A handler is never re-entered for its own subscription.
    - At-least-once: an envelope stays queued for a subscriber until its
      handler returns normally.  A raising handler is logged and retried
      on the next ``publish`` or ``deliver_pending``.
    - Handlers run with no bus lock held, so a handler may read from or
      issue commands to the engine from any thread.

Failure modes:
    - Handler exceptions never reach the publisher.
"""

from __future__ import annotations

import itertools
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Iterable

from workflow_kernel.domain.events import EventEnvelope
from workflow_kernel.logging_config import get_logger

logger = get_logger("services.event_bus")

EventHandler = Callable[[EventEnvelope], None]


@dataclass(eq=False)
class Subscription:
    """A subscriber's handler, its event filter and its delivery queue."""

    id: int
    handler: EventHandler
    event_types: frozenset[str] | None = None
    _queue: deque = field(default_factory=deque, repr=False)
    _delivering: bool = field(default=False, repr=False)
    active: bool = True

    def accepts(self, envelope: EventEnvelope) -> bool:
        return self.event_types is None or envelope.event_type in self.event_types

    @property
    def pending(self) -> int:
        return len(self._queue)


class EventBus:
    """
    Synchronous in-process channel.

    Args:
        retain_in_memory: Number of recently published envelopes kept for
            subscribers that ask for ``replay=True``.  0 keeps none.
    """

    def __init__(self, retain_in_memory: int = 0):
        if retain_in_memory < 0:
            raise ValueError("retain_in_memory must be >= 0")
        self._subscriptions: list[Subscription] = []
        self._history: deque[EventEnvelope] = deque(maxlen=retain_in_memory or None)
        self._retain = retain_in_memory
        self._ids = itertools.count(1)
        # Guards queues, history and claims only; never held across a handler
        self._lock = threading.Lock()

    def subscribe(
        self,
        handler: EventHandler,
        event_types: Iterable[str] | None = None,
        replay: bool = False,
    ) -> Subscription:
        """Register ``handler``.  ``event_types`` limits it to those names."""
        with self._lock:
            subscription = Subscription(
                id=next(self._ids),
                handler=handler,
                event_types=frozenset(event_types) if event_types is not None else None,
            )
            if replay and self._retain:
                subscription._queue.extend(
                    env for env in self._history if subscription.accepts(env)
                )
            self._subscriptions.append(subscription)
        logger.debug(
            "event_subscriber_added",
            extra={"subscription_id": subscription.id, "replayed": subscription.pending},
        )
        self._deliver(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        """Remove ``subscription``; undelivered envelopes are discarded."""
        with self._lock:
            if subscription not in self._subscriptions:
                return False
            self._subscriptions.remove(subscription)
            subscription.active = False
            dropped = subscription.pending
            subscription._queue.clear()
        logger.debug(
            "event_subscriber_removed",
            extra={"subscription_id": subscription.id, "dropped": dropped},
        )
        return True

    def enqueue(self, envelopes: Iterable[EventEnvelope]) -> None:
        """
        Queue ``envelopes`` for every matching subscriber without delivering.

        Callers that must fix the delivery order while holding their own
        lock enqueue under it and call ``deliver_pending`` after releasing it.
        """
        with self._lock:
            for envelope in envelopes:
                if self._retain:
                    self._history.append(envelope)
                for subscription in self._subscriptions:
                    if subscription.accepts(envelope):
                        subscription._queue.append(envelope)

    def publish(self, envelopes: Iterable[EventEnvelope]) -> int:
        """
        Queue ``envelopes`` for every matching subscriber and deliver.

        Returns:
            Number of handler invocations that completed during this call.
        """
        self.enqueue(envelopes)
        return self.deliver_pending()

    def deliver_pending(self) -> int:
        """Deliver everything queued, retrying envelopes a handler failed on."""
        return sum(self._deliver(subscription) for subscription in self.subscriptions)

    @property
    def subscriptions(self) -> tuple[Subscription, ...]:
        with self._lock:
            return tuple(self._subscriptions)

    def _deliver(self, subscription: Subscription) -> int:
        with self._lock:
            if subscription._delivering:
                # Another thread, or an outer frame of this one, is draining it
                return 0
            subscription._delivering = True

        delivered = 0
        while True:
            with self._lock:
                if not (subscription.active and subscription._queue):
                    subscription._delivering = False
                    return delivered
                envelope = subscription._queue[0]

            try:
                subscription.handler(envelope)
            except BaseException as exc:
                with self._lock:
                    subscription._delivering = False
                if not isinstance(exc, Exception):
                    raise
                logger.exception(
                    "event_handler_failed",
                    extra={
                        "subscription_id": subscription.id,
                        "sequence": envelope.sequence,
                        "event_type": envelope.event_type,
                    },
                )
                return delivered

            with self._lock:
                if subscription._queue and subscription._queue[0] is envelope:
                    subscription._queue.popleft()
            delivered += 1
