"""
Process-wide publish/subscribe hub.

Components register handlers when they start and call
``Subscription.unsubscribe()`` when they are torn down. Handlers run
synchronously in publish order on the caller's thread.
"""

import logging
from collections import defaultdict
from enum import Enum
from typing import Any, Callable

Handler = Callable[[Any], None]


class Topic(str, Enum):
    COMPANIES_UPDATED = "companies-updated"
    BADGE_COUNT_CHANGED = "badge-count-changed"
    ACTION_STARTED = "action-started"
    ACTION_CLEARED = "action-cleared"
    SESSION_STATE_CHANGED = "session-state-changed"
    LOCATION_CHANGED = "location-changed"


class Subscription:
    def __init__(self, hub: "EventHub", topic: Topic, handler: Handler):
        self.hub = hub
        self.topic = topic
        self.handler = handler
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.hub._remove(self)
            self.active = False


class EventHub:
    def __init__(self, logger=None):
        self.logger = logger or logging.getLogger("EventHub")
        self._subscriptions: dict[Topic, list[Subscription]] = defaultdict(list)

    def subscribe(self, topic: Topic, handler: Handler) -> Subscription:
        subscription = Subscription(self, topic, handler)
        self._subscriptions[topic].append(subscription)
        return subscription

    def publish(self, topic: Topic, payload: Any = None) -> None:
        for subscription in list(self._subscriptions.get(topic, [])):
            try:
                subscription.handler(payload)
            except Exception:
                self.logger.exception(f"Handler for '{topic.value}' failed")

    def subscriber_count(self, topic: Topic) -> int:
        return len(self._subscriptions.get(topic, []))

    def _remove(self, subscription: Subscription) -> None:
        handlers = self._subscriptions.get(subscription.topic, [])
        if subscription in handlers:
            handlers.remove(subscription)


_default_hub: EventHub | None = None


def get_event_hub() -> EventHub:
    global _default_hub
    if _default_hub is None:
        _default_hub = EventHub()
    return _default_hub
