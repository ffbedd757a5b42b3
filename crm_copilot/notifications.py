import asyncio
import logging
from dataclasses import dataclass

from crm_copilot.config import ACTION_NOTIFICATION_SECONDS
from crm_copilot.events import EventHub, Topic


@dataclass(frozen=True)
class ActionNotice:
    label: str
    icon: str


class ActionIndicator:
    """
    Short-lived "the agent is doing X" notice.

    ``show()`` publishes ``ACTION_STARTED`` and, when called from a running
    event loop, schedules ``ACTION_CLEARED`` after ``expiry`` seconds. A newer
    notice replaces the older one; only the latest notice's timer clears it.
    """

    def __init__(self, hub: EventHub, expiry: float = ACTION_NOTIFICATION_SECONDS, logger=None):
        self.hub = hub
        self.expiry = expiry
        self.logger = logger or logging.getLogger("ActionIndicator")
        self.current: ActionNotice | None = None
        self._timer: asyncio.TimerHandle | None = None

    def show(self, label: str, icon: str) -> ActionNotice:
        notice = ActionNotice(label=label, icon=icon)
        self.current = notice
        self.logger.debug(f"Action: {label}")
        self.hub.publish(Topic.ACTION_STARTED, notice)
        self.hub.publish(Topic.COMPANIES_UPDATED)

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return notice
        self._timer = loop.call_later(self.expiry, self._expire, notice)
        return notice

    def _expire(self, notice: ActionNotice) -> None:
        if self.current is notice:
            self.current = None
            self._timer = None
            self.hub.publish(Topic.ACTION_CLEARED, notice)
