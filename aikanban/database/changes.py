"""In-process change notification for task rows.

Repositories publish a TaskChange after every committed write; subscribers
register per user id and are called synchronously in subscription order.
"""

import logging
from typing import Callable, Dict, List

from aikanban.models.task import TaskChange

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[TaskChange], object]


class Subscription:
    """Handle returned by ChangeFeed.subscribe."""

    def __init__(self, feed: "ChangeFeed", user_id: str, callback: ChangeCallback):
        self._feed = feed
        self.user_id = user_id
        self.callback = callback

    def unsubscribe(self) -> None:
        self._feed._remove(self)


class ChangeFeed:
    """Per-user fan-out of task row changes."""

    def __init__(self):
        self._subscribers: Dict[str, List[Subscription]] = {}

    def subscribe(self, user_id: str, callback: ChangeCallback) -> Subscription:
        subscription = Subscription(self, user_id, callback)
        self._subscribers.setdefault(user_id, []).append(subscription)
        logger.debug(f"Subscribed to task changes for user {user_id}")
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        subscribers = self._subscribers.get(subscription.user_id, [])
        if subscription in subscribers:
            subscribers.remove(subscription)
        if not subscribers:
            self._subscribers.pop(subscription.user_id, None)

    def subscriber_count(self, user_id: str) -> int:
        return len(self._subscribers.get(user_id, []))

    def publish(self, change: TaskChange) -> None:
        """Deliver a change to the owner's subscribers.

        A failing subscriber is logged and does not stop delivery to the others;
        the write that produced the change has already been committed.
        """
        for subscription in list(self._subscribers.get(change.user_id, [])):
            try:
                subscription.callback(change)
            except Exception as e:
                logger.error(f"Change subscriber failed for task {change.task_id}: {type(e).__name__}: {str(e)}")


# Feed shared by the API process
default_feed = ChangeFeed()
