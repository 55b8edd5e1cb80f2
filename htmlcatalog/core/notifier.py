"""Synchronous change notification for committed catalog mutations."""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from .models import Snapshot


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeEvent:
    """Describes one committed mutation and carries the resulting catalog."""
    action: str
    kind: str
    entity_id: Optional[str]
    snapshot: Snapshot


ChangeCallback = Callable[[ChangeEvent], None]


class ChangeNotifier:
    """
    Delivers change events to subscribers in registration order.

    A failing subscriber is logged and skipped; it never prevents delivery to
    the remaining subscribers and never affects the mutation that was
    already committed.
    """

    def __init__(self):
        self._subscribers: List[ChangeCallback] = []

    def subscribe(self, callback: ChangeCallback) -> Callable[[], None]:
        """
        Register a callback.

        Returns:
            A function that removes the registration when called. Calling it
            more than once is harmless.
        """
        self._subscribers.append(callback)

        def unsubscribe():
            try:
                self._subscribers.remove(callback)
            except ValueError:
                pass

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: ChangeEvent) -> int:
        """
        Deliver an event to every current subscriber.

        Returns:
            Number of subscribers that failed
        """
        failures = 0
        # Copy so subscribers may unsubscribe while being notified
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                failures += 1
                logger.exception(
                    f"Change subscriber {getattr(callback, '__name__', callback)!r} failed "
                    f"handling {event.action} {event.kind} {event.entity_id}"
                )
        return failures
