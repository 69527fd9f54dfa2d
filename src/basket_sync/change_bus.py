"""Change notifications for cache invalidation."""

import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)

ChangeListener = Callable[[], None]


class ChangeBus:
    """Fire-and-forget signal that some entity state changed.

    Notifications carry no payload: subscribers treat every notification as
    "everything may have changed".
    """

    def __init__(self) -> None:
        self._listeners: list[ChangeListener] = []

    def on_change(self, listener: ChangeListener) -> Callable[[], None]:
        """Subscribe to change notifications.

        Returns:
            A callable that removes the subscription
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify_change(self) -> None:
        """Invoke every listener; one failing listener does not stop the rest."""
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Change listener %r failed", listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
