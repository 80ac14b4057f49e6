"""
Event dispatch for chain events.

Chain logs (Reward, Bond, Unbond, Rebond, WithdrawStake) are pushed in
block/log-index order. Delivery is synchronous, so a single feeder thread
gives single-writer processing per delegator.
"""
from typing import Dict, List, Callable, Any, Union
import logging
from ...protocol.types.common import EventType

logger = logging.getLogger(__name__)


class EventBus:
    """
    Simple event bus for chain events.

    A failing listener is logged and does not stop delivery to the others.
    Listeners subscribed with isolate=False have their first error re-raised
    to the emitter once every listener has run.
    """

    def __init__(self):
        self.listeners: Dict[str, List[Callable]] = {}
        self.raising: Dict[str, List[Callable]] = {}

    @staticmethod
    def _key(event_type: Union[EventType, str]) -> str:
        return event_type.value if isinstance(event_type, EventType) else event_type

    def subscribe(self, event_type: Union[EventType, str], callback: Callable,
                  isolate: bool = True) -> None:
        """
        Subscribe to an event type.

        Args:
            event_type: Event name (e.g., EventType.REWARD)
            callback: Called with the event payload as keyword arguments
            isolate: When False, errors from the callback propagate out of emit()
        """
        key = self._key(event_type)
        self.listeners.setdefault(key, []).append(callback)
        if not isolate:
            self.raising.setdefault(key, []).append(callback)
        logger.debug(f"Subscribed to event: {key}")

    def unsubscribe(self, event_type: Union[EventType, str], callback: Callable) -> None:
        key = self._key(event_type)
        if key in self.listeners:
            try:
                self.listeners[key].remove(callback)
                if callback in self.raising.get(key, []):
                    self.raising[key].remove(callback)
                logger.debug(f"Unsubscribed from event: {key}")
            except ValueError:
                logger.warning(f"Callback not found for event: {key}")

    def emit(self, event_type: Union[EventType, str], **data: Any) -> int:
        """
        Emit an event to all subscribers.

        Returns:
            Number of listeners that completed without raising

        Raises:
            The first error from a listener subscribed with isolate=False
        """
        key = self._key(event_type)
        listeners = self.listeners.get(key, [])

        if not listeners:
            logger.debug(f"No listeners for event: {key}")
            return 0

        logger.debug(f"Emitting event: {key} to {len(listeners)} listener(s)")

        delivered = 0
        error = None
        for callback in list(listeners):
            try:
                callback(**data)
                delivered += 1
            except Exception as e:
                logger.error(f"Error in event callback for {key}: {e}", exc_info=True)
                if error is None and callback in self.raising.get(key, []):
                    error = e
        if error is not None:
            raise error
        return delivered

    def clear(self, event_type: Union[EventType, str, None] = None) -> None:
        """Clear listeners for one event type, or all listeners if none given."""
        if event_type:
            self.listeners.pop(self._key(event_type), None)
            self.raising.pop(self._key(event_type), None)
        else:
            self.listeners.clear()
            self.raising.clear()
