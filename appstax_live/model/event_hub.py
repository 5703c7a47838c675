"""Event hub — fan-out of model events to registered listeners."""

import logging
from typing import Callable, Dict, List

from appstax_live.models.events import ModelEvent

logger = logging.getLogger(__name__)


class EventHub:
    """Dispatches events by type. Listener failures are logged and skipped."""

    def __init__(self):
        self._handlers: Dict[str, List[Callable[[ModelEvent], None]]] = {}

    def on(self, event_type: str, handler: Callable[[ModelEvent], None]) -> None:
        """Subscribe to events of ``event_type``."""
        self._handlers.setdefault(event_type, []).append(handler)

    def off(self, event_type: str, handler: Callable[[ModelEvent], None]) -> None:
        """Unsubscribe a handler."""
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def listener_count(self, event_type: str) -> int:
        return len(self._handlers.get(event_type, []))

    def dispatch(self, event: ModelEvent) -> None:
        for handler in list(self._handlers.get(event.type, [])):
            try:
                handler(event)
            except Exception as e:
                logger.warning(f"Error in {event.type} listener: {e}")
