import logging
from typing import Callable, Dict, Awaitable, Any, List

from inkwell.orchestrator.events import Event

logger = logging.getLogger(__name__)

EventHandler = Callable[..., Awaitable[Any]]

class EventRouter:
    """
    Delivers coordinator events to the host (editor, CLI).

    Several handlers may listen to the same event; they run in registration
    order. A failing handler is logged and the remaining ones still run.
    """

    def __init__(self):
        self._handlers: Dict[Event, List[EventHandler]] = {}

    def register(self, event: Event, handler: EventHandler):
        self._handlers.setdefault(event, []).append(handler)

    def unregister(self, event: Event, handler: EventHandler):
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    async def dispatch(self, event: Event, *args, **kwargs):
        handlers = list(self._handlers.get(event, ()))
        if not handlers:
            logger.debug(f"No handler for event {event.name}")
            return

        logger.debug(f"Dispatching event {event.name}", extra={"event": event.name})
        for handler in handlers:
            try:
                await handler(*args, **kwargs)
            except Exception as e:
                logger.error(f"Error handling event {event.name}: {e}", exc_info=True)
