import logging
from collections import defaultdict
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any


logger = logging.getLogger("salesdesk.events")


@dataclass
class InternalEvent:
    name: str
    payload: dict[str, Any]


EventHandler = Callable[[InternalEvent], None]


class InProcessEventBus:
    """Synchronous fan-out to handlers registered in this process.

    A failing handler is logged and skipped; the publisher and the remaining
    handlers are unaffected.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_names: str | Iterable[str], handler: EventHandler) -> None:
        names = [event_names] if isinstance(event_names, str) else list(event_names)
        for name in names:
            if handler not in self._subscribers[name]:
                self._subscribers[name].append(handler)

    def handlers(self, event_name: str) -> tuple[EventHandler, ...]:
        return tuple(self._subscribers.get(event_name, ()))

    def publish(self, event_name: str, payload: dict[str, Any]) -> int:
        event = InternalEvent(name=event_name, payload=payload)
        delivered = 0
        for handler in self.handlers(event_name):
            try:
                handler(event)
            except Exception as exc:
                logger.exception(
                    "event.handler_failed",
                    extra={"event_name": event_name, "error": str(exc)[:500]},
                )
                continue
            delivered += 1
        return delivered


event_bus = InProcessEventBus()
