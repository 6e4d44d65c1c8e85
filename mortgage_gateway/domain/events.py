"""In-process publication of loan lifecycle events"""

import logging
from collections import defaultdict
from typing import Callable, DefaultDict, List

from mortgage_gateway.domain.models import EVENT_NAMES, LoanEvent

EventHandler = Callable[[LoanEvent], None]

WILDCARD = "*"


class EventPublisher:
    """Dispatches lifecycle events to subscribed handlers"""

    def __init__(self) -> None:
        self._handlers: DefaultDict[str, List[EventHandler]] = defaultdict(list)

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        """Register a handler for one event name, or for all events with "*" """
        if event_name != WILDCARD and event_name not in EVENT_NAMES:
            raise ValueError(f"Unknown loan event: {event_name}")
        self._handlers[event_name].append(handler)

    def publish(self, event: LoanEvent) -> None:
        """
        Deliver an event to its handlers.

        Events are published after the loan change is committed, so a failing
        handler is logged and does not undo or fail the operation.
        """
        for handler in self._handlers[event.name] + self._handlers[WILDCARD]:
            try:
                handler(event)
            except Exception:
                logging.exception(
                    "Loan event handler failed",
                    extra={"loan_id": event.loan_id, "event": event.name},
                )
