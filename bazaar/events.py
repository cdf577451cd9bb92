"""
Publish/subscribe for listing lifecycle events.

Each application builds its own ``EventBus``; nothing here is global.
Handler failures are logged and never reach the publisher.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .utils import utc_now

logger = logging.getLogger(__name__)

LISTING_CREATED = "listing.created"
LISTING_SOLD = "listing.sold"
LISTING_DELETED = "listing.deleted"
LISTING_UPDATED = "listing.updated"
USER_ROLE_CHANGED = "user.role_changed"

ALL_EVENTS = "*"


@dataclass
class Event:
    name: str
    subject_id: str
    actor_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utc_now)


Handler = Callable[[Event], None]


class EventBus:
    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = {}

    def subscribe(self, name: str, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for ``name`` (or ``"*"``). Returns an unsubscribe callable."""
        self._handlers.setdefault(name, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(name, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(self, event: Event) -> int:
        """Deliver ``event`` to its subscribers; returns how many handled it cleanly."""
        delivered = 0
        for handler in list(self._handlers.get(event.name, [])) + list(self._handlers.get(ALL_EVENTS, [])):
            try:
                handler(event)
                delivered += 1
            except Exception:
                logger.error(f"Event handler failed for {event.name} ({event.subject_id})", exc_info=True)
        return delivered


def log_event(event: Event) -> None:
    """Audit-log subscriber wired up by the application."""
    logger.info(f"{event.name} subject={event.subject_id} actor={event.actor_id or '-'}")
