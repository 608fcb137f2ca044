"""Match state change events

The state machine queues a MatchStatusChanged on the session for every
transition. Subscribers (notification fan-out, realtime push, audit logging)
only ever see transitions that were committed.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional
import logging

logger = logging.getLogger(__name__)

_PENDING_KEY = "pending_match_events"


@dataclass(frozen=True)
class MatchStatusChanged:
    match_id: str
    from_status: Optional[str]
    to_status: str
    actor_id: Optional[str] = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Subscriber = Callable[[MatchStatusChanged], None]

_subscribers: List[Subscriber] = []


def subscribe(callback: Subscriber) -> None:
    if callback not in _subscribers:
        _subscribers.append(callback)


def unsubscribe(callback: Subscriber) -> None:
    if callback in _subscribers:
        _subscribers.remove(callback)


def queue_event(session, event: MatchStatusChanged) -> None:
    """Attach an event to a (sync or async) session, published after commit"""
    sync_session = getattr(session, "sync_session", session)
    sync_session.info.setdefault(_PENDING_KEY, []).append(event)


def dispatch_pending_events(session) -> None:
    events = session.info.pop(_PENDING_KEY, [])
    for event in events:
        for callback in list(_subscribers):
            try:
                callback(event)
            except Exception:
                # The transaction is already committed, a broken observer must not surface as a failure
                logger.exception(f"Match event subscriber failed for match {event.match_id}")


def discard_pending_events(session) -> None:
    session.info.pop(_PENDING_KEY, None)


def log_status_change(event: MatchStatusChanged) -> None:
    logger.info(
        f"Match {event.match_id}: {event.from_status or '-'} -> {event.to_status}"
        f" (actor={event.actor_id or 'system'})"
    )
