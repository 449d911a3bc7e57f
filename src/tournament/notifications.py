"""
Realtime notification events.

The engine only builds event payloads and hands them to a sink (a Socket.IO
relay, a queue, a list in tests). Delivery is fire-and-forget: a failing sink
is logged and never fails the mutation that produced the event.
"""
import datetime
import logging
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

POOLS_UPDATED = 'POOLS_UPDATED'
MATCHES_GENERATED = 'MATCHES_GENERATED'
MATCH_STATUS_UPDATED = 'MATCH_STATUS_UPDATED'
MATCH_FINALIZED = 'MATCH_FINALIZED'
MATCH_UNFINALIZED = 'MATCH_UNFINALIZED'
PLAYOFFS_BRACKET_UPDATED = 'PLAYOFFS_BRACKET_UPDATED'
SCHEDULE_PLAN_UPDATED = 'SCHEDULE_PLAN_UPDATED'

EVENT_TYPES = (
    POOLS_UPDATED,
    MATCHES_GENERATED,
    MATCH_STATUS_UPDATED,
    MATCH_FINALIZED,
    MATCH_UNFINALIZED,
    PLAYOFFS_BRACKET_UPDATED,
    SCHEDULE_PLAN_UPDATED,
)


def build_event(tournament_code: str, event_type: str, data: Optional[Dict] = None,
                now: Optional[datetime.datetime] = None) -> Dict:
    if event_type not in EVENT_TYPES:
        raise ValueError(f'Unknown event type: {event_type}')
    return {
        'tournament_code': tournament_code,
        'type': event_type,
        'data': data or {},
        'ts': (now or datetime.datetime.now(datetime.timezone.utc)).isoformat(),
    }


class Notifier:
    """Builds events and forwards them to ``sink``."""

    def __init__(self, sink: Optional[Callable[[Dict], None]] = None):
        self.sink = sink

    def emit(self, tournament_code: str, event_type: str, data: Optional[Dict] = None) -> bool:
        if not tournament_code or self.sink is None:
            return False
        event = build_event(tournament_code, event_type, data)
        try:
            self.sink(event)
        except Exception:
            logger.warning(f'Failed to deliver {event_type} for tournament {tournament_code}', exc_info=True)
            return False
        return True

    def emit_all(self, tournament_code: str, events: List[tuple]) -> int:
        """Emit ``(event_type, data)`` pairs in order; returns how many were delivered."""
        return sum(1 for event_type, data in events if self.emit(tournament_code, event_type, data))
