"""
Engine event notifications.

Events raised inside a transaction are buffered and only published once the
transaction commits; an aborted operation leaves no notifications behind.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class EventType(Enum):
    POOL_ADDED = "pool_added"
    POOL_REMOVED = "pool_removed"
    YIELD_UPDATED = "yield_updated"
    YIELD_READ_FAILED = "yield_read_failed"
    FUNDS_ALLOCATED = "funds_allocated"
    FUNDS_WITHDRAWN = "funds_withdrawn"
    POOL_REBALANCED = "pool_rebalanced"
    REBALANCE_COMPLETED = "rebalance_completed"
    EMERGENCY_UNWIND = "emergency_unwind"
    PAUSED = "paused"
    UNPAUSED = "unpaused"
    LIMITS_UPDATED = "limits_updated"
    POLICY_UPDATED = "policy_updated"
    COOLDOWN_UPDATED = "cooldown_updated"
    ROLE_GRANTED = "role_granted"
    ROLE_REVOKED = "role_revoked"


@dataclass
class Event:
    timestamp: int
    event_type: EventType
    actor: Optional[str] = None
    pool: Optional[str] = None
    amount: Optional[int] = None
    meta: dict = field(default_factory=dict)


Subscriber = Callable[[Event], None]


class EventLog:
    def __init__(self, maxlen: Optional[int] = 10_000) -> None:
        self.events = deque(maxlen=maxlen)
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> None:
        self._subscribers.append(callback)

    def publish(self, events: List[Event]) -> None:
        """
        Record committed events and notify subscribers.

        A failing subscriber is logged and skipped; the operation that
        produced the events has already committed.
        """
        for e in events:
            self.events.append(e)
            for callback in self._subscribers:
                try:
                    callback(e)
                except Exception as exc:
                    logger.error(f"Subscriber {getattr(callback, '__qualname__', callback)} "
                                 f"failed on {e.event_type.value}: {exc}")

    def tail(self, n: int = 200) -> List[Event]:
        if n <= 0:
            return []
        if n >= len(self.events):
            return list(self.events)
        return list(self.events)[-n:]

    def of_type(self, event_type: EventType) -> List[Event]:
        return [e for e in self.events if e.event_type == event_type]

    def __len__(self) -> int:
        return len(self.events)
