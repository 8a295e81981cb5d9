"""
checkbook - Event Log

Append-only record of what happened (TransferSettled, MerchantChanged,
RoleGranted, ...). Events are written inside the store transaction of the
operation that produced them, so a rolled back operation leaves no event.
Subscribers are notified only after the operation committed.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .store import Store

log = logging.getLogger(__name__)

EVENTS_NS = "events"


@dataclass
class Event:
    seq: int
    name: str
    args: Dict = field(default_factory=dict)
    ts: int = field(default_factory=lambda: int(time.time()))

    def to_dict(self) -> dict:
        return {"seq": self.seq, "name": self.name, "args": self.args, "ts": self.ts}

    @classmethod
    def from_dict(cls, data: dict) -> "Event":
        return cls(seq=data["seq"], name=data["name"], args=data.get("args", {}),
                   ts=data.get("ts", 0))


class EventLog:
    def __init__(self, store: Store):
        self.store = store
        self._listeners: List[Callable[[Event], None]] = []

    def subscribe(self, listener: Callable[[Event], None]):
        self._listeners.append(listener)

    def record(self, event_name: str, **args) -> Event:
        with self.store.transaction():
            event = Event(seq=self.store.count(EVENTS_NS) + 1, name=event_name, args=args)
            self.store.set(EVENTS_NS, f"{event.seq:012d}", event.to_dict())
            self.store.on_commit(lambda: self._deliver(event))
        return event

    def _deliver(self, event: Event):
        """Hand a committed event to subscribers."""
        log.info(f"Event {event.name} {event.args}")
        for listener in self._listeners:
            listener(event)

    def list(self, name: Optional[str] = None) -> List[Event]:
        events = [Event.from_dict(v) for _, v in sorted(self.store.items(EVENTS_NS))]
        if name:
            events = [e for e in events if e.name == name]
        return events
