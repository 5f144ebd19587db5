"""
HEIRLOOM Event Infrastructure

Notifications emitted by the ledger for external observers and audit.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                          EVENT INFRASTRUCTURE                            │
    │                                                                          │
    │  Domain Events            Event Bus              Event Store             │
    │  ├─ EstateCreated         ├─ Typed subscribe     ├─ Append-only          │
    │  ├─ HeirAdded/Removed     ├─ Filters             ├─ Streams per estate   │
    │  ├─ EstateFinalized       └─ Priorities          └─ Replay               │
    │  ├─ AllocationClaimed                                                    │
    │  ├─ FundsDeposited                                                       │
    │  └─ ConfidentialTransfer / OperatorSet                                   │
    │                                                                          │
    └─────────────────────────────────────────────────────────────────────────┘

Events are buffered by the runtime while an atomic unit executes and are only
appended and published once the unit commits. A reverted unit emits nothing.

Events carry ids, addresses and ciphertext handles. They never carry a
plaintext amount.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Set,
    Type,
)

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════════════
# EVENT BASE
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class Event:
    """
    Base class for all events in the system.

    Events are immutable facts representing something that happened.
    Each event has a unique ID, timestamp, and optional metadata.
    """

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    event_timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    correlation_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def event_type(self) -> str:
        """Get the event type name."""
        return self.__class__.__name__

    @property
    def stream_id(self) -> str:
        """Stream the event is appended to."""
        return "system"

    def to_dict(self) -> Dict[str, Any]:
        """Serialize event to dictionary."""
        data = asdict(self)
        data["event_type"] = self.event_type
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        """Deserialize event from dictionary."""
        data = data.copy()
        data.pop("event_type", None)
        return cls(**data)

    def to_json(self) -> str:
        """Serialize event to JSON for display/transport."""
        return json.dumps(self.to_dict(), default=str, sort_keys=True)

    def digest(self) -> str:
        """Deterministic digest of the event content."""
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"), default=str)
        return hashlib.sha256(canonical.encode()).hexdigest()


# ════════════════════════════════════════════════════════════════════════════
# DOMAIN EVENTS
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class EstateEvent(Event):
    """Base for events scoped to a single estate."""
    estate_id: int = 0

    @property
    def stream_id(self) -> str:
        return f"estate-{self.estate_id}"


@dataclass
class EstateCreated(EstateEvent):
    """Emitted when an executor creates an estate."""
    executor: str = ""
    name: str = ""


@dataclass
class HeirAdded(EstateEvent):
    """Emitted when an heir and their encrypted allocation are registered."""
    heir: str = ""


@dataclass
class HeirRemoved(EstateEvent):
    """Emitted when an heir is removed before finalization."""
    heir: str = ""


@dataclass
class EstateFinalized(EstateEvent):
    """Emitted once, when the allocation set is locked."""
    executor: str = ""


@dataclass
class AllocationClaimed(EstateEvent):
    """Emitted when an heir claims their allocation."""
    heir: str = ""


@dataclass
class FundsDeposited(EstateEvent):
    """Emitted when a routed deposit credits an estate's balance."""
    depositor: str = ""


@dataclass
class TokenEvent(Event):
    """Base for token ledger events."""
    token: str = ""

    @property
    def stream_id(self) -> str:
        return f"token-{self.token}"


@dataclass
class ConfidentialTransfer(TokenEvent):
    """Emitted for every balance movement (mints use the zero address as source)."""
    from_address: str = ""
    to_address: str = ""
    amount_handle: str = ""


@dataclass
class OperatorSet(TokenEvent):
    """Emitted when a holder sets or overwrites an operator approval."""
    holder: str = ""
    operator: str = ""
    until: int = 0


# ════════════════════════════════════════════════════════════════════════════
# EVENT HANDLERS
# ════════════════════════════════════════════════════════════════════════════


EventHandler = Callable[[Event], None]


@dataclass
class EventHandlerRegistration:
    """Registration for an event handler."""
    handler: EventHandler
    event_types: Set[Type[Event]]
    priority: int = 0
    filter_func: Optional[Callable[[Event], bool]] = None


class EventHandlerError(Exception):
    """Error during event handling."""
    def __init__(self, event: Event, handler: EventHandler, cause: Exception):
        self.event = event
        self.handler = handler
        self.cause = cause
        super().__init__(f"Handler {handler.__name__} failed for {event.event_type}: {cause}")


# ════════════════════════════════════════════════════════════════════════════
# EVENT BUS
# ════════════════════════════════════════════════════════════════════════════


class EventBus:
    """
    In-memory event bus for pub/sub communication.

    Handlers run synchronously in priority order after a unit commits. A
    failing handler never affects the ledger: the error is counted and handed
    to `on_error`.

    Example:
        bus = EventBus()

        @bus.subscribe(EstateCreated, EstateFinalized)
        def on_estate(event):
            print(event.estate_id)
    """

    def __init__(self, on_error: Optional[Callable[[EventHandlerError], None]] = None):
        self._handlers: List[EventHandlerRegistration] = []
        self._lock = threading.RLock()
        self._on_error = on_error
        self._published_count = 0
        self._handled_count = 0
        self._error_count = 0

    def subscribe(
        self,
        *event_types: Type[Event],
        priority: int = 0,
        filter_func: Optional[Callable[[Event], bool]] = None,
    ) -> Callable[[EventHandler], EventHandler]:
        """
        Decorator to subscribe a handler to event types.

        Args:
            event_types: Event types to subscribe to (none = all events)
            priority: Handler priority (higher = earlier)
            filter_func: Optional filter function
        """
        def decorator(handler: EventHandler) -> EventHandler:
            registration = EventHandlerRegistration(
                handler=handler,
                event_types=set(event_types) if event_types else {Event},
                priority=priority,
                filter_func=filter_func,
            )
            with self._lock:
                self._handlers.append(registration)
                self._handlers.sort(key=lambda r: -r.priority)
            return handler
        return decorator

    def unsubscribe(self, handler: EventHandler) -> bool:
        """Unsubscribe a handler."""
        with self._lock:
            original_len = len(self._handlers)
            self._handlers = [r for r in self._handlers if r.handler != handler]
            return len(self._handlers) < original_len

    def publish(self, event: Event) -> None:
        """Publish an event to all matching subscribers."""
        with self._lock:
            self._published_count += 1
            handlers_to_call = [
                registration for registration in self._handlers
                if any(isinstance(event, t) for t in registration.event_types)
                and (registration.filter_func is None or registration.filter_func(event))
            ]

        for registration in handlers_to_call:
            self._call_handler(registration.handler, event)

    def _call_handler(self, handler: EventHandler, event: Event) -> None:
        try:
            handler(event)
            with self._lock:
                self._handled_count += 1
        except Exception as e:
            with self._lock:
                self._error_count += 1
            error = EventHandlerError(event, handler, e)
            logger.warning("event handler failed: %s", error)
            if self._on_error:
                self._on_error(error)

    @property
    def metrics(self) -> Dict[str, int]:
        """Get event bus metrics."""
        with self._lock:
            return {
                "published_count": self._published_count,
                "handled_count": self._handled_count,
                "error_count": self._error_count,
                "handler_count": len(self._handlers),
            }


# ════════════════════════════════════════════════════════════════════════════
# EVENT STORE
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class EventRecord:
    """A persisted event record."""
    sequence_number: int
    event: Event
    stream_id: str
    version: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence_number": self.sequence_number,
            "event": self.event.to_dict(),
            "stream_id": self.stream_id,
            "version": self.version,
        }


class EventStore:
    """
    Append-only event log organized into streams.

    Example:
        store.append([EstateCreated(estate_id=0, executor=...)])
        store.read_stream("estate-0")
    """

    def __init__(self):
        self._events: List[EventRecord] = []
        self._streams: Dict[str, List[EventRecord]] = {}
        self._lock = threading.RLock()

    def append(self, events: List[Event]) -> List[EventRecord]:
        """Append events, each to its own stream. Returns the records."""
        with self._lock:
            records = []
            for event in events:
                stream = self._streams.setdefault(event.stream_id, [])
                record = EventRecord(
                    sequence_number=len(self._events) + 1,
                    event=event,
                    stream_id=event.stream_id,
                    version=len(stream) + 1,
                )
                self._events.append(record)
                stream.append(record)
                records.append(record)
            return records

    def read_stream(self, stream_id: str, from_version: int = 0) -> List[Event]:
        """Read events from a stream."""
        with self._lock:
            return [r.event for r in self._streams.get(stream_id, [])[from_version:]]

    def read_all(self, from_position: int = 0) -> List[EventRecord]:
        """Read records from all streams in commit order."""
        with self._lock:
            return list(self._events[from_position:])

    def events_of_type(self, event_type: Type[Event]) -> List[Event]:
        with self._lock:
            return [r.event for r in self._events if isinstance(r.event, event_type)]

    def get_stream_ids(self) -> List[str]:
        with self._lock:
            return list(self._streams.keys())

    @property
    def total_events(self) -> int:
        with self._lock:
            return len(self._events)


__all__ = [
    "Event",
    "EstateEvent",
    "EstateCreated",
    "HeirAdded",
    "HeirRemoved",
    "EstateFinalized",
    "AllocationClaimed",
    "FundsDeposited",
    "TokenEvent",
    "ConfidentialTransfer",
    "OperatorSet",
    "EventHandler",
    "EventHandlerRegistration",
    "EventHandlerError",
    "EventBus",
    "EventRecord",
    "EventStore",
]
