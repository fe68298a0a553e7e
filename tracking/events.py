"""
Event Model for the Fallible Resource library.

Defines event types for tracking acquisitions, rollbacks and releases.
"""

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class EventType(Enum):
    """Types of resource lifecycle events."""
    ACQUIRED = "acquired"
    REJECTED = "rejected"
    ROLLED_BACK = "rolled_back"
    RELEASED = "released"
    MOVED = "moved"


@dataclass
class AcquisitionEvent:
    """
    Represents a single lifecycle event.

    Attributes:
        event_type: Type of event
        identity: Resource identity involved
        kind: Error kind name for REJECTED/ROLLED_BACK events
        message: Human-readable description
    """
    event_type: EventType
    identity: str
    kind: Optional[str] = None
    message: str = ""

    def __str__(self) -> str:
        """Format event for logging."""
        if self.event_type == EventType.ACQUIRED:
            return f"{self.identity} - ACQUIRED ({self.message})"
        elif self.event_type == EventType.REJECTED:
            return f"{self.identity} - REJECTED {self.kind} ({self.message})"
        elif self.event_type == EventType.ROLLED_BACK:
            return f"{self.identity} - ROLLED BACK after {self.kind} ({self.message})"
        elif self.event_type == EventType.RELEASED:
            return f"{self.identity} - RELEASED"
        elif self.event_type == EventType.MOVED:
            return f"{self.identity} - MOVED"
        else:
            return f"{self.identity} - {self.event_type.value}: {self.message}"


@dataclass
class EventLog:
    """Ordered audit trail of acquisitions, rollbacks, moves and releases."""
    events: List[AcquisitionEvent] = field(default_factory=list)

    def add(self, event: AcquisitionEvent) -> None:
        self.events.append(event)

    def get_events_by_type(self, event_type: EventType) -> List[AcquisitionEvent]:
        return [event for event in self.events if event.event_type is event_type]

    def get_events_for(self, identity: str) -> List[AcquisitionEvent]:
        """Events for one resource identity, oldest first."""
        return [event for event in self.events if event.identity == identity]

    def counts(self) -> Dict[str, int]:
        """Count events per type (every type present, zero if unseen)."""
        tally = Counter(event.event_type for event in self.events)
        return {event_type.value: tally[event_type] for event_type in EventType}

    def display(self) -> str:
        """One line per event."""
        return "\n".join(map(str, self.events))


def record_event(
    event_log: Optional[EventLog],
    event_type: EventType,
    identity: str,
    kind: Optional[str] = None,
    message: str = ""
) -> None:
    """Add an event if an event log is attached."""
    if event_log is not None:
        event_log.add(AcquisitionEvent(
            event_type=event_type,
            identity=identity,
            kind=kind,
            message=message
        ))
