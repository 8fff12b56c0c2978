from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Sequence
from uuid import UUID

from ticketing.audit import AuditTrail, Reference, RelatedRequest, TicketSoftware


class TicketStatus(str, Enum):
    """States a ticket may be moved to through an event."""

    NEW = "new"
    IN_PROGRESS = "in_progress"
    AWAITING_INFORMATION = "awaiting_information"
    AWAITING_VALIDATION = "awaiting_validation"
    RESOLVED = "resolved"
    CLOSED = "closed"


class AuthorType(str, Enum):
    EXPERT = "expert"
    BENEFICIARY = "beneficiary"


@dataclass(frozen=True, slots=True)
class EventAuthor:
    id: str
    name: str
    type: AuthorType


@dataclass(frozen=True, slots=True)
class TicketEvent:
    """Append-only history entry of a ticket.

    An event carries an audit trail of field changes, a status change, an
    assignment, a comment, or a combination of them.
    """

    id: UUID
    author: EventAuthor
    created_at: datetime
    changes: AuditTrail = ()
    status: TicketStatus | None = None
    target: EventAuthor | None = None
    comment: str | None = None
    is_private: bool = False


@dataclass(slots=True)
class TicketFields:
    """Mutable, user-editable content of a ticket. Only the title is required."""

    title: str
    description: str | None = None
    type: str | None = None
    beneficiary: Reference | None = None
    responsible: Reference | None = None
    call_number: str | None = None
    meeting_id: str | None = None
    severity: str | None = None
    participants: Sequence[str] = field(default_factory=list)
    related_requests: Sequence[RelatedRequest] = field(default_factory=list)
    software: TicketSoftware | None = None


@dataclass(slots=True)
class Ticket:
    """Aggregate representing a support ticket and its event log."""

    id: UUID
    title: str
    status: TicketStatus
    author: EventAuthor
    version: int
    created_at: datetime
    updated_at: datetime
    description: str | None = None
    type: str | None = None
    beneficiary: Reference | None = None
    responsible: Reference | None = None
    assigned_to: EventAuthor | None = None
    call_number: str | None = None
    meeting_id: str | None = None
    severity: str | None = None
    participants: Sequence[str] = field(default_factory=list)
    related_requests: Sequence[RelatedRequest] = field(default_factory=list)
    software: TicketSoftware | None = None
    events: Sequence[TicketEvent] = field(default_factory=list)

    def without_private_events(self) -> "Ticket":
        return replace(self, events=[event for event in self.events if not event.is_private])
