from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol
from urllib.parse import urljoin

from .models import Ticket, TicketEvent

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class Audience(str, Enum):
    """Who should hear about a notification."""

    ALL_ATTENDEES = "all_attendees"
    EXPERT_ATTENDEES = "expert_attendees"


@dataclass(frozen=True, slots=True)
class TicketNotification:
    type: NotificationType
    audience: Audience
    ticket: Ticket
    event: TicketEvent | None = None


class NotificationDispatcher(Protocol):
    async def dispatch(self, notification: TicketNotification) -> None:
        ...


def render_subject(notification: TicketNotification) -> str:
    ticket = notification.ticket
    prefix = f"#{ticket.id} {ticket.title}: issue #{ticket.id}"
    event = notification.event

    if notification.type is NotificationType.CREATED:
        return f"{prefix} has been created"
    if notification.type is NotificationType.DELETED:
        return f"{prefix} has been deleted"
    if event is not None and event.status is not None:
        return f"{prefix} has been changed to {event.status.value}"
    if event is not None and event.target is not None:
        assignee = ticket.assigned_to or event.target
        return f"{prefix} has been assigned to {assignee.name}"
    if event is not None and event.comment:
        return f"{prefix} has been commented by {event.author.name}"
    if event is not None and event.changes:
        fields = ", ".join(change.field for change in event.changes)
        return f"{prefix} has been updated ({fields})"
    return f"{prefix} has been updated"


def recipients(notification: TicketNotification) -> list[str]:
    """Return the ids of the users a notification is addressed to."""

    ticket = notification.ticket
    if notification.audience is Audience.EXPERT_ATTENDEES:
        return [ticket.responsible.id] if ticket.responsible and ticket.responsible.id else []

    candidates = [ticket.author.id]
    if ticket.responsible is not None:
        candidates.append(ticket.responsible.id)
    candidates.extend(ticket.participants)

    ordered: list[str] = []
    for candidate in candidates:
        if candidate and candidate not in ordered:
            ordered.append(candidate)
    return ordered


class LoggingNotificationDispatcher:
    """Dispatcher that records what would be sent instead of delivering it."""

    def __init__(self, *, frontend_url: str) -> None:
        self._frontend_url = frontend_url

    def ticket_url(self, ticket: Ticket) -> str:
        return urljoin(self._frontend_url, f"requests/{ticket.id}")

    async def dispatch(self, notification: TicketNotification) -> None:
        logger.info(
            "Ticket notification '%s' to %s: %s (%s)",
            notification.type.value,
            ", ".join(recipients(notification)) or "nobody",
            render_subject(notification),
            self.ticket_url(notification.ticket),
        )
