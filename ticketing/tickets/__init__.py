"""Ticket domain models, persistence and services."""

from .models import AuthorType, EventAuthor, Ticket, TicketEvent, TicketFields, TicketStatus
from .notifications import Audience, LoggingNotificationDispatcher, NotificationType, TicketNotification
from .repository import TicketRepository
from .service import TicketNotFoundError, TicketService, TicketServiceError, TicketVersionConflictError

__all__ = [
    "Audience",
    "AuthorType",
    "EventAuthor",
    "LoggingNotificationDispatcher",
    "NotificationType",
    "Ticket",
    "TicketEvent",
    "TicketFields",
    "TicketNotFoundError",
    "TicketNotification",
    "TicketRepository",
    "TicketService",
    "TicketServiceError",
    "TicketStatus",
    "TicketVersionConflictError",
]
