from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID, uuid4

from opentelemetry import trace

from ticketing.audit import TicketSnapshot, build_changes

from .models import EventAuthor, Ticket, TicketEvent, TicketFields, TicketStatus
from .notifications import Audience, NotificationDispatcher, NotificationType, TicketNotification
from .repository import TicketRepository

logger = logging.getLogger(__name__)
_tracer = trace.get_tracer(__name__)


class TicketServiceError(RuntimeError):
    """Base error for ticket service issues."""


class TicketNotFoundError(TicketServiceError):
    """Raised when a ticket could not be located."""


class TicketVersionConflictError(TicketServiceError):
    """Raised when a ticket was modified by someone else during an update."""


@dataclass(slots=True)
class TicketService:
    """High level orchestration for ticket lifecycle operations."""

    repository: TicketRepository
    notifier: NotificationDispatcher
    max_update_retries: int = 3
    default_offset: int = 0
    default_limit: int = 50

    async def ensure_schema(self) -> None:
        await self.repository.ensure_schema()

    async def create_ticket(self, fields: TicketFields, *, author: EventAuthor) -> Ticket:
        ticket = await self.repository.create_ticket(
            ticket_id=uuid4(),
            fields=fields,
            status=TicketStatus.NEW,
            author=author,
            created_at=datetime.now(timezone.utc),
        )
        logger.info("Ticket %s created by %s", ticket.id, author.id)
        await self._notify(NotificationType.CREATED, Audience.ALL_ATTENDEES, ticket)
        return ticket

    async def get_ticket(self, ticket_id: UUID, *, include_private: bool = False) -> Ticket:
        ticket = await self.repository.get_ticket(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        return ticket if include_private else ticket.without_private_events()

    async def list_tickets(
        self,
        *,
        offset: int | None = None,
        limit: int | None = None,
        include_private: bool = False,
    ) -> list[Ticket]:
        tickets = await self.repository.list_tickets(
            offset=self.default_offset if offset is None else offset,
            limit=self.default_limit if limit is None else limit,
        )
        if include_private:
            return tickets
        return [ticket.without_private_events() for ticket in tickets]

    async def count_tickets(self) -> int:
        return await self.repository.count_tickets()

    async def update_ticket(
        self,
        ticket_id: UUID,
        fields: TicketFields,
        *,
        author: EventAuthor,
        expected_version: int | None = None,
    ) -> Ticket:
        """Replace the editable fields of a ticket and record what changed.

        The diff is always computed against the version being overwritten. When
        ``expected_version`` is given a concurrent write is rejected, otherwise
        the update is retried against the latest version.
        """

        with _tracer.start_as_current_span("ticket.update") as span:
            span.set_attribute("ticket.id", str(ticket_id))
            attempt = 0
            while True:
                current = await self.repository.get_ticket(ticket_id)
                if current is None:
                    raise TicketNotFoundError(f"Ticket {ticket_id} not found")
                if expected_version is not None and current.version != expected_version:
                    raise TicketVersionConflictError(
                        f"Ticket {ticket_id} is at version {current.version}, expected {expected_version}"
                    )

                changes = build_changes(TicketSnapshot.from_ticket(current), TicketSnapshot.from_ticket(fields))
                now = datetime.now(timezone.utc)
                event = (
                    TicketEvent(id=uuid4(), author=author, created_at=now, changes=changes) if changes else None
                )
                updated = await self.repository.update_ticket(
                    ticket_id=ticket_id,
                    expected_version=current.version,
                    fields=fields,
                    event=event,
                    updated_at=now,
                )
                if updated is not None:
                    break

                if expected_version is not None or attempt >= self.max_update_retries:
                    raise TicketVersionConflictError(f"Ticket {ticket_id} was modified concurrently")
                attempt += 1
                logger.info("Ticket %s changed during update, retrying (attempt %d)", ticket_id, attempt)

            span.set_attribute("ticket.changes", len(changes))

        if event is not None:
            logger.info(
                "Ticket %s updated by %s: %s",
                ticket_id,
                author.id,
                ", ".join(change.field for change in changes),
            )
            await self._notify(NotificationType.UPDATED, Audience.ALL_ATTENDEES, updated, event)
        else:
            logger.debug("Ticket %s saved without field changes", ticket_id)
        return updated

    async def add_event(
        self,
        ticket_id: UUID,
        *,
        author: EventAuthor,
        status: TicketStatus | None = None,
        target: EventAuthor | None = None,
        comment: str | None = None,
        is_private: bool = False,
    ) -> Ticket:
        """Append an event; a status or target is applied to the ticket itself."""

        event = TicketEvent(
            id=uuid4(),
            author=author,
            created_at=datetime.now(timezone.utc),
            status=status,
            target=target,
            comment=comment,
            is_private=is_private,
        )
        updated = await self.repository.append_event(ticket_id, event)
        if updated is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        if target is not None:
            logger.info("Ticket %s assigned to %s by %s", ticket_id, target.id, author.id)

        audience = Audience.EXPERT_ATTENDEES if is_private else Audience.ALL_ATTENDEES
        await self._notify(NotificationType.UPDATED, audience, updated, event)
        return updated

    async def get_audit_trail(self, ticket_id: UUID) -> list[TicketEvent]:
        """Return the events of a ticket that carry field changes, oldest first."""

        ticket = await self.get_ticket(ticket_id, include_private=True)
        return [event for event in ticket.events if event.changes]

    async def delete_ticket(self, ticket_id: UUID) -> None:
        ticket = await self.repository.get_ticket(ticket_id)
        if ticket is None or not await self.repository.delete_ticket(ticket_id):
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        logger.info("Ticket %s deleted", ticket_id)
        await self._notify(NotificationType.DELETED, Audience.EXPERT_ATTENDEES, ticket)

    async def _notify(
        self,
        notification_type: NotificationType,
        audience: Audience,
        ticket: Ticket,
        event: TicketEvent | None = None,
    ) -> None:
        notification = TicketNotification(type=notification_type, audience=audience, ticket=ticket, event=event)
        try:
            await self.notifier.dispatch(notification)
        except Exception:
            logger.exception("Unable to send '%s' notification for ticket %s", notification_type.value, ticket.id)
