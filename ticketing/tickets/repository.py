from __future__ import annotations

import json
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence
from uuid import UUID

import asyncpg

from ticketing.audit import FieldChange, TicketSnapshot

from .models import AuthorType, EventAuthor, Ticket, TicketEvent, TicketFields, TicketStatus

_TICKET_COLUMNS = (
    "id, title, description, type, status, severity, call_number, meeting_id, "
    "beneficiary, responsible, assigned_to, participants, related_requests, software, author, "
    "version, created_at, updated_at"
)

_EVENT_COLUMNS = "id, ticket_id, author, status, target, comment, is_private, changes, created_at"


class TicketRepository:
    """Persistence of tickets and their append-only event log.

    Every write to ``tickets`` increments ``version``; field updates are only
    applied when the stored version still matches the one the caller read.
    """

    _CREATE_TICKETS_SQL = """
    CREATE TABLE IF NOT EXISTS tickets (
        id UUID PRIMARY KEY,
        title TEXT NOT NULL,
        description TEXT NULL,
        type TEXT NULL,
        status TEXT NOT NULL,
        severity TEXT NULL,
        call_number TEXT NULL,
        meeting_id TEXT NULL,
        beneficiary JSONB NULL,
        responsible JSONB NULL,
        assigned_to JSONB NULL,
        participants JSONB NOT NULL DEFAULT '[]'::jsonb,
        related_requests JSONB NOT NULL DEFAULT '[]'::jsonb,
        software JSONB NULL,
        author JSONB NOT NULL,
        version INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMPTZ NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL
    )
    """

    # seq breaks ties between events written within the same clock tick
    _CREATE_EVENTS_SQL = """
    CREATE TABLE IF NOT EXISTS ticket_events (
        id UUID PRIMARY KEY,
        seq BIGSERIAL NOT NULL,
        ticket_id UUID NOT NULL REFERENCES tickets(id) ON DELETE CASCADE,
        author JSONB NOT NULL,
        status TEXT NULL,
        target JSONB NULL,
        comment TEXT NULL,
        is_private BOOLEAN NOT NULL DEFAULT FALSE,
        changes JSONB NOT NULL DEFAULT '[]'::jsonb,
        created_at TIMESTAMPTZ NOT NULL
    )
    """

    _INSERT_TICKET_SQL = f"""
    INSERT INTO tickets (
        id, title, description, type, status, severity, call_number, meeting_id,
        beneficiary, responsible, participants, related_requests, software, author, version,
        created_at, updated_at
    )
    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9::jsonb, $10::jsonb, $11::jsonb, $12::jsonb,
            $13::jsonb, $14::jsonb, 1, $15, $15)
    RETURNING {_TICKET_COLUMNS}
    """

    _UPDATE_FIELDS_SQL = f"""
    UPDATE tickets
    SET title = $3,
        description = $4,
        type = $5,
        severity = $6,
        call_number = $7,
        meeting_id = $8,
        beneficiary = $9::jsonb,
        responsible = $10::jsonb,
        participants = $11::jsonb,
        related_requests = $12::jsonb,
        software = $13::jsonb,
        version = version + 1,
        updated_at = $14
    WHERE id = $1 AND version = $2
    RETURNING {_TICKET_COLUMNS}
    """

    _UPDATE_FROM_EVENT_SQL = f"""
    UPDATE tickets
    SET status = COALESCE($2, status),
        assigned_to = COALESCE($3::jsonb, assigned_to),
        responsible = COALESCE($4::jsonb, responsible),
        version = version + 1,
        updated_at = $5
    WHERE id = $1
    RETURNING {_TICKET_COLUMNS}
    """

    _SELECT_TICKET_SQL = f"""
    SELECT {_TICKET_COLUMNS}
    FROM tickets
    WHERE id = $1
    """

    _LIST_TICKETS_SQL = f"""
    SELECT {_TICKET_COLUMNS}
    FROM tickets
    ORDER BY created_at DESC
    OFFSET $1
    LIMIT $2
    """

    _COUNT_TICKETS_SQL = """
    SELECT COUNT(*) FROM tickets
    """

    _INSERT_EVENT_SQL = """
    INSERT INTO ticket_events (
        id, ticket_id, author, status, target, comment, is_private, changes, created_at
    )
    VALUES ($1, $2, $3::jsonb, $4, $5::jsonb, $6, $7, $8::jsonb, $9)
    """

    _SELECT_EVENTS_SQL = f"""
    SELECT {_EVENT_COLUMNS}
    FROM ticket_events
    WHERE ticket_id = ANY($1::uuid[])
    ORDER BY created_at ASC, seq ASC
    """

    _DELETE_TICKET_SQL = """
    DELETE FROM tickets WHERE id = $1 RETURNING id
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def ensure_schema(self) -> None:
        async with self._pool.acquire() as connection:
            await connection.execute(self._CREATE_TICKETS_SQL)
            await connection.execute(self._CREATE_EVENTS_SQL)

    async def create_ticket(
        self,
        *,
        ticket_id: UUID,
        fields: TicketFields,
        status: TicketStatus,
        author: EventAuthor,
        created_at: datetime,
    ) -> Ticket:
        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(
                self._INSERT_TICKET_SQL,
                ticket_id,
                fields.title,
                fields.description,
                fields.type,
                status.value,
                *self._field_params(fields),
                _dump(_author_to_dict(author)),
                created_at,
            )
        if row is None:
            raise RuntimeError("Failed to insert ticket")
        return self._row_to_ticket(row, [])

    async def get_ticket(self, ticket_id: UUID) -> Ticket | None:
        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(self._SELECT_TICKET_SQL, ticket_id)
            if row is None:
                return None
            event_rows = await connection.fetch(self._SELECT_EVENTS_SQL, [ticket_id])
        return self._row_to_ticket(row, [self._row_to_event(event) for event in event_rows])

    async def list_tickets(self, *, offset: int, limit: int) -> list[Ticket]:
        async with self._pool.acquire() as connection:
            rows = await connection.fetch(self._LIST_TICKETS_SQL, offset, limit)
            if not rows:
                return []
            ids = [_to_uuid(row["id"]) for row in rows]
            event_rows = await connection.fetch(self._SELECT_EVENTS_SQL, ids)

        events: dict[UUID, list[TicketEvent]] = {ticket_id: [] for ticket_id in ids}
        for event_row in event_rows:
            events[_to_uuid(event_row["ticket_id"])].append(self._row_to_event(event_row))
        return [self._row_to_ticket(row, events[_to_uuid(row["id"])]) for row in rows]

    async def count_tickets(self) -> int:
        async with self._pool.acquire() as connection:
            value = await connection.fetchval(self._COUNT_TICKETS_SQL)
        return int(value or 0)

    async def update_ticket(
        self,
        *,
        ticket_id: UUID,
        expected_version: int,
        fields: TicketFields,
        event: TicketEvent | None,
        updated_at: datetime,
    ) -> Ticket | None:
        """Write ``fields`` if the stored version is still ``expected_version``.

        Returns ``None`` when no row matched, either because the ticket is gone
        or because another writer bumped the version first.
        """

        async with self._pool.acquire() as connection:
            async with connection.transaction():
                row = await connection.fetchrow(
                    self._UPDATE_FIELDS_SQL,
                    ticket_id,
                    expected_version,
                    fields.title,
                    fields.description,
                    fields.type,
                    *self._field_params(fields),
                    updated_at,
                )
                if row is None:
                    return None
                if event is not None:
                    await self._insert_event(connection, ticket_id, event)
                event_rows = await connection.fetch(self._SELECT_EVENTS_SQL, [ticket_id])
        return self._row_to_ticket(row, [self._row_to_event(item) for item in event_rows])

    async def append_event(self, ticket_id: UUID, event: TicketEvent) -> Ticket | None:
        """Store ``event`` and apply the status or assignment it carries.

        An expert target also becomes the ticket's responsible.
        """

        target = event.target
        responsible = None
        if target is not None and target.type is AuthorType.EXPERT:
            responsible = _dump({"id": target.id, "name": target.name})
        async with self._pool.acquire() as connection:
            async with connection.transaction():
                row = await connection.fetchrow(
                    self._UPDATE_FROM_EVENT_SQL,
                    ticket_id,
                    event.status.value if event.status is not None else None,
                    _dump(_author_to_dict(target)) if target is not None else None,
                    responsible,
                    event.created_at,
                )
                if row is None:
                    return None
                await self._insert_event(connection, ticket_id, event)
                event_rows = await connection.fetch(self._SELECT_EVENTS_SQL, [ticket_id])
        return self._row_to_ticket(row, [self._row_to_event(item) for item in event_rows])

    async def delete_ticket(self, ticket_id: UUID) -> bool:
        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(self._DELETE_TICKET_SQL, ticket_id)
        return row is not None

    async def _insert_event(self, connection: Any, ticket_id: UUID, event: TicketEvent) -> None:
        await connection.execute(
            self._INSERT_EVENT_SQL,
            event.id,
            ticket_id,
            _dump(_author_to_dict(event.author)),
            event.status.value if event.status is not None else None,
            _dump(_author_to_dict(event.target)) if event.target is not None else None,
            event.comment,
            event.is_private,
            _dump([change.to_dict() for change in event.changes]),
            event.created_at,
        )

    @staticmethod
    def _field_params(fields: TicketFields) -> tuple[Any, ...]:
        return (
            fields.severity,
            fields.call_number,
            fields.meeting_id,
            _dump(asdict(fields.beneficiary)) if fields.beneficiary is not None else None,
            _dump(asdict(fields.responsible)) if fields.responsible is not None else None,
            _dump(list(fields.participants)),
            _dump([asdict(related) for related in fields.related_requests]),
            _dump(asdict(fields.software)) if fields.software is not None else None,
        )

    @staticmethod
    def _row_to_ticket(row: Mapping[str, Any], events: Sequence[TicketEvent]) -> Ticket:
        structured = TicketSnapshot.from_mapping(
            {
                "beneficiary": _load(row["beneficiary"]),
                "responsible": _load(row["responsible"]),
                "participants": _load(row["participants"]) or [],
                "related_requests": _load(row["related_requests"]) or [],
                "software": _load(row["software"]),
            }
        )
        return Ticket(
            id=_to_uuid(row["id"]),
            title=str(row["title"]),
            description=row["description"],
            type=row["type"],
            status=TicketStatus(str(row["status"])),
            severity=row["severity"],
            call_number=row["call_number"],
            meeting_id=row["meeting_id"],
            beneficiary=structured.beneficiary,
            responsible=structured.responsible,
            assigned_to=_optional_author(_load(row["assigned_to"])),
            participants=list(structured.participants),
            related_requests=list(structured.related_requests),
            software=structured.software,
            author=_author_from_dict(_load(row["author"])),
            version=int(row["version"]),
            created_at=_ensure_datetime(row["created_at"]),
            updated_at=_ensure_datetime(row["updated_at"]),
            events=list(events),
        )

    @staticmethod
    def _row_to_event(row: Mapping[str, Any]) -> TicketEvent:
        status = row["status"]
        return TicketEvent(
            id=_to_uuid(row["id"]),
            author=_author_from_dict(_load(row["author"])),
            created_at=_ensure_datetime(row["created_at"]),
            changes=tuple(FieldChange.from_dict(item) for item in _load(row["changes"]) or []),
            status=TicketStatus(str(status)) if status else None,
            target=_optional_author(_load(row["target"])),
            comment=row["comment"],
            is_private=bool(row["is_private"]),
        )


def _author_to_dict(author: EventAuthor) -> dict[str, str]:
    return {"id": author.id, "name": author.name, "type": author.type.value}


def _author_from_dict(data: Mapping[str, Any]) -> EventAuthor:
    return EventAuthor(id=str(data["id"]), name=str(data.get("name") or ""), type=AuthorType(str(data["type"])))


def _optional_author(data: Mapping[str, Any] | None) -> EventAuthor | None:
    if not data:
        return None
    return _author_from_dict(data)


def _dump(value: Any) -> str:
    return json.dumps(value)


def _load(value: Any) -> Any:
    if isinstance(value, str):
        return json.loads(value)
    return value


def _ensure_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    return datetime.fromisoformat(str(value))


def _to_uuid(value: Any) -> UUID:
    if isinstance(value, UUID):
        return value
    return UUID(str(value))
