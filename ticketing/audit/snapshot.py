from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping


class InvalidSnapshot(ValueError):
    """Raised when a snapshot or one of its nested records is not structured data."""


@dataclass(frozen=True, slots=True)
class Reference:
    """Pointer to a user or organisation together with its display name."""

    id: str = ""
    name: str = ""


@dataclass(frozen=True, slots=True)
class RequestRef:
    id: str = ""
    title: str = ""


@dataclass(frozen=True, slots=True)
class RelatedRequest:
    """Link from one ticket to another, e.g. ``blocks`` or ``duplicates``."""

    link: str
    request: RequestRef


@dataclass(frozen=True, slots=True)
class SoftwareRef:
    id: str = ""
    name: str = ""


@dataclass(frozen=True, slots=True)
class TicketSoftware:
    software: SoftwareRef
    version: str = ""
    os: str = ""


@dataclass(frozen=True, slots=True)
class TicketSnapshot:
    """Point-in-time view of the audit-relevant fields of a ticket.

    Every field is optional. Absent scalars are ``None`` and absent lists are
    empty tuples; the change builder renders both as the empty string.
    """

    title: str | None = None
    beneficiary: Reference | None = None
    responsible: Reference | None = None
    call_number: str | None = None
    meeting_id: str | None = None
    type: str | None = None
    severity: str | None = None
    description: str | None = None
    participants: tuple[str, ...] = field(default_factory=tuple)
    related_requests: tuple[RelatedRequest, ...] = field(default_factory=tuple)
    software: TicketSoftware | None = None

    @classmethod
    def empty(cls) -> "TicketSnapshot":
        return cls()

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TicketSnapshot":
        """Build a snapshot from a camelCase or snake_case mapping."""

        return cls(
            title=_optional_str(_lookup(data, "title")),
            beneficiary=_reference(_lookup(data, "beneficiary"), "beneficiary"),
            responsible=_reference(_lookup(data, "responsible"), "responsible"),
            call_number=_optional_str(_lookup(data, "callNumber", "call_number")),
            meeting_id=_optional_str(_lookup(data, "meetingId", "meeting_id")),
            type=_optional_str(_lookup(data, "type")),
            severity=_optional_str(_lookup(data, "severity")),
            description=_optional_str(_lookup(data, "description")),
            participants=_participants(_lookup(data, "participants")),
            related_requests=_related_requests(_lookup(data, "relatedRequests", "related_requests")),
            software=_software(_lookup(data, "software")),
        )

    @classmethod
    def from_ticket(cls, ticket: Any) -> "TicketSnapshot":
        """Project a persisted ticket into a snapshot.

        The software display name folds in version and operating system so
        that an upgrade of either is reported as a ``software`` change.
        """

        software = ticket.software
        if software is not None and software.software.name:
            label = " ".join(
                part for part in (software.software.name, software.version, software.os) if part
            )
            software = TicketSoftware(
                software=SoftwareRef(id=software.software.id, name=label),
                version=software.version,
                os=software.os,
            )
        return cls(
            title=ticket.title,
            beneficiary=ticket.beneficiary,
            responsible=ticket.responsible,
            call_number=ticket.call_number,
            meeting_id=ticket.meeting_id,
            type=ticket.type,
            severity=ticket.severity,
            description=ticket.description,
            participants=tuple(ticket.participants),
            related_requests=tuple(ticket.related_requests),
            software=software,
        )


def _lookup(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def _record(value: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise InvalidSnapshot(f"'{field_name}' must be a record, got {type(value).__name__}")
    return value


def _participants(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,) if value else ()
    if isinstance(value, Mapping) or not isinstance(value, Iterable):
        raise InvalidSnapshot(f"'participants' must be a list of ids, got {type(value).__name__}")
    return tuple(str(item) for item in value)


def _reference(value: Any, field_name: str) -> Reference | None:
    if value is None or isinstance(value, Reference):
        return value
    record = _record(value, field_name)
    return Reference(
        id=str(_lookup(record, "id", "_id") or ""),
        name=str(record.get("name") or ""),
    )


def _related_requests(values: Any) -> tuple[RelatedRequest, ...]:
    if values is None:
        return ()
    if isinstance(values, (str, Mapping)) or not isinstance(values, Iterable):
        raise InvalidSnapshot("'relatedRequests' must be a list of records")
    related: list[RelatedRequest] = []
    for value in values:
        if isinstance(value, RelatedRequest):
            related.append(value)
            continue
        record = _record(value, "relatedRequests")
        request = _record(record.get("request") or {}, "relatedRequests.request")
        related.append(
            RelatedRequest(
                link=str(record.get("link") or ""),
                request=RequestRef(
                    id=str(_lookup(request, "id", "_id") or ""),
                    title=str(request.get("title") or ""),
                ),
            )
        )
    return tuple(related)


def _software(value: Any) -> TicketSoftware | None:
    if value is None or isinstance(value, TicketSoftware):
        return value
    record = _record(value, "software")
    if not record:
        return None
    software = _record(record.get("software") or {}, "software.software")
    return TicketSoftware(
        software=SoftwareRef(
            id=str(_lookup(software, "id", "_id") or ""),
            name=str(software.get("name") or ""),
        ),
        version=str(record.get("version") or ""),
        os=str(record.get("os") or ""),
    )
