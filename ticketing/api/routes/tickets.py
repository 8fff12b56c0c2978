from __future__ import annotations

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ticketing.audit import (
    ChangeAction,
    InvalidSnapshot,
    Reference,
    RelatedRequest,
    RequestRef,
    SoftwareRef,
    TicketSoftware,
)
from ticketing.dependencies.tickets import AdminUser, EditorUser, ViewerUser, get_ticket_service
from ticketing.tickets.models import AuthorType, EventAuthor, Ticket, TicketEvent, TicketFields, TicketStatus
from ticketing.tickets.service import TicketNotFoundError, TicketService, TicketVersionConflictError

router = APIRouter(prefix="/tickets", tags=["tickets"])


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ReferenceModel(CamelModel):
    id: str = ""
    name: str


class RequestRefModel(CamelModel):
    id: str
    title: str = ""


class RelatedRequestModel(CamelModel):
    link: str = Field(..., min_length=1)
    request: RequestRefModel


class SoftwareRefModel(CamelModel):
    id: str = ""
    name: str


class SoftwareModel(CamelModel):
    software: SoftwareRefModel
    version: str = ""
    os: str = ""


class TicketPayload(CamelModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    type: str | None = None
    beneficiary: ReferenceModel | None = None
    responsible: ReferenceModel | None = None
    call_number: str | None = None
    meeting_id: str | None = None
    severity: str | None = None
    participants: list[str] = Field(default_factory=list)
    related_requests: list[RelatedRequestModel] = Field(default_factory=list)
    software: SoftwareModel | None = None

    def to_fields(self) -> TicketFields:
        return TicketFields(
            title=self.title,
            description=self.description,
            type=self.type,
            beneficiary=_to_reference(self.beneficiary),
            responsible=_to_reference(self.responsible),
            call_number=self.call_number,
            meeting_id=self.meeting_id,
            severity=self.severity,
            participants=list(self.participants),
            related_requests=[
                RelatedRequest(link=item.link, request=RequestRef(id=item.request.id, title=item.request.title))
                for item in self.related_requests
            ],
            software=(
                TicketSoftware(
                    software=SoftwareRef(id=self.software.software.id, name=self.software.software.name),
                    version=self.software.version,
                    os=self.software.os,
                )
                if self.software is not None
                else None
            ),
        )


class TicketUpdateRequest(TicketPayload):
    version: int | None = Field(default=None, ge=1)


class EventTargetModel(CamelModel):
    id: str = Field(..., min_length=1)
    name: str = ""
    type: AuthorType

    def to_author(self) -> EventAuthor:
        return EventAuthor(id=self.id, name=self.name, type=self.type)


class TicketEventRequest(CamelModel):
    status: TicketStatus | None = None
    target: EventTargetModel | None = None
    comment: str | None = Field(default=None, min_length=1)
    is_private: bool = False

    def ensure_payload(self) -> None:
        if self.status is None and self.target is None and self.comment is None:
            raise HTTPException(status_code=400, detail="An event needs a status, a target or a comment")


class EventAuthorResponse(CamelModel):
    id: str
    name: str
    type: AuthorType


class FieldChangeResponse(CamelModel):
    field: str
    old_value: str
    new_value: str
    action: ChangeAction


class TicketEventResponse(CamelModel):
    id: UUID
    author: EventAuthorResponse
    created_at: datetime
    changes: list[FieldChangeResponse]
    status: TicketStatus | None
    target: EventAuthorResponse | None
    comment: str | None
    is_private: bool


class TicketResponse(CamelModel):
    id: UUID
    title: str
    description: str | None
    type: str | None
    status: TicketStatus
    author: EventAuthorResponse
    version: int
    created_at: datetime
    updated_at: datetime
    beneficiary: ReferenceModel | None
    responsible: ReferenceModel | None
    assigned_to: EventAuthorResponse | None
    call_number: str | None
    meeting_id: str | None
    severity: str | None
    participants: list[str]
    related_requests: list[RelatedRequestModel]
    software: SoftwareModel | None
    events: list[TicketEventResponse]


class AuditEntryResponse(CamelModel):
    event_id: UUID
    author: EventAuthorResponse
    created_at: datetime
    field: str
    old_value: str
    new_value: str
    action: ChangeAction


TicketServiceDep = Annotated[TicketService, Depends(get_ticket_service)]


def _to_reference(model: ReferenceModel | None) -> Reference | None:
    if model is None:
        return None
    return Reference(id=model.id, name=model.name)


def _to_response(ticket: Ticket) -> TicketResponse:
    return TicketResponse.model_validate(ticket)


def _to_audit_entries(event: TicketEvent) -> list[AuditEntryResponse]:
    author = EventAuthorResponse.model_validate(event.author)
    return [
        AuditEntryResponse(
            event_id=event.id,
            author=author,
            created_at=event.created_at,
            field=change.field,
            old_value=change.old_value,
            new_value=change.new_value,
            action=change.action,
        )
        for change in event.changes
    ]


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(payload: TicketPayload, service: TicketServiceDep, user: EditorUser) -> TicketResponse:
    ticket = await service.create_ticket(payload.to_fields(), author=user.as_author())
    return _to_response(ticket)


@router.get("", response_model=list[TicketResponse])
async def list_tickets(
    service: TicketServiceDep,
    user: ViewerUser,
    offset: int | None = Query(default=None, ge=0),
    limit: int | None = Query(default=None, ge=1, le=500),
) -> list[TicketResponse]:
    tickets = await service.list_tickets(offset=offset, limit=limit, include_private=user.is_expert)
    return [_to_response(ticket) for ticket in tickets]


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket(ticket_id: UUID, service: TicketServiceDep, user: ViewerUser) -> TicketResponse:
    try:
        ticket = await service.get_ticket(ticket_id, include_private=user.is_expert)
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _to_response(ticket)


@router.post("/{ticket_id}", response_model=TicketResponse)
async def update_ticket(
    ticket_id: UUID,
    payload: TicketUpdateRequest,
    service: TicketServiceDep,
    user: EditorUser,
) -> TicketResponse:
    try:
        ticket = await service.update_ticket(
            ticket_id,
            payload.to_fields(),
            author=user.as_author(),
            expected_version=payload.version,
        )
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except TicketVersionConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except InvalidSnapshot as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return _to_response(ticket)


@router.put("/{ticket_id}/events", response_model=TicketResponse)
async def add_ticket_event(
    ticket_id: UUID,
    payload: TicketEventRequest,
    service: TicketServiceDep,
    user: EditorUser,
) -> TicketResponse:
    payload.ensure_payload()
    if payload.is_private and not user.is_expert:
        raise HTTPException(status_code=403, detail="Only experts can add private events")
    try:
        ticket = await service.add_event(
            ticket_id,
            author=user.as_author(),
            status=payload.status,
            target=payload.target.to_author() if payload.target is not None else None,
            comment=payload.comment,
            is_private=payload.is_private,
        )
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _to_response(ticket)


@router.get("/{ticket_id}/changes", response_model=list[AuditEntryResponse])
async def get_ticket_changes(ticket_id: UUID, service: TicketServiceDep, _: ViewerUser) -> list[AuditEntryResponse]:
    try:
        events = await service.get_audit_trail(ticket_id)
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return [entry for event in events for entry in _to_audit_entries(event)]


@router.delete("/{ticket_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_ticket(ticket_id: UUID, service: TicketServiceDep, _: AdminUser) -> None:
    try:
        await service.delete_ticket(ticket_id)
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
