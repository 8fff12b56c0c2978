from datetime import datetime, timezone
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from ticketing.api.routes import tickets as ticket_routes
from ticketing.audit import ChangeAction, FieldChange, Reference
from ticketing.dependencies import tickets as ticket_deps
from ticketing.dependencies.auth import Role, User
from ticketing.main import create_app
from ticketing.tickets.models import AuthorType, EventAuthor, Ticket, TicketEvent, TicketStatus
from ticketing.tickets.service import TicketNotFoundError, TicketVersionConflictError

EDITOR = User("editor", (Role.EDITOR, Role.VIEWER), name="Customer Editor")
EXPERT = User("expert", (Role.EXPERT, Role.EDITOR, Role.VIEWER), name="Support Expert")


def _make_ticket(*, events=()) -> Ticket:
    now = datetime.now(timezone.utc)
    return Ticket(
        id=uuid4(),
        title="Printer",
        description="Out of toner",
        type="Anomaly",
        status=TicketStatus.NEW,
        author=EventAuthor(id="editor", name="Customer Editor", type=AuthorType.BENEFICIARY),
        version=1,
        created_at=now,
        updated_at=now,
        responsible=Reference(id="u-1", name="Alice"),
        participants=["u-2"],
        events=list(events),
    )


def _change_event() -> TicketEvent:
    return TicketEvent(
        id=uuid4(),
        author=EventAuthor(id="expert", name="Support Expert", type=AuthorType.EXPERT),
        created_at=datetime.now(timezone.utc),
        changes=(
            FieldChange(field="severity", old_value="low", new_value="high", action=ChangeAction.CHANGED),
            FieldChange(field="description", old_value="", new_value="new info", action=ChangeAction.ADDED),
        ),
    )


@pytest.fixture
def ticket_client():
    app = create_app()
    service = AsyncMock()
    current_user = {"user": EDITOR}

    async def override_service():
        return service

    app.dependency_overrides[ticket_routes.get_ticket_service] = override_service
    app.dependency_overrides[ticket_deps.require_editor] = lambda: current_user["user"]
    app.dependency_overrides[ticket_deps.require_viewer] = lambda: current_user["user"]
    app.dependency_overrides[ticket_deps.require_admin] = lambda: current_user["user"]

    client = TestClient(app)
    try:
        yield client, service, current_user
    finally:
        app.dependency_overrides.clear()


def _payload(**overrides) -> dict:
    body = {"title": "Printer", "description": "Out of toner", "type": "Anomaly"}
    body.update(overrides)
    return body


def test_create_ticket_endpoint_returns_created(ticket_client):
    client, service, _ = ticket_client
    ticket = _make_ticket()
    service.create_ticket = AsyncMock(return_value=ticket)

    response = client.post(
        "/tickets",
        json=_payload(callNumber="0601", relatedRequests=[{"link": "blocks", "request": {"id": "42", "title": "X"}}]),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["id"] == str(ticket.id)
    assert body["responsible"] == {"id": "u-1", "name": "Alice"}
    fields = service.create_ticket.await_args.args[0]
    assert fields.call_number == "0601"
    assert fields.related_requests[0].request.id == "42"
    assert service.create_ticket.await_args.kwargs["author"].type is AuthorType.BENEFICIARY


def test_create_ticket_rejects_missing_title(ticket_client):
    client, service, _ = ticket_client

    response = client.post("/tickets", json={"description": "x", "type": "Anomaly"})

    assert response.status_code == 422



def test_create_ticket_without_description_or_type(ticket_client):
    client, service, _ = ticket_client
    ticket = _make_ticket()
    ticket.description = None
    ticket.type = None
    service.create_ticket = AsyncMock(return_value=ticket)

    response = client.post("/tickets", json={"title": "A", "severity": "low"})

    assert response.status_code == 201
    fields = service.create_ticket.await_args.args[0]
    assert fields.description is None
    assert fields.type is None
    assert fields.severity == "low"
    assert response.json()["description"] is None

def test_list_tickets_shows_private_events_to_experts(ticket_client):
    client, service, current_user = ticket_client
    current_user["user"] = EXPERT
    service.list_tickets = AsyncMock(return_value=[_make_ticket()])

    response = client.get("/tickets", params={"offset": 5, "limit": 10})

    assert response.status_code == 200
    assert len(response.json()) == 1
    service.list_tickets.assert_awaited_with(offset=5, limit=10, include_private=True)


def test_get_ticket_returns_not_found(ticket_client):
    client, service, _ = ticket_client
    service.get_ticket = AsyncMock(side_effect=TicketNotFoundError("missing"))

    response = client.get(f"/tickets/{uuid4()}")

    assert response.status_code == 404


def test_update_ticket_passes_expected_version(ticket_client):
    client, service, _ = ticket_client
    ticket = _make_ticket(events=[_change_event()])
    service.update_ticket = AsyncMock(return_value=ticket)

    response = client.post(f"/tickets/{ticket.id}", json=_payload(severity="high", version=1))

    assert response.status_code == 200
    changes = response.json()["events"][0]["changes"]
    assert changes[0] == {"field": "severity", "oldValue": "low", "newValue": "high", "action": "changed"}
    assert service.update_ticket.await_args.kwargs["expected_version"] == 1
    assert service.update_ticket.await_args.args[1].severity == "high"



def test_update_ticket_can_remove_description(ticket_client):
    client, service, _ = ticket_client
    ticket = _make_ticket()
    service.update_ticket = AsyncMock(return_value=ticket)

    response = client.post(f"/tickets/{ticket.id}", json={"title": "Printer", "type": "Anomaly"})

    assert response.status_code == 200
    fields = service.update_ticket.await_args.args[1]
    assert fields.description is None
    assert fields.type == "Anomaly"

def test_update_ticket_returns_conflict_on_version_mismatch(ticket_client):
    client, service, _ = ticket_client
    service.update_ticket = AsyncMock(side_effect=TicketVersionConflictError("stale"))

    response = client.post(f"/tickets/{uuid4()}", json=_payload(version=2))

    assert response.status_code == 409


def test_add_event_requires_status_target_or_comment(ticket_client):
    client, service, _ = ticket_client

    response = client.put(f"/tickets/{uuid4()}/events", json={})

    assert response.status_code == 400


def test_private_event_requires_expert(ticket_client):
    client, service, _ = ticket_client
    service.add_event = AsyncMock()

    response = client.put(f"/tickets/{uuid4()}/events", json={"comment": "internal", "isPrivate": True})

    assert response.status_code == 403
    service.add_event.assert_not_awaited()


def test_expert_can_change_status(ticket_client):
    client, service, current_user = ticket_client
    current_user["user"] = EXPERT
    service.add_event = AsyncMock(return_value=_make_ticket())

    response = client.put(f"/tickets/{uuid4()}/events", json={"status": TicketStatus.IN_PROGRESS.value})

    assert response.status_code == 200
    assert service.add_event.await_args.kwargs["status"] is TicketStatus.IN_PROGRESS



def test_event_target_assigns_ticket(ticket_client):
    client, service, current_user = ticket_client
    current_user["user"] = EXPERT
    bob = EventAuthor(id="expert-2", name="Bob", type=AuthorType.EXPERT)
    ticket = _make_ticket()
    ticket.assigned_to = bob
    service.add_event = AsyncMock(return_value=ticket)

    response = client.put(
        f"/tickets/{ticket.id}/events", json={"target": {"id": "expert-2", "name": "Bob", "type": "expert"}}
    )

    assert response.status_code == 200
    assert service.add_event.await_args.kwargs["target"] == bob
    assert service.add_event.await_args.kwargs["status"] is None
    assert response.json()["assignedTo"] == {"id": "expert-2", "name": "Bob", "type": "expert"}

def test_changes_endpoint_flattens_audit_trail(ticket_client):
    client, service, _ = ticket_client
    event = _change_event()
    service.get_audit_trail = AsyncMock(return_value=[event])

    response = client.get(f"/tickets/{uuid4()}/changes")

    assert response.status_code == 200
    body = response.json()
    assert [entry["field"] for entry in body] == ["severity", "description"]
    assert body[1]["action"] == "added"
    assert body[0]["eventId"] == str(event.id)
    assert body[0]["author"]["type"] == "expert"


def test_delete_ticket_returns_no_content(ticket_client):
    client, service, _ = ticket_client
    service.delete_ticket = AsyncMock(return_value=None)

    response = client.delete(f"/tickets/{uuid4()}")

    assert response.status_code == 204
    service.delete_ticket.assert_awaited()


def test_missing_service_returns_unavailable():
    app = create_app()
    app.dependency_overrides[ticket_deps.require_viewer] = lambda: EDITOR
    client = TestClient(app)

    response = client.get("/tickets")

    assert response.status_code == 503


def test_ping_is_public():
    client = TestClient(create_app())

    response = client.get("/ping")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
