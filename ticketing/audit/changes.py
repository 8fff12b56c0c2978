"""Field-level change detection between two ticket snapshots."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Final, Mapping

from .snapshot import InvalidSnapshot, Reference, RelatedRequest, TicketSnapshot


class ChangeAction(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    CHANGED = "changed"


class FieldKind(str, Enum):
    """How a field is rendered to a comparison string."""

    SCALAR = "scalar"
    REFERENCE_BY_NAME = "reference_by_name"
    ORDERED_ID_LIST = "ordered_id_list"
    RECORD_LIST = "record_list"
    NESTED_PATH = "nested_path"


@dataclass(frozen=True, slots=True)
class FieldChange:
    """One audit entry describing a single field's old and new value."""

    field: str
    old_value: str
    new_value: str
    action: ChangeAction

    def to_dict(self) -> dict[str, str]:
        return {
            "field": self.field,
            "oldValue": self.old_value,
            "newValue": self.new_value,
            "action": self.action.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FieldChange":
        return cls(
            field=str(data["field"]),
            old_value=str(data.get("oldValue") or ""),
            new_value=str(data.get("newValue") or ""),
            action=ChangeAction(str(data["action"])),
        )


AuditTrail = tuple[FieldChange, ...]


def _scalar(value: str | None) -> str:
    return value or ""


def _reference_name(value: Reference | None) -> str:
    return value.name if value is not None else ""


def _ordered_ids(values: tuple[str, ...]) -> str:
    return " ".join(values)


def humanize_related_request(related: RelatedRequest) -> str:
    return f"{related.link} #{related.request.id}-{related.request.title}"


def _related_requests(values: tuple[RelatedRequest, ...]) -> str:
    return ", ".join(humanize_related_request(related) for related in values)


def _software_name(snapshot: TicketSnapshot) -> str:
    if snapshot.software is None:
        return ""
    return snapshot.software.software.name or ""


@dataclass(frozen=True, slots=True)
class FieldRule:
    name: str
    kind: FieldKind
    render: Callable[[TicketSnapshot], str]


FIELD_RULES: Final[tuple[FieldRule, ...]] = (
    FieldRule("title", FieldKind.SCALAR, lambda s: _scalar(s.title)),
    FieldRule("beneficiary", FieldKind.REFERENCE_BY_NAME, lambda s: _reference_name(s.beneficiary)),
    FieldRule("responsible", FieldKind.REFERENCE_BY_NAME, lambda s: _reference_name(s.responsible)),
    FieldRule("callNumber", FieldKind.SCALAR, lambda s: _scalar(s.call_number)),
    FieldRule("meetingId", FieldKind.SCALAR, lambda s: _scalar(s.meeting_id)),
    FieldRule("type", FieldKind.SCALAR, lambda s: _scalar(s.type)),
    FieldRule("severity", FieldKind.SCALAR, lambda s: _scalar(s.severity)),
    FieldRule("description", FieldKind.SCALAR, lambda s: _scalar(s.description)),
    FieldRule("participants", FieldKind.ORDERED_ID_LIST, lambda s: _ordered_ids(s.participants)),
    FieldRule("relatedRequests", FieldKind.RECORD_LIST, lambda s: _related_requests(s.related_requests)),
    FieldRule("software", FieldKind.NESTED_PATH, _software_name),
)


def classify(old_value: str, new_value: str) -> ChangeAction | None:
    """Return the action for a pair of rendered values, or ``None`` when equal."""

    if old_value == new_value:
        return None
    if not old_value:
        return ChangeAction.ADDED
    if not new_value:
        return ChangeAction.REMOVED
    return ChangeAction.CHANGED


def compare_field(rule: FieldRule, before: TicketSnapshot, after: TicketSnapshot) -> FieldChange | None:
    old_value = rule.render(before)
    new_value = rule.render(after)
    action = classify(old_value, new_value)
    if action is None:
        return None
    return FieldChange(field=rule.name, old_value=old_value, new_value=new_value, action=action)


def _coerce(snapshot: Any) -> TicketSnapshot:
    if isinstance(snapshot, TicketSnapshot):
        return snapshot
    if isinstance(snapshot, Mapping):
        return TicketSnapshot.from_mapping(snapshot)
    raise InvalidSnapshot(f"Expected a ticket snapshot, got {type(snapshot).__name__}")


def build_changes(
    before: TicketSnapshot | Mapping[str, Any] | None,
    after: TicketSnapshot | Mapping[str, Any] | None,
) -> AuditTrail:
    """Compute the audit trail turning ``before`` into ``after``.

    Fields are compared in the order of :data:`FIELD_RULES` and only real
    differences are emitted. ``before`` may be ``None`` for an all-empty
    baseline; ``after`` is mandatory.
    """

    if after is None:
        raise InvalidSnapshot("The proposed ticket snapshot is required")
    previous = TicketSnapshot.empty() if before is None else _coerce(before)
    proposed = _coerce(after)

    changes = (compare_field(rule, previous, proposed) for rule in FIELD_RULES)
    return tuple(change for change in changes if change is not None)
