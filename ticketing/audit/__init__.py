"""Ticket change detection and audit trail building."""

from .changes import (
    FIELD_RULES,
    AuditTrail,
    ChangeAction,
    FieldChange,
    FieldKind,
    InvalidSnapshot,
    build_changes,
)
from .snapshot import Reference, RelatedRequest, RequestRef, SoftwareRef, TicketSnapshot, TicketSoftware

__all__ = [
    "FIELD_RULES",
    "AuditTrail",
    "ChangeAction",
    "FieldChange",
    "FieldKind",
    "InvalidSnapshot",
    "Reference",
    "RelatedRequest",
    "RequestRef",
    "SoftwareRef",
    "TicketSnapshot",
    "TicketSoftware",
    "build_changes",
]
