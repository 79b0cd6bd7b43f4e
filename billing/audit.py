"""
Audit trail for billing changes.

Every invoice and payment mutation is logged. The audit log is:
- Append-only (entries never modified or deleted)
- Staff-attributed (who made the change, when known)
- Detailed (captures old and new values)

Healthcare billing needs an auditable reason for every status change,
refund and cancellation, so services log after every successful write.
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from utils.timezone import now_utc
from utils.user_context import get_current_user_id

if TYPE_CHECKING:
    from billing.store import LedgerStore


class AuditAction(str, Enum):
    """Type of change made to an entity."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class AuditEntry(BaseModel):
    """One row of the audit log."""

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID | None = None
    entity_type: str
    entity_id: UUID
    action: AuditAction
    changes: dict[str, Any]
    created_at: datetime = Field(default_factory=now_utc)

    model_config = {"from_attributes": True}


def compute_changes(
    old: dict[str, Any],
    new: dict[str, Any],
    exclude_fields: set[str] | None = None
) -> dict[str, dict[str, Any]]:
    """
    Compute changes between two entity states.

    Args:
        old: Previous state of entity
        new: New state of entity
        exclude_fields: Fields to ignore (defaults to {"updated_at"})

    Returns:
        Dict of {field: {"old": old_val, "new": new_val}} for changed fields.
        Empty dict if no changes.
    """
    exclude = exclude_fields or {"updated_at"}
    changes = {}

    for key in set(old) | set(new):
        if key in exclude:
            continue

        old_val = old.get(key)
        new_val = new.get(key)

        if old_val != new_val:
            changes[key] = {"old": old_val, "new": new_val}

    return changes


class AuditLogger:
    """
    Writes audit entries through the ledger store.

    Always pass model_dump(mode="json") output so UUIDs, dates and enums
    are stored as JSON-compatible values.

    Usage:
        audit = AuditLogger(store)

        audit.log_change(
            entity_type="invoice",
            entity_id=invoice.id,
            action=AuditAction.UPDATE,
            changes=compute_changes(
                old.model_dump(mode="json"),
                new.model_dump(mode="json"),
            ),
        )
    """

    def __init__(self, store: "LedgerStore"):
        self.store = store

    def log_change(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        changes: dict[str, Any],
        user_id: UUID | None = None
    ) -> AuditEntry:
        """
        Log an entity change.

        Args:
            entity_type: "invoice" or "payment"
            entity_id: ID of the entity
            action: The action performed (CREATE, UPDATE, DELETE)
            changes: The changes made (format depends on action)
            user_id: Staff member who made the change (defaults to current context)

        Changes format by action:
        - CREATE: {"created": {full entity data}}
        - UPDATE: {"field": {"old": old_val, "new": new_val}, ...}
        - DELETE: {"deleted": {full entity data at deletion}}
        """
        entry = AuditEntry(
            user_id=user_id or get_current_user_id(),
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            changes=changes,
        )
        self.store.append_audit_entry(entry)
        return entry

    def get_entity_history(self, entity_type: str, entity_id: UUID) -> list[AuditEntry]:
        """Full audit history for an entity, newest first."""
        return self.store.list_audit_entries(entity_type, entity_id)
