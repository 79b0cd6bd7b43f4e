"""Tests for the billing audit trail."""

from uuid import uuid4

from billing.audit import AuditAction, AuditLogger, compute_changes


class TestComputeChanges:

    def test_detects_changed_fields(self):
        changes = compute_changes({"status": "sent", "notes": "a"}, {"status": "paid", "notes": "a"})
        assert changes == {"status": {"old": "sent", "new": "paid"}}

    def test_ignores_updated_at(self):
        assert compute_changes({"updated_at": 1}, {"updated_at": 2}) == {}

    def test_added_and_removed_keys(self):
        changes = compute_changes({"a": 1}, {"b": 2})
        assert changes == {"a": {"old": 1, "new": None}, "b": {"old": None, "new": 2}}

    def test_custom_excludes(self):
        assert compute_changes({"a": 1}, {"a": 2}, exclude_fields={"a"}) == {}


class TestAuditLogger:

    def test_log_change_appends_entry(self, store, audit):
        entity_id = uuid4()
        entry = audit.log_change("invoice", entity_id, AuditAction.CREATE, {"created": {"id": str(entity_id)}})

        assert store.audit_entries == [entry]
        assert entry.action == AuditAction.CREATE
        assert entry.user_id is None

    def test_attributed_to_current_staff(self, audit, as_staff):
        entry = audit.log_change("payment", uuid4(), AuditAction.UPDATE, {})
        assert entry.user_id == as_staff

    def test_explicit_user_wins(self, audit, as_staff):
        other = uuid4()
        entry = audit.log_change("payment", uuid4(), AuditAction.UPDATE, {}, user_id=other)
        assert entry.user_id == other

    def test_history_newest_first(self, store):
        audit = AuditLogger(store)
        entity_id = uuid4()
        first = audit.log_change("invoice", entity_id, AuditAction.CREATE, {})
        second = audit.log_change("invoice", entity_id, AuditAction.UPDATE, {})
        audit.log_change("invoice", uuid4(), AuditAction.UPDATE, {})

        assert audit.get_entity_history("invoice", entity_id) == [second, first]
