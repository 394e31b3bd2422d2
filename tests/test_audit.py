from datetime import datetime, timedelta

import pytest

from borderdesk.errors import ValidationError
from borderdesk.models import AuditAction, AuditLogEntry, AuditLogImmutableError, AuditModule
from borderdesk.services.audit import AuditLogFilter, AuditService


class TestRecord:
    def test_record_stamps_identity_and_time(self, db, admin):
        before = datetime.utcnow()
        entry = AuditService.record(
            db, admin, AuditAction.APPLICATION_APPROVED, AuditModule.APPLICATION, 42, "Application",
            previous_state="verified", new_state="approved",
        )
        db.commit()

        assert entry.id is not None
        assert entry.resource_id == "42"
        assert entry.performed_by_user_id == "admin-1"
        assert entry.performed_by_user_name == "Alice Admin"
        assert entry.performed_by_user_role == "admin"
        assert entry.timestamp >= before

    def test_anonymous_record_is_refused(self, db):
        entry = AuditService.record(db, None, "application_created", "application", 1, "Application")
        assert entry is None
        assert db.query(AuditLogEntry).count() == 0

    def test_unknown_action_is_rejected(self, db, admin):
        with pytest.raises(ValidationError):
            AuditService.record(db, admin, "application_deleted", "application", 1, "Application")

    def test_unknown_module_is_rejected(self, db, admin):
        with pytest.raises(ValidationError):
            AuditService.record(db, admin, "application_created", "billing", 1, "Application")


class TestImmutability:
    def test_entries_cannot_be_updated(self, db, admin):
        entry = AuditService.record(db, admin, "application_created", "application", 1, "Application")
        db.commit()

        entry.notes = "tampered"
        with pytest.raises(AuditLogImmutableError):
            db.flush()
        db.rollback()

    def test_entries_cannot_be_deleted(self, db, admin):
        entry = AuditService.record(db, admin, "application_created", "application", 1, "Application")
        db.commit()

        db.delete(entry)
        with pytest.raises(AuditLogImmutableError):
            db.flush()
        db.rollback()


class TestFilter:
    def _seed(self, db, admin, staff):
        AuditService.record(db, admin, "application_approved", "application", 1, "Application")
        AuditService.record(db, staff, "document_verified", "verification", 10, "Verification", application_id=1)
        AuditService.record(db, staff, "document_rejected", "verification", 11, "Verification", application_id=2)
        AuditService.record(db, admin, "payment_received", "payment", 5, "Payment", application_id=1)
        db.commit()

    def test_no_criteria_returns_everything_newest_first(self, db, admin, staff):
        self._seed(db, admin, staff)
        entries = AuditService.filter(db, AuditLogFilter())
        assert len(entries) == 4
        assert [e.action for e in entries][0] == "payment_received"
        assert [e.action for e in entries][-1] == "application_approved"

    def test_criteria_are_anded(self, db, admin, staff):
        self._seed(db, admin, staff)
        entries = AuditService.filter(db, AuditLogFilter(module=AuditModule.VERIFICATION, user_id="staff-1"))
        assert {e.resource_id for e in entries} == {"10", "11"}

        entries = AuditService.filter(
            db, AuditLogFilter(module=AuditModule.VERIFICATION, action=AuditAction.DOCUMENT_REJECTED)
        )
        assert [e.resource_id for e in entries] == ["11"]

    def test_by_resource(self, db, admin, staff):
        self._seed(db, admin, staff)
        assert [e.action for e in AuditService.by_resource(db, 10)] == ["document_verified"]

    def test_by_user(self, db, admin, staff):
        self._seed(db, admin, staff)
        entries = AuditService.by_user(db, "admin-1")
        assert [e.action for e in entries] == ["payment_received", "application_approved"]

    def test_date_range(self, db, admin, staff):
        self._seed(db, admin, staff)
        future = datetime.utcnow() + timedelta(days=1)
        assert AuditService.filter(db, AuditLogFilter(start_date=future)) == []
        assert len(AuditService.filter(db, AuditLogFilter(end_date=future))) == 4

    def test_limit(self, db, admin, staff):
        self._seed(db, admin, staff)
        assert len(AuditService.filter(db, AuditLogFilter(limit=2))) == 2

    def test_application_history_includes_owned_records(self, db, admin, staff):
        self._seed(db, admin, staff)
        entries = AuditService.application_history(db, 1)
        assert [e.action for e in entries] == ["payment_received", "document_verified", "application_approved"]
