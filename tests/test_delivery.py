"""
Tests for policy delivery tracking.

Email deliveries are stepped through pending, shipped, in transit and
delivered here. Courier deliveries are tracked by the courier: this system
only records the tracking number and always reports "External Tracking".
"""
import pytest

from borderdesk.errors import InvalidTransitionError, NotFoundError, PermissionDeniedError, ValidationError
from borderdesk.models import AuditLogEntry
from borderdesk.services.delivery import (
    EXTERNAL_TRACKING_LABEL,
    DeliveryService,
    courier_provider_label,
    courier_tracking_url,
    display_status,
    is_delivery_completed,
    progress_percent,
)

from conftest import make_application


@pytest.fixture
def approved(db):
    return make_application(db, status="approved")


def _email_delivery(db, actor, application):
    record = DeliveryService().create_delivery(
        db, actor, application.id, "email", "Test Customer", recipient_email="customer@example.com"
    )
    db.commit()
    return record


def _courier_delivery(db, actor, application, provider="poslaju"):
    record = DeliveryService().create_delivery(
        db, actor, application.id, "courier", "Test Customer",
        recipient_address="12 Jalan Tebrau, Johor Bahru",
        courier_provider=provider,
    )
    db.commit()
    return record


class TestCreateDelivery:
    def test_email_delivery(self, db, staff, approved):
        record = _email_delivery(db, staff, approved)

        assert record.tracking_id.startswith("BD-DLV-")
        assert record.policy_number == approved.tracking_id.replace("-APP-", "-POL-")
        assert record.status == "pending"
        assert record.is_priority is False
        entry = db.query(AuditLogEntry).filter(AuditLogEntry.module == "delivery").one()
        assert entry.notes == "Delivery record created"

    def test_paid_application_is_priority(self, db, staff):
        application = make_application(db, status="approved", payment_status="paid")
        assert _email_delivery(db, staff, application).is_priority is True

    def test_application_must_be_approved(self, db, staff, application):
        with pytest.raises(ValidationError):
            _email_delivery(db, staff, application)

    def test_one_delivery_per_application(self, db, staff, approved):
        _email_delivery(db, staff, approved)
        with pytest.raises(ValidationError):
            _email_delivery(db, staff, approved)

    def test_email_needs_recipient_email(self, db, staff, approved):
        with pytest.raises(ValidationError):
            DeliveryService().create_delivery(db, staff, approved.id, "email", "Test Customer")

    def test_courier_needs_provider_and_address(self, db, staff, approved):
        service = DeliveryService()
        with pytest.raises(ValidationError):
            service.create_delivery(db, staff, approved.id, "courier", "Test Customer", recipient_address="Somewhere")
        with pytest.raises(ValidationError):
            service.create_delivery(db, staff, approved.id, "courier", "Test Customer", courier_provider="dhl")
        with pytest.raises(ValidationError):
            service.create_delivery(
                db, staff, approved.id, "courier", "Test Customer",
                courier_provider="fedex", recipient_address="Somewhere",
            )

    def test_unknown_method(self, db, staff, approved):
        with pytest.raises(ValidationError):
            DeliveryService().create_delivery(db, staff, approved.id, "pigeon", "Test Customer")

    def test_requires_tracking_update_permission(self, db, approved):
        with pytest.raises(PermissionDeniedError):
            _email_delivery(db, None, approved)


class TestAdvanceEmail:
    def test_steps_forward_one_at_a_time(self, db, staff, approved):
        record = _email_delivery(db, staff, approved)
        service = DeliveryService()

        for expected in ("shipped", "in_transit", "delivered"):
            record = service.advance_status(db, staff, record.id)
            db.commit()
            assert record.status == expected

        assert record.shipped_at is not None
        assert record.in_transit_at is not None
        assert record.delivered_at is not None
        assert record.email_sent_at == record.delivered_at
        assert is_delivery_completed(record)

        with pytest.raises(InvalidTransitionError):
            service.advance_status(db, staff, record.id)

    def test_skipping_is_refused(self, db, staff, approved):
        record = _email_delivery(db, staff, approved)
        with pytest.raises(InvalidTransitionError):
            DeliveryService().advance_status(db, staff, record.id, to_status="delivered")

    def test_regression_is_refused(self, db, staff, approved):
        record = _email_delivery(db, staff, approved)
        service = DeliveryService()
        service.advance_status(db, staff, record.id)
        service.advance_status(db, staff, record.id)
        db.commit()
        with pytest.raises(InvalidTransitionError):
            service.advance_status(db, staff, record.id, to_status="shipped")

    def test_each_step_is_audited(self, db, staff, approved):
        record = _email_delivery(db, staff, approved)
        DeliveryService().advance_status(db, staff, record.id, notes="Policy emailed")
        db.commit()
        entry = (
            db.query(AuditLogEntry)
            .filter(AuditLogEntry.action == "delivery_shipped")
            .one()
        )
        assert (entry.previous_state, entry.new_state) == ("pending", "shipped")
        assert entry.notes == "Policy emailed"


class TestCourier:
    def test_courier_status_is_external(self, db, staff, approved):
        record = _courier_delivery(db, staff, approved)
        assert display_status(record) == EXTERNAL_TRACKING_LABEL
        assert courier_provider_label(record) == "Pos Laju"
        assert courier_tracking_url(record) is None
        assert not is_delivery_completed(record)

    def test_courier_cannot_be_advanced(self, db, staff, approved):
        record = _courier_delivery(db, staff, approved)
        with pytest.raises(InvalidTransitionError):
            DeliveryService().advance_status(db, staff, record.id)

    def test_assign_tracking_number(self, db, staff, approved):
        record = _courier_delivery(db, staff, approved, provider="jnt")

        record = DeliveryService().assign_courier_tracking(db, staff, record.id, "  JT0001234567  ")
        db.commit()

        assert record.courier_tracking_number == "JT0001234567"
        assert record.status == "shipped"
        assert record.shipped_at is not None
        assert is_delivery_completed(record)
        assert display_status(record) == EXTERNAL_TRACKING_LABEL
        assert courier_tracking_url(record) == "https://www.jtexpress.my/track?billcodes=JT0001234567"
        assert DeliveryService.find_by_tracking_id(db, "JT0001234567").id == record.id

    def test_blank_tracking_number_is_refused(self, db, staff, approved):
        record = _courier_delivery(db, staff, approved)
        with pytest.raises(ValidationError):
            DeliveryService().assign_courier_tracking(db, staff, record.id, "   ")

    def test_email_delivery_has_no_courier_number(self, db, staff, approved):
        record = _email_delivery(db, staff, approved)
        with pytest.raises(ValidationError):
            DeliveryService().assign_courier_tracking(db, staff, record.id, "DHL123")


class TestDisplayHelpers:
    def test_progress(self, db, staff, approved):
        record = _email_delivery(db, staff, approved)
        assert progress_percent(record) == 0
        DeliveryService().advance_status(db, staff, record.id)
        assert progress_percent(record) == 33
        DeliveryService().advance_status(db, staff, record.id)
        assert progress_percent(record) == 67
        assert display_status(record) == "In Transit"

    def test_find_by_policy_number(self, db, staff, approved):
        record = _email_delivery(db, staff, approved)
        assert DeliveryService.find_by_tracking_id(db, record.policy_number).id == record.id
        with pytest.raises(NotFoundError):
            DeliveryService.find_by_tracking_id(db, "BD-DLV-NOPE0000")


class TestStatistics:
    def test_statistics(self, db, admin, staff):
        paid = make_application(db, status="approved", payment_status="paid")
        sent = _email_delivery(db, staff, make_application(db, status="approved"))
        _email_delivery(db, staff, paid)
        _courier_delivery(db, staff, make_application(db, status="approved"))

        for _ in range(3):
            DeliveryService().advance_status(db, admin, sent.id)
        db.commit()

        stats = DeliveryService.statistics(db)
        assert stats.total == 3
        assert stats.courier_deliveries == 1
        assert stats.email_pending == 1
        assert stats.email_sent == 1
        assert stats.priority_pending == 1
