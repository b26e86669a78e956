"""
Tests for the Celery tasks, run in eager mode against a file-backed SQLite
database (the tasks use synchronous sessions).
"""
from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import land_registry.models  # noqa: F401
import land_registry.services.email as email_module
from land_registry.database import Base
from land_registry.models.application_log import ApplicationLog
from land_registry.models.notification import Notification
from land_registry.models.payment import Payment, PaymentMethod, PaymentStatus, PaymentType
from land_registry.models.property import Property, PropertyStatus, PropertyType
from land_registry.models.user import User, UserRole
from tasks import notification_tasks, payment_tasks
from tasks.celery_app import celery_app


class FakeEmailService:
    def __init__(self, configured=True, succeed=True):
        self.configured = configured
        self.succeed = succeed
        self.sent = []

    def is_configured(self):
        return self.configured

    def send_notification_email(self, to_email, title, message, action_url=None):
        self.sent.append((to_email, title, action_url))
        return self.succeed


@pytest.fixture
def sync_session(tmp_path, monkeypatch):
    engine = create_engine(f"sqlite:///{tmp_path / 'tasks.db'}")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    monkeypatch.setattr(notification_tasks, "get_sync_db", lambda: SessionLocal())
    monkeypatch.setattr(payment_tasks, "get_sync_db", lambda: SessionLocal())

    yield SessionLocal
    engine.dispose()


@pytest.fixture
def email_service(monkeypatch):
    service = FakeEmailService(configured=False)
    monkeypatch.setattr(email_module, "get_email_service", lambda: service)
    return service


def _seed_owner(session) -> User:
    user = User(email="owner@example.com", hashed_password="x", full_name="Owner", role=UserRole.USER)
    session.add(user)
    session.flush()
    return user


def _seed_property(session, owner_id, plot_number, days_idle, status=PropertyStatus.DOCUMENTS_VALIDATED,
                   payment_completed=False) -> Property:
    property_obj = Property(
        owner_id=owner_id,
        plot_number=plot_number,
        property_type=PropertyType.RESIDENTIAL,
        area=200.0,
        sub_city="Bole",
        kebele="03",
        status=status,
        documents_validated=True,
        payment_completed=payment_completed,
        last_updated=datetime.utcnow() - timedelta(days=days_idle),
    )
    session.add(property_obj)
    session.flush()
    return property_obj


def _seed_payment(session, property_obj, hours_old, transaction_id="CBE123",
                  status=PaymentStatus.PENDING) -> Payment:
    payment = Payment(
        property_id=property_obj.id,
        user_id=property_obj.owner_id,
        amount=550.0,
        total_amount=550.0,
        payment_type=PaymentType.REGISTRATION_FEE,
        payment_method=PaymentMethod.CBE_BIRR,
        status=status,
        transaction_id=transaction_id,
        payment_date=datetime.utcnow() - timedelta(hours=hours_old),
    )
    session.add(payment)
    session.flush()
    return payment


def test_eager_mode_enabled():
    assert celery_app.conf.task_always_eager is True
    assert celery_app.conf.beat_schedule["send-payment-reminders"]["task"] == (
        "tasks.notification_tasks.send_payment_reminders"
    )


class TestPaymentReminders:
    """Tests for send_payment_reminders"""

    def test_reminds_overdue_properties_once(self, sync_session, email_service):
        with sync_session() as session:
            owner = _seed_owner(session)
            overdue = _seed_property(session, owner.id, "BL-001", days_idle=10)
            _seed_property(session, owner.id, "BL-002", days_idle=2)
            _seed_property(session, owner.id, "BL-003", days_idle=30,
                           status=PropertyStatus.PAYMENT_COMPLETED, payment_completed=True)
            session.commit()
            overdue_id = overdue.id

        result = notification_tasks.send_payment_reminders.delay().get()
        assert result == {"overdue": 1, "reminders_sent": 1}

        with sync_session() as session:
            reminders = session.query(Notification).filter(Notification.type == "payment_reminder").all()
            assert [n.property_id for n in reminders] == [overdue_id]
            assert "10 days" in reminders[0].message

        result = notification_tasks.send_payment_reminders.delay().get()
        assert result == {"overdue": 1, "reminders_sent": 0}

    def test_emails_queued_when_configured(self, sync_session, email_service):
        email_service.configured = True
        with sync_session() as session:
            owner = _seed_owner(session)
            _seed_property(session, owner.id, "BL-001", days_idle=8, status=PropertyStatus.PAYMENT_PENDING)
            session.commit()

        result = notification_tasks.send_payment_reminders.delay().get()

        assert result["reminders_sent"] == 1
        assert len(email_service.sent) == 1
        assert email_service.sent[0][0] == "owner@example.com"


class TestNotificationEmail:
    """Tests for send_notification_email"""

    def _notification(self, sync_session, is_active=True) -> int:
        with sync_session() as session:
            owner = _seed_owner(session)
            owner.is_active = is_active
            notification = Notification(
                user_id=owner.id,
                type="payment_required",
                title="Payment Required",
                message="Please pay",
                action_url="/property/1/payment",
            )
            session.add(notification)
            session.commit()
            return notification.id

    def test_skipped_without_smtp(self, sync_session, email_service):
        notification_id = self._notification(sync_session)
        result = notification_tasks.send_notification_email(notification_id)
        assert result == {"sent": False, "reason": "email not configured"}

    def test_sends_to_recipient(self, sync_session, email_service):
        email_service.configured = True
        notification_id = self._notification(sync_session)

        result = notification_tasks.send_notification_email(notification_id)

        assert result == {"sent": True, "notification_id": notification_id}
        assert email_service.sent == [("owner@example.com", "Payment Required", "/property/1/payment")]

    def test_missing_notification(self, sync_session, email_service):
        email_service.configured = True
        result = notification_tasks.send_notification_email(999)
        assert result == {"sent": False, "reason": "notification not found"}

    def test_inactive_recipient(self, sync_session, email_service):
        email_service.configured = True
        notification_id = self._notification(sync_session, is_active=False)

        result = notification_tasks.send_notification_email(notification_id)
        assert result["reason"] == "recipient unavailable"

    def test_smtp_failure_raises_for_retry(self, sync_session, email_service):
        email_service.configured = True
        email_service.succeed = False
        notification_id = self._notification(sync_session)

        with pytest.raises(RuntimeError):
            notification_tasks.send_notification_email(notification_id)


class TestStalePayments:
    """Tests for expire_stale_payments"""

    def test_expires_only_stale_gateway_payments(self, sync_session):
        with sync_session() as session:
            owner = _seed_owner(session)
            property_obj = _seed_property(session, owner.id, "BL-001", days_idle=3,
                                          status=PropertyStatus.PAYMENT_PENDING)
            stale = _seed_payment(session, property_obj, hours_old=30, transaction_id="CBE-OLD")
            fresh = _seed_payment(session, property_obj, hours_old=1, transaction_id="CBE-NEW")
            cash = _seed_payment(session, property_obj, hours_old=48, transaction_id=None)
            done = _seed_payment(session, property_obj, hours_old=72, transaction_id="CBE-DONE",
                                 status=PaymentStatus.COMPLETED)
            session.commit()
            ids = (stale.id, fresh.id, cash.id, done.id)

        result = payment_tasks.expire_stale_payments.delay().get()
        assert result == {"expired": 1}

        with sync_session() as session:
            statuses = {p.id: p.status for p in session.query(Payment).all()}
            assert statuses[ids[0]] == PaymentStatus.CANCELLED
            assert statuses[ids[1]] == PaymentStatus.PENDING
            assert statuses[ids[2]] == PaymentStatus.PENDING
            assert statuses[ids[3]] == PaymentStatus.COMPLETED

            log = session.query(ApplicationLog).filter(ApplicationLog.action == "payment_cancelled").one()
            assert log.performed_by_role == "system"
            assert log.extra["payment_id"] == ids[0]

    def test_expiry_goes_through_payment_transitions(self, sync_session, monkeypatch):
        from land_registry.services import workflow

        calls = []
        real_advance = workflow.advance_payment

        def recording_advance(current, target):
            calls.append((current, target))
            return real_advance(current, target)

        monkeypatch.setattr(workflow, "advance_payment", recording_advance)

        with sync_session() as session:
            owner = _seed_owner(session)
            property_obj = _seed_property(session, owner.id, "BL-002", days_idle=3,
                                          status=PropertyStatus.PAYMENT_PENDING)
            _seed_payment(session, property_obj, hours_old=30, transaction_id="CBE-STALE")
            session.commit()

        assert payment_tasks.expire_stale_payments.delay().get() == {"expired": 1}
        assert calls == [(PaymentStatus.PENDING, PaymentStatus.CANCELLED)]

        with sync_session() as session:
            log = session.query(ApplicationLog).filter(ApplicationLog.action == "payment_cancelled").one()
            assert (log.previous_status, log.status) == ("pending", "cancelled")
