"""Notification delivery and reminder tasks"""
from tasks.celery_app import celery_app
from datetime import datetime, timedelta
import logging

from land_registry.config import settings
from land_registry.database import get_sync_db

logger = logging.getLogger(__name__)


@celery_app.task
def send_payment_reminders():
    """
    Remind owners whose documents are validated but whose registration fee
    is still unpaid after PAYMENT_REMINDER_AFTER_DAYS.

    At most one reminder per property is created in any 24 hour window.
    """
    from land_registry.models.notification import Notification
    from land_registry.models.property import Property, PropertyStatus
    from land_registry.services.email import get_email_service
    from land_registry.services.notifications import payment_reminder_message

    db = get_sync_db()

    try:
        now = datetime.utcnow()
        cutoff = now - timedelta(days=settings.PAYMENT_REMINDER_AFTER_DAYS)

        overdue = db.query(Property).filter(
            Property.documents_validated.is_(True),
            Property.payment_completed.is_(False),
            Property.status.in_([PropertyStatus.DOCUMENTS_VALIDATED, PropertyStatus.PAYMENT_PENDING]),
            Property.last_updated < cutoff,
        ).all()

        created = []
        for property_obj in overdue:
            recent = db.query(Notification).filter(
                Notification.property_id == property_obj.id,
                Notification.type == "payment_reminder",
                Notification.created_at >= now - timedelta(days=1),
            ).first()
            if recent:
                continue

            days_overdue = (now - property_obj.last_updated).days
            notification = Notification(**payment_reminder_message(property_obj, days_overdue))
            db.add(notification)
            created.append(notification)

        db.commit()
        logger.info(f"Sent {len(created)} payment reminders ({len(overdue)} overdue properties)")

        if created and get_email_service().is_configured():
            for notification in created:
                send_notification_email.delay(notification.id)

        return {"overdue": len(overdue), "reminders_sent": len(created)}

    except Exception as e:
        db.rollback()
        logger.error(f"Payment reminder run failed: {e}")
        return {"error": str(e)}

    finally:
        db.close()


@celery_app.task(bind=True, max_retries=3, default_retry_delay=120)
def send_notification_email(self, notification_id: int):
    """Deliver one stored notification to its recipient by email"""
    from land_registry.models.notification import Notification
    from land_registry.models.user import User
    from land_registry.services.email import get_email_service

    email_service = get_email_service()
    if not email_service.is_configured():
        return {"sent": False, "reason": "email not configured"}

    db = get_sync_db()

    try:
        notification = db.query(Notification).filter(Notification.id == notification_id).first()
        if not notification:
            return {"sent": False, "reason": "notification not found"}

        user = db.query(User).filter(User.id == notification.user_id).first()
        if not user or not user.is_active:
            return {"sent": False, "reason": "recipient unavailable"}

        sent = email_service.send_notification_email(
            user.email,
            notification.title,
            notification.message,
            action_url=notification.action_url,
        )
        if not sent:
            raise RuntimeError(f"SMTP delivery failed for notification {notification_id}")

        logger.info(f"Notification {notification_id} emailed to user {user.id}")
        return {"sent": True, "notification_id": notification_id}

    except RuntimeError as e:
        logger.warning(f"{e}; attempt {self.request.retries + 1}")
        if self.request.retries < self.max_retries:
            raise self.retry(exc=e, countdown=120 * (self.request.retries + 1))
        return {"sent": False, "reason": str(e)}

    finally:
        db.close()
