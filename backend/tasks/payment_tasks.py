"""Payment housekeeping tasks"""
from tasks.celery_app import celery_app
from datetime import datetime, timedelta
import logging

from land_registry.config import settings
from land_registry.database import get_sync_db

logger = logging.getLogger(__name__)


@celery_app.task
def expire_stale_payments():
    """Cancel gateway payments left pending for longer than STALE_PAYMENT_HOURS"""
    from land_registry.models.application_log import ApplicationLog
    from land_registry.models.payment import Payment, PaymentStatus
    from land_registry.services.workflow import advance_payment

    db = get_sync_db()

    try:
        cutoff = datetime.utcnow() - timedelta(hours=settings.STALE_PAYMENT_HOURS)

        stale_payments = db.query(Payment).filter(
            Payment.status == PaymentStatus.PENDING,
            Payment.transaction_id.isnot(None),
            Payment.payment_date < cutoff,
        ).all()

        for payment in stale_payments:
            previous = payment.status
            payment.status = advance_payment(payment.status, PaymentStatus.CANCELLED)
            payment.failure_reason = f"Payment session abandoned for more than {settings.STALE_PAYMENT_HOURS} hours"
            db.add(ApplicationLog(
                property_id=payment.property_id,
                user_id=payment.user_id,
                action="payment_cancelled",
                status=payment.status.value,
                previous_status=previous.value,
                performed_by=None,
                performed_by_role="system",
                notes=payment.failure_reason,
                extra={"payment_id": payment.id, "transaction_id": payment.transaction_id},
            ))

        db.commit()

        logger.info(f"Expired {len(stale_payments)} stale payments")

        return {"expired": len(stale_payments)}

    except Exception as e:
        db.rollback()
        logger.error(f"Stale payment cleanup failed: {e}")
        return {"error": str(e)}

    finally:
        db.close()
