"""Celery application configuration"""
from celery import Celery
from kombu import Queue

from land_registry.config import settings

# Eager/test mode runs tasks inline without a broker
CELERY_EAGER_MODE = settings.CELERY_TASK_ALWAYS_EAGER

if CELERY_EAGER_MODE:
    # Use memory backend for testing without Redis
    CELERY_BROKER_URL = "memory://"
    CELERY_RESULT_BACKEND = "cache+memory://"
else:
    CELERY_BROKER_URL = settings.CELERY_BROKER_URL
    CELERY_RESULT_BACKEND = settings.CELERY_RESULT_BACKEND

# Create Celery application
celery_app = Celery(
    "land_registry",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
    include=[
        "tasks.notification_tasks",
        "tasks.payment_tasks",
    ]
)

# Enable eager mode if set
if CELERY_EAGER_MODE:
    celery_app.conf.task_always_eager = True
    celery_app.conf.task_eager_propagates = True

# Celery configuration
celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone
    timezone="UTC",
    enable_utc=True,

    # Task queues
    task_queues=(
        Queue("default", routing_key="default"),
        Queue("notifications", routing_key="notifications"),
        Queue("payments", routing_key="payments"),
    ),

    # Default queue
    task_default_queue="default",
    task_default_routing_key="default",

    # Task routing
    task_routes={
        "tasks.notification_tasks.*": {"queue": "notifications"},
        "tasks.payment_tasks.*": {"queue": "payments"},
    },

    # Outbound mail is throttled
    task_annotations={
        "tasks.notification_tasks.send_notification_email": {"rate_limit": "60/m"},
    },

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,

    # Result settings
    result_expires=86400,  # 24 hours

    # Task time limits
    task_soft_time_limit=120,
    task_time_limit=300,

    # Retry settings
    task_default_retry_delay=60,
    task_max_retries=3,
)

# Beat schedule for periodic tasks
celery_app.conf.beat_schedule = {
    "send-payment-reminders": {
        "task": "tasks.notification_tasks.send_payment_reminders",
        "schedule": 86400.0,  # Every 24 hours
    },
    "expire-stale-payments": {
        "task": "tasks.payment_tasks.expire_stale_payments",
        "schedule": 3600.0,  # Every hour
    },
}
