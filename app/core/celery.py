# app/core/celery.py
from celery import Celery
from app.core.config import settings
from celery.schedules import crontab

# ВАЖНО: объект называется celery_app
celery_app = Celery(
    "moderation_tasks",
    broker=settings.RABBITMQ_URL,
    backend=settings.REDIS_URL,
    include=[
        "app.tasks.sla_tasks",
        "app.tasks.audit_tasks",
        "app.tasks.transparency_tasks",
        "app.tasks.notification_tasks",
    ],
)

def init_celery():
    celery_app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,
        worker_proc_alive_timeout=30,
        worker_send_task_events=True,
        broker_connection_retry_on_startup=True,
        task_track_started=True,
    )

async def check_connection() -> bool:
    try:
        with celery_app.connection_or_acquire() as conn:
            conn.heartbeat_check()
            return True
    except Exception:
        return False

celery_app.conf.beat_schedule = {
    "sla-sweep": {
        "task": "app.tasks.sla_tasks.sweep_sla_deadlines",
        "schedule": crontab(minute="*"),
    },
    "sor-export": {
        "task": "app.tasks.transparency_tasks.export_statements_of_reasons",
        "schedule": crontab(minute="*/5"),
    },
    "deliver-notifications": {
        "task": "app.tasks.notification_tasks.dispatch_due_notifications",
        "schedule": crontab(minute="*/5"),
    },
    "deactivate-signing-keys": {
        "task": "app.tasks.audit_tasks.deactivate_expired_signing_keys",
        "schedule": crontab(minute=5),
    },
    "ensure-audit-partitions": {
        "task": "app.tasks.audit_tasks.ensure_upcoming_partitions",
        "schedule": crontab(hour=0, minute=10),
    },
    "seal-audit-partitions": {
        "task": "app.tasks.audit_tasks.seal_closed_partitions",
        "schedule": crontab(day_of_month=1, hour=1, minute=0),
    },
    "audit-integrity-check": {
        "task": "app.tasks.audit_tasks.run_integrity_check",
        "schedule": crontab(hour=3, minute=0),
    },
}
