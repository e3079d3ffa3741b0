from asgiref.sync import async_to_sync

from app.core.celery import celery_app
from app.domains.moderation.executor import action_executor


@celery_app.task
def dispatch_due_notifications():
    # delivery belongs to the notification service; here we only park what it never confirmed
    return {"expired": async_to_sync(action_executor.expire_unanswered_notifications)()}
