from webstability.celery_app import celery_app
from webstability.tasks import (
    notifications,
    quota_reset,
)

__all__ = [
    "celery_app",
    "notifications",
    "quota_reset",
]
