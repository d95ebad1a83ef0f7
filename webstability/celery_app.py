from celery import Celery, signals
from celery.schedules import crontab

from webstability.config import settings


@signals.worker_process_init.connect
def init_worker_process(**kwargs):
    """
    Initialize each worker process after fork.

    Async engines created in the parent process are not usable after the
    prefork pool forks, so every worker starts with a fresh engine on first use.
    """
    import logging

    logger = logging.getLogger(__name__)

    logger.info("Initializing worker process - resetting database connections")

    import webstability.db.session as session_module

    session_module._engine = None
    session_module._AsyncSessionLocal = None

    logger.info("Worker process initialized successfully")


@signals.worker_process_shutdown.connect
def shutdown_worker_process(**kwargs):
    """Dispose of the worker's async database connections."""
    import logging
    import asyncio

    logger = logging.getLogger(__name__)
    logger.info("Shutting down worker process - disposing database connections")

    import webstability.db.session as session_module

    if session_module._engine is not None:
        try:
            asyncio.run(session_module.dispose_engine())
        except Exception as e:
            logger.error(f"Error disposing database engine during shutdown: {e}")

    logger.info("Worker process shutdown complete")


def _build_broker_url() -> str:
    if settings.celery_broker_url:
        return settings.celery_broker_url

    scheme = "rediss" if settings.valkey_auth_token else "redis"
    auth_segment = (
        f":{settings.valkey_auth_token}@" if settings.valkey_auth_token else ""
    )
    ssl_params = "?ssl_cert_reqs=CERT_REQUIRED" if settings.valkey_auth_token else ""
    return f"{scheme}://{auth_segment}{settings.valkey_host}:{settings.valkey_port}/{settings.valkey_db}{ssl_params}"


def _build_result_backend() -> str:
    if settings.celery_result_backend:
        return settings.celery_result_backend
    return _build_broker_url()


celery_app = Celery(
    "webstability",
    broker=_build_broker_url(),
    backend=_build_result_backend(),
)

# rediss:// needs explicit SSL options for both broker and backend
_ssl_conf = {}
if settings.valkey_auth_token:
    import ssl

    _ssl_conf = {
        "broker_use_ssl": {"ssl_cert_reqs": ssl.CERT_REQUIRED},
        "redis_backend_use_ssl": {"ssl_cert_reqs": ssl.CERT_REQUIRED},
    }

celery_app.conf.update(
    task_serializer=settings.celery_task_serializer,
    result_serializer=settings.celery_result_serializer,
    timezone="UTC",
    enable_utc=True,
    **_ssl_conf,
    beat_schedule={
        "monthly-change-quota-reset": {
            "task": "quota_reset.reset_monthly_changes",
            "schedule": crontab(day_of_month=1, hour=0, minute=0),  # 1st, 00:00 UTC
        },
    },
)

celery_app.autodiscover_tasks(["webstability.tasks"])


def get_celery_app() -> Celery:
    return celery_app
