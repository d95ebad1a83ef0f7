"""
Webstability delivery API entry point.

On startup the lifecycle service is assembled from settings (phase graph,
lock backend, payment gateway, notifier) and stored on ``app.state``;
endpoints reach it through ``get_lifecycle_service``.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from webstability.config import settings, setup_opentelemetry
from webstability.api.v1.router import api_router
from webstability.api.v1.helpers.responses import infrastructure_error_handler
from webstability.core.errors import InfrastructureError
from webstability.core.interfaces import build_notifier, build_payment_gateway
from webstability.core.lifecycle import ProjectLifecycleService
from webstability.core.locks import build_lock_manager
from webstability.core.phases import get_phase_graph
from webstability.db.session import get_session_local
from logging import getLogger, Filter
import logging

logger = getLogger(__name__)
logger.setLevel(logging.INFO)


class HealthCheckFilter(Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return record.getMessage().find("/health") == -1


logging.getLogger("uvicorn.access").addFilter(HealthCheckFilter())


app = FastAPI(title=settings.app_name, debug=settings.debug, redirect_slashes=False)


def build_lifecycle_service() -> ProjectLifecycleService:
    return ProjectLifecycleService(
        session_factory=get_session_local(),
        graph=get_phase_graph(settings.phase_graph),
        payment_gateway=build_payment_gateway(),
        notifier=build_notifier(),
        lock_manager=build_lock_manager(),
        retry_attempts=settings.conflict_retry_attempts,
    )


@app.on_event("startup")
async def startup_event():
    logger.info("--- Starting webstability startup ---")

    setup_opentelemetry()

    # Tests install their own service before the app starts
    if not hasattr(app.state, "lifecycle_service"):
        app.state.lifecycle_service = build_lifecycle_service()

    logger.info(
        f"--- webstability startup completed (phase graph: {settings.phase_graph}, "
        f"locks: {settings.project_lock_backend}) ---"
    )


@app.on_event("shutdown")
async def shutdown_event():
    try:
        logger.info("--- Server shutting down! ---")

        from webstability.db.session import dispose_engine

        await dispose_engine()
        logger.info("--- Database connections closed. ---")

        locks = getattr(app.state, "lifecycle_service", None)
        locks = getattr(locks, "locks", None)
        if hasattr(locks, "close"):
            await locks.close()
            logger.info("--- Lock backend connection closed. ---")
    except Exception as e:
        logger.error(f"Warning: Error during shutdown: {e}")


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(InfrastructureError, infrastructure_error_handler)

app.include_router(api_router, prefix="/api/v1")


@app.get("/health")
def health_check():
    return {"status": "healthy"}


@app.get("/")
def read_root():
    return {"message": "Welcome to the Webstability delivery API"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
