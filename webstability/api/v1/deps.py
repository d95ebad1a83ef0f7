from fastapi import Request

from webstability.core.lifecycle import ProjectLifecycleService


# The lifecycle service owns its sessions; endpoints never open one directly.
# It is built once at startup and stored on app.state.


def get_lifecycle_service(request: Request) -> ProjectLifecycleService:
    return request.app.state.lifecycle_service
