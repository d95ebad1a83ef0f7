"""
Router assembly for the delivery API.

Project-scoped routes (checklist, pre-live sections, feedback, messages) are
mounted under ``/projects`` next to the project routes themselves; change
requests and payments carry their own paths because they are also addressed
without a project (developer triage, provider webhooks).
"""

from fastapi import APIRouter

from webstability.api.v1.endpoints import (
    change_requests,
    feedback,
    messages,
    payments,
    prelive,
    projects,
)

api_router = APIRouter()
api_router.include_router(projects.router, prefix="/projects", tags=["projects"])
api_router.include_router(prelive.router, prefix="/projects", tags=["prelive"])
api_router.include_router(feedback.router, prefix="/projects", tags=["feedback"])
api_router.include_router(messages.router, prefix="/projects", tags=["messages"])
api_router.include_router(change_requests.router, tags=["change-requests"])
api_router.include_router(payments.router, tags=["payments"])
