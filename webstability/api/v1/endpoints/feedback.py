"""
Feedback API - design and review feedback before go-live.
"""

import logging
import uuid

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from webstability.api.v1.deps import get_lifecycle_service
from webstability.api.v1.helpers.responses import unwrap_or_raise
from webstability.core.lifecycle import ProjectLifecycleService
from webstability.models.pydantic_models.project import (
    FeedbackEntryModel,
    FeedbackSubmission,
)

logger = logging.getLogger(__name__)
router = APIRouter()


class FeedbackResolveRequest(BaseModel):
    response: str | None = None


@router.post(
    "/{project_id}/feedback",
    response_model=FeedbackEntryModel,
    status_code=status.HTTP_201_CREATED,
)
async def submit_feedback(
    project_id: str,
    data: FeedbackSubmission,
    service: ProjectLifecycleService = Depends(get_lifecycle_service),
):
    entry = unwrap_or_raise(
        await service.submit_feedback(project_id, data.type, data.items)
    )
    return FeedbackEntryModel.model_validate(entry)


@router.post(
    "/{project_id}/feedback/{feedback_id}/resolve", response_model=FeedbackEntryModel
)
async def resolve_feedback(
    project_id: str,
    feedback_id: uuid.UUID,
    data: FeedbackResolveRequest,
    service: ProjectLifecycleService = Depends(get_lifecycle_service),
):
    entry = unwrap_or_raise(
        await service.resolve_feedback(project_id, feedback_id, data.response)
    )
    return FeedbackEntryModel.model_validate(entry)
