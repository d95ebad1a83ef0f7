"""
Messages API - the client/developer conversation attached to a project.
"""

import logging

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from webstability.api.v1.deps import get_lifecycle_service
from webstability.api.v1.helpers.responses import unwrap_or_raise
from webstability.core.lifecycle import ProjectLifecycleService
from webstability.models.enums import Actor
from webstability.models.pydantic_models.project import ChatMessageModel

logger = logging.getLogger(__name__)
router = APIRouter()


class MessageCreateRequest(BaseModel):
    sender: Actor
    message: str = Field(..., max_length=5000)


class MarkReadRequest(BaseModel):
    reader: Actor


class MarkReadOut(BaseModel):
    marked_read: int


@router.get("/{project_id}/messages", response_model=list[ChatMessageModel])
async def list_messages(
    project_id: str,
    service: ProjectLifecycleService = Depends(get_lifecycle_service),
):
    project = unwrap_or_raise(await service.get_project(project_id))
    return [ChatMessageModel.model_validate(m) for m in project.messages]


@router.post(
    "/{project_id}/messages",
    response_model=ChatMessageModel,
    status_code=status.HTTP_201_CREATED,
)
async def post_message(
    project_id: str,
    data: MessageCreateRequest,
    service: ProjectLifecycleService = Depends(get_lifecycle_service),
):
    message = unwrap_or_raise(
        await service.post_message(project_id, data.sender, data.message)
    )
    return ChatMessageModel.model_validate(message)


@router.post("/{project_id}/messages/read", response_model=MarkReadOut)
async def mark_messages_read(
    project_id: str,
    data: MarkReadRequest,
    service: ProjectLifecycleService = Depends(get_lifecycle_service),
):
    count = unwrap_or_raise(await service.mark_messages_read(project_id, data.reader))
    return MarkReadOut(marked_read=count)
