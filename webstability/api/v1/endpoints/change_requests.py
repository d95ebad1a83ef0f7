"""
Change requests API - submission by clients, triage by the developer.
"""

import logging
import uuid

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel

from webstability.api.v1.deps import get_lifecycle_service
from webstability.api.v1.helpers.responses import unwrap_or_raise
from webstability.core.ledger import ChangeRequestStats
from webstability.core.lifecycle import ProjectLifecycleService
from webstability.models.enums import (
    STATUS_ALIASES,
    ChangeRequestPriority,
    normalize_alias,
)
from webstability.models.pydantic_models.project import (
    ChangeRequestModel,
    ChangeRequestStatusUpdate,
    ChangeRequestSubmission,
)

logger = logging.getLogger(__name__)
router = APIRouter()


class ChangeRequestStatsOut(BaseModel):
    total: int
    pending: int
    in_progress: int
    completed: int

    @classmethod
    def from_stats(cls, stats: ChangeRequestStats) -> "ChangeRequestStatsOut":
        return cls(**stats.to_dict())


class ChangeRequestListResponse(BaseModel):
    change_requests: list[ChangeRequestModel]
    stats: ChangeRequestStatsOut


@router.post(
    "/projects/{project_id}/change-requests",
    response_model=ChangeRequestModel,
    status_code=status.HTTP_201_CREATED,
)
async def submit_change_request(
    project_id: str,
    data: ChangeRequestSubmission,
    service: ProjectLifecycleService = Depends(get_lifecycle_service),
):
    change_request = unwrap_or_raise(
        await service.submit_change_request(
            project_id,
            description=data.description,
            category=data.category.value,
            priority=data.priority.value,
            title=data.title,
        )
    )
    return ChangeRequestModel.model_validate(change_request)


@router.get("/change-requests", response_model=ChangeRequestListResponse)
async def list_change_requests(
    status_filter: str | None = Query(None, alias="status"),
    priority: ChangeRequestPriority | None = Query(None),
    project_id: str | None = Query(None),
    service: ProjectLifecycleService = Depends(get_lifecycle_service),
):
    """Developer view: filtered requests plus status counts for the project (or all projects)."""
    change_requests = await service.list_change_requests(
        status=normalize_alias(status_filter, STATUS_ALIASES),
        priority=priority.value if priority else None,
        project_id=project_id,
    )
    # Unhandled work first, then newest
    change_requests.sort(key=lambda cr: cr.status != "pending")
    return ChangeRequestListResponse(
        change_requests=[ChangeRequestModel.model_validate(cr) for cr in change_requests],
        stats=ChangeRequestStatsOut.from_stats(
            await service.change_request_stats(project_id=project_id)
        ),
    )


@router.get("/change-requests/stats", response_model=ChangeRequestStatsOut)
async def change_request_stats(
    project_id: str | None = Query(None),
    service: ProjectLifecycleService = Depends(get_lifecycle_service),
):
    return ChangeRequestStatsOut.from_stats(
        await service.change_request_stats(project_id=project_id)
    )


@router.patch("/change-requests/{change_request_id}", response_model=ChangeRequestModel)
async def update_change_request_status(
    change_request_id: uuid.UUID,
    data: ChangeRequestStatusUpdate,
    service: ProjectLifecycleService = Depends(get_lifecycle_service),
):
    change_request = unwrap_or_raise(
        await service.update_change_request_status(
            change_request_id, data.status.value, data.response
        )
    )
    return ChangeRequestModel.model_validate(change_request)
