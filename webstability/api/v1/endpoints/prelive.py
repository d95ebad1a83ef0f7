"""
Pre-live API - checklist status and the configuration sections that feed it.
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel

from webstability.api.v1.deps import get_lifecycle_service
from webstability.api.v1.helpers.responses import unwrap_or_raise
from webstability.core.checklist import GATE_LABELS
from webstability.core.lifecycle import ProjectLifecycleService
from webstability.models.pydantic_models.project import ProjectModel

logger = logging.getLogger(__name__)
router = APIRouter()


class ChecklistOut(BaseModel):
    project_id: str
    complete: bool
    required: list[str]
    missing: list[str]
    missing_labels: list[str]
    summary: str


@router.get("/{project_id}/checklist", response_model=ChecklistOut)
async def evaluate_checklist(
    project_id: str,
    service: ProjectLifecycleService = Depends(get_lifecycle_service),
):
    evaluation = unwrap_or_raise(await service.evaluate_checklist(project_id))
    return ChecklistOut(
        project_id=project_id,
        complete=evaluation.complete,
        required=evaluation.required,
        missing=evaluation.missing,
        missing_labels=[GATE_LABELS.get(gate, gate) for gate in evaluation.missing],
        summary=evaluation.summary(),
    )


@router.put("/{project_id}/prelive/{section}", response_model=ProjectModel)
async def update_prelive_section(
    project_id: str,
    section: str,
    data: dict[str, Any] = Body(...),
    service: ProjectLifecycleService = Depends(get_lifecycle_service),
):
    """Sections: domain, email, legal, business, analytics, approval."""
    project = unwrap_or_raise(
        await service.update_prelive_section(project_id, section, data)
    )
    return ProjectModel.model_validate(project)
