"""
Projects API - intake, lookup, phase moves, referral codes and quota usage.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel

from webstability.api.v1.deps import get_lifecycle_service
from webstability.api.v1.helpers.responses import (
    APIResponse,
    success_response,
    unwrap_or_raise,
)
from webstability.core.lifecycle import ProjectLifecycleService
from webstability.core.phases import translate_phase
from webstability.models.enums import Actor
from webstability.models.pydantic_models.project import (
    ProjectIntake,
    ProjectModel,
    ProjectSummaryModel,
)

logger = logging.getLogger(__name__)
router = APIRouter()


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class PhaseTransitionRequest(BaseModel):
    target: str
    actor: Actor = Actor.CLIENT
    override: bool = False


class TransitionCheckOut(BaseModel):
    allowed: bool
    reason: str | None = None
    message: str
    missing: list[str] = []


class PhaseOut(BaseModel):
    project_id: str
    phase: str
    vocabulary: str
    display_phase: str
    next_phases: list[str]
    history: list[dict[str, Any]]


class ReferralCodeOut(BaseModel):
    project_id: str
    referral_code: str


class ReferralLookupOut(BaseModel):
    referral_code: str
    business_name: str


class QuotaUsageOut(BaseModel):
    package: str
    changes_used: int
    changes_remaining: int | str
    revisions_used: int
    revisions_remaining: int | str


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("/", response_model=ProjectModel, status_code=status.HTTP_201_CREATED)
async def create_project(
    data: ProjectIntake,
    service: ProjectLifecycleService = Depends(get_lifecycle_service),
):
    project = unwrap_or_raise(await service.create_project(data))
    return ProjectModel.model_validate(project)


@router.get("/", response_model=list[ProjectSummaryModel])
async def list_projects(
    phase: str | None = Query(None),
    package: str | None = Query(None),
    payment_status: str | None = Query(None),
    service_type: str | None = Query(None),
    service: ProjectLifecycleService = Depends(get_lifecycle_service),
):
    projects = await service.list_projects(
        phase=phase,
        package=package,
        payment_status=payment_status,
        service_type=service_type,
    )
    return [ProjectSummaryModel.model_validate(p) for p in projects]


@router.get("/referrals/{code}", response_model=ReferralLookupOut)
async def lookup_referral_code(
    code: str,
    service: ProjectLifecycleService = Depends(get_lifecycle_service),
):
    """Public check used by the intake form before submitting ``referred_by``."""
    project = unwrap_or_raise(await service.lookup_referral_code(code))
    return ReferralLookupOut(
        referral_code=project.referral_code, business_name=project.business_name
    )


@router.get("/{project_id}", response_model=ProjectModel)
async def get_project(
    project_id: str,
    service: ProjectLifecycleService = Depends(get_lifecycle_service),
):
    project = unwrap_or_raise(await service.get_project(project_id))
    return ProjectModel.model_validate(project)


@router.delete("/{project_id}", response_model=APIResponse)
async def delete_project(
    project_id: str,
    service: ProjectLifecycleService = Depends(get_lifecycle_service),
):
    unwrap_or_raise(await service.delete_project(project_id))
    return success_response(message=f"Project {project_id} deleted")


@router.get("/{project_id}/phase", response_model=PhaseOut)
async def get_phase(
    project_id: str,
    vocabulary: str = Query("client", pattern="^(client|developer)$"),
    service: ProjectLifecycleService = Depends(get_lifecycle_service),
):
    """Current phase, optionally shown in the developer dashboard's vocabulary."""
    project = unwrap_or_raise(await service.get_project(project_id))
    graph = service.graph
    return PhaseOut(
        project_id=project.project_id,
        phase=project.phase,
        vocabulary=vocabulary,
        display_phase=translate_phase(project.phase, graph.name, vocabulary),
        next_phases=list(graph.successors(project.phase)),
        history=project.phase_history or [],
    )


@router.post("/{project_id}/phase/check", response_model=TransitionCheckOut)
async def check_phase_transition(
    project_id: str,
    data: PhaseTransitionRequest,
    service: ProjectLifecycleService = Depends(get_lifecycle_service),
):
    check = unwrap_or_raise(
        await service.check_phase_transition(
            project_id, data.target, data.actor, data.override
        )
    )
    return TransitionCheckOut(
        allowed=check.allowed,
        reason=check.reason.value if check.reason else None,
        message=check.message,
        missing=check.missing,
    )


@router.post("/{project_id}/phase", response_model=ProjectModel)
async def request_phase_transition(
    project_id: str,
    data: PhaseTransitionRequest,
    service: ProjectLifecycleService = Depends(get_lifecycle_service),
):
    project = unwrap_or_raise(
        await service.request_phase_transition(
            project_id, data.target, data.actor, data.override
        )
    )
    return ProjectModel.model_validate(project)


@router.post("/{project_id}/referral-code", response_model=ReferralCodeOut)
async def get_or_create_referral_code(
    project_id: str,
    service: ProjectLifecycleService = Depends(get_lifecycle_service),
):
    code = unwrap_or_raise(await service.get_or_create_referral_code(project_id))
    return ReferralCodeOut(project_id=project_id, referral_code=code)


@router.get("/{project_id}/quota", response_model=QuotaUsageOut)
async def get_quota_usage(
    project_id: str,
    service: ProjectLifecycleService = Depends(get_lifecycle_service),
):
    project = unwrap_or_raise(await service.get_project(project_id))
    return QuotaUsageOut(package=project.package, **service.quota_usage(project))
