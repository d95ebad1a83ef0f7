"""
Pydantic models for the Project aggregate and its children.

Input models normalize legacy aliases at the boundary so the core only ever
sees canonical values. Output models read straight from the ORM rows.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    field_validator,
    model_validator,
)

from webstability.models.enums import (
    CATEGORY_ALIASES,
    PACKAGE_ALIASES,
    STATUS_ALIASES,
    ChangeRequestCategory,
    ChangeRequestPriority,
    ChangeRequestStatus,
    FeedbackRating,
    FeedbackType,
    Package,
    ServiceType,
    normalize_alias,
)


# ── inputs ────────────────────────────────────────────────────────────────


class ProjectIntake(BaseModel):
    business_name: str = Field(..., min_length=1, max_length=200)
    contact_name: str | None = None
    contact_email: EmailStr | None = None
    contact_phone: str | None = None
    package: Package = Package.STARTER
    service_type: ServiceType = ServiceType.WEBSITE
    referred_by: str | None = None
    intake_data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("package", mode="before")
    @classmethod
    def _normalize_package(cls, value):
        return normalize_alias(value, PACKAGE_ALIASES)

    @field_validator("business_name")
    @classmethod
    def _strip_business_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("business_name must not be blank")
        return value


class FeedbackItemIn(BaseModel):
    rating: FeedbackRating
    category: str = "general"
    priority: str = "normal"
    comment: str | None = None


class FeedbackSubmission(BaseModel):
    type: FeedbackType = FeedbackType.DESIGN
    items: list[FeedbackItemIn] = Field(..., min_length=1)


class ChangeRequestSubmission(BaseModel):
    """Client change request. Older dashboards still post ``request`` instead of ``description``."""

    title: str | None = Field(None, max_length=200)
    description: str = ""
    category: ChangeRequestCategory = ChangeRequestCategory.OTHER
    priority: ChangeRequestPriority = ChangeRequestPriority.NORMAL

    @model_validator(mode="before")
    @classmethod
    def _accept_request_field(cls, data):
        if isinstance(data, dict) and "description" not in data and "request" in data:
            data = {**data, "description": data["request"]}
        return data

    @field_validator("category", mode="before")
    @classmethod
    def _normalize_category(cls, value):
        return normalize_alias(value, CATEGORY_ALIASES)

    @field_validator("priority", mode="before")
    @classmethod
    def _normalize_priority(cls, value):
        return normalize_alias(value, {})


class ChangeRequestStatusUpdate(BaseModel):
    status: ChangeRequestStatus
    response: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value):
        return normalize_alias(value, STATUS_ALIASES)


# ── outputs ───────────────────────────────────────────────────────────────


class ChangeRequestModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: str
    title: str | None = None
    description: str
    category: str
    priority: str
    status: str
    response: str | None = None
    history: list[dict[str, Any]] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime | None = None
    completed_at: datetime | None = None


class FeedbackEntryModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: str
    type: str
    items: list[dict[str, Any]] = Field(default_factory=list)
    status: str
    developer_response: str | None = None
    submitted_at: datetime
    resolved_at: datetime | None = None


class ChatMessageModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: str
    sender: str
    message: str
    read: bool
    sent_at: datetime


class PaymentConfirmationModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    reference: str
    amount: Decimal
    received_at: datetime


class ProjectModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: str
    business_name: str
    contact_name: str | None = None
    contact_email: str | None = None
    contact_phone: str | None = None
    package: str
    service_type: str
    phase: str
    payment_status: str
    payment_url: str | None = None
    payment_completed_at: datetime | None = None
    last_payment_at: datetime | None = None
    revisions_used: int
    changes_this_month: int
    changes_reset_at: datetime | None = None
    domain_info: dict[str, Any] | None = None
    email_info: dict[str, Any] | None = None
    legal_info: dict[str, Any] | None = None
    business_info: dict[str, Any] | None = None
    prelive_checklist: dict[str, Any] | None = None
    intake_data: dict[str, Any] | None = None
    phase_history: list[dict[str, Any]] | None = None
    referral_code: str | None = None
    referred_by: str | None = None
    live_date: datetime | None = None
    created_at: datetime
    updated_at: datetime
    version: int
    change_requests: list[ChangeRequestModel] = Field(default_factory=list)
    feedback_entries: list[FeedbackEntryModel] = Field(default_factory=list)
    messages: list[ChatMessageModel] = Field(default_factory=list)
    payments: list[PaymentConfirmationModel] = Field(default_factory=list)


class ProjectSummaryModel(BaseModel):
    """Lightweight listing row for the developer dashboard."""

    model_config = ConfigDict(from_attributes=True)

    project_id: str
    business_name: str
    package: str
    service_type: str
    phase: str
    payment_status: str
    changes_this_month: int
    live_date: datetime | None = None
    updated_at: datetime
