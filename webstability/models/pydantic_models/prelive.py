"""
Pydantic models for the configuration captured between payment and go-live.

These are stored as JSON on the Project row and parsed on use, so every
field has a default: partially filled-in sections are normal.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from webstability.models.enums import (
    DomainTransferStatus,
    EmailPreference,
    EmailSetupStatus,
)


class DomainInfo(BaseModel):
    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    has_domain: bool = False
    wants_new_domain: bool = False
    domain_name: str | None = None
    registrar: str | None = None
    auth_code: str | None = None
    transfer_status: DomainTransferStatus = DomainTransferStatus.NOT_STARTED
    updated_at: datetime | None = None


class EmailInfo(BaseModel):
    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    email_preference: EmailPreference | None = None
    wants_webstability_email: bool = False
    wants_email_forwarding: bool = False
    current_provider: str | None = None
    desired_emails: list[str] = Field(default_factory=list)
    email_setup_status: EmailSetupStatus = EmailSetupStatus.NOT_STARTED
    updated_at: datetime | None = None


class LegalInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    has_privacy_policy: bool = False
    privacy_policy_url: str | None = None
    wants_privacy_policy_created: bool = False
    has_terms_conditions: bool = False
    terms_conditions_url: str | None = None
    wants_terms_created: bool = False
    wants_analytics: bool | None = None
    updated_at: datetime | None = None


class BusinessInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    kvk_number: str | None = None
    btw_number: str | None = None
    updated_at: datetime | None = None


class PreLiveChecklist(BaseModel):
    """Boolean gates evaluated before a project may go live, each optionally timestamped."""

    model_config = ConfigDict(extra="ignore")

    payment_received: bool = False
    payment_received_at: datetime | None = None
    auth_code_provided: bool = False
    auth_code_provided_at: datetime | None = None
    domain_transfer_completed: bool = False
    domain_transfer_completed_at: datetime | None = None
    privacy_policy_provided: bool = False
    privacy_policy_provided_at: datetime | None = None
    terms_conditions_provided: bool = False
    terms_conditions_provided_at: datetime | None = None
    email_preference_confirmed: bool = False
    email_preference_confirmed_at: datetime | None = None
    email_setup_completed: bool = False
    email_setup_completed_at: datetime | None = None
    analytics_agreed: bool = False
    analytics_agreed_at: datetime | None = None
    final_approval_given: bool = False
    final_approval_given_at: datetime | None = None


CHECKLIST_GATES = (
    "payment_received",
    "auth_code_provided",
    "domain_transfer_completed",
    "privacy_policy_provided",
    "terms_conditions_provided",
    "email_preference_confirmed",
    "email_setup_completed",
    "analytics_agreed",
    "final_approval_given",
)


# ── section updates ───────────────────────────────────────────────────────


class DomainSectionUpdate(BaseModel):
    has_domain: bool
    wants_new_domain: bool = False
    domain_name: str | None = None
    registrar: str | None = None
    auth_code: str | None = None
    transfer_status: DomainTransferStatus | None = None


class EmailSectionUpdate(BaseModel):
    email_preference: EmailPreference
    wants_email_forwarding: bool = False
    current_provider: str | None = None
    desired_emails: str | list[str] | None = None
    email_setup_status: EmailSetupStatus | None = None


class LegalSectionUpdate(BaseModel):
    has_privacy_policy: bool = False
    privacy_policy_url: str | None = None
    wants_privacy_policy_created: bool = False
    has_terms_conditions: bool = False
    terms_conditions_url: str | None = None
    wants_terms_created: bool = False
    wants_analytics: bool | None = None


class BusinessSectionUpdate(BaseModel):
    kvk_number: str | None = None
    btw_number: str | None = None


class AnalyticsSectionUpdate(BaseModel):
    wants_analytics: bool


class ApprovalSectionUpdate(BaseModel):
    final_approval_given: bool = True


PRELIVE_SECTIONS: dict[str, type[BaseModel]] = {
    "domain": DomainSectionUpdate,
    "email": EmailSectionUpdate,
    "legal": LegalSectionUpdate,
    "business": BusinessSectionUpdate,
    "analytics": AnalyticsSectionUpdate,
    "approval": ApprovalSectionUpdate,
}
