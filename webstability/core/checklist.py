"""
Pre-live checklist evaluation.

The checklist is a conditional AND: which gates are mandatory depends on the
client's stated domain and email choices, so ``required_gates`` is computed
first and only those gates are checked. Nothing is cached; every call reads
the current JSON on the project.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel

from webstability.db.base import utcnow
from webstability.models.enums import DomainTransferStatus, EmailPreference, EmailSetupStatus
from webstability.models.projects import Project
from webstability.models.pydantic_models.prelive import (
    AnalyticsSectionUpdate,
    ApprovalSectionUpdate,
    BusinessInfo,
    BusinessSectionUpdate,
    DomainInfo,
    DomainSectionUpdate,
    EmailInfo,
    EmailSectionUpdate,
    LegalInfo,
    LegalSectionUpdate,
    PreLiveChecklist,
)

logger = logging.getLogger(__name__)

# Always mandatory, in display order
BASE_GATES = (
    "payment_received",
    "privacy_policy_provided",
    "terms_conditions_provided",
    "email_preference_confirmed",
    "final_approval_given",
)

GATE_LABELS = {
    "payment_received": "payment received",
    "auth_code_provided": "domain auth code provided",
    "domain_transfer_completed": "domain transfer completed",
    "privacy_policy_provided": "privacy policy provided",
    "terms_conditions_provided": "terms and conditions provided",
    "email_preference_confirmed": "email preference confirmed",
    "email_setup_completed": "business email set up",
    "analytics_agreed": "analytics agreed",
    "final_approval_given": "final approval given",
}


@dataclass(frozen=True)
class ChecklistEvaluation:
    complete: bool
    missing: list[str] = field(default_factory=list)
    required: list[str] = field(default_factory=list)

    def summary(self) -> str:
        if self.complete:
            return "checklist complete"
        count = len(self.missing)
        noun = "item" if count == 1 else "items"
        return f"{count} checklist {noun} missing"


def _as_model(model: type[BaseModel], value: Any) -> Any:
    if isinstance(value, model):
        return value
    return model.model_validate(value or {})


def _stamp(checklist: dict, gate: str, value: bool, now: datetime) -> None:
    """Set a gate, keeping the original timestamp when it was already true."""
    was_set = bool(checklist.get(gate))
    checklist[gate] = value
    if value and not was_set:
        checklist[f"{gate}_at"] = now.isoformat()
    elif not value:
        checklist[f"{gate}_at"] = None


class PreLiveChecklistEngine:
    def required_gates(
        self, domain_info: DomainInfo | dict | None, email_info: EmailInfo | dict | None
    ) -> list[str]:
        domain = _as_model(DomainInfo, domain_info)
        email = _as_model(EmailInfo, email_info)

        required = list(BASE_GATES)

        # A brand-new domain is provisioned directly, there is nothing to transfer
        if domain.has_domain and not domain.wants_new_domain:
            required.append("domain_transfer_completed")

        if (
            email.wants_webstability_email or email.wants_email_forwarding
        ) and email.email_setup_status != EmailSetupStatus.NOT_NEEDED.value:
            required.append("email_setup_completed")

        return required

    def missing(
        self,
        checklist: PreLiveChecklist | dict | None,
        domain_info: DomainInfo | dict | None,
        email_info: EmailInfo | dict | None,
    ) -> list[str]:
        gates = _as_model(PreLiveChecklist, checklist)
        return [
            gate
            for gate in self.required_gates(domain_info, email_info)
            if not getattr(gates, gate)
        ]

    def is_complete(
        self,
        checklist: PreLiveChecklist | dict | None,
        domain_info: DomainInfo | dict | None = None,
        email_info: EmailInfo | dict | None = None,
    ) -> bool:
        return not self.missing(checklist, domain_info, email_info)

    def evaluate(self, project: Project) -> ChecklistEvaluation:
        required = self.required_gates(project.domain_info, project.email_info)
        missing = self.missing(
            project.prelive_checklist, project.domain_info, project.email_info
        )
        return ChecklistEvaluation(
            complete=not missing, missing=missing, required=required
        )

    # ── section updates ───────────────────────────────────────────────────

    def apply_section(self, project: Project, section: str, data: BaseModel) -> None:
        """Merge a pre-live section into the project and derive the matching gates.

        JSON columns are always reassigned (never mutated in place) so the
        change is picked up by the ORM.
        """
        now = utcnow()
        checklist = dict(project.prelive_checklist or {})

        if isinstance(data, DomainSectionUpdate):
            domain = _as_model(DomainInfo, project.domain_info).model_dump(mode="json")
            domain.update(data.model_dump(mode="json", exclude_none=True))
            if data.wants_new_domain or not data.has_domain:
                domain["transfer_status"] = DomainTransferStatus.NOT_NEEDED.value
            elif domain["transfer_status"] == DomainTransferStatus.NOT_NEEDED.value:
                # An existing domain always has to be transferred
                domain["transfer_status"] = DomainTransferStatus.NOT_STARTED.value
            domain["updated_at"] = now.isoformat()
            project.domain_info = domain
            _stamp(
                checklist,
                "auth_code_provided",
                bool(data.auth_code) or not data.has_domain or data.wants_new_domain,
                now,
            )
            _stamp(
                checklist,
                "domain_transfer_completed",
                domain["transfer_status"] == DomainTransferStatus.COMPLETED.value,
                now,
            )

        elif isinstance(data, EmailSectionUpdate):
            email = _as_model(EmailInfo, project.email_info).model_dump(mode="json")
            desired = data.desired_emails
            if isinstance(desired, str):
                desired = [e.strip() for e in desired.split(",") if e.strip()]
            email.update(
                {
                    "email_preference": data.email_preference.value,
                    "wants_webstability_email": data.email_preference
                    == EmailPreference.NEW,
                    "wants_email_forwarding": data.wants_email_forwarding,
                    "current_provider": data.current_provider,
                    "desired_emails": desired or [],
                    "updated_at": now.isoformat(),
                }
            )
            if data.email_setup_status is not None:
                email["email_setup_status"] = data.email_setup_status.value
            elif not (email["wants_webstability_email"] or data.wants_email_forwarding):
                email["email_setup_status"] = EmailSetupStatus.NOT_NEEDED.value
            project.email_info = email
            _stamp(checklist, "email_preference_confirmed", True, now)
            _stamp(
                checklist,
                "email_setup_completed",
                email["email_setup_status"] == EmailSetupStatus.COMPLETED.value,
                now,
            )

        elif isinstance(data, LegalSectionUpdate):
            legal = _as_model(LegalInfo, project.legal_info).model_dump(mode="json")
            legal.update(data.model_dump(mode="json"))
            legal["updated_at"] = now.isoformat()
            project.legal_info = legal
            _stamp(
                checklist,
                "privacy_policy_provided",
                data.has_privacy_policy or data.wants_privacy_policy_created,
                now,
            )
            _stamp(
                checklist,
                "terms_conditions_provided",
                data.has_terms_conditions or data.wants_terms_created,
                now,
            )

        elif isinstance(data, BusinessSectionUpdate):
            business = _as_model(BusinessInfo, project.business_info).model_dump(
                mode="json"
            )
            business.update(data.model_dump(mode="json"))
            business["updated_at"] = now.isoformat()
            project.business_info = business

        elif isinstance(data, AnalyticsSectionUpdate):
            legal = _as_model(LegalInfo, project.legal_info).model_dump(mode="json")
            legal["wants_analytics"] = data.wants_analytics
            legal["updated_at"] = now.isoformat()
            project.legal_info = legal
            _stamp(checklist, "analytics_agreed", True, now)

        elif isinstance(data, ApprovalSectionUpdate):
            _stamp(checklist, "final_approval_given", data.final_approval_given, now)

        else:
            raise TypeError(f"Unsupported pre-live section payload: {type(data)!r}")

        project.prelive_checklist = checklist
        logger.info(f"Pre-live section '{section}' updated for {project.project_id}")

    def set_gate(self, project: Project, gate: str, value: bool) -> None:
        checklist = dict(project.prelive_checklist or {})
        _stamp(checklist, gate, value, utcnow())
        project.prelive_checklist = checklist
