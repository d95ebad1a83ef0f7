"""
Project aggregate root.

One row per client engagement. Configuration captured during the
onboarding-to-live workflow lives in JSON columns and is parsed into the
pydantic models of ``webstability.models.pydantic_models.prelive`` on use.

``version`` is the optimistic-concurrency counter: every flush that changes
the row bumps it and checks the previous value, so two writers racing on the
same project cannot both succeed.
"""

import uuid

from sqlalchemy import CheckConstraint, Column, Integer, String, JSON
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from webstability.db.base import Base, UTCDateTime, utcnow


class Project(Base):
    __tablename__ = "projects"

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        unique=True,
        index=True,
        nullable=False,
        default=uuid.uuid4,
    )
    # Client-facing short code (WS-XXXXXX), immutable once assigned
    project_id = Column(String, nullable=False, unique=True, index=True)

    business_name = Column(String, nullable=False)
    contact_name = Column(String, nullable=True)
    contact_email = Column(String, nullable=True)
    contact_phone = Column(String, nullable=True)

    package = Column(String, nullable=False)
    service_type = Column(String, nullable=False, default="website")

    phase = Column(String, nullable=False, index=True)
    # pending | awaiting_payment | paid | failed | refunded
    payment_status = Column(String, nullable=False, default="pending")
    payment_url = Column(String, nullable=True)
    payment_completed_at = Column(UTCDateTime, nullable=True)
    last_payment_at = Column(UTCDateTime, nullable=True)

    revisions_used = Column(Integer, nullable=False, default=0)
    changes_this_month = Column(Integer, nullable=False, default=0)
    changes_reset_at = Column(UTCDateTime, nullable=True)

    domain_info = Column(JSON, nullable=True, default=dict)
    email_info = Column(JSON, nullable=True, default=dict)
    legal_info = Column(JSON, nullable=True, default=dict)
    business_info = Column(JSON, nullable=True, default=dict)
    prelive_checklist = Column(JSON, nullable=True, default=dict)
    intake_data = Column(JSON, nullable=True, default=dict)

    # Audit trail of phase moves: [{"from", "to", "actor", "override", "at"}]
    phase_history = Column(JSON, nullable=True, default=list)

    referral_code = Column(String, nullable=True, unique=True, index=True)
    referred_by = Column(String, nullable=True)

    live_date = Column(UTCDateTime, nullable=True)
    last_developer_response_at = Column(UTCDateTime, nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow)

    version = Column(Integer, nullable=False)

    change_requests = relationship(
        "ChangeRequest",
        back_populates="project",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ChangeRequest.created_at",
    )
    feedback_entries = relationship(
        "FeedbackEntry",
        back_populates="project",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="FeedbackEntry.submitted_at",
    )
    messages = relationship(
        "ChatMessage",
        back_populates="project",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ChatMessage.sent_at",
    )
    payments = relationship(
        "PaymentConfirmation",
        back_populates="project",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PaymentConfirmation.received_at",
    )

    __table_args__ = (
        CheckConstraint("revisions_used >= 0", name="ck_projects_revisions_used"),
        CheckConstraint(
            "changes_this_month >= 0", name="ck_projects_changes_this_month"
        ),
    )

    __mapper_args__ = {"version_id_col": version}
