"""
ChangeRequest model - client-submitted modifications to a live website.

Rows are never deleted by the ledger; status moves are appended to
``history`` so the full audit trail stays with the request.
"""

import uuid

from sqlalchemy import Column, String, Text, JSON, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from webstability.db.base import Base, UTCDateTime, utcnow


class ChangeRequest(Base):
    __tablename__ = "change_requests"

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    project_id = Column(
        String,
        ForeignKey("projects.project_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title = Column(String, nullable=True)
    description = Column(Text, nullable=False)

    # text | design | images | functionality | other
    category = Column(String, nullable=False, default="other")

    # low | normal | urgent
    priority = Column(String, nullable=False, default="normal", index=True)

    # pending | in_progress | completed
    status = Column(String, nullable=False, default="pending", index=True)

    # Developer-authored, only at or after completion
    response = Column(Text, nullable=True)

    # [{"status", "at", "response"?}]
    history = Column(JSON, nullable=False, default=list)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow)
    completed_at = Column(UTCDateTime, nullable=True)

    project = relationship("Project", back_populates="change_requests")
