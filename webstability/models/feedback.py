"""
FeedbackEntry model - design/review commentary submitted before go-live.
"""

import uuid

from sqlalchemy import Column, String, Text, JSON, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from webstability.db.base import Base, UTCDateTime, utcnow


class FeedbackEntry(Base):
    __tablename__ = "feedback_entries"

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

    # design | review
    type = Column(String, nullable=False, default="design")

    # [{"rating": positive|negative|neutral, "category", "priority", "comment"}]
    items = Column(JSON, nullable=False, default=list)

    # pending | resolved
    status = Column(String, nullable=False, default="pending")

    developer_response = Column(Text, nullable=True)

    submitted_at = Column(UTCDateTime, nullable=False, default=utcnow)
    resolved_at = Column(UTCDateTime, nullable=True)

    project = relationship("Project", back_populates="feedback_entries")

    def has_negative_items(self) -> bool:
        return any((item or {}).get("rating") == "negative" for item in self.items or [])
