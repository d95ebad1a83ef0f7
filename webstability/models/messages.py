"""
ChatMessage model - append-only conversation between client and developer.
"""

import uuid

from sqlalchemy import Column, String, Text, Boolean, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from webstability.db.base import Base, UTCDateTime, utcnow


class ChatMessage(Base):
    __tablename__ = "project_messages"

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

    # client | developer
    sender = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    read = Column(Boolean, nullable=False, default=False)

    sent_at = Column(UTCDateTime, nullable=False, default=utcnow, index=True)

    project = relationship("Project", back_populates="messages")
