"""
PaymentConfirmation model - one row per confirmed provider payment.

``reference`` is the provider's payment id and doubles as the idempotency
key for webhook deliveries.
"""

import uuid

from sqlalchemy import Column, String, Numeric, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from webstability.db.base import Base, UTCDateTime, utcnow


class PaymentConfirmation(Base):
    __tablename__ = "payment_confirmations"

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

    reference = Column(String, nullable=False, unique=True, index=True)
    amount = Column(Numeric(10, 2), nullable=False)

    received_at = Column(UTCDateTime, nullable=False, default=utcnow)

    project = relationship("Project", back_populates="payments")
