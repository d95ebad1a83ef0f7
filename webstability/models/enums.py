"""
Enumerations for the delivery domain.

Phases are deliberately absent: they belong to the configured phase graph
(see ``webstability.core.phases``), not to a fixed enum.
"""

from enum import Enum


class Package(str, Enum):
    """Enumeration of the sold website packages"""

    STARTER = "starter"
    PROFESSIONAL = "professional"
    BUSINESS = "business"
    WEBSHOP = "webshop"


class ServiceType(str, Enum):
    WEBSITE = "website"
    WEBSHOP = "webshop"
    LOGO = "logo"
    DRONE = "drone"


class PaymentStatus(str, Enum):
    """Enumeration of possible payment statuses of a project"""

    PENDING = "pending"
    AWAITING_PAYMENT = "awaiting_payment"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class ChangeRequestStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ChangeRequestCategory(str, Enum):
    TEXT = "text"
    DESIGN = "design"
    IMAGES = "images"
    FUNCTIONALITY = "functionality"
    OTHER = "other"


class ChangeRequestPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    URGENT = "urgent"


class FeedbackType(str, Enum):
    DESIGN = "design"
    REVIEW = "review"


class FeedbackRating(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class FeedbackStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"


class DomainTransferStatus(str, Enum):
    NOT_STARTED = "not_started"
    INSTRUCTIONS_SENT = "instructions_sent"
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    NOT_NEEDED = "not_needed"


class EmailSetupStatus(str, Enum):
    NOT_STARTED = "not_started"
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    NOT_NEEDED = "not_needed"


class EmailPreference(str, Enum):
    NONE = "none"
    NEW = "new"
    EXISTING = "existing"


class Actor(str, Enum):
    """Who is asking for a state change"""

    CLIENT = "client"
    DEVELOPER = "developer"


# Legacy spellings still produced by older dashboards and stored records.
STATUS_ALIASES = {
    "done": ChangeRequestStatus.COMPLETED.value,
    "in-progress": ChangeRequestStatus.IN_PROGRESS.value,
    "inprogress": ChangeRequestStatus.IN_PROGRESS.value,
    "open": ChangeRequestStatus.PENDING.value,
}

CATEGORY_ALIASES = {
    "content": ChangeRequestCategory.TEXT.value,
    "feature": ChangeRequestCategory.FUNCTIONALITY.value,
    "bug": ChangeRequestCategory.FUNCTIONALITY.value,
}

PACKAGE_ALIASES = {
    "premium": Package.BUSINESS.value,
    "professioneel": Package.PROFESSIONAL.value,
}


def normalize_alias(value, aliases: dict[str, str]):
    """Map a legacy spelling to its canonical value; other values pass through."""
    if isinstance(value, str):
        cleaned = value.strip().lower()
        return aliases.get(cleaned, cleaned)
    return value
