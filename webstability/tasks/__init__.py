from webstability.tasks import quota_reset  # noqa: F401
from webstability.tasks import notifications  # noqa: F401

__all__ = [
    "quota_reset",
    "notifications",
]
