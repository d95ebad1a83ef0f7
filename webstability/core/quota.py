"""
Per-package allowances for post-live change requests and pre-live revision rounds.

The tracker only reads and writes the counters; resetting
``changes_this_month`` is the monthly Celery job's business
(see ``webstability.tasks.quota_reset``).
"""

from dataclasses import dataclass, field
from typing import Literal, Mapping

from webstability.core.errors import ErrorKind, Result
from webstability.models.projects import Project


UNLIMITED: Literal["unlimited"] = "unlimited"

# Allowances at or above this value are treated as unlimited
UNLIMITED_THRESHOLD = 999

QuotaRemaining = int | Literal["unlimited"]


DEFAULT_MONTHLY_CHANGES = {
    "starter": 2,
    "professional": 999,
    "business": 999,
    "webshop": 2,
}

DEFAULT_REVISION_ROUNDS = {
    "starter": 2,
    "professional": 4,
    "business": 6,
    "webshop": 2,
}


@dataclass(frozen=True)
class PackageQuotaTable:
    """Injected lookup: package → monthly change allowance and revision rounds."""

    monthly_changes: Mapping[str, int] = field(
        default_factory=lambda: dict(DEFAULT_MONTHLY_CHANGES)
    )
    revision_rounds: Mapping[str, int] = field(
        default_factory=lambda: dict(DEFAULT_REVISION_ROUNDS)
    )
    # Unknown packages get the most conservative allowance
    fallback_allowance: int = 0

    def changes_allowance(self, package: str) -> int:
        return self.monthly_changes.get(package, self.fallback_allowance)

    def revisions_allowance(self, package: str) -> int:
        return self.revision_rounds.get(package, self.fallback_allowance)


def _remaining(allowance: int, used: int) -> QuotaRemaining:
    if allowance >= UNLIMITED_THRESHOLD:
        return UNLIMITED
    return max(allowance - max(used, 0), 0)


class RevisionQuotaTracker:
    def __init__(self, table: PackageQuotaTable | None = None):
        self.table = table or PackageQuotaTable()

    # ── monthly change requests ───────────────────────────────────────────

    def remaining(self, package: str, used: int) -> QuotaRemaining:
        return _remaining(self.table.changes_allowance(package), used)

    def is_unlimited(self, package: str) -> bool:
        return self.remaining(package, 0) == UNLIMITED

    def can_consume(self, package: str, used: int) -> bool:
        remaining = self.remaining(package, used)
        return remaining == UNLIMITED or remaining > 0

    def consume(self, project: Project) -> Result[Project]:
        """Use one monthly change unit. Caller must hold the project's lock."""
        used = project.changes_this_month or 0
        if not self.can_consume(project.package, used):
            allowance = self.table.changes_allowance(project.package)
            return Result.failure(
                ErrorKind.QUOTA_EXCEEDED,
                f"Monthly change limit reached ({used}/{allowance})",
                used=used,
                allowance=allowance,
            )
        project.changes_this_month = used + 1
        return Result.success(project)

    # ── pre-live revision rounds ──────────────────────────────────────────

    def revisions_remaining(self, package: str, used: int) -> QuotaRemaining:
        return _remaining(self.table.revisions_allowance(package), used)

    def can_consume_revision(self, package: str, used: int) -> bool:
        remaining = self.revisions_remaining(package, used)
        return remaining == UNLIMITED or remaining > 0

    def consume_revision(self, project: Project) -> Result[Project]:
        used = project.revisions_used or 0
        if not self.can_consume_revision(project.package, used):
            allowance = self.table.revisions_allowance(project.package)
            return Result.failure(
                ErrorKind.QUOTA_EXCEEDED,
                f"All revision rounds used ({used}/{allowance})",
                used=used,
                allowance=allowance,
            )
        project.revisions_used = used + 1
        return Result.success(project)

    def usage(self, project: Project) -> dict:
        """Snapshot of both allowances, for dashboards."""
        return {
            "changes_used": project.changes_this_month or 0,
            "changes_remaining": self.remaining(
                project.package, project.changes_this_month or 0
            ),
            "revisions_used": project.revisions_used or 0,
            "revisions_remaining": self.revisions_remaining(
                project.package, project.revisions_used or 0
            ),
        }
