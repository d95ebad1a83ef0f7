"""
Change-request ledger for live projects.

Requests move ``pending ↔ in_progress`` and ``pending | in_progress →
completed``. ``completed`` is terminal for status, although the developer may
still edit the response afterwards. Each accepted change is appended to the
request's ``history``.
"""

import logging
from dataclasses import asdict, dataclass

from webstability.core.errors import ErrorKind, Result
from webstability.core.quota import RevisionQuotaTracker
from webstability.core.store import ProjectStore
from webstability.db.base import utcnow
from webstability.models import ChangeRequest, Project
from webstability.models.enums import (
    ChangeRequestCategory,
    ChangeRequestPriority,
    ChangeRequestStatus,
)

logger = logging.getLogger(__name__)

PENDING = ChangeRequestStatus.PENDING.value
IN_PROGRESS = ChangeRequestStatus.IN_PROGRESS.value
COMPLETED = ChangeRequestStatus.COMPLETED.value

ALLOWED_STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    PENDING: frozenset({IN_PROGRESS, COMPLETED}),
    IN_PROGRESS: frozenset({PENDING, COMPLETED}),
    COMPLETED: frozenset(),
}


@dataclass(frozen=True)
class ChangeRequestStats:
    total: int = 0
    pending: int = 0
    in_progress: int = 0
    completed: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def summarize(change_requests: list[ChangeRequest]) -> ChangeRequestStats:
    counts = {PENDING: 0, IN_PROGRESS: 0, COMPLETED: 0}
    for change_request in change_requests:
        if change_request.status in counts:
            counts[change_request.status] += 1
    return ChangeRequestStats(
        total=len(change_requests),
        pending=counts[PENDING],
        in_progress=counts[IN_PROGRESS],
        completed=counts[COMPLETED],
    )


class ChangeRequestLedger:
    def __init__(self, quota_tracker: RevisionQuotaTracker, live_phase: str = "live"):
        self.quota_tracker = quota_tracker
        self.live_phase = live_phase

    async def create(
        self,
        store: ProjectStore,
        project: Project,
        description: str,
        category: ChangeRequestCategory | str = ChangeRequestCategory.OTHER,
        priority: ChangeRequestPriority | str = ChangeRequestPriority.NORMAL,
        title: str | None = None,
    ) -> Result[ChangeRequest]:
        """Insert a request and consume one monthly change unit.

        Both writes are flushed through ``store`` and committed together by
        the caller, so a failed insert never leaves the counter incremented.
        """
        if not description or not description.strip():
            return Result.failure(
                ErrorKind.INVALID_INPUT, "Change request description must not be empty"
            )

        try:
            category = ChangeRequestCategory(category).value
            priority = ChangeRequestPriority(priority).value
        except ValueError as e:
            return Result.failure(ErrorKind.INVALID_INPUT, str(e))

        if project.phase != self.live_phase:
            return Result.failure(
                ErrorKind.INVALID_TRANSITION,
                f"Change requests can only be submitted once the site is live "
                f"(current phase: {project.phase})",
            )

        consumed = self.quota_tracker.consume(project)
        if not consumed.ok:
            return Result(error=consumed.error)

        now = utcnow()
        change_request = ChangeRequest(
            project_id=project.project_id,
            title=title.strip() if title else None,
            description=description.strip(),
            category=category,
            priority=priority,
            status=PENDING,
            history=[{"status": PENDING, "at": now.isoformat()}],
            created_at=now,
            updated_at=now,
        )
        project.change_requests.append(change_request)
        project.updated_at = now
        await store.put(project)

        logger.info(
            f"Change request {change_request.id} created for {project.project_id} "
            f"({project.changes_this_month} used this month)"
        )
        return Result.success(change_request)

    def transition(
        self,
        change_request: ChangeRequest,
        new_status: ChangeRequestStatus | str,
        response: str | None = None,
    ) -> Result[ChangeRequest]:
        try:
            target = ChangeRequestStatus(new_status).value
        except ValueError:
            return Result.failure(
                ErrorKind.INVALID_INPUT, f"Unknown change request status '{new_status}'"
            )

        current = change_request.status
        response = response.strip() if response and response.strip() else None

        if response is not None and target != COMPLETED:
            return Result.failure(
                ErrorKind.INVALID_INPUT,
                "A response can only be given when completing a change request",
            )

        now = utcnow()

        if current == target:
            if target == COMPLETED and response is not None:
                # Response edit on a finished request; completed_at is kept
                change_request.response = response
                change_request.updated_at = now
                change_request.history = list(change_request.history or []) + [
                    {"status": COMPLETED, "at": now.isoformat(), "response": response}
                ]
            return Result.success(change_request)

        if target not in ALLOWED_STATUS_TRANSITIONS.get(current, frozenset()):
            return Result.failure(
                ErrorKind.INVALID_STATUS_TRANSITION,
                f"Cannot move a change request from '{current}' to '{target}'",
            )

        entry = {"status": target, "at": now.isoformat()}
        change_request.status = target
        change_request.updated_at = now
        if target == COMPLETED:
            change_request.completed_at = now
            if response is not None:
                change_request.response = response
                entry["response"] = response
        else:
            change_request.completed_at = None
        change_request.history = list(change_request.history or []) + [entry]

        logger.info(f"Change request {change_request.id}: {current} -> {target}")
        return Result.success(change_request)

    async def list_by_filter(
        self,
        store: ProjectStore,
        status: str | None = None,
        priority: str | None = None,
        project_id: str | None = None,
        newest_first: bool = True,
    ) -> list[ChangeRequest]:
        return await store.list_change_requests(
            status=status,
            priority=priority,
            project_id=project_id,
            newest_first=newest_first,
        )

    async def stats(
        self, store: ProjectStore, project_id: str | None = None
    ) -> ChangeRequestStats:
        return summarize(await self.list_by_filter(store, project_id=project_id))
