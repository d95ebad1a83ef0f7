"""
ProjectLifecycleService - the only entry point callers use.

Every mutation runs under the project's lock in a fresh session:

    lock(project_id) → read → decide → commit → release → notify

Business-rule violations come back as ``Result`` failures and roll the
session back. A concurrent writer that slipped past the lock shows up as a
``StaleDataError`` on the version column; the whole read-decide-commit cycle
is retried a bounded number of times before giving up with a Conflict.
Notifications are queued during the operation and only sent after commit.
"""

import logging
import uuid
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from decimal import Decimal, InvalidOperation
from typing import Any, AsyncIterator

from opentelemetry import trace
from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
)

from webstability.config import settings
from webstability.core.checklist import ChecklistEvaluation, PreLiveChecklistEngine
from webstability.core.errors import ErrorKind, InfrastructureError, Result
from webstability.core.interfaces import (
    PACKAGE_PRICES,
    LoggingNotifier,
    NoopPaymentGateway,
    Notifier,
    PaymentGateway,
)
from webstability.core.ledger import ChangeRequestLedger, ChangeRequestStats
from webstability.core.locks import LocalProjectLocks, ProjectLockManager
from webstability.core.phases import (
    PhaseGraph,
    PhaseStateMachine,
    TransitionCheck,
    get_phase_graph,
)
from webstability.core.quota import PackageQuotaTable, RevisionQuotaTracker
from webstability.core.referrals import ReferralCodeService, generate_project_code
from webstability.core.store import ProjectStore
from webstability.db.base import utcnow
from webstability.models import (
    ChangeRequest,
    ChatMessage,
    FeedbackEntry,
    PaymentConfirmation,
    Project,
)
from webstability.models.enums import (
    Actor,
    FeedbackStatus,
    FeedbackType,
    PaymentStatus,
)
from webstability.models.pydantic_models.prelive import PRELIVE_SECTIONS
from webstability.models.pydantic_models.project import FeedbackItemIn, ProjectIntake

logger = logging.getLogger(__name__)
tracer = trace.get_tracer("webstability.lifecycle")

# (kind, recipient, payload), sent once the transaction has committed
Notification = tuple[str, str, dict[str, Any]]
Operation = Callable[[ProjectStore, Project, list[Notification]], Awaitable[Result]]

# Mollie statuses that end a payment attempt without money moving
FAILED_PAYMENT_STATUSES = frozenset({"failed", "canceled", "expired"})


class ProjectLifecycleService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        graph: PhaseGraph | None = None,
        quota_table: PackageQuotaTable | None = None,
        payment_gateway: PaymentGateway | None = None,
        notifier: Notifier | None = None,
        lock_manager: ProjectLockManager | None = None,
        retry_attempts: int | None = None,
        referral_service: ReferralCodeService | None = None,
    ):
        self.session_factory = session_factory
        self.graph = graph or get_phase_graph(settings.phase_graph)
        self.quota = RevisionQuotaTracker(quota_table)
        self.checklist = PreLiveChecklistEngine()
        self.state_machine = PhaseStateMachine(self.graph, self.quota, self.checklist)
        self.ledger = ChangeRequestLedger(self.quota, live_phase=self.graph.live_phase)
        self.referrals = referral_service or ReferralCodeService()
        self.payment_gateway = payment_gateway or NoopPaymentGateway()
        self.notifier = notifier or LoggingNotifier()
        self.locks = lock_manager or LocalProjectLocks()
        self.retry_attempts = retry_attempts or settings.conflict_retry_attempts

    # ── plumbing ──────────────────────────────────────────────────────────

    @asynccontextmanager
    async def _reader(self) -> AsyncIterator[ProjectStore]:
        """Read-only snapshot; no lock, nothing committed.

        Closing the session detaches the loaded objects without expiring them,
        so callers can keep reading their columns and selectin collections.
        """
        async with self.session_factory() as session:
            yield ProjectStore(session)

    async def _run_once(
        self, project_id: str, operation: Operation
    ) -> tuple[Result, list[Notification]]:
        outbox: list[Notification] = []
        async with self.session_factory() as session:
            store = ProjectStore(session)
            project = await store.get(project_id)
            if project is None:
                return _project_not_found(project_id), outbox

            result = await operation(store, project, outbox)
            if not result.ok:
                await session.rollback()
                return result, []

            try:
                await session.commit()
            except StaleDataError:
                raise
            except SQLAlchemyError as exc:
                logger.error(f"Commit failed for project {project_id}: {exc}")
                raise InfrastructureError(f"Store unavailable: {exc}") from exc
        return result, outbox

    async def _mutate(self, name: str, project_id: str, operation: Operation) -> Result:
        with tracer.start_as_current_span(f"lifecycle.{name}") as span:
            span.set_attribute("project.id", project_id)

            async with self.locks.hold(project_id):
                try:
                    async for attempt in AsyncRetrying(
                        retry=retry_if_exception_type(StaleDataError),
                        stop=stop_after_attempt(self.retry_attempts),
                        reraise=True,
                        before_sleep=before_sleep_log(logger, logging.WARNING),
                    ):
                        with attempt:
                            result, outbox = await self._run_once(project_id, operation)
                except StaleDataError as exc:
                    logger.error(
                        f"{name} on {project_id} kept conflicting after "
                        f"{self.retry_attempts} attempts"
                    )
                    raise InfrastructureError(
                        f"Project {project_id} was modified concurrently, please retry",
                        kind=ErrorKind.CONFLICT,
                    ) from exc

            if not result.ok:
                span.set_attribute("lifecycle.error", result.error.kind.value)

        await self._dispatch(outbox)
        return result

    async def _dispatch(self, outbox: list[Notification]) -> None:
        for kind, recipient, payload in outbox:
            try:
                await self.notifier.send(kind, recipient, payload)
            except Exception as e:
                # State is already committed; a lost notification is only logged
                logger.error(f"Failed to send '{kind}' notification to {recipient}: {e}")

    def _notify_client(
        self, outbox: list[Notification], project: Project, kind: str, **payload
    ) -> None:
        if not project.contact_email:
            return
        outbox.append(
            (
                kind,
                project.contact_email,
                {
                    "project_id": project.project_id,
                    "business_name": project.business_name,
                    **payload,
                },
            )
        )

    def _notify_developer(
        self, outbox: list[Notification], project: Project, kind: str, **payload
    ) -> None:
        outbox.append(
            (
                kind,
                settings.developer_notification_email,
                {
                    "project_id": project.project_id,
                    "business_name": project.business_name,
                    **payload,
                },
            )
        )

    # ── projects ──────────────────────────────────────────────────────────

    async def create_project(self, intake: ProjectIntake) -> Result[Project]:
        with tracer.start_as_current_span("lifecycle.create_project"):
            async with self.session_factory() as session:
                store = ProjectStore(session)

                referred_by = None
                if intake.referred_by:
                    referrer = await self.referrals.lookup(store, intake.referred_by)
                    if referrer is None:
                        return Result.failure(
                            ErrorKind.INVALID_INPUT,
                            f"Unknown referral code '{intake.referred_by}'",
                        )
                    referred_by = referrer.referral_code

                now = utcnow()
                project = Project(
                    project_id=await generate_project_code(store),
                    business_name=intake.business_name,
                    contact_name=intake.contact_name,
                    contact_email=intake.contact_email,
                    contact_phone=intake.contact_phone,
                    package=intake.package.value,
                    service_type=intake.service_type.value,
                    phase=self.graph.initial_phase,
                    payment_status=PaymentStatus.PENDING.value,
                    revisions_used=0,
                    changes_this_month=0,
                    domain_info={},
                    email_info={},
                    legal_info={},
                    business_info={},
                    prelive_checklist={},
                    intake_data=dict(intake.intake_data),
                    phase_history=[],
                    referred_by=referred_by,
                    created_at=now,
                    updated_at=now,
                    change_requests=[],
                    feedback_entries=[],
                    messages=[],
                    payments=[],
                )
                await store.put(project)
                try:
                    await session.commit()
                except SQLAlchemyError as exc:
                    logger.error(f"Could not create project: {exc}")
                    raise InfrastructureError(f"Store unavailable: {exc}") from exc

        logger.info(
            f"Created project {project.project_id} ({project.package}) "
            f"for {project.business_name}"
        )
        return Result.success(project)

    async def get_project(self, project_id: str) -> Result[Project]:
        async with self._reader() as store:
            project = await store.get(project_id)
        if project is None:
            return _project_not_found(project_id)
        return Result.success(project)

    async def list_projects(
        self,
        phase: str | None = None,
        package: str | None = None,
        payment_status: str | None = None,
        service_type: str | None = None,
    ) -> list[Project]:
        async with self._reader() as store:
            return await store.list_by_filter(
                phase=phase,
                package=package,
                payment_status=payment_status,
                service_type=service_type,
            )

    async def delete_project(self, project_id: str) -> Result[None]:
        async def operation(store, project, outbox):
            await store.delete(project)
            logger.info(f"Deleted project {project_id}")
            return Result.success(None)

        return await self._mutate("delete_project", project_id, operation)

    # ── phases ────────────────────────────────────────────────────────────

    async def check_phase_transition(
        self,
        project_id: str,
        target: str,
        actor: Actor | str,
        override: bool = False,
    ) -> Result[TransitionCheck]:
        actor_result = _parse_actor(actor)
        if not actor_result.ok:
            return actor_result
        found = await self.get_project(project_id)
        if not found.ok:
            return found
        return Result.success(
            self.state_machine.can_transition(
                found.value, target, actor_result.value, override
            )
        )

    async def request_phase_transition(
        self,
        project_id: str,
        target: str,
        actor: Actor | str,
        override: bool = False,
    ) -> Result[Project]:
        actor_result = _parse_actor(actor)
        if not actor_result.ok:
            return actor_result

        async def operation(store, project, outbox):
            previous = project.phase
            result = self.state_machine.apply_transition(
                project, target, actor_result.value, override
            )
            if not result.ok:
                return result
            await store.put(project)
            self._notify_client(
                outbox, project, "phase_changed", from_phase=previous, to_phase=target
            )
            return result

        return await self._mutate("request_phase_transition", project_id, operation)

    # ── change requests ───────────────────────────────────────────────────

    async def submit_change_request(
        self,
        project_id: str,
        description: str,
        category: str = "other",
        priority: str = "normal",
        title: str | None = None,
    ) -> Result[ChangeRequest]:
        async def operation(store, project, outbox):
            result = await self.ledger.create(
                store, project, description, category, priority, title
            )
            if result.ok:
                self._notify_developer(
                    outbox,
                    project,
                    "change_request_submitted",
                    change_request_id=str(result.value.id),
                    title=result.value.title,
                    description=result.value.description,
                    priority=result.value.priority,
                )
            return result

        return await self._mutate("submit_change_request", project_id, operation)

    async def update_change_request_status(
        self,
        change_request_id: uuid.UUID | str,
        status: str,
        response: str | None = None,
    ) -> Result[ChangeRequest]:
        try:
            change_request_id = uuid.UUID(str(change_request_id))
        except ValueError:
            return Result.failure(
                ErrorKind.INVALID_INPUT, f"Invalid change request id '{change_request_id}'"
            )

        async with self._reader() as store:
            existing = await store.get_change_request(change_request_id)
        if existing is None:
            return Result.failure(
                ErrorKind.NOT_FOUND, f"Change request {change_request_id} not found"
            )

        async def operation(store, project, outbox):
            change_request = next(
                (cr for cr in project.change_requests if cr.id == change_request_id),
                None,
            )
            if change_request is None:
                return Result.failure(
                    ErrorKind.NOT_FOUND, f"Change request {change_request_id} not found"
                )

            was_completed = change_request.status == "completed"
            result = self.ledger.transition(change_request, status, response)
            if not result.ok:
                return result

            project.updated_at = utcnow()
            await store.put(project)
            if not was_completed and change_request.status == "completed":
                self._notify_client(
                    outbox,
                    project,
                    "change_request_completed",
                    change_request_id=str(change_request.id),
                    title=change_request.title,
                    response=change_request.response,
                )
            return result

        return await self._mutate(
            "update_change_request_status", existing.project_id, operation
        )

    async def list_change_requests(
        self,
        status: str | None = None,
        priority: str | None = None,
        project_id: str | None = None,
    ) -> list[ChangeRequest]:
        async with self._reader() as store:
            return await self.ledger.list_by_filter(
                store, status=status, priority=priority, project_id=project_id
            )

    async def change_request_stats(
        self, project_id: str | None = None
    ) -> ChangeRequestStats:
        async with self._reader() as store:
            return await self.ledger.stats(store, project_id=project_id)

    def quota_usage(self, project: Project) -> dict:
        return self.quota.usage(project)

    # ── payments ──────────────────────────────────────────────────────────

    async def record_payment_confirmed(
        self, project_id: str, amount: Decimal | str | float, reference: str
    ) -> Result[Project]:
        if not reference:
            return Result.failure(ErrorKind.INVALID_INPUT, "Payment reference is required")
        try:
            amount = Decimal(str(amount))
        except InvalidOperation:
            return Result.failure(ErrorKind.INVALID_INPUT, f"Invalid amount '{amount}'")

        async def operation(store, project, outbox):
            existing = await store.get_payment_by_reference(reference)
            if existing is not None:
                if existing.project_id != project.project_id:
                    return Result.failure(
                        ErrorKind.INVALID_INPUT,
                        f"Payment {reference} belongs to another project",
                    )
                logger.info(f"Payment {reference} already recorded, ignoring")
                return Result.success(project)

            now = utcnow()
            project.payments.append(
                PaymentConfirmation(
                    project_id=project.project_id,
                    reference=reference,
                    amount=amount,
                    received_at=now,
                )
            )
            project.last_payment_at = now
            project.updated_at = now

            if project.payment_status != PaymentStatus.PAID.value:
                project.payment_status = PaymentStatus.PAID.value
                project.payment_completed_at = now
                project.payment_url = None
                self.checklist.set_gate(project, "payment_received", True)
                self._notify_client(
                    outbox,
                    project,
                    "payment_confirmed",
                    amount=f"{amount:.2f}",
                    reference=reference,
                )
                logger.info(f"Project {project.project_id} marked as paid ({reference})")

            await store.put(project)
            return Result.success(project)

        return await self._mutate("record_payment_confirmed", project_id, operation)

    async def record_payment_failed(
        self, project_id: str, reference: str | None = None
    ) -> Result[Project]:
        async def operation(store, project, outbox):
            if project.payment_status == PaymentStatus.PAID.value:
                logger.info(
                    f"Ignoring failed payment {reference} for already paid "
                    f"project {project.project_id}"
                )
                return Result.success(project)
            project.payment_status = PaymentStatus.FAILED.value
            project.updated_at = utcnow()
            await store.put(project)
            return Result.success(project)

        return await self._mutate("record_payment_failed", project_id, operation)

    async def record_refund(
        self, project_id: str, reference: str | None = None
    ) -> Result[Project]:
        async def operation(store, project, outbox):
            if project.payment_status != PaymentStatus.PAID.value:
                return Result.failure(
                    ErrorKind.INVALID_TRANSITION,
                    f"Only paid projects can be refunded (status: {project.payment_status})",
                )
            project.payment_status = PaymentStatus.REFUNDED.value
            project.updated_at = utcnow()
            self.checklist.set_gate(project, "payment_received", False)
            await store.put(project)
            logger.info(f"Project {project.project_id} refunded ({reference})")
            return Result.success(project)

        return await self._mutate("record_refund", project_id, operation)

    async def request_payment_link(
        self,
        project_id: str,
        amount: Decimal | str | float | None = None,
        description: str | None = None,
    ) -> Result[Project]:
        found = await self.get_project(project_id)
        if not found.ok:
            return found
        snapshot = found.value

        if amount is None:
            amount = PACKAGE_PRICES.get(snapshot.package)
            if amount is None:
                return Result.failure(
                    ErrorKind.INVALID_INPUT,
                    f"No price known for package '{snapshot.package}'",
                )
        try:
            amount = Decimal(str(amount))
        except InvalidOperation:
            return Result.failure(ErrorKind.INVALID_INPUT, f"Invalid amount '{amount}'")
        if amount <= 0:
            return Result.failure(ErrorKind.INVALID_INPUT, "Amount must be positive")

        description = (
            description
            or f"Webstability - {snapshot.package.capitalize()} ({snapshot.project_id})"
        )

        # Provider round-trip happens before the lock is taken
        checkout = await self.payment_gateway.create_checkout(
            snapshot, amount, description
        )

        async def operation(store, project, outbox):
            project.payment_url = checkout.checkout_url
            if project.payment_status != PaymentStatus.PAID.value:
                project.payment_status = PaymentStatus.AWAITING_PAYMENT.value
            project.updated_at = utcnow()
            await store.put(project)
            logger.info(
                f"Payment link {checkout.reference} created for {project.project_id}"
            )
            return Result.success(project)

        return await self._mutate("request_payment_link", project_id, operation)

    async def handle_payment_webhook(self, reference: str) -> Result[Project]:
        """Fetch the payment from the provider and record whatever it reports."""
        report = await self.payment_gateway.fetch_payment(reference)
        if report is None:
            return Result.failure(ErrorKind.NOT_FOUND, f"Payment {reference} not found")

        project_id = report.project_id
        if not project_id:
            async with self._reader() as store:
                known = await store.get_payment_by_reference(reference)
            if known is None:
                return Result.failure(
                    ErrorKind.INVALID_INPUT,
                    f"Payment {reference} is not linked to a project",
                )
            project_id = known.project_id

        if report.status == "paid":
            return await self.record_payment_confirmed(
                project_id, report.amount, report.reference
            )
        if report.status in FAILED_PAYMENT_STATUSES:
            return await self.record_payment_failed(project_id, report.reference)

        logger.info(f"Payment {reference} is {report.status}, nothing to record")
        return await self.get_project(project_id)

    # ── referrals ─────────────────────────────────────────────────────────

    async def get_or_create_referral_code(self, project_id: str) -> Result[str]:
        async def operation(store, project, outbox):
            code, created = await self.referrals.get_or_create(store, project)
            if created:
                self._notify_client(
                    outbox, project, "referral_code_issued", referral_code=code
                )
            return Result.success(code)

        return await self._mutate("get_or_create_referral_code", project_id, operation)

    async def lookup_referral_code(self, code: str) -> Result[Project]:
        async with self._reader() as store:
            project = await self.referrals.lookup(store, code)
        if project is None:
            return Result.failure(ErrorKind.NOT_FOUND, f"Referral code '{code}' not found")
        return Result.success(project)

    # ── pre-live checklist ────────────────────────────────────────────────

    async def evaluate_checklist(self, project_id: str) -> Result[ChecklistEvaluation]:
        found = await self.get_project(project_id)
        if not found.ok:
            return found
        return Result.success(self.checklist.evaluate(found.value))

    async def update_prelive_section(
        self, project_id: str, section: str, data: BaseModel | dict
    ) -> Result[Project]:
        model = PRELIVE_SECTIONS.get(section)
        if model is None:
            return Result.failure(
                ErrorKind.INVALID_INPUT,
                f"Unknown section '{section}'. Choose one of: {', '.join(PRELIVE_SECTIONS)}",
            )
        if not isinstance(data, model):
            try:
                data = model.model_validate(
                    data.model_dump() if isinstance(data, BaseModel) else data
                )
            except ValidationError as e:
                return Result.failure(
                    ErrorKind.INVALID_INPUT,
                    f"Invalid '{section}' section",
                    errors=[err["msg"] for err in e.errors()],
                )

        async def operation(store, project, outbox):
            self.checklist.apply_section(project, section, data)
            project.updated_at = utcnow()
            await store.put(project)
            return Result.success(project)

        return await self._mutate("update_prelive_section", project_id, operation)

    # ── feedback ──────────────────────────────────────────────────────────

    async def submit_feedback(
        self,
        project_id: str,
        type: FeedbackType | str,
        items: list[FeedbackItemIn | dict],
    ) -> Result[FeedbackEntry]:
        try:
            feedback_type = FeedbackType(type).value
            parsed = [
                item if isinstance(item, FeedbackItemIn) else FeedbackItemIn.model_validate(item)
                for item in items
            ]
        except (ValueError, ValidationError) as e:
            return Result.failure(ErrorKind.INVALID_INPUT, f"Invalid feedback: {e}")
        if not parsed:
            return Result.failure(ErrorKind.INVALID_INPUT, "Feedback needs at least one item")

        async def operation(store, project, outbox):
            now = utcnow()
            entry = FeedbackEntry(
                project_id=project.project_id,
                type=feedback_type,
                items=[item.model_dump(mode="json") for item in parsed],
                status=FeedbackStatus.PENDING.value,
                submitted_at=now,
            )
            project.feedback_entries.append(entry)
            project.updated_at = now
            await store.put(project)
            self._notify_developer(
                outbox,
                project,
                "feedback_submitted",
                feedback_id=str(entry.id),
                negative=entry.has_negative_items(),
            )
            return Result.success(entry)

        return await self._mutate("submit_feedback", project_id, operation)

    async def resolve_feedback(
        self,
        project_id: str,
        feedback_id: uuid.UUID | str,
        response: str | None = None,
    ) -> Result[FeedbackEntry]:
        try:
            feedback_id = uuid.UUID(str(feedback_id))
        except ValueError:
            return Result.failure(
                ErrorKind.INVALID_INPUT, f"Invalid feedback id '{feedback_id}'"
            )

        async def operation(store, project, outbox):
            entry = next(
                (e for e in project.feedback_entries if e.id == feedback_id), None
            )
            if entry is None:
                return Result.failure(
                    ErrorKind.NOT_FOUND, f"Feedback {feedback_id} not found"
                )
            now = utcnow()
            entry.status = FeedbackStatus.RESOLVED.value
            entry.resolved_at = now
            if response:
                entry.developer_response = response.strip()
            project.last_developer_response_at = now
            project.updated_at = now
            await store.put(project)
            return Result.success(entry)

        return await self._mutate("resolve_feedback", project_id, operation)

    # ── messages ──────────────────────────────────────────────────────────

    async def post_message(
        self, project_id: str, sender: Actor | str, message: str
    ) -> Result[ChatMessage]:
        actor_result = _parse_actor(sender)
        if not actor_result.ok:
            return actor_result
        if not message or not message.strip():
            return Result.failure(ErrorKind.INVALID_INPUT, "Message must not be empty")

        async def operation(store, project, outbox):
            now = utcnow()
            chat_message = ChatMessage(
                project_id=project.project_id,
                sender=actor_result.value.value,
                message=message.strip(),
                read=False,
                sent_at=now,
            )
            project.messages.append(chat_message)
            if actor_result.value == Actor.DEVELOPER:
                project.last_developer_response_at = now
            project.updated_at = now
            await store.put(project)
            return Result.success(chat_message)

        return await self._mutate("post_message", project_id, operation)

    async def mark_messages_read(
        self, project_id: str, reader: Actor | str
    ) -> Result[int]:
        """Mark every message sent by the other party as read."""
        actor_result = _parse_actor(reader)
        if not actor_result.ok:
            return actor_result

        async def operation(store, project, outbox):
            count = 0
            for chat_message in project.messages:
                if chat_message.sender != actor_result.value.value and not chat_message.read:
                    chat_message.read = True
                    count += 1
            if count:
                project.updated_at = utcnow()
                await store.put(project)
            return Result.success(count)

        return await self._mutate("mark_messages_read", project_id, operation)


def _project_not_found(project_id: str) -> Result:
    return Result.failure(ErrorKind.NOT_FOUND, f"Project {project_id} not found")


def _parse_actor(actor: Actor | str) -> Result[Actor]:
    try:
        return Result.success(Actor(actor))
    except ValueError:
        return Result.failure(ErrorKind.INVALID_INPUT, f"Unknown actor '{actor}'")
