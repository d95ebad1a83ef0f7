"""
Keyed access to Project aggregates and their children.

A ``ProjectStore`` wraps one ``AsyncSession``; the caller owns the
transaction boundary. Database errors are surfaced as ``InfrastructureError``
so callers never have to know about SQLAlchemy.
"""

import logging
import uuid
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any

from sqlalchemy import and_, exists, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from webstability.core.errors import InfrastructureError
from webstability.models import ChangeRequest, PaymentConfirmation, Project

logger = logging.getLogger(__name__)


def _store_errors(func: Callable[..., Awaitable[Any]]):
    """Translate driver errors into ``InfrastructureError``.

    ``StaleDataError`` passes through untouched; the lifecycle service retries it.
    """

    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except StaleDataError:
            raise
        except SQLAlchemyError as exc:
            logger.error(f"Store operation {func.__name__} failed: {exc}")
            raise InfrastructureError(f"Store unavailable: {exc}") from exc

    return wrapper


class ProjectStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    # ── projects ──────────────────────────────────────────────────────────

    @_store_errors
    async def get(self, project_id: str) -> Project | None:
        result = await self.session.execute(
            select(Project).where(Project.project_id == project_id)
        )
        return result.scalar_one_or_none()

    @_store_errors
    async def put(self, project: Project) -> Project:
        """Stage a new or changed project and flush it (version check included)."""
        self.session.add(project)
        await self.session.flush()
        return project

    @_store_errors
    async def delete(self, project: Project) -> None:
        # Children go with it through the ORM delete-orphan cascade
        await self.session.delete(project)
        await self.session.flush()

    @_store_errors
    async def list_by_filter(
        self,
        phase: str | None = None,
        package: str | None = None,
        payment_status: str | None = None,
        service_type: str | None = None,
    ) -> list[Project]:
        conditions = []
        if phase:
            conditions.append(Project.phase == phase)
        if package:
            conditions.append(Project.package == package)
        if payment_status:
            conditions.append(Project.payment_status == payment_status)
        if service_type:
            conditions.append(Project.service_type == service_type)

        query = select(Project)
        if conditions:
            query = query.where(and_(*conditions))
        query = query.order_by(Project.created_at.desc())

        result = await self.session.execute(query)
        return list(result.scalars().all())

    @_store_errors
    async def project_id_exists(self, project_id: str) -> bool:
        result = await self.session.execute(
            select(exists().where(Project.project_id == project_id))
        )
        return bool(result.scalar())

    @_store_errors
    async def referral_code_exists(self, code: str) -> bool:
        result = await self.session.execute(
            select(exists().where(Project.referral_code == code))
        )
        return bool(result.scalar())

    @_store_errors
    async def get_by_referral_code(self, code: str) -> Project | None:
        result = await self.session.execute(
            select(Project).where(Project.referral_code == code)
        )
        return result.scalar_one_or_none()

    # ── change requests ───────────────────────────────────────────────────

    @_store_errors
    async def get_change_request(self, change_request_id: uuid.UUID) -> ChangeRequest | None:
        result = await self.session.execute(
            select(ChangeRequest).where(ChangeRequest.id == change_request_id)
        )
        return result.scalar_one_or_none()

    @_store_errors
    async def list_change_requests(
        self,
        status: str | None = None,
        priority: str | None = None,
        project_id: str | None = None,
        newest_first: bool = True,
    ) -> list[ChangeRequest]:
        conditions = []
        if status:
            conditions.append(ChangeRequest.status == status)
        if priority:
            conditions.append(ChangeRequest.priority == priority)
        if project_id:
            conditions.append(ChangeRequest.project_id == project_id)

        query = select(ChangeRequest)
        if conditions:
            query = query.where(and_(*conditions))
        order = (
            ChangeRequest.created_at.desc()
            if newest_first
            else ChangeRequest.created_at.asc()
        )
        result = await self.session.execute(query.order_by(order))
        return list(result.scalars().all())

    # ── payments ──────────────────────────────────────────────────────────

    @_store_errors
    async def get_payment_by_reference(self, reference: str) -> PaymentConfirmation | None:
        result = await self.session.execute(
            select(PaymentConfirmation).where(PaymentConfirmation.reference == reference)
        )
        return result.scalar_one_or_none()
