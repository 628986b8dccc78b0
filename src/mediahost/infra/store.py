"""SQLAlchemy-backed instance store.

Each call uses its own short session; returned models are detached
(expire_on_commit=False) and safe to read after the session closes.
"""

import logging
from collections.abc import Iterable
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import col

from mediahost.core.domain.instance import LifecycleStatus
from mediahost.core.errors import ConflictError, NotFoundError
from mediahost.core.interfaces.store import InstanceStore
from mediahost.core.models import ActivityLog, CustomerInstance, utc_now

logger = logging.getLogger(__name__)


class SqlInstanceStore(InstanceStore):
    """InstanceStore over an async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, customer_id: str) -> CustomerInstance | None:
        async with self._session_factory() as db:
            result = await db.execute(
                select(CustomerInstance).where(
                    col(CustomerInstance.customer_id) == customer_id
                )
            )
            return result.scalar_one_or_none()

    async def find_by_slug(self, subdomain_slug: str) -> CustomerInstance | None:
        async with self._session_factory() as db:
            result = await db.execute(
                select(CustomerInstance).where(
                    col(CustomerInstance.subdomain_slug) == subdomain_slug
                )
            )
            return result.scalar_one_or_none()

    async def add(self, instance: CustomerInstance) -> CustomerInstance:
        async with self._session_factory() as db:
            db.add(instance)
            try:
                await db.commit()
            except IntegrityError as exc:
                await db.rollback()
                # Lost a race against a concurrent create
                logger.warning(
                    "Uniqueness violation on insert for customer %s",
                    instance.customer_id,
                    extra={"customer_id": instance.customer_id, "error": str(exc.orig)},
                )
                raise ConflictError(
                    "Customer already has an instance or subdomain is taken"
                ) from exc
            await db.refresh(instance)
            return instance

    async def update(self, customer_id: str, **values: Any) -> CustomerInstance:
        values["updated_at"] = utc_now()
        async with self._session_factory() as db:
            result = await db.execute(
                update(CustomerInstance)
                .where(col(CustomerInstance.customer_id) == customer_id)
                .values(**values)
            )
            if result.rowcount == 0:
                await db.rollback()
                raise NotFoundError(f"No instance for customer {customer_id}")
            await db.commit()

            fresh = await db.execute(
                select(CustomerInstance)
                .where(col(CustomerInstance.customer_id) == customer_id)
                .execution_options(populate_existing=True)
            )
            return fresh.scalar_one()

    async def remove(self, customer_id: str) -> None:
        async with self._session_factory() as db:
            await db.execute(
                delete(CustomerInstance).where(
                    col(CustomerInstance.customer_id) == customer_id
                )
            )
            await db.commit()

    async def list_instances(
        self, statuses: Iterable[LifecycleStatus] | None = None
    ) -> list[CustomerInstance]:
        query = select(CustomerInstance).order_by(col(CustomerInstance.created_at))
        if statuses is not None:
            query = query.where(
                col(CustomerInstance.status).in_([str(s) for s in statuses])
            )
        async with self._session_factory() as db:
            result = await db.execute(query)
            return list(result.scalars().all())

    async def log_activity(
        self, customer_id: str, action: str, detail: dict[str, Any] | None = None
    ) -> None:
        async with self._session_factory() as db:
            db.add(
                ActivityLog(customer_id=customer_id, action=str(action), detail=detail or {})
            )
            await db.commit()

    async def list_activity(self, customer_id: str, limit: int = 50) -> list[ActivityLog]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(ActivityLog)
                .where(col(ActivityLog.customer_id) == customer_id)
                .order_by(col(ActivityLog.created_at).desc(), col(ActivityLog.id).desc())
                .limit(limit)
            )
            return list(result.scalars().all())
