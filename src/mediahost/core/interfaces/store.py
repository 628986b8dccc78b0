"""Persistence interface for customer instances and their activity log."""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

from mediahost.core.domain.instance import LifecycleStatus
from mediahost.core.models import ActivityLog, CustomerInstance


class InstanceStore(ABC):
    """Interface for the instance record store.

    Returned objects are detached snapshots; write changes back with update().
    Implementations: SqlInstanceStore
    """

    @abstractmethod
    async def get(self, customer_id: str) -> CustomerInstance | None:
        ...

    @abstractmethod
    async def find_by_slug(self, subdomain_slug: str) -> CustomerInstance | None:
        ...

    @abstractmethod
    async def add(self, instance: CustomerInstance) -> CustomerInstance:
        """Insert a new record.

        Raises:
            ConflictError: customer_id, instance_name or slug already taken
        """
        ...

    @abstractmethod
    async def update(self, customer_id: str, **values: Any) -> CustomerInstance:
        """Update columns (and updated_at) and return the fresh record.

        Raises:
            NotFoundError: No record for customer_id
        """
        ...

    @abstractmethod
    async def remove(self, customer_id: str) -> None:
        """Delete the record. Missing is a no-op."""
        ...

    @abstractmethod
    async def list_instances(
        self, statuses: Iterable[LifecycleStatus] | None = None
    ) -> list[CustomerInstance]:
        ...

    @abstractmethod
    async def log_activity(
        self, customer_id: str, action: str, detail: dict[str, Any] | None = None
    ) -> None:
        ...

    @abstractmethod
    async def list_activity(self, customer_id: str, limit: int = 50) -> list[ActivityLog]:
        """Most recent entries first."""
        ...
