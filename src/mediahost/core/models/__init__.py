"""Database models for mediahost.

Models are defined using SQLModel (SQLAlchemy + Pydantic).
"""

from mediahost.core.models.instance import (
    ActivityLog,
    CustomerInstance,
    generate_ulid,
    utc_now,
)

__all__ = [
    "ActivityLog",
    "CustomerInstance",
    "generate_ulid",
    "utc_now",
]
