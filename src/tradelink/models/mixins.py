"""
Mixins for SQLAlchemy models.
Provides reusable column sets for audit trails, timestamps, etc.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Normalise a stored timestamp to an aware UTC datetime.

    SQLite hands back naive datetimes even for timezone-aware columns.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class AuditMixin:
    """
    Adds audit columns to any model.

    Provides:
    - created_at: Timestamp (UTC) when record is created
    - updated_at: Automatic timestamp (UTC) when record is modified
    - created_by_user_id: Clerk user_id of creator
    - updated_by_user_id: Clerk user_id of last updater

    Usage:
        class MyModel(Base, AuditMixin):
            __tablename__ = "my_table"
            id = Column(UUID, primary_key=True)
            # created_at, updated_at, etc. are inherited automatically
    """

    created_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        comment="UTC timestamp when record was created"
    )

    updated_at = Column(
        DateTime(timezone=True),
        onupdate=utcnow,
        comment="UTC timestamp when record was last updated"
    )

    created_by_user_id = Column(
        String(255),
        comment="Clerk user_id of user who created this record"
    )

    updated_by_user_id = Column(
        String(255),
        comment="Clerk user_id of user who last updated this record"
    )
