"""
Base model classes for PaySettle.

Provides SQLAlchemy declarative base and shared mixins.
"""
import uuid
from datetime import datetime
from sqlalchemy import DateTime, String, Enum as SQLEnum
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


def new_id() -> str:
    """Generate a string UUID primary key."""
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class IdMixin:
    """String UUID primary key shared by every table."""
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=new_id
    )


class TimestampMixin:
    """
    Mixin that adds created_at and updated_at timestamps to models.

    Uses server-side defaults for automatic timestamp management.
    """
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )


def enum_type(enum_cls) -> SQLEnum:
    """Non-native enum column type that persists member values, not names."""
    return SQLEnum(
        enum_cls,
        native_enum=False,
        values_callable=lambda members: [member.value for member in members],
        length=30,
    )
