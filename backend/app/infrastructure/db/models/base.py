"""
Base Model for SQLModel ORM

Provides common fields and behavior for all database models.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from app.domain.clock import utcnow


class TimestampMixin(SQLModel):
    """
    Mixin providing timestamp fields for models.
    """

    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=DateTime(timezone=True),
        description="Record creation timestamp (UTC)"
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=DateTime(timezone=True),
        sa_column_kwargs={"onupdate": utcnow},
        description="Last update timestamp (UTC)"
    )


class IntegerIDMixin(SQLModel):
    """
    Mixin providing an autoincrement integer primary key.
    """

    id: Optional[int] = Field(
        default=None,
        primary_key=True,
        description="Numeric identifier"
    )


def timestamp_field(description: str, index: bool = False) -> Optional[datetime]:
    """Nullable timezone-aware timestamp column."""
    return Field(
        default=None,
        sa_type=DateTime(timezone=True),
        index=index,
        description=description,
    )
