"""
consolidation_kernel.db.base -- Declarative base for consolidation tables.

Responsibility:
    One DeclarativeBase shared by every ORM model, with the column type
    conventions for this package and a TrackedBase that stamps rows with
    database-side creation and update times.

Architecture position:
    Kernel > DB.  Imports nothing from the domain or outer layers; models
    live in ``consolidation_services.orm``.

Invariants enforced:
    - Decimal columns are Numeric(38, 9), never float.
    - datetime columns carry a timezone.
    - ``dict`` columns are JSON documents.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar

from sqlalchemy import JSON, DateTime, Integer, Numeric, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Shared metadata and annotation-driven column types."""

    type_annotation_map: ClassVar[dict[Any, Any]] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        dict: JSON,
    }


class TrackedBase(Base):
    """
    Abstract table with a surrogate key and row timestamps.

    Domain identifiers (run ids, rule ids) are separate unique columns on
    each model; ``pk`` never leaves the persistence layer.
    """

    __abstract__ = True

    pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
