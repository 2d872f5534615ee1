"""
Module: incentive_kernel.db.base
Responsibility: Declarative bases and column types shared by every payout
    table: UUID keys, ``YYYY-MM`` payout months, ISO currency codes and
    Decimal money columns, plus the TrackedBase actor/timestamp mixin.
Architecture position: Kernel > DB.  Imported by every module under
    models/.  Imports nothing from models/, domain/ or outer layers, so the
    month and currency rules below are restated here rather than shared
    with the domain value helpers.

Invariants enforced:
    - Every row is keyed by a uuid4 stored as String(36).
    - Decimal columns are Numeric(38, 9): USD amounts, local amounts and
      exchange rates all keep full precision until the engines round them.
    - Payout months are stored zero-padded (``2026-03``) so that string
      ordering in range queries matches calendar ordering.
    - Currency codes are stored upper-case.
    - TrackedBase rows always carry the actor that created them.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID bound as its canonical string and read back as ``uuid.UUID``."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return PyUUID(value)


class MonthYear(TypeDecorator):
    """
    Payout month column.

    Binds ``"2026-3"`` and ``"2026-03"`` alike as ``"2026-03"``; anything
    that is not a year and a month 1-12 raises ``ValueError``.
    """

    impl = String(7)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        year, _, month = str(value).partition("-")
        if not (year.isdigit() and month.isdigit() and 1 <= int(month) <= 12):
            raise ValueError(f"Invalid payout month {value!r}, expected YYYY-MM")
        return f"{int(year):04d}-{int(month):02d}"


class CurrencyCode(TypeDecorator):
    """Three-letter ISO currency code, stored upper-case."""

    impl = String(3)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return value.strip().upper()


class Base(DeclarativeBase):
    """
    Declarative base for the payout schema.

    Annotation defaults:
        Decimal  -> Numeric(38, 9)
        datetime -> DateTime(timezone=True)
        UUID     -> UUIDString
        int      -> BigInteger
    Month and currency columns name their type explicitly:
    ``mapped_column(MonthYear())``, ``mapped_column(CurrencyCode())``.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base for rows an actor creates or edits: plans, deals, runs,
    payout lines, ledger entries and settlements.

    ``created_by_id`` is mandatory; repositories stamp ``updated_by_id``
    on every change.  Both timestamps come from the database clock.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
    created_by_id: Mapped[PyUUID] = mapped_column(nullable=False)
    updated_by_id: Mapped[PyUUID | None] = mapped_column(nullable=True)
