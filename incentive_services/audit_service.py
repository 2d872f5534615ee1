"""
incentive_services.audit_service -- Buffered payout audit trail.

Responsibility:
    Collect audit entries while a calculation runs and write them to
    ``payout_audit_log`` once the calculation's own transaction has
    committed.

Architecture position:
    Services -- shared by the run orchestrator, the clawback service and
    the settlement service.

Invariants enforced:
    - Audit writes use their own session; a failed audit write never rolls
      back or fails the calculation that produced it.
    - Entries are append-only.

Failure modes:
    - Database errors during ``flush`` are logged as ``audit_write_failed``
      and the buffer is dropped.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from incentive_kernel.domain.clock import Clock
from incentive_kernel.logging_config import get_logger
from incentive_kernel.models.audit import AuditAction, AuditCategory, PayoutAuditLog

logger = get_logger("services.audit")


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


@dataclass(frozen=True)
class AuditEntry:
    action: AuditAction
    category: AuditCategory
    entity_type: str
    entity_id: UUID | None = None
    payout_run_id: UUID | None = None
    employee_id: UUID | None = None
    month_year: str | None = None
    amount_usd: Decimal | None = None
    amount_local: Decimal | None = None
    local_currency: str | None = None
    exchange_rate_used: Decimal | None = None
    rate_type: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)


class AuditSink:
    """
    Buffer of audit entries for one unit of work.

    Contract:
        ``record`` never touches the database.  ``flush`` writes and
        clears the buffer and returns the number of rows written.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock,
        actor_id: UUID,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self._actor_id = actor_id
        self._pending: list[AuditEntry] = []

    @property
    def pending(self) -> tuple[AuditEntry, ...]:
        return tuple(self._pending)

    def record(self, entry: AuditEntry) -> None:
        self._pending.append(entry)

    def record_all(self, entries: list[AuditEntry]) -> None:
        self._pending.extend(entries)

    def discard(self) -> None:
        self._pending.clear()

    def flush(self) -> int:
        if not self._pending:
            return 0
        entries, self._pending = self._pending, []
        occurred_at = self._clock.now()

        session = self._session_factory()
        try:
            session.add_all([
                PayoutAuditLog(
                    action=entry.action.value,
                    category=entry.category.value,
                    entity_type=entry.entity_type,
                    entity_id=entry.entity_id,
                    payout_run_id=entry.payout_run_id,
                    employee_id=entry.employee_id,
                    month_year=entry.month_year,
                    amount_usd=entry.amount_usd,
                    amount_local=entry.amount_local,
                    local_currency=entry.local_currency,
                    exchange_rate_used=entry.exchange_rate_used,
                    rate_type=entry.rate_type,
                    actor_id=self._actor_id,
                    occurred_at=occurred_at,
                    payload=_jsonable(entry.payload) or None,
                )
                for entry in entries
            ])
            session.commit()
        except Exception:
            session.rollback()
            logger.error(
                "audit_write_failed",
                extra={"entry_count": len(entries)},
                exc_info=True,
            )
            return 0
        finally:
            session.close()

        logger.debug("audit_entries_written", extra={"entry_count": len(entries)})
        return len(entries)
