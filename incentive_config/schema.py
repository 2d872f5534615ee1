"""
Engine Configuration Schema (``incentive_config.schema``).

Responsibility
--------------
Typed, frozen description of the tunable parameters of the payout engine:
reference currency, batching, clawback and collection grace periods, and
the default payout splits used when a plan does not configure its own.

Architecture position
---------------------
**Config layer** -- pure data.  Produced by ``incentive_config.loader``
and consumed by engines and services.  Imports only kernel domain types.

Invariants enforced
-------------------
* ``batch_size`` and ``max_workers`` are positive.
* Grace periods are non-negative; ``days_in_year`` is 365 or 366.
* Every default split sums to 100 (enforced by ``PayoutSplit``).

Failure modes
-------------
* ``ConfigurationError`` naming the offending field.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from decimal import Decimal
from typing import Any

from incentive_kernel.domain.plans import PayoutSplit
from incentive_kernel.exceptions import ConfigurationError, InvalidSplitError
from incentive_kernel.logging_config import get_logger

logger = get_logger("config.schema")


def _split(booking: str, collection: str, year_end: str) -> PayoutSplit:
    return PayoutSplit(Decimal(booking), Decimal(collection), Decimal(year_end))


@dataclass(frozen=True)
class EngineConfig:
    """
    Runtime parameters of the payout engine.

    Contract:
        Immutable once built; share one instance across a run.
    Non-goals:
        Plan-level settings (rates, tiers, splits a plan does configure)
        live on ``CompensationPlan``, not here.
    """

    reference_currency: str = "USD"
    batch_size: int = 5
    max_workers: int = 5
    default_clawback_period_days: int = 180
    default_collection_grace_days: int = 90
    days_in_year: int = 365
    default_vp_split: PayoutSplit = field(default_factory=lambda: _split("70", "25", "5"))
    default_commission_split: PayoutSplit = field(default_factory=lambda: _split("75", "25", "0"))
    default_spiff_split: PayoutSplit = field(default_factory=lambda: _split("0", "100", "0"))
    money_places: int = 2

    def __post_init__(self) -> None:
        if len(self.reference_currency) != 3:
            raise ConfigurationError("reference_currency", "must be a 3-letter ISO code")
        if self.batch_size < 1:
            raise ConfigurationError("batch_size", "must be at least 1")
        if self.max_workers < 1:
            raise ConfigurationError("max_workers", "must be at least 1")
        if self.default_clawback_period_days < 0:
            raise ConfigurationError("default_clawback_period_days", "cannot be negative")
        if self.default_collection_grace_days < 0:
            raise ConfigurationError("default_collection_grace_days", "cannot be negative")
        if self.days_in_year not in (365, 366):
            raise ConfigurationError("days_in_year", "must be 365 or 366")
        if not 0 <= self.money_places <= 6:
            raise ConfigurationError("money_places", "must be between 0 and 6")

        logger.debug(
            "engine_config_initialized",
            extra={
                "reference_currency": self.reference_currency,
                "batch_size": self.batch_size,
                "max_workers": self.max_workers,
            },
        )

    @classmethod
    def with_defaults(cls) -> EngineConfig:
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EngineConfig:
        """
        Build from a parsed YAML mapping.

        Splits are given as ``{booking: 70, collection: 25, year_end: 5}``.
        Unknown keys raise ``ConfigurationError``.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(", ".join(sorted(unknown)), "unknown configuration key")

        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            if key.endswith("_split"):
                kwargs[key] = _parse_split(key, value)
            elif key == "reference_currency":
                kwargs[key] = str(value).upper()
            else:
                try:
                    kwargs[key] = int(value)
                except (TypeError, ValueError) as exc:
                    raise ConfigurationError(key, f"expected an integer, got {value!r}") from exc
        return cls(**kwargs)


def _parse_split(key: str, value: Any) -> PayoutSplit:
    if not isinstance(value, dict):
        raise ConfigurationError(key, "expected a mapping of booking/collection/year_end")
    try:
        return PayoutSplit(
            Decimal(str(value.get("booking", 0))),
            Decimal(str(value.get("collection", 0))),
            Decimal(str(value.get("year_end", 0))),
        )
    except InvalidSplitError as exc:
        raise ConfigurationError(key, f"split must sum to 100, got {exc.total}") from exc
