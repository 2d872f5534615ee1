"""
Module: incentive_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the import surface for
    ``incentive_services``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import ``incentive_kernel`` domain types and
    ``incentive_config.schema``.  MUST NOT import ``incentive_services``.

Invariants enforced:
    - Purity: engines never read the wall clock; "today" is passed in.
    - Decimal-only arithmetic for every amount and percentage.
    - Determinism: identical inputs give identical outputs (apart from
      generated row ids).

Audit relevance:
    Core calculators are wrapped in ``@traced_engine`` (see
    ``incentive_engines.tracer``), emitting INCENTIVE_ENGINE_TRACE records
    with the engine name, version, input fingerprint and duration.
"""

from incentive_kernel.logging_config import get_logger

logger = get_logger("engines")

from incentive_engines.attribution import (
    DEFAULT_VP_SPLIT,
    AttributionOutcome,
    ClosingArrLine,
    ClosingArrOutcome,
    DealShare,
    attribute_variable_pay,
    calculate_closing_arr,
    split_amount,
)
from incentive_engines.commission import (
    CommissionCalculation,
    CommissionSummary,
    calculate_deal_commission,
    calculate_deal_commissions,
    summarize_commissions,
)
from incentive_engines.incremental import (
    IncrementalAmount,
    calculate_incremental,
)
from incentive_engines.multiplier import (
    calculate_achievement_pct,
    calculate_bonus_allocation,
    calculate_metric_payout,
    resolve_multiplier,
    validate_tiers,
)
from incentive_engines.nrr import NrrDealLine, NrrResult, calculate_nrr_payout
from incentive_engines.payout import EmployeePayoutResult, calculate_monthly_payout
from incentive_engines.proration import (
    assignment_for_month,
    blended_target_bonus,
    fnf_proration_factor,
)
from incentive_engines.settlement import (
    ComponentEntitlement,
    calculate_tranche1_lines,
    calculate_tranche2_lines,
)
from incentive_engines.spiff import (
    SpiffDealLine,
    SpiffResult,
    calculate_all_spiffs,
    calculate_spiff_payout,
)
from incentive_engines.tracer import traced_engine

__all__ = [
    "DEFAULT_VP_SPLIT",
    "AttributionOutcome",
    "ClosingArrLine",
    "ClosingArrOutcome",
    "DealShare",
    "attribute_variable_pay",
    "calculate_closing_arr",
    "split_amount",
    "CommissionCalculation",
    "CommissionSummary",
    "calculate_deal_commission",
    "calculate_deal_commissions",
    "summarize_commissions",
    "IncrementalAmount",
    "calculate_incremental",
    "calculate_achievement_pct",
    "calculate_bonus_allocation",
    "calculate_metric_payout",
    "resolve_multiplier",
    "validate_tiers",
    "NrrDealLine",
    "NrrResult",
    "calculate_nrr_payout",
    "EmployeePayoutResult",
    "calculate_monthly_payout",
    "assignment_for_month",
    "blended_target_bonus",
    "fnf_proration_factor",
    "ComponentEntitlement",
    "calculate_tranche1_lines",
    "calculate_tranche2_lines",
    "SpiffDealLine",
    "SpiffResult",
    "calculate_all_spiffs",
    "calculate_spiff_payout",
    "traced_engine",
]
