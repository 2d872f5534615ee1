"""
Module: incentive_engines.payout
Responsibility:
    One employee's payout for one month: variable pay per plan metric,
    commissions on the month's deals, NRR additional pay, SPIFFs and the
    release of collection holdbacks withheld by earlier runs.  Produces
    payout lines in USD and local currency plus the detail rows that
    explain them.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Reads only the
    prefetched ``PayoutSnapshot``; safe to call from worker threads.

Invariants enforced:
    - VP, NRR and SPIFF are computed year-to-date and paid incrementally:
      this month pays ``max(0, ytd - prior paid)``.
    - Commissions are not incremental; each of the month's deals is
      evaluated once, in the run of its booking month.
    - VP, NRR, SPIFF and releases convert at the employee's compensation
      rate; commissions convert at the month's market rate.
    - A holdback is released at most once per (employee, deal).

Failure modes:
    - ExchangeRateNotFoundError: a non-USD employee has no compensation
      rate, or earns commission in a month without a market rate.

Audit relevance:
    Every amount on a payout line is traceable to a metric, deal or
    closing-ARR detail row produced alongside it.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID, uuid4

from incentive_config.schema import EngineConfig
from incentive_engines.attribution import (
    attribute_variable_pay,
    calculate_closing_arr,
    split_amount,
)
from incentive_engines.commission import (
    CommissionSummary,
    calculate_deal_commissions,
    summarize_commissions,
)
from incentive_engines.incremental import IncrementalAmount, calculate_incremental
from incentive_engines.multiplier import (
    calculate_achievement_pct,
    calculate_bonus_allocation,
    calculate_metric_payout,
    resolve_multiplier,
)
from incentive_engines.nrr import calculate_nrr_payout
from incentive_engines.proration import assignment_for_month, blended_target_bonus
from incentive_engines.spiff import calculate_all_spiffs
from incentive_kernel.domain.payouts import (
    COLLECTION_RELEASE,
    NRR_ADDITIONAL_PAY,
    SPIFF,
    VARIABLE_PAY,
    ClosingArrDetail,
    ComponentType,
    ExchangeRateType,
    MonthlyPayoutLine,
    PayoutCategory,
    PayoutDealDetail,
    PayoutMetricDetail,
    VariablePayAttribution,
)
from incentive_kernel.domain.plans import CommissionType, CompensationPlan, PlanMetric
from incentive_kernel.domain.records import Deal, Employee, MetricType
from incentive_kernel.domain.snapshot import HoldbackItem, PayoutSnapshot
from incentive_kernel.domain.values import HUNDRED, ONE, ZERO, is_month_in_ytd, round_money
from incentive_kernel.exceptions import ExchangeRateNotFoundError
from incentive_kernel.logging_config import get_logger

logger = get_logger("engines.payout")


@dataclass(frozen=True)
class EmployeePayoutResult:
    """Everything one employee's calculation produces for a run."""

    employee_id: UUID
    employee_code: str
    plan_id: UUID
    month_year: str
    target_bonus_usd: Decimal
    compensation_rate: Decimal
    market_rate: Decimal | None
    lines: tuple[MonthlyPayoutLine, ...] = ()
    attributions: tuple[VariablePayAttribution, ...] = ()
    metric_details: tuple[PayoutMetricDetail, ...] = ()
    deal_details: tuple[PayoutDealDetail, ...] = ()
    closing_details: tuple[ClosingArrDetail, ...] = ()
    commission_summary: dict[CommissionType, CommissionSummary] = field(default_factory=dict)

    def _total(self, category: PayoutCategory | None = None) -> Decimal:
        return sum(
            (line.amount_usd for line in self.lines
             if category is None or line.category == category),
            ZERO,
        )

    @property
    def total_usd(self) -> Decimal:
        return self._total()

    @property
    def variable_pay_usd(self) -> Decimal:
        return self._total(PayoutCategory.VP)

    @property
    def commissions_usd(self) -> Decimal:
        return self._total(PayoutCategory.COMMISSION)

    @property
    def additional_pay_usd(self) -> Decimal:
        return self._total(PayoutCategory.ADDITIONAL_PAY)

    @property
    def payable_usd(self) -> Decimal:
        """Amount payable this month: the booking portion of every line."""
        return sum((line.booking_usd for line in self.lines), ZERO)

    @property
    def has_rate_mismatch(self) -> bool:
        return (
            self.market_rate is not None
            and self.market_rate != self.compensation_rate
        )


def metric_target_type(metric_name: str) -> MetricType | None:
    """Target key a plan metric is measured against, from its name."""
    name = metric_name.lower()
    if "closing" in name:
        return MetricType.CLOSING_ARR
    if "software" in name or "booking" in name:
        return MetricType.NEW_SOFTWARE_ARR
    return None


# ---------------------------------------------------------------------------
# Line building
# ---------------------------------------------------------------------------


@dataclass
class _LineBuilder:
    run_id: UUID
    employee: Employee
    month_year: str
    plan_id: UUID
    compensation_rate: Decimal
    market_rate: Decimal | None
    lines: list[MonthlyPayoutLine] = field(default_factory=list)

    def rate_for(self, rate_type: ExchangeRateType) -> Decimal:
        if rate_type == ExchangeRateType.COMPENSATION:
            return self.compensation_rate
        if self.market_rate is None:
            raise ExchangeRateNotFoundError(self.employee.local_currency, self.month_year)
        return self.market_rate

    def add(
        self,
        payout_type: str,
        amount: Decimal,
        booking: Decimal,
        collection: Decimal,
        year_end: Decimal,
        rate_type: ExchangeRateType = ExchangeRateType.COMPENSATION,
        deal_id: UUID | None = None,
        notes: str | None = None,
    ) -> None:
        rate = self.rate_for(rate_type)
        self.lines.append(MonthlyPayoutLine(
            id=uuid4(),
            payout_run_id=self.run_id,
            employee_id=self.employee.id,
            month_year=self.month_year,
            payout_type=payout_type,
            amount_usd=amount,
            amount_local=round_money(amount * rate),
            local_currency=self.employee.local_currency,
            exchange_rate_used=rate,
            exchange_rate_type=rate_type,
            booking_usd=booking,
            collection_usd=collection,
            year_end_usd=year_end,
            booking_local=round_money(booking * rate),
            collection_local=round_money(collection * rate),
            year_end_local=round_money(year_end * rate),
            plan_id=self.plan_id,
            deal_id=deal_id,
            notes=notes,
        ))

    def add_incremental(self, payout_type: str, amounts: Sequence[IncrementalAmount]) -> None:
        total = sum((a.this_month for a in amounts), ZERO)
        if total <= ZERO:
            return
        self.add(
            payout_type,
            total,
            sum((a.booking for a in amounts), ZERO),
            sum((a.collection for a in amounts), ZERO),
            sum((a.year_end for a in amounts), ZERO),
        )


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------


def _variable_pay(
    employee: Employee,
    plan: CompensationPlan,
    metric: PlanMetric,
    target_bonus: Decimal,
    ytd_deals: list[Deal],
    snapshot: PayoutSnapshot,
    config: EngineConfig,
    attributions: list[VariablePayAttribution],
    closing_details: list[ClosingArrDetail],
) -> tuple[PayoutMetricDetail, IncrementalAmount]:
    code = employee.employee_code
    allocation = calculate_bonus_allocation(target_bonus, metric.weightage_percent)
    target_type = metric_target_type(metric.metric_name)
    target = snapshot.target_for(code, target_type.value) if target_type else ZERO
    split = metric.split or config.default_vp_split

    if target_type == MetricType.NEW_SOFTWARE_ARR:
        outcome = attribute_variable_pay(
            ytd_deals, code, metric, target, allocation,
            snapshot.fiscal_year, snapshot.month_year,
            default_split=config.default_vp_split,
        )
        actual = outcome.total_actual_usd
        achievement = outcome.achievement_pct
        multiplier = outcome.multiplier
        ytd_vp = outcome.total_variable_pay_usd
        for share in outcome.shares:
            attributions.append(VariablePayAttribution(
                id=uuid4(),
                payout_run_id=snapshot.run_id,
                deal_id=share.deal_id,
                employee_id=employee.id,
                metric_name=metric.metric_name,
                fiscal_year=snapshot.fiscal_year,
                calculation_month=snapshot.month_year,
                deal_value_usd=share.deal_value_usd,
                proportion_pct=share.proportion_pct,
                variable_pay_split_usd=share.variable_pay_split_usd,
                payout_on_booking_usd=share.payout_on_booking_usd,
                payout_on_collection_usd=share.payout_on_collection_usd,
                payout_on_year_end_usd=share.payout_on_year_end_usd,
                clawback_eligible_usd=share.clawback_eligible_usd,
                total_actual_usd=outcome.total_actual_usd,
                target_usd=target,
                achievement_pct=round_money(outcome.achievement_pct),
                multiplier=outcome.multiplier,
                total_variable_pay_usd=outcome.total_variable_pay_usd,
                plan_id=plan.id,
            ))
    else:
        actual = ZERO
        if target_type == MetricType.CLOSING_ARR:
            closing = calculate_closing_arr(
                snapshot.closing_snapshots.get(code, ()),
                snapshot.fiscal_year,
                plan.renewal_tiers,
            )
            actual = closing.total_adjusted_arr_usd
            closing_details.extend(
                ClosingArrDetail(
                    employee_id=employee.id,
                    project_id=line.project_id,
                    customer_name=line.customer_name,
                    month_year=line.month_year,
                    end_date=line.end_date,
                    is_multi_year=line.is_multi_year,
                    renewal_years=line.renewal_years,
                    closing_arr_usd=line.closing_arr_usd,
                    multiplier=line.multiplier,
                    adjusted_arr_usd=line.adjusted_arr_usd,
                    is_eligible=line.is_eligible,
                    exclusion_reason=line.exclusion_reason,
                )
                for line in closing.lines
            )
        achievement = calculate_achievement_pct(actual, target)
        multiplier = resolve_multiplier(achievement, metric)
        ytd_vp = calculate_metric_payout(achievement, allocation, metric)

    prior = snapshot.prior_paid_for(
        employee.id, ComponentType.VARIABLE_PAY.value, metric.metric_name,
    )
    increment = calculate_incremental(ytd_vp, prior, split_amount(ytd_vp, split))
    detail = PayoutMetricDetail(
        employee_id=employee.id,
        component_type=ComponentType.VARIABLE_PAY,
        metric_name=metric.metric_name,
        allocated_ote_usd=round_money(allocation),
        target_usd=target,
        actual_usd=actual,
        achievement_pct=round_money(achievement),
        multiplier=multiplier,
        ytd_eligible_usd=ytd_vp,
        prior_paid_usd=prior,
        this_month_usd=increment.this_month,
        booking_usd=increment.booking,
        collection_usd=increment.collection,
        year_end_usd=increment.year_end,
        notes=None if target_type else "No actuals source for metric",
    )
    return detail, increment


def _commissions(
    employee: Employee,
    plan: CompensationPlan,
    month_deals: list[Deal],
    config: EngineConfig,
    builder: _LineBuilder,
    deal_details: list[PayoutDealDetail],
) -> dict[CommissionType, CommissionSummary]:
    if not plan.commission_rules:
        return {}
    calculations = []
    for deal in month_deals:
        for calc in calculate_deal_commissions(
            deal,
            plan.commission_rules,
            clawback_exempt=plan.is_clawback_exempt,
            default_split=config.default_commission_split,
        ):
            calculations.append(calc)
            deal_details.append(PayoutDealDetail(
                employee_id=employee.id,
                component_type=ComponentType.COMMISSION,
                deal_id=deal.id,
                project_id=deal.project_id,
                line_label=calc.commission_type.value,
                deal_value_usd=calc.deal_value_usd,
                gp_margin_pct=calc.gp_margin_pct,
                is_eligible=calc.is_eligible,
                exclusion_reason=calc.exclusion_reason,
                payout_usd=calc.gross_commission_usd,
                booking_usd=calc.booking_usd,
                collection_usd=calc.collection_usd,
                year_end_usd=calc.year_end_usd,
            ))
            if calc.is_eligible and calc.gross_commission_usd > ZERO:
                builder.add(
                    calc.commission_type.value,
                    calc.gross_commission_usd,
                    calc.booking_usd,
                    calc.collection_usd,
                    calc.year_end_usd,
                    rate_type=ExchangeRateType.MARKET,
                    deal_id=deal.id,
                    notes=f"{calc.commission_type.value} commission on {deal.project_id}",
                )

    summary = summarize_commissions(calculations)
    if summary:
        logger.debug(
            "employee_commissions_summarized",
            extra={
                "employee_code": employee.employee_code,
                "by_type": {
                    ctype.value: str(s.gross_usd) for ctype, s in summary.items()
                },
            },
        )
    return summary


def _nrr(
    employee: Employee,
    plan: CompensationPlan,
    target_bonus: Decimal,
    ytd_deals: list[Deal],
    snapshot: PayoutSnapshot,
    deal_details: list[PayoutDealDetail],
) -> tuple[PayoutMetricDetail, IncrementalAmount] | None:
    if plan.nrr_ote_percent <= ZERO:
        return None
    code = employee.employee_code
    result = calculate_nrr_payout(
        ytd_deals,
        snapshot.target_for(code, MetricType.CR_ER.value),
        snapshot.target_for(code, MetricType.IMPLEMENTATION.value),
        plan.nrr_ote_percent,
        target_bonus,
        cr_er_min_margin=plan.cr_er_min_gp_margin_pct,
        impl_min_margin=plan.impl_min_gp_margin_pct,
    )
    for line in result.deal_lines:
        deal_details.append(PayoutDealDetail(
            employee_id=employee.id,
            component_type=ComponentType.NRR,
            deal_id=line.deal_id,
            project_id=line.project_id,
            line_label="CR/ER + Implementation",
            deal_value_usd=line.total_usd,
            gp_margin_pct=line.gp_margin_pct,
            is_eligible=line.is_eligible,
            exclusion_reason=line.exclusion_reason,
        ))

    prior = snapshot.prior_paid_for(employee.id, ComponentType.NRR.value, NRR_ADDITIONAL_PAY)
    increment = calculate_incremental(
        result.payout_usd, prior, split_amount(result.payout_usd, plan.nrr_split),
    )
    detail = PayoutMetricDetail(
        employee_id=employee.id,
        component_type=ComponentType.NRR,
        metric_name=NRR_ADDITIONAL_PAY,
        allocated_ote_usd=round_money(target_bonus * result.nrr_ote_pct / HUNDRED),
        target_usd=result.target_usd,
        actual_usd=result.eligible_actual_usd,
        achievement_pct=round_money(result.achievement_pct),
        multiplier=ONE,
        ytd_eligible_usd=result.payout_usd,
        prior_paid_usd=prior,
        this_month_usd=increment.this_month,
        booking_usd=increment.booking,
        collection_usd=increment.collection,
        year_end_usd=increment.year_end,
    )
    return detail, increment


def _spiffs(
    employee: Employee,
    plan: CompensationPlan,
    target_bonus: Decimal,
    ytd_deals: list[Deal],
    snapshot: PayoutSnapshot,
    config: EngineConfig,
    deal_details: list[PayoutDealDetail],
) -> list[tuple[PayoutMetricDetail, IncrementalAmount]]:
    rules = {rule.spiff_name: rule for rule in plan.spiff_rules if rule.is_active}
    if not rules:
        return []
    code = employee.employee_code
    targets_by_metric = {}
    for metric in plan.metrics:
        target_type = metric_target_type(metric.metric_name)
        if target_type is not None:
            targets_by_metric[metric.metric_name] = snapshot.target_for(code, target_type.value)

    outcomes = []
    for result in calculate_all_spiffs(
        list(rules.values()), ytd_deals, plan.metrics, target_bonus, targets_by_metric,
    ):
        rule = rules[result.spiff_name]
        for line in result.deal_lines:
            deal_details.append(PayoutDealDetail(
                employee_id=employee.id,
                component_type=ComponentType.SPIFF,
                deal_id=line.deal_id,
                project_id=line.project_id,
                line_label=result.spiff_name,
                deal_value_usd=line.deal_arr_usd,
                gp_margin_pct=None,
                is_eligible=line.is_eligible,
                exclusion_reason=line.exclusion_reason,
                payout_usd=line.payout_usd,
            ))
        split = rule.split or config.default_spiff_split
        prior = snapshot.prior_paid_for(employee.id, ComponentType.SPIFF.value, result.spiff_name)
        increment = calculate_incremental(
            result.payout_usd, prior, split_amount(result.payout_usd, split),
        )
        outcomes.append((
            PayoutMetricDetail(
                employee_id=employee.id,
                component_type=ComponentType.SPIFF,
                metric_name=result.spiff_name,
                allocated_ote_usd=result.allocated_ote_usd,
                target_usd=result.target_usd,
                actual_usd=result.eligible_actual_usd,
                achievement_pct=round_money(
                    calculate_achievement_pct(result.eligible_actual_usd, result.target_usd)
                ),
                multiplier=ONE,
                ytd_eligible_usd=result.payout_usd,
                prior_paid_usd=prior,
                this_month_usd=increment.this_month,
                booking_usd=increment.booking,
                collection_usd=increment.collection,
                year_end_usd=increment.year_end,
                notes=result.notes,
            ),
            increment,
        ))
    return outcomes


def releasable_holdbacks(
    employee_id: UUID, snapshot: PayoutSnapshot,
) -> dict[UUID, list[HoldbackItem]]:
    """
    Holdbacks of earlier runs whose deal is now collected.

    A deal qualifies when its collection month is on or before the run
    month and no earlier run released it for this employee.  A clawback on
    the deal only reversed the booking portion, so the collection portion
    is still released once the cash lands.
    """
    due: dict[UUID, list[HoldbackItem]] = {}
    for item in snapshot.holdbacks.get(employee_id, ()):
        if item.amount_usd <= ZERO:
            continue
        if (employee_id, item.deal_id) in snapshot.released:
            continue
        collection = snapshot.collections.get(item.deal_id)
        if (
            collection is None
            or not collection.is_collected
            or collection.collection_month is None
            or collection.collection_month > snapshot.month_year
        ):
            continue
        due.setdefault(item.deal_id, []).append(item)
    return due


def _collection_releases(employee: Employee, snapshot: PayoutSnapshot, builder: _LineBuilder) -> None:
    for deal_id, items in releasable_holdbacks(employee.id, snapshot).items():
        amount = round_money(sum((i.amount_usd for i in items), ZERO))
        collection = snapshot.collections[deal_id]
        builder.add(
            COLLECTION_RELEASE,
            amount,
            amount,
            ZERO,
            ZERO,
            deal_id=deal_id,
            notes=f"Collection release for deal {collection.project_id}",
        )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def calculate_monthly_payout(
    employee: Employee,
    month_year: str,
    snapshot: PayoutSnapshot,
    config: EngineConfig,
) -> EmployeePayoutResult | None:
    """
    Calculate one employee's payout for ``month_year``.

    Returns None when no plan assignment covers the month.

    Raises:
        ExchangeRateNotFoundError: see module docstring.
    """
    assignments = snapshot.assignments.get(employee.id, ())
    assignment = assignment_for_month(assignments, month_year)
    if assignment is None:
        logger.debug(
            "employee_skipped_no_assignment",
            extra={"employee_code": employee.employee_code, "month_year": month_year},
        )
        return None
    plan = snapshot.plans.get(assignment.plan_id)
    if plan is None:
        logger.warning(
            "assigned_plan_missing",
            extra={"employee_code": employee.employee_code, "plan_id": str(assignment.plan_id)},
        )
        return None

    if employee.pays_in(config.reference_currency):
        compensation_rate = ONE
    elif employee.compensation_exchange_rate is not None:
        compensation_rate = employee.compensation_exchange_rate
    else:
        raise ExchangeRateNotFoundError(employee.local_currency, month_year)
    market_rate = snapshot.market_rate_for(employee.local_currency, config.reference_currency)

    target_bonus = blended_target_bonus(
        assignments,
        snapshot.fiscal_year,
        month_year,
        fallback_target=employee.tvp_usd or ZERO,
        days_in_year=config.days_in_year,
    )

    code = employee.employee_code
    ytd_deals = [
        d for d in snapshot.deals
        if is_month_in_ytd(d.month_year, month_year) and d.has_participant(code)
    ]
    month_deals = [d for d in ytd_deals if d.month_year == month_year]

    builder = _LineBuilder(
        run_id=snapshot.run_id,
        employee=employee,
        month_year=month_year,
        plan_id=plan.id,
        compensation_rate=compensation_rate,
        market_rate=market_rate,
    )
    attributions: list[VariablePayAttribution] = []
    metric_details: list[PayoutMetricDetail] = []
    deal_details: list[PayoutDealDetail] = []
    closing_details: list[ClosingArrDetail] = []

    vp_increments = []
    for metric in plan.metrics:
        detail, increment = _variable_pay(
            employee, plan, metric, target_bonus, ytd_deals, snapshot, config,
            attributions, closing_details,
        )
        metric_details.append(detail)
        vp_increments.append(increment)
    builder.add_incremental(VARIABLE_PAY, vp_increments)

    commission_summary = _commissions(
        employee, plan, month_deals, config, builder, deal_details,
    )

    nrr = _nrr(employee, plan, target_bonus, ytd_deals, snapshot, deal_details)
    if nrr is not None:
        metric_details.append(nrr[0])
        builder.add_incremental(NRR_ADDITIONAL_PAY, [nrr[1]])

    spiffs = _spiffs(employee, plan, target_bonus, ytd_deals, snapshot, config, deal_details)
    metric_details.extend(detail for detail, _ in spiffs)
    builder.add_incremental(SPIFF, [increment for _, increment in spiffs])

    _collection_releases(employee, snapshot, builder)

    result = EmployeePayoutResult(
        employee_id=employee.id,
        employee_code=code,
        plan_id=plan.id,
        month_year=month_year,
        target_bonus_usd=round_money(target_bonus),
        compensation_rate=compensation_rate,
        market_rate=market_rate,
        lines=tuple(builder.lines),
        attributions=tuple(attributions),
        metric_details=tuple(metric_details),
        deal_details=tuple(deal_details),
        closing_details=tuple(closing_details),
        commission_summary=commission_summary,
    )

    logger.info(
        "employee_payout_calculated",
        extra={
            "employee_code": code,
            "month_year": month_year,
            "plan_id": str(plan.id),
            "line_count": len(result.lines),
            "total_usd": str(result.total_usd),
            "payable_usd": str(result.payable_usd),
        },
    )
    return result
