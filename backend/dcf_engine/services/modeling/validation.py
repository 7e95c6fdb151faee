"""
validation.py — Assumption Validation, Warnings and Sanitizing

Purpose:
- validate_assumptions(): hard domain checks run before any calculation.
  Every violation is collected so the caller can fix all inputs at once.
- assumption_warnings(): legal-but-unusual values, reported, never blocking.
- sanitize_assumptions(): clamp an assumptions record into the legal ranges.

This module does NOT:
- Default missing values inside the Statement Builder.
- Modify the assumptions it is given (records are immutable).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, fields
from typing import Any, Dict, List, Optional

from dcf_engine.core.errors import InvalidAssumption, Violation
from dcf_engine.services.modeling.types import (
    DEPRECIATION_METHODS,
    MARGIN_EXPANSION_PATHS,
    Assumptions,
    resolve_wacc,
)


MAX_PROJECTION_YEARS = 20

# Clamp ranges for sanitize_assumptions (fractions / days / years)
VALIDATION_LIMITS: Dict[str, float] = {
    "GROWTH_MIN": -0.50,
    "GROWTH_MAX": 1.00,
    "GROWTH_WARNING_HIGH": 0.50,
    "COGS_MIN": 0.20,
    "COGS_MAX": 0.95,
    "COGS_WARNING_HIGH": 0.85,
    "COGS_WARNING_LOW": 0.30,
    "SGA_MIN": 0.05,
    "SGA_MAX": 0.50,
    "TAX_MIN": 0.10,
    "TAX_MAX": 0.40,
    "TAX_WARNING_LOW": 0.15,
    "TAX_WARNING_HIGH": 0.35,
    "DSO_MIN": 15,
    "DSO_MAX": 120,
    "DSO_WARNING": 90,
    "DIO_MIN": 0,
    "DIO_MAX": 180,
    "DPO_MIN": 10,
    "DPO_MAX": 120,
    "DPO_WARNING": 90,
    "MIN_PROJECTION_YEARS": 1,
    "MAX_PROJECTION_YEARS": MAX_PROJECTION_YEARS,
    "WACC_MIN": 0.05,
    "WACC_MAX": 0.20,
    "TERMINAL_GROWTH_MIN": 0.0,
    "TERMINAL_GROWTH_MAX": 0.05,
}

_UNIT_INTERVAL_FIELDS = ("cogs_pct", "sga_pct", "tax_rate", "capex_pct")
_NON_NEGATIVE_FIELDS = (
    "days_receivables",
    "days_inventory",
    "days_payables",
    "debt_balance",
    "interest_rate",
    "yearly_repayment",
    "opening_cash",
)


@dataclass(frozen=True)
class AssumptionWarning:
    field: str
    message: str
    severity: str  # "low" | "medium" | "high"


def _is_finite_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _collect_violations(a: Assumptions) -> List[Violation]:
    violations: List[Violation] = []

    def fail(name: str, constraint: str) -> None:
        violations.append(Violation(field=name, constraint=constraint, value=getattr(a, name)))

    # Every numeric field must be a finite number (None allowed for optionals)
    non_numeric = {"revenue_growth_path", "depreciation_method", "margin_expansion_path"}
    for f in fields(a):
        if f.name in non_numeric:
            continue
        value = getattr(a, f.name)
        if value is None:
            continue
        if not _is_finite_number(value):
            fail(f.name, "must be a finite number")
    for i, rate in enumerate(a.revenue_growth_path):
        if not _is_finite_number(rate):
            violations.append(Violation(f"revenue_growth_path[{i}]", "must be a finite number", rate))
    if violations:
        return violations

    if a.base_revenue <= 0:
        fail("base_revenue", "must be > 0")
    if int(a.projection_years) != a.projection_years or not 1 <= a.projection_years <= MAX_PROJECTION_YEARS:
        fail("projection_years", f"must be an integer in [1, {MAX_PROJECTION_YEARS}]")

    if a.revenue_growth_rate <= -1:
        fail("revenue_growth_rate", "must be > -1")
    for i, rate in enumerate(a.revenue_growth_path):
        if rate <= -1:
            violations.append(Violation(f"revenue_growth_path[{i}]", "must be > -1", rate))

    for name in _UNIT_INTERVAL_FIELDS:
        if not 0 <= getattr(a, name) <= 1:
            fail(name, "must be in [0, 1]")
    for name in _NON_NEGATIVE_FIELDS:
        if getattr(a, name) < 0:
            fail(name, "must be >= 0")
    if a.opening_ppe is not None and a.opening_ppe < 0:
        fail("opening_ppe", "must be >= 0")

    if a.depreciation_method not in DEPRECIATION_METHODS:
        fail("depreciation_method", f"must be one of {DEPRECIATION_METHODS}")
    elif a.depreciation_method == "straight_line":
        if a.depreciation_years <= 0:
            fail("depreciation_years", "must be > 0 for straight-line depreciation")
    elif a.depreciation_rate is None:
        fail("depreciation_rate", f"required for {a.depreciation_method} depreciation")
    if a.depreciation_rate is not None and not 0 <= a.depreciation_rate <= 1:
        fail("depreciation_rate", "must be in [0, 1]")

    if a.margin_expansion_path not in MARGIN_EXPANSION_PATHS:
        fail("margin_expansion_path", f"must be one of {MARGIN_EXPANSION_PATHS}")
    for name in ("target_operating_margin", "starting_operating_margin"):
        value = getattr(a, name)
        if value is not None and not -1 <= value < 1:
            fail(name, "must be in [-1, 1)")

    if a.debt_to_total_capital is not None and not 0 <= a.debt_to_total_capital <= 1:
        fail("debt_to_total_capital", "must be in [0, 1]")
    if a.shares_outstanding <= 0:
        fail("shares_outstanding", "must be > 0")
    if a.exit_multiple is not None and a.exit_multiple <= 0:
        fail("exit_multiple", "must be > 0")
    if a.market_price is not None and a.market_price <= 0:
        fail("market_price", "must be > 0")

    return violations


def validate_assumptions(a: Assumptions) -> float:
    """
    Validate every domain constraint and return the resolved WACC.

    Raises:
        InvalidAssumption: listing every violated constraint
    """
    violations = _collect_violations(a)
    if violations:
        raise InvalidAssumption(violations)

    wacc = resolve_wacc(a)
    wacc_field = "wacc" if a.wacc is not None else "wacc (derived)"
    if not math.isfinite(wacc) or wacc <= 0:
        raise InvalidAssumption.single(wacc_field, "must be > 0", wacc)
    if wacc <= a.terminal_growth_rate:
        raise InvalidAssumption([
            Violation(
                field="terminal_growth_rate",
                constraint=f"must be < wacc ({wacc:.4f}); terminal value is undefined otherwise",
                value=a.terminal_growth_rate,
            )
        ])
    return wacc


def assumption_warnings(a: Assumptions) -> List[AssumptionWarning]:
    """
    Flag legal-but-unusual assumptions.

    Severity:
        high   - likely to produce a meaningless valuation
        medium - plausible but aggressive
        low    - unusual, worth a second look
    """
    limits = VALIDATION_LIMITS
    warnings: List[AssumptionWarning] = []

    if a.base_revenue <= 0:
        warnings.append(AssumptionWarning("base_revenue", "Base revenue must be positive", "high"))

    growth = a.revenue_growth_path[0] if a.revenue_growth_path else a.revenue_growth_rate
    if growth > limits["GROWTH_WARNING_HIGH"]:
        warnings.append(AssumptionWarning(
            "revenue_growth_rate", f"Growth rate of {growth:.1%} may be unsustainable", "medium"))
    if growth < limits["GROWTH_MIN"]:
        warnings.append(AssumptionWarning(
            "revenue_growth_rate", "Significant decline in revenue projected", "high"))

    if a.cogs_pct > limits["COGS_WARNING_HIGH"]:
        warnings.append(AssumptionWarning(
            "cogs_pct", f"COGS of {a.cogs_pct:.1%} leaves very thin margins", "medium"))
    if a.cogs_pct < limits["COGS_WARNING_LOW"]:
        warnings.append(AssumptionWarning(
            "cogs_pct", f"COGS of {a.cogs_pct:.1%} is unusually low (typical for software)", "low"))

    if a.tax_rate < limits["TAX_WARNING_LOW"] or a.tax_rate > limits["TAX_WARNING_HIGH"]:
        warnings.append(AssumptionWarning(
            "tax_rate", f"Effective tax rate of {a.tax_rate:.1%} is unusual - may have one-time items", "low"))

    if a.days_receivables > limits["DSO_WARNING"]:
        warnings.append(AssumptionWarning(
            "days_receivables", f"DSO of {a.days_receivables:g} days may indicate collection issues", "medium"))
    if a.days_payables > limits["DPO_WARNING"]:
        warnings.append(AssumptionWarning(
            "days_payables", f"DPO of {a.days_payables:g} days indicates stretched payables", "low"))

    if a.wacc is not None:
        if a.wacc < limits["WACC_MIN"]:
            warnings.append(AssumptionWarning(
                "wacc", f"WACC of {a.wacc:.1%} is very low - verify cost of capital", "medium"))
        if a.wacc > limits["WACC_MAX"]:
            warnings.append(AssumptionWarning(
                "wacc", f"WACC of {a.wacc:.1%} is high - reflects significant risk", "medium"))
        if a.terminal_growth_rate >= a.wacc:
            warnings.append(AssumptionWarning(
                "terminal_growth_rate", "Terminal growth cannot exceed WACC (creates infinite value)", "high"))

    return warnings


def _clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


def sanitize_assumptions(a: Assumptions) -> Assumptions:
    """
    Clamp assumptions into the ranges in VALIDATION_LIMITS.

    Terminal growth is additionally kept at least 0.5pt below WACC so the
    result always has a defined terminal value (when WACC is supplied).
    """
    limits = VALIDATION_LIMITS
    wacc: Optional[float] = a.wacc
    if wacc is not None:
        wacc = _clamp(wacc, limits["WACC_MIN"], limits["WACC_MAX"])
        growth_cap = min(limits["TERMINAL_GROWTH_MAX"], wacc - 0.005)
    else:
        growth_cap = limits["TERMINAL_GROWTH_MAX"]

    return a.with_changes(
        base_revenue=max(0.0, a.base_revenue),
        projection_years=int(_clamp(a.projection_years, limits["MIN_PROJECTION_YEARS"], limits["MAX_PROJECTION_YEARS"])),
        revenue_growth_rate=_clamp(a.revenue_growth_rate, limits["GROWTH_MIN"], limits["GROWTH_MAX"]),
        revenue_growth_path=tuple(
            _clamp(rate, limits["GROWTH_MIN"], limits["GROWTH_MAX"]) for rate in a.revenue_growth_path
        ),
        cogs_pct=_clamp(a.cogs_pct, limits["COGS_MIN"], limits["COGS_MAX"]),
        sga_pct=_clamp(a.sga_pct, limits["SGA_MIN"], limits["SGA_MAX"]),
        tax_rate=_clamp(a.tax_rate, limits["TAX_MIN"], limits["TAX_MAX"]),
        days_receivables=_clamp(a.days_receivables, limits["DSO_MIN"], limits["DSO_MAX"]),
        days_inventory=_clamp(a.days_inventory, limits["DIO_MIN"], limits["DIO_MAX"]),
        days_payables=_clamp(a.days_payables, limits["DPO_MIN"], limits["DPO_MAX"]),
        wacc=wacc,
        terminal_growth_rate=_clamp(a.terminal_growth_rate, limits["TERMINAL_GROWTH_MIN"], growth_cap),
    )
