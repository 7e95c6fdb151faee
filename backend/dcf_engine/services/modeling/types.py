"""
types.py — Shared Data Layer for Modeling Modules

Purpose:
- Define the Assumptions input record driving every modeling module
- Define the output dataclasses (projection rows, DCF output, model result)
- Provide the WACC and growth-path helpers shared by the builder and engine

Conventions:
- Rates are decimal fractions (0.10 == 10%).
- Money is in raw currency units and shares are raw share counts, so
  implied share price = equity value / shares outstanding with no scaling.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from dcf_engine.core.errors import InvalidAssumption, Violation


Year = int

DAYS_IN_YEAR = 365
INITIAL_PPE_YEARS = 2  # Opening PP&E defaults to 2 years of base-year CapEx

DEPRECIATION_METHODS = ("straight_line", "pct_of_ppe", "pct_of_revenue")
MARGIN_EXPANSION_PATHS = ("linear", "front-loaded", "back-loaded")

CORE_SCENARIO_IDS = ("base", "bull", "bear")
SCENARIO_COLORS = {
    "base": "#3b82f6",
    "bull": "#10b981",
    "bear": "#ef4444",
    "custom": "#a855f7",
}


@dataclass(frozen=True)
class Assumptions:
    """
    Flat, immutable input record for the whole engine.

    Use with_changes() to derive perturbed copies; the original is never
    modified.
    """
    # Base data
    base_revenue: float = 1_000_000_000.0
    projection_years: int = 5

    # Income statement
    revenue_growth_rate: float = 0.08
    revenue_growth_path: Tuple[float, ...] = ()
    cogs_pct: float = 0.60
    sga_pct: float = 0.20
    tax_rate: float = 0.25

    # Working capital (days)
    days_receivables: float = 45.0
    days_inventory: float = 60.0
    days_payables: float = 30.0

    # CapEx & depreciation
    capex_pct: float = 0.05
    depreciation_method: str = "straight_line"
    depreciation_years: float = 10.0
    depreciation_rate: Optional[float] = None
    opening_ppe: Optional[float] = None
    opening_cash: float = 0.0

    # Debt
    debt_balance: float = 200_000_000.0
    interest_rate: float = 0.05
    yearly_repayment: float = 20_000_000.0

    # Cost of capital (wacc=None means derive from the components)
    wacc: Optional[float] = 0.10
    risk_free_rate: Optional[float] = None
    beta: Optional[float] = None
    equity_risk_premium: Optional[float] = None
    cost_of_debt: Optional[float] = None
    debt_to_total_capital: Optional[float] = None

    # Valuation
    terminal_growth_rate: float = 0.025
    shares_outstanding: float = 100_000_000.0
    net_debt: Optional[float] = 200_000_000.0

    # Margin expansion (generator variant)
    target_operating_margin: Optional[float] = None
    starting_operating_margin: Optional[float] = None
    margin_expansion_path: str = "linear"

    # Market reference data
    exit_multiple: Optional[float] = None
    market_price: Optional[float] = None

    def __post_init__(self):
        # Accept lists from JSON callers but store a hashable tuple
        if not isinstance(self.revenue_growth_path, tuple):
            object.__setattr__(self, "revenue_growth_path", tuple(self.revenue_growth_path or ()))

    def growth_for_year(self, year: Year) -> float:
        """Growth rate applied to reach `year` (1-indexed) from the prior year."""
        path = self.revenue_growth_path
        if path:
            return path[min(year, len(path)) - 1]
        return self.revenue_growth_rate

    def with_changes(self, **changes: Any) -> "Assumptions":
        """Return a copy with the given fields replaced."""
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        data = dataclasses.asdict(self)
        data["revenue_growth_path"] = list(self.revenue_growth_path)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Assumptions":
        """
        Build Assumptions from a plain dict (JSON payload, persisted scenario).

        Unknown keys are rejected so typos surface as InvalidAssumption instead
        of being silently defaulted.
        """
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise InvalidAssumption([
                Violation(field=name, constraint="unknown assumption field", value=data[name])
                for name in unknown
            ])
        return cls(**data)


# ============================================================================
# Cost of Capital & Growth Helpers
# ============================================================================


def compute_wacc(
    risk_free_rate: float,
    beta: float,
    equity_risk_premium: float,
    cost_of_debt: float,
    tax_rate: float,
    debt_to_total_capital: float,
) -> float:
    """
    WACC = cost of equity x equity weight + after-tax cost of debt x debt weight

    Where:
        cost of equity = risk-free rate + beta x equity risk premium
        after-tax cost of debt = cost of debt x (1 - tax rate)
        equity weight = 1 - debt / total capital
    """
    cost_of_equity = risk_free_rate + beta * equity_risk_premium
    after_tax_cost_of_debt = cost_of_debt * (1 - tax_rate)
    equity_weight = 1 - debt_to_total_capital
    return cost_of_equity * equity_weight + after_tax_cost_of_debt * debt_to_total_capital


WACC_COMPONENT_FIELDS = (
    "risk_free_rate",
    "beta",
    "equity_risk_premium",
    "cost_of_debt",
    "debt_to_total_capital",
)


def resolve_wacc(assumptions: Assumptions) -> float:
    """
    Return the supplied WACC, or derive it from the cost-of-capital components.

    Raises:
        InvalidAssumption: wacc is None and a component is missing
    """
    if assumptions.wacc is not None:
        return assumptions.wacc

    missing = [name for name in WACC_COMPONENT_FIELDS if getattr(assumptions, name) is None]
    if missing:
        raise InvalidAssumption([
            Violation(field=name, constraint="required when wacc is not supplied")
            for name in missing
        ])

    return compute_wacc(
        assumptions.risk_free_rate,
        assumptions.beta,
        assumptions.equity_risk_premium,
        assumptions.cost_of_debt,
        assumptions.tax_rate,
        assumptions.debt_to_total_capital,
    )


def build_declining_growth_path(
    initial_growth: float,
    years: int = 5,
    step: float = 0.10,
    floor: Optional[float] = None,
) -> Tuple[float, ...]:
    """
    Build the declining revenue growth path: g, 0.9g, 0.8g, ...

    Each year keeps (1 - step * i) of the initial rate. When `floor` is given
    (typically a rate just above terminal growth) no year falls below it.

    Example:
        build_declining_growth_path(0.20, 5) -> (0.20, 0.18, 0.16, 0.14, 0.12)
    """
    path = []
    for i in range(years):
        rate = initial_growth * max(0.0, 1 - step * i)
        if floor is not None:
            rate = max(rate, floor)
        path.append(rate)
    return tuple(path)


# ============================================================================
# Output Dataclasses for Modeling Modules
# ============================================================================


@dataclass
class IncomeStatementRow:
    year: Year
    revenue: float
    revenue_growth: float
    cogs: float
    gross_profit: float
    sga: float
    depreciation: float
    ebit: float
    ebitda: float
    operating_margin: float
    interest_expense: float
    ebt: float
    taxes: float
    net_income: float


@dataclass
class BalanceSheetRow:
    """Balance sheet at year end. Cash is the balancing plug."""
    year: Year
    cash: float
    accounts_receivable: float
    inventory: float
    total_current_assets: float
    ppe: float
    total_assets: float
    accounts_payable: float
    debt_balance: float
    total_liabilities: float
    contributed_capital: float
    retained_earnings: float
    total_equity: float
    net_working_capital: float


@dataclass
class CashFlowRow:
    year: Year
    net_income: float
    depreciation: float
    change_in_nwc: float
    capex: float
    ebit: float
    nopat: float
    unlevered_fcf: float  # NOPAT + D&A - change in NWC - CapEx
    debt_repayment: float
    net_change_in_cash: float


@dataclass
class DepreciationRow:
    year: Year
    beginning_ppe: float
    capex: float
    depreciation: float
    ending_ppe: float


@dataclass
class DebtRow:
    year: Year
    beginning_balance: float
    interest_expense: float
    repayment: float
    ending_balance: float


@dataclass
class ThreeStatementOutput:
    """Five projected schedules, one row per year 1..N, plus the year-0 sheet."""
    years: List[Year]
    income_statement: List[IncomeStatementRow]
    balance_sheet: List[BalanceSheetRow]
    cash_flow: List[CashFlowRow]
    depreciation_schedule: List[DepreciationRow]
    debt_schedule: List[DebtRow]
    opening_balance: BalanceSheetRow

    @property
    def latest_balance(self) -> BalanceSheetRow:
        return self.balance_sheet[-1]

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


@dataclass
class DcfYearResult:
    """Yearly DCF calculation result."""
    year: Year
    ufcf: float  # Unlevered Free Cash Flow
    discount_factor: float
    pv_ufcf: float  # Present Value of UFCF


@dataclass
class DcfOutput:
    """DCF valuation output."""
    yearly_results: List[DcfYearResult]
    sum_pv_ufcf: float
    terminal_value_perpetuity: float
    terminal_value_exit_multiple: float
    exit_multiple_used: float
    terminal_value_method: str
    terminal_value: float
    pv_terminal_value: float
    enterprise_value: float
    net_debt: float
    equity_value: float
    shares_outstanding: float
    implied_share_price: float
    wacc: float
    terminal_growth_rate: float
    market_price: Optional[float] = None
    upside_downside: Optional[float] = None
    implied_ev_to_ebitda: Optional[float] = None
    implied_fcf_yield: Optional[float] = None
    terminal_value_share: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


@dataclass
class ModelResult:
    """Assumptions plus everything derived from them in one run."""
    assumptions: Assumptions
    statements: ThreeStatementOutput
    valuation: DcfOutput

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assumptions": self.assumptions.to_dict(),
            "statements": self.statements.to_dict(),
            "valuation": self.valuation.to_dict(),
        }
