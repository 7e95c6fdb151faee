"""
schemas.py — Request/Response Schemas for the Valuation API

Purpose:
- Pydantic request bodies for valuation and scenario endpoints
- Conversion from payloads to engine dataclasses
- Translation of engine errors into HTTPException

Field names and units match the engine: snake_case, rates as decimal
fractions, money in raw currency units.
"""

from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from pydantic import BaseModel, ConfigDict, Field

from dcf_engine.core.errors import (
    InvalidAssumption,
    ModelingError,
    NumericDivergence,
    ScenarioError,
    ScenarioNotFoundError,
)
from dcf_engine.services.modeling.monte_carlo import DistributionConfig
from dcf_engine.services.modeling.sensitivity import SENSITIVITY_METRICS
from dcf_engine.services.modeling.types import Assumptions

_DEFAULTS = Assumptions()


class AssumptionsPayload(BaseModel):
    """Full assumptions record; omitted fields take the engine defaults."""
    model_config = ConfigDict(extra="forbid")

    base_revenue: float = _DEFAULTS.base_revenue
    projection_years: int = _DEFAULTS.projection_years

    revenue_growth_rate: float = _DEFAULTS.revenue_growth_rate
    revenue_growth_path: List[float] = Field(default_factory=list)
    cogs_pct: float = _DEFAULTS.cogs_pct
    sga_pct: float = _DEFAULTS.sga_pct
    tax_rate: float = _DEFAULTS.tax_rate

    days_receivables: float = _DEFAULTS.days_receivables
    days_inventory: float = _DEFAULTS.days_inventory
    days_payables: float = _DEFAULTS.days_payables

    capex_pct: float = _DEFAULTS.capex_pct
    depreciation_method: str = _DEFAULTS.depreciation_method
    depreciation_years: float = _DEFAULTS.depreciation_years
    depreciation_rate: Optional[float] = _DEFAULTS.depreciation_rate
    opening_ppe: Optional[float] = _DEFAULTS.opening_ppe
    opening_cash: float = _DEFAULTS.opening_cash

    debt_balance: float = _DEFAULTS.debt_balance
    interest_rate: float = _DEFAULTS.interest_rate
    yearly_repayment: float = _DEFAULTS.yearly_repayment

    wacc: Optional[float] = _DEFAULTS.wacc
    risk_free_rate: Optional[float] = None
    beta: Optional[float] = None
    equity_risk_premium: Optional[float] = None
    cost_of_debt: Optional[float] = None
    debt_to_total_capital: Optional[float] = None

    terminal_growth_rate: float = _DEFAULTS.terminal_growth_rate
    shares_outstanding: float = _DEFAULTS.shares_outstanding
    net_debt: Optional[float] = _DEFAULTS.net_debt

    target_operating_margin: Optional[float] = None
    starting_operating_margin: Optional[float] = None
    margin_expansion_path: str = _DEFAULTS.margin_expansion_path

    exit_multiple: Optional[float] = None
    market_price: Optional[float] = None

    def to_assumptions(self) -> Assumptions:
        return Assumptions.from_dict(self.model_dump())


class ModelRequest(BaseModel):
    assumptions: AssumptionsPayload = Field(default_factory=AssumptionsPayload)
    terminal_value_method: Optional[str] = None


class SensitivityRequest(BaseModel):
    assumptions: AssumptionsPayload = Field(default_factory=AssumptionsPayload)
    wacc_deltas: Optional[List[float]] = None
    growth_deltas: Optional[List[float]] = None
    metric: str = Field("share_price", description=f"One of {SENSITIVITY_METRICS}")
    terminal_value_method: Optional[str] = None


class DistributionPayload(BaseModel):
    revenue_growth_sd: float = 0.20
    wacc_sd: float = 0.10
    terminal_growth_sd: float = 0.15
    cogs_sd: float = 0.05

    def to_config(self) -> DistributionConfig:
        return DistributionConfig(**self.model_dump())


class MonteCarloRequest(BaseModel):
    assumptions: AssumptionsPayload = Field(default_factory=AssumptionsPayload)
    distribution: DistributionPayload = Field(default_factory=DistributionPayload)
    n: Optional[int] = Field(None, ge=1, description="Trial count (server default when omitted)")
    seed: Optional[int] = None
    include_results: bool = False
    terminal_value_method: Optional[str] = None


class ScenarioCreateRequest(BaseModel):
    name: str
    assumptions: Optional[AssumptionsPayload] = None


class ScenarioUpdateRequest(BaseModel):
    """Rename and/or change individual assumption fields."""
    name: Optional[str] = None
    assumptions: Optional[Dict[str, Any]] = None


class ScenarioDuplicateRequest(BaseModel):
    name: Optional[str] = None


# -----------------------------------------------------------------------------
# Error Translation
# -----------------------------------------------------------------------------


def to_http_exception(error: ModelingError) -> HTTPException:
    """
    Map engine errors to HTTP status codes.

    InvalidAssumption → 422 with the violation list
    ScenarioNotFoundError → 404
    ScenarioError → 409
    NumericDivergence → 422 with the failing location
    """
    if isinstance(error, InvalidAssumption):
        return HTTPException(
            status_code=422,
            detail={
                "message": "Invalid assumptions",
                "violations": [v.to_dict() for v in error.violations],
            },
        )
    if isinstance(error, ScenarioNotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, ScenarioError):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, NumericDivergence):
        return HTTPException(
            status_code=422,
            detail={"message": "Numeric divergence", "location": error.location},
        )
    return HTTPException(status_code=500, detail=str(error))
