"""
sensitivity.py — DCF Sensitivity Analysis

Purpose:
- Re-value the model over a grid of WACC x terminal growth perturbations
- Base case sits at the (0, 0) delta cell
- Cells where WACC <= terminal growth are left undefined (NaN) without
  being computed; cells whose re-valuation fails are NaN and reported

Each cell runs on its own perturbed copy of the assumptions, so no state
is shared between cells.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from dcf_engine.core.errors import InvalidAssumption, NumericDivergence
from dcf_engine.core.logging import get_logger
from dcf_engine.services.modeling.dcf import DcfOptions, run_model
from dcf_engine.services.modeling.types import Assumptions, ModelResult
from dcf_engine.services.modeling.validation import validate_assumptions

logger = get_logger(__name__)

SENSITIVITY_METRICS = ("share_price", "equity_value", "ev_revenue")

WACC_DELTA_RANGE = 0.02
WACC_DELTA_STEP = 0.005
GROWTH_DELTA_RANGE = 0.01
GROWTH_DELTA_STEP = 0.0025


def _symmetric_deltas(half_range: float, step: float) -> List[float]:
    count = int(round(half_range / step))
    return [round(i * step, 10) for i in range(-count, count + 1)]


def default_wacc_deltas() -> List[float]:
    """-2pt .. +2pt in 0.5pt steps."""
    return _symmetric_deltas(WACC_DELTA_RANGE, WACC_DELTA_STEP)


def default_growth_deltas() -> List[float]:
    """-1pt .. +1pt in 0.25pt steps."""
    return _symmetric_deltas(GROWTH_DELTA_RANGE, GROWTH_DELTA_STEP)


@dataclass
class InvalidCell:
    wacc_index: int
    growth_index: int
    reason: str


@dataclass
class SensitivityMatrix:
    """values[i][j] is the metric at wacc_values[i] and growth_values[j]."""
    metric: str
    wacc_values: List[float]
    growth_values: List[float]
    values: List[List[float]]
    base_cell: Optional[Tuple[int, int]]
    invalid_cells: List[InvalidCell] = field(default_factory=list)

    @property
    def base_value(self) -> Optional[float]:
        if self.base_cell is None:
            return None
        i, j = self.base_cell
        return self.values[i][j]

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe form (NaN becomes None)."""
        return {
            "metric": self.metric,
            "wacc_values": list(self.wacc_values),
            "growth_values": list(self.growth_values),
            "values": [
                [None if math.isnan(v) else v for v in row]
                for row in self.values
            ],
            "base_cell": list(self.base_cell) if self.base_cell is not None else None,
            "invalid_cells": [
                {"wacc_index": c.wacc_index, "growth_index": c.growth_index, "reason": c.reason}
                for c in self.invalid_cells
            ],
        }


def extract_metric(result: ModelResult, metric: str) -> float:
    """Pull a sensitivity metric out of a full model run."""
    valuation = result.valuation
    if metric == "share_price":
        return valuation.implied_share_price
    if metric == "equity_value":
        return valuation.equity_value
    if metric == "ev_revenue":
        return valuation.enterprise_value / result.statements.income_statement[0].revenue
    raise InvalidAssumption.single("metric", f"must be one of {SENSITIVITY_METRICS}", metric)


def _zero_index(deltas: Sequence[float]) -> Optional[int]:
    for i, delta in enumerate(deltas):
        if math.isclose(delta, 0.0, abs_tol=1e-12):
            return i
    return None


def run_sensitivity(
    assumptions: Assumptions,
    wacc_deltas: Optional[Sequence[float]] = None,
    growth_deltas: Optional[Sequence[float]] = None,
    metric: str = "share_price",
    options: Optional[DcfOptions] = None,
) -> SensitivityMatrix:
    """
    Build a WACC x terminal growth sensitivity matrix.

    Args:
        assumptions: base case; must itself be valid
        wacc_deltas: additive WACC perturbations (default ±2pt / 0.5pt)
        growth_deltas: additive terminal growth perturbations (default ±1pt / 0.25pt)
        metric: "share_price", "equity_value" or "ev_revenue"
        options: DcfOptions passed to every re-valuation

    Returns:
        SensitivityMatrix

    Raises:
        InvalidAssumption: the base assumptions or metric are invalid
    """
    if metric not in SENSITIVITY_METRICS:
        raise InvalidAssumption.single("metric", f"must be one of {SENSITIVITY_METRICS}", metric)

    base_wacc = validate_assumptions(assumptions)
    wacc_deltas = list(default_wacc_deltas() if wacc_deltas is None else wacc_deltas)
    growth_deltas = list(default_growth_deltas() if growth_deltas is None else growth_deltas)

    wacc_values = [base_wacc + d for d in wacc_deltas]
    growth_values = [assumptions.terminal_growth_rate + d for d in growth_deltas]

    values: List[List[float]] = []
    invalid_cells: List[InvalidCell] = []

    for i, wacc in enumerate(wacc_values):
        row: List[float] = []
        for j, growth in enumerate(growth_values):
            if wacc <= growth:
                row.append(math.nan)
                invalid_cells.append(InvalidCell(i, j, "wacc <= terminal growth"))
                continue

            perturbed = assumptions.with_changes(wacc=wacc, terminal_growth_rate=growth)
            try:
                value = extract_metric(run_model(perturbed, options), metric)
            except (InvalidAssumption, NumericDivergence) as e:
                logger.warning(f"Sensitivity cell wacc={wacc:.4f} g={growth:.4f} rejected: {e}")
                row.append(math.nan)
                invalid_cells.append(InvalidCell(i, j, str(e)))
                continue
            row.append(value)
        values.append(row)

    wacc_zero = _zero_index(wacc_deltas)
    growth_zero = _zero_index(growth_deltas)
    base_cell = (wacc_zero, growth_zero) if wacc_zero is not None and growth_zero is not None else None

    logger.info(
        f"Sensitivity {metric}: {len(wacc_values)}x{len(growth_values)} grid, "
        f"{len(invalid_cells)} invalid cells"
    )

    return SensitivityMatrix(
        metric=metric,
        wacc_values=wacc_values,
        growth_values=growth_values,
        values=values,
        base_cell=base_cell,
        invalid_cells=invalid_cells,
    )
