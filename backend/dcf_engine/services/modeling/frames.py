"""
frames.py — pandas Views of Model Output

Purpose:
- Turn projection schedules into DataFrames indexed by year
- Turn a SensitivityMatrix into a WACC x terminal growth DataFrame

The engine itself works on dataclasses; scripts/run_valuation.py uses these
frames for its table output and CSV export.
"""

from dataclasses import asdict
from typing import Dict, List

import pandas as pd

from dcf_engine.services.modeling.sensitivity import SensitivityMatrix
from dcf_engine.services.modeling.types import DcfOutput, ThreeStatementOutput

SCHEDULE_NAMES = ("income_statement", "balance_sheet", "cash_flow", "depreciation_schedule", "debt_schedule")


def rows_to_frame(rows: List) -> pd.DataFrame:
    """Dataclass rows → DataFrame with `year` as the index."""
    frame = pd.DataFrame([asdict(row) for row in rows])
    if frame.empty:
        return frame
    return frame.set_index("year")


def statements_to_frames(statements: ThreeStatementOutput, include_opening: bool = True) -> Dict[str, pd.DataFrame]:
    """
    One DataFrame per schedule.

    With include_opening the balance sheet frame also carries the year-0
    opening balance as its first row.
    """
    frames = {name: rows_to_frame(getattr(statements, name)) for name in SCHEDULE_NAMES}
    if include_opening:
        frames["balance_sheet"] = rows_to_frame([statements.opening_balance] + list(statements.balance_sheet))
    return frames


def valuation_to_frame(valuation: DcfOutput) -> pd.DataFrame:
    """Per-year UFCF, discount factor and present value."""
    return rows_to_frame(valuation.yearly_results)


def sensitivity_to_frame(matrix: SensitivityMatrix) -> pd.DataFrame:
    """Rows are WACC values, columns terminal growth values; invalid cells stay NaN."""
    frame = pd.DataFrame(matrix.values, index=matrix.wacc_values, columns=matrix.growth_values, dtype=float)
    frame.index.name = "wacc"
    frame.columns.name = "terminal_growth_rate"
    return frame
