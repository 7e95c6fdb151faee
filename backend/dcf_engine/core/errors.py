"""
errors.py — Error Taxonomy for the Modeling Engine

Purpose:
- Give callers one exception family to catch for every modeling failure.
- Carry enough detail (field, constraint, offending value) to fix an input.

Classes:
- InvalidAssumption: an input is missing, out of range, or inconsistent
  (e.g. WACC <= terminal growth). Raised before any calculation runs.
- NumericDivergence: a computed intermediate came out NaN/Infinity even
  though the inputs passed validation.
- ScenarioError / ScenarioNotFoundError: illegal scenario operations.

Monte Carlo rejections are NOT exceptions; see SampleRejected in
services/modeling/monte_carlo.py.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


class ModelingError(Exception):
    """Base class for all engine errors."""


@dataclass(frozen=True)
class Violation:
    """One failed constraint on one assumption field."""
    field: str
    constraint: str
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {"field": self.field, "constraint": self.constraint, "value": self.value}


class InvalidAssumption(ModelingError, ValueError):
    """
    An assumption failed validation.

    Attributes:
        violations: every failed constraint, in field order
        field: field name of the first violation
        constraint: human-readable constraint of the first violation
    """

    def __init__(self, violations: List[Violation]):
        if not violations:
            raise ValueError("InvalidAssumption requires at least one violation")
        self.violations = list(violations)
        first = self.violations[0]
        self.field = first.field
        self.constraint = first.constraint
        details = "; ".join(f"{v.field}: {v.constraint} (got {v.value!r})" for v in self.violations)
        super().__init__(f"Invalid assumptions: {details}")

    @classmethod
    def single(cls, field: str, constraint: str, value: Any = None) -> "InvalidAssumption":
        return cls([Violation(field=field, constraint=constraint, value=value)])


class NumericDivergence(ModelingError, ArithmeticError):
    """A computed value is NaN or infinite despite valid inputs."""

    def __init__(self, location: str, value: Optional[float] = None):
        self.location = location
        self.value = value
        super().__init__(f"Non-finite value at {location}: {value!r}")


class ScenarioError(ModelingError):
    """Illegal scenario operation (e.g. deleting a core scenario)."""


class ScenarioNotFoundError(ScenarioError, LookupError):
    """No scenario with the requested id."""

    def __init__(self, scenario_id: str):
        self.scenario_id = scenario_id
        super().__init__(f"Scenario {scenario_id!r} not found")
