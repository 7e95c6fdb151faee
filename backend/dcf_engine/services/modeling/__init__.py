"""
Modeling engine: statement projection, DCF valuation, sensitivity grids,
scenarios and Monte Carlo simulation.
"""

from dcf_engine.services.modeling.dcf import DcfOptions, run_dcf, run_model
from dcf_engine.services.modeling.frames import sensitivity_to_frame, statements_to_frames, valuation_to_frame
from dcf_engine.services.modeling.monte_carlo import (
    DistributionConfig,
    MonteCarloResult,
    MonteCarloStats,
    NormalSampler,
    SampleRejected,
    build_histogram,
    run_monte_carlo,
    run_monte_carlo_async,
)
from dcf_engine.services.modeling.scenario_migrations import migrate_document
from dcf_engine.services.modeling.scenarios import (
    Scenario,
    ScenarioManager,
    ScenarioType,
    derive_bear_assumptions,
    derive_bull_assumptions,
)
from dcf_engine.services.modeling.sensitivity import SensitivityMatrix, run_sensitivity
from dcf_engine.services.modeling.three_statement import run_three_statement
from dcf_engine.services.modeling.types import Assumptions, ModelResult, build_declining_growth_path, compute_wacc
from dcf_engine.services.modeling.validation import sanitize_assumptions, validate_assumptions

__all__ = [
    "Assumptions",
    "DcfOptions",
    "DistributionConfig",
    "ModelResult",
    "MonteCarloResult",
    "MonteCarloStats",
    "NormalSampler",
    "SampleRejected",
    "Scenario",
    "ScenarioManager",
    "ScenarioType",
    "SensitivityMatrix",
    "build_declining_growth_path",
    "build_histogram",
    "compute_wacc",
    "derive_bear_assumptions",
    "derive_bull_assumptions",
    "migrate_document",
    "run_dcf",
    "run_model",
    "run_monte_carlo",
    "run_monte_carlo_async",
    "run_sensitivity",
    "run_three_statement",
    "sanitize_assumptions",
    "sensitivity_to_frame",
    "statements_to_frames",
    "validate_assumptions",
    "valuation_to_frame",
]
