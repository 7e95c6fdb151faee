"""
valuation.py — Valuation API Endpoints

Purpose:
- Run the full model (three statements + DCF) for a posted assumptions set
- Build WACC x terminal growth sensitivity matrices
- Run Monte Carlo simulations of the implied share price
- Expose engine defaults for clients building input forms

Endpoints:
- POST /api/v1/valuation/model
- POST /api/v1/valuation/sensitivity
- POST /api/v1/valuation/monte-carlo
- GET  /api/v1/valuation/defaults
"""

from dataclasses import asdict, replace
from typing import Optional

from fastapi import APIRouter, HTTPException

from dcf_engine.api.v1.schemas import (
    ModelRequest,
    MonteCarloRequest,
    SensitivityRequest,
    to_http_exception,
)
from dcf_engine.core.config import settings
from dcf_engine.core.errors import ModelingError
from dcf_engine.core.logging import get_logger
from dcf_engine.services.modeling.dcf import DcfOptions, run_model
from dcf_engine.services.modeling.monte_carlo import DistributionConfig, run_monte_carlo_async
from dcf_engine.services.modeling.sensitivity import (
    SENSITIVITY_METRICS,
    default_growth_deltas,
    default_wacc_deltas,
    run_sensitivity,
)
from dcf_engine.services.modeling.types import Assumptions
from dcf_engine.services.modeling.validation import assumption_warnings

logger = get_logger(__name__)

router = APIRouter(
    prefix="/valuation",
    tags=["valuation"]
)


def build_options(terminal_value_method: Optional[str] = None) -> DcfOptions:
    """Server settings, optionally overriding the terminal value method per request."""
    options = DcfOptions.from_settings(settings)
    if terminal_value_method:
        options = replace(options, terminal_value_method=terminal_value_method.lower())
    return options


def _warnings(assumptions: Assumptions):
    warnings = assumption_warnings(assumptions)
    for w in warnings:
        logger.warning(f"Assumption warning [{w.severity}] {w.field}: {w.message}")
    return [asdict(w) for w in warnings]


@router.post("/model")
def value_model(request: ModelRequest):
    """Project the three statements and value them."""
    try:
        assumptions = request.assumptions.to_assumptions()
        result = run_model(assumptions, build_options(request.terminal_value_method))
        payload = result.to_dict()
        payload["warnings"] = _warnings(assumptions)
        return payload
    except ModelingError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error running model: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to run model: {str(e)}")


@router.post("/sensitivity")
def value_sensitivity(request: SensitivityRequest):
    """WACC x terminal growth matrix for one metric."""
    try:
        matrix = run_sensitivity(
            request.assumptions.to_assumptions(),
            wacc_deltas=request.wacc_deltas,
            growth_deltas=request.growth_deltas,
            metric=request.metric,
            options=build_options(request.terminal_value_method),
        )
        return matrix.to_dict()
    except ModelingError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error running sensitivity: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to run sensitivity: {str(e)}")


@router.post("/monte-carlo")
async def value_monte_carlo(request: MonteCarloRequest):
    """
    Monte Carlo distribution of the implied share price.

    Trial count defaults to MONTE_CARLO_DEFAULT_TRIALS and may not exceed
    MONTE_CARLO_MAX_TRIALS.
    """
    n = request.n or settings.MONTE_CARLO_DEFAULT_TRIALS
    if n > settings.MONTE_CARLO_MAX_TRIALS:
        raise HTTPException(
            status_code=422,
            detail=f"n must be <= {settings.MONTE_CARLO_MAX_TRIALS}, got {n}",
        )

    try:
        result = await run_monte_carlo_async(
            request.assumptions.to_assumptions(),
            config=request.distribution.to_config(),
            n=n,
            seed=request.seed,
            batch_size=settings.MONTE_CARLO_BATCH_SIZE,
            options=build_options(request.terminal_value_method),
            outlier_multiple=settings.MONTE_CARLO_OUTLIER_MULTIPLE,
        )
        return result.to_dict(include_results=request.include_results)
    except ModelingError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error running Monte Carlo simulation: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to run simulation: {str(e)}")


@router.get("/defaults")
async def get_defaults():
    """Default assumptions, distribution and sensitivity ranges."""
    return {
        "assumptions": Assumptions().to_dict(),
        "distribution": asdict(DistributionConfig()),
        "sensitivity": {
            "wacc_deltas": default_wacc_deltas(),
            "growth_deltas": default_growth_deltas(),
            "metrics": list(SENSITIVITY_METRICS),
        },
        "terminal_value_method": settings.TERMINAL_VALUE_METHOD,
        "monte_carlo": {
            "default_trials": settings.MONTE_CARLO_DEFAULT_TRIALS,
            "max_trials": settings.MONTE_CARLO_MAX_TRIALS,
        },
    }
