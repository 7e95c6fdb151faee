"""
monte_carlo.py — Monte Carlo Simulation of the DCF Share Price

Purpose:
- Perturb growth, WACC, terminal growth and COGS with normal noise
- Re-run the full model per trial and collect the implied share price
- Summarize the distribution (mean, median, spread, percentiles, market comparison)

Execution:
- Trials run in fixed-size batches. Between batches the optional
  cancel_event is checked and the progress callback fires; the async variant
  also yields to the event loop.
- Each trial consumes the same number of uniforms in the same order, so a
  given seed produces identical results for any batch size.

Rejected trials are counted by SampleRejected reason, never raised. A
negative price is rejected whenever the base case itself is positive.
"""

import asyncio
import math
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional

import numpy as np

from dcf_engine.core.errors import InvalidAssumption, NumericDivergence
from dcf_engine.core.logging import get_logger
from dcf_engine.services.modeling.dcf import DcfOptions, run_model
from dcf_engine.services.modeling.types import Assumptions
from dcf_engine.services.modeling.validation import validate_assumptions

logger = get_logger(__name__)

MIN_SAMPLED_WACC = 0.01
TERMINAL_GROWTH_SPREAD = 0.005  # sampled g stays at least this far below sampled WACC
COGS_FLOOR = 0.10
COGS_CAP = 0.95
DEFAULT_BATCH_SIZE = 100
DEFAULT_OUTLIER_MULTIPLE = 10.0
HISTOGRAM_BINS = 30

ProgressCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class DistributionConfig:
    """Standard deviations expressed as a fraction of each mean."""
    revenue_growth_sd: float = 0.20
    wacc_sd: float = 0.10
    terminal_growth_sd: float = 0.15
    cogs_sd: float = 0.05

    def __post_init__(self):
        for name in ("revenue_growth_sd", "wacc_sd", "terminal_growth_sd", "cogs_sd"):
            value = getattr(self, name)
            if not math.isfinite(value) or value < 0:
                raise InvalidAssumption.single(name, "must be a finite number >= 0", value)


class SampleRejected(str, Enum):
    INVALID_ASSUMPTION = "invalid_assumption"
    NUMERIC_DIVERGENCE = "numeric_divergence"
    NON_FINITE = "non_finite"
    NEGATIVE = "negative"
    OUTLIER = "outlier"


@dataclass
class TrialOutcome:
    index: int
    price: Optional[float] = None
    rejected: Optional[SampleRejected] = None
    detail: str = ""

    @property
    def accepted(self) -> bool:
        return self.rejected is None


class NormalSampler:
    """
    Normal draws via the Box–Muller transform over a seeded uniform source.

    Exactly two uniforms are consumed per normal draw.
    """

    def __init__(self, seed: Optional[int] = None):
        self._rng = np.random.default_rng(seed)

    def uniform(self) -> float:
        return float(self._rng.random())

    def standard_normal(self) -> float:
        u1 = 1.0 - self.uniform()  # (0, 1], keeps log() finite
        u2 = self.uniform()
        return math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)

    def normal(self, mean: float, sd: float) -> float:
        return mean + sd * self.standard_normal()


def sample_assumptions(
    base: Assumptions,
    config: DistributionConfig,
    sampler: NormalSampler,
    base_wacc: float,
) -> Assumptions:
    """
    Draw one perturbed assumptions record.

    Draw order: growth factor, WACC, terminal growth, COGS.
    """
    growth_factor = sampler.normal(1.0, config.revenue_growth_sd)
    wacc = max(MIN_SAMPLED_WACC, sampler.normal(base_wacc, base_wacc * config.wacc_sd))

    g = base.terminal_growth_rate
    terminal_growth = sampler.normal(g, abs(g) * config.terminal_growth_sd)
    terminal_growth = min(max(terminal_growth, 0.0), wacc - TERMINAL_GROWTH_SPREAD)

    c = base.cogs_pct
    cogs = min(max(sampler.normal(c, c * config.cogs_sd), COGS_FLOOR), COGS_CAP)

    return base.with_changes(
        revenue_growth_rate=base.revenue_growth_rate * growth_factor,
        revenue_growth_path=tuple(rate * growth_factor for rate in base.revenue_growth_path),
        wacc=wacc,
        terminal_growth_rate=terminal_growth,
        cogs_pct=cogs,
    )


def evaluate_trial(
    index: int,
    assumptions: Assumptions,
    base_price: float,
    options: Optional[DcfOptions] = None,
    outlier_multiple: float = DEFAULT_OUTLIER_MULTIPLE,
) -> TrialOutcome:
    """Value one sampled record and classify the outcome."""
    try:
        price = run_model(assumptions, options).valuation.implied_share_price
    except InvalidAssumption as e:
        return TrialOutcome(index, rejected=SampleRejected.INVALID_ASSUMPTION, detail=str(e))
    except NumericDivergence as e:
        return TrialOutcome(index, rejected=SampleRejected.NUMERIC_DIVERGENCE, detail=str(e))

    if not math.isfinite(price):
        return TrialOutcome(index, rejected=SampleRejected.NON_FINITE)
    if base_price > 0 and price < 0:
        return TrialOutcome(index, price=price, rejected=SampleRejected.NEGATIVE)
    if base_price != 0 and abs(price) > outlier_multiple * abs(base_price):
        return TrialOutcome(index, price=price, rejected=SampleRejected.OUTLIER)
    return TrialOutcome(index, price=price)


# ============================================================================
# Statistics
# ============================================================================


@dataclass
class MonteCarloStats:
    count: int
    mean: float
    median: float
    std_dev: float
    min: float
    max: float
    p5: float
    p25: float
    p75: float
    p95: float
    probability_above_market: Optional[float] = None
    upside_vs_market: Optional[float] = None


@dataclass
class HistogramBin:
    lower: float
    upper: float
    count: int
    frequency: float


def compute_stats(prices: List[float], market_price: Optional[float] = None) -> Optional[MonteCarloStats]:
    """Distribution summary; None when there are no accepted prices."""
    if not prices:
        return None
    arr = np.asarray(prices, dtype=float)
    p5, p25, p50, p75, p95 = np.percentile(arr, [5, 25, 50, 75, 95])
    mean = float(arr.mean())

    probability_above = None
    upside = None
    if market_price is not None and market_price > 0:
        probability_above = float((arr > market_price).mean())
        upside = (mean - market_price) / market_price

    return MonteCarloStats(
        count=int(arr.size),
        mean=mean,
        median=float(p50),
        std_dev=float(arr.std()),
        min=float(arr.min()),
        max=float(arr.max()),
        p5=float(p5),
        p25=float(p25),
        p75=float(p75),
        p95=float(p95),
        probability_above_market=probability_above,
        upside_vs_market=upside,
    )


def build_histogram(prices: List[float], bins: int = HISTOGRAM_BINS) -> List[HistogramBin]:
    """Equal-width histogram over [min, max]; frequency is count / total."""
    if not prices:
        return []
    counts, edges = np.histogram(np.asarray(prices, dtype=float), bins=bins)
    total = int(counts.sum())
    return [
        HistogramBin(
            lower=float(edges[i]),
            upper=float(edges[i + 1]),
            count=int(count),
            frequency=int(count) / total,
        )
        for i, count in enumerate(counts)
    ]


@dataclass
class MonteCarloResult:
    results: List[float]
    stats: Optional[MonteCarloStats]
    rejected_count: int
    rejections: Dict[SampleRejected, int]
    requested: int
    cancelled: bool
    base_price: float
    seed: int
    histogram: List[HistogramBin] = field(default_factory=list)

    @property
    def completed(self) -> int:
        return len(self.results) + self.rejected_count

    def to_dict(self, include_results: bool = True) -> Dict[str, Any]:
        return {
            "results": list(self.results) if include_results else None,
            "stats": self.stats.__dict__.copy() if self.stats is not None else None,
            "rejected_count": self.rejected_count,
            "rejections": {reason.value: count for reason, count in self.rejections.items()},
            "requested": self.requested,
            "completed": self.completed,
            "cancelled": self.cancelled,
            "base_price": self.base_price,
            "seed": self.seed,
            "histogram": [b.__dict__.copy() for b in self.histogram],
        }


# ============================================================================
# Runner
# ============================================================================


class _Simulation:
    """Batch iterator shared by the sync and async entrypoints."""

    def __init__(
        self,
        assumptions: Assumptions,
        config: DistributionConfig,
        n: int,
        seed: Optional[int],
        batch_size: int,
        options: Optional[DcfOptions],
        outlier_multiple: float,
    ):
        if int(n) != n or n < 1:
            raise InvalidAssumption.single("n", "must be a positive integer", n)
        if int(batch_size) != batch_size or batch_size < 1:
            raise InvalidAssumption.single("batch_size", "must be a positive integer", batch_size)

        self.assumptions = assumptions
        self.config = config
        self.n = int(n)
        self.batch_size = int(batch_size)
        self.options = options
        self.outlier_multiple = outlier_multiple
        self.seed = int(np.random.SeedSequence().entropy) if seed is None else int(seed)
        self.sampler = NormalSampler(self.seed)

        self.base_wacc = validate_assumptions(assumptions)
        self.base_price = run_model(assumptions, options).valuation.implied_share_price

        self.prices: List[float] = []
        self.rejections: Dict[SampleRejected, int] = {}
        self.completed = 0

    def batches(self) -> Iterator[int]:
        """Run one batch per iteration; yields the completed trial count."""
        while self.completed < self.n:
            end = min(self.completed + self.batch_size, self.n)
            for index in range(self.completed, end):
                sampled = sample_assumptions(self.assumptions, self.config, self.sampler, self.base_wacc)
                outcome = evaluate_trial(index, sampled, self.base_price, self.options, self.outlier_multiple)
                if outcome.accepted:
                    self.prices.append(outcome.price)
                else:
                    self.rejections[outcome.rejected] = self.rejections.get(outcome.rejected, 0) + 1
            self.completed = end
            yield self.completed

    def result(self, cancelled: bool) -> MonteCarloResult:
        rejected_count = sum(self.rejections.values())
        logger.info(
            f"Monte Carlo: {len(self.prices)}/{self.n} accepted, {rejected_count} rejected, "
            f"cancelled={cancelled}, seed={self.seed}"
        )
        return MonteCarloResult(
            results=self.prices,
            stats=compute_stats(self.prices, self.assumptions.market_price),
            rejected_count=rejected_count,
            rejections=dict(self.rejections),
            requested=self.n,
            cancelled=cancelled,
            base_price=self.base_price,
            seed=self.seed,
            histogram=build_histogram(self.prices),
        )


def run_monte_carlo(
    assumptions: Assumptions,
    config: Optional[DistributionConfig] = None,
    n: int = 1000,
    seed: Optional[int] = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
    options: Optional[DcfOptions] = None,
    outlier_multiple: float = DEFAULT_OUTLIER_MULTIPLE,
    cancel_event: Optional[threading.Event] = None,
    progress: Optional[ProgressCallback] = None,
) -> MonteCarloResult:
    """
    Run n valuation trials.

    Args:
        assumptions: base case (must be valid)
        config: noise configuration (defaults to DistributionConfig())
        n: number of trials
        seed: RNG seed; a random one is chosen and recorded when omitted
        batch_size: trials between cancellation checks / progress callbacks
        options: DcfOptions for every trial
        outlier_multiple: reject |price| above this multiple of |base price|
        cancel_event: stop between batches once set; partial results are kept
        progress: called as progress(completed, n) after each batch

    Raises:
        InvalidAssumption: the base assumptions, n or batch_size are invalid
    """
    simulation = _Simulation(
        assumptions, config or DistributionConfig(), n, seed, batch_size, options, outlier_multiple
    )
    cancelled = False
    for completed in simulation.batches():
        if progress is not None:
            progress(completed, simulation.n)
        if cancel_event is not None and cancel_event.is_set() and completed < simulation.n:
            cancelled = True
            break
    return simulation.result(cancelled)


async def run_monte_carlo_async(
    assumptions: Assumptions,
    config: Optional[DistributionConfig] = None,
    n: int = 1000,
    seed: Optional[int] = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
    options: Optional[DcfOptions] = None,
    outlier_multiple: float = DEFAULT_OUTLIER_MULTIPLE,
    cancel_event: Optional[threading.Event] = None,
    progress: Optional[ProgressCallback] = None,
) -> MonteCarloResult:
    """Same as run_monte_carlo, yielding to the event loop between batches."""
    simulation = _Simulation(
        assumptions, config or DistributionConfig(), n, seed, batch_size, options, outlier_multiple
    )
    cancelled = False
    for completed in simulation.batches():
        if progress is not None:
            progress(completed, simulation.n)
        if cancel_event is not None and cancel_event.is_set() and completed < simulation.n:
            cancelled = True
            break
        await asyncio.sleep(0)
    return simulation.result(cancelled)
