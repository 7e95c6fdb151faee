"""
Unit tests for monte_carlo.py
"""

import asyncio
import math
import threading

import numpy as np
import pytest

from dcf_engine.core.errors import InvalidAssumption
from dcf_engine.services.modeling.monte_carlo import (
    DistributionConfig,
    NormalSampler,
    SampleRejected,
    build_histogram,
    compute_stats,
    run_monte_carlo,
    run_monte_carlo_async,
    evaluate_trial,
    sample_assumptions,
)


def test_normal_sampler_moments():
    sampler = NormalSampler(seed=123)
    draws = np.array([sampler.standard_normal() for _ in range(20000)])
    assert abs(draws.mean()) < 0.05
    assert abs(draws.std() - 1.0) < 0.05
    assert np.isfinite(draws).all()


def test_sampler_is_seeded():
    a = NormalSampler(seed=9)
    b = NormalSampler(seed=9)
    assert [a.normal(5, 2) for _ in range(10)] == [b.normal(5, 2) for _ in range(10)]


def test_sampled_values_respect_clamps(default_assumptions):
    wild = DistributionConfig(revenue_growth_sd=2.0, wacc_sd=3.0, terminal_growth_sd=5.0, cogs_sd=3.0)
    sampler = NormalSampler(seed=1)
    for _ in range(500):
        s = sample_assumptions(default_assumptions, wild, sampler, base_wacc=0.10)
        assert s.wacc >= 0.01
        assert 0.0 <= s.terminal_growth_rate <= s.wacc - 0.005 + 1e-12
        assert 0.10 <= s.cogs_pct <= 0.95


def test_growth_factor_scales_path(default_assumptions):
    a = default_assumptions.with_changes(revenue_growth_path=(0.20, 0.10))
    s = sample_assumptions(a, DistributionConfig(), NormalSampler(seed=4), base_wacc=0.10)
    factor = s.revenue_growth_rate / a.revenue_growth_rate
    assert s.revenue_growth_path == pytest.approx((0.20 * factor, 0.10 * factor))


def test_same_seed_same_results(default_assumptions):
    first = run_monte_carlo(default_assumptions, n=60, seed=42)
    second = run_monte_carlo(default_assumptions, n=60, seed=42)
    assert first.results == second.results
    assert first.seed == 42


def test_results_independent_of_batch_size(default_assumptions):
    small = run_monte_carlo(default_assumptions, n=50, seed=5, batch_size=7)
    large = run_monte_carlo(default_assumptions, n=50, seed=5, batch_size=100)
    assert small.results == large.results


def test_seed_recorded_when_omitted(default_assumptions):
    result = run_monte_carlo(default_assumptions, n=10)
    replay = run_monte_carlo(default_assumptions, n=10, seed=result.seed)
    assert replay.results == result.results


def test_mean_converges(default_assumptions):
    small = run_monte_carlo(default_assumptions, n=1000, seed=7)
    large = run_monte_carlo(default_assumptions, n=10000, seed=7)
    assert small.stats.p5 <= large.stats.mean <= small.stats.p95
    assert abs(large.stats.mean - small.stats.mean) < 0.2 * small.stats.std_dev


def test_accounting_of_trials(default_assumptions):
    result = run_monte_carlo(default_assumptions, n=200, seed=3, outlier_multiple=1.0)
    assert len(result.results) + result.rejected_count == 200
    assert result.rejections.get(SampleRejected.OUTLIER, 0) > 0
    assert all(abs(p) <= abs(result.base_price) for p in result.results)
    assert result.completed == 200
    assert not result.cancelled


def test_negative_prices_rejected(default_assumptions):
    levered = default_assumptions.with_changes(net_debt=1.2e9)
    result = run_monte_carlo(levered, n=500, seed=1)
    assert result.base_price > 0
    assert result.rejections.get(SampleRejected.NEGATIVE, 0) > 0
    assert min(result.results) >= 0
    assert result.stats.min >= 0
    assert len(result.results) + result.rejected_count == 500


def test_evaluate_trial_classifies_negative_price(default_assumptions):
    underwater = default_assumptions.with_changes(net_debt=1e12)
    assert evaluate_trial(0, underwater, base_price=10.0).rejected is SampleRejected.NEGATIVE
    kept = evaluate_trial(1, underwater, base_price=-5.0, outlier_multiple=1e9)
    assert kept.accepted and kept.price < 0


def test_progress_and_cancellation(default_assumptions):
    cancel = threading.Event()
    calls = []

    def progress(completed, total):
        calls.append((completed, total))
        if completed >= 200:
            cancel.set()

    result = run_monte_carlo(default_assumptions, n=1000, seed=11, batch_size=100, cancel_event=cancel, progress=progress)
    assert calls == [(100, 1000), (200, 1000)]
    assert result.cancelled
    assert result.completed == 200
    assert result.stats.count == len(result.results)


def test_cancellation_keeps_partial_results_identical(default_assumptions):
    cancel = threading.Event()
    cancel.set()
    partial = run_monte_carlo(default_assumptions, n=100, seed=2, batch_size=25, cancel_event=cancel)
    full = run_monte_carlo(default_assumptions, n=100, seed=2, batch_size=25)
    assert partial.completed == 25
    assert partial.results == full.results[:len(partial.results)]


def test_async_matches_sync(default_assumptions):
    sync = run_monte_carlo(default_assumptions, n=40, seed=8, batch_size=10)
    async_result = asyncio.run(run_monte_carlo_async(default_assumptions, n=40, seed=8, batch_size=10))
    assert async_result.results == sync.results


def test_invalid_inputs(default_assumptions):
    with pytest.raises(InvalidAssumption):
        run_monte_carlo(default_assumptions, n=0)
    with pytest.raises(InvalidAssumption):
        run_monte_carlo(default_assumptions, n=10, batch_size=0)
    with pytest.raises(InvalidAssumption):
        run_monte_carlo(default_assumptions.with_changes(wacc=0.01), n=10)
    with pytest.raises(InvalidAssumption):
        DistributionConfig(wacc_sd=-0.1)


def test_compute_stats():
    stats = compute_stats([1.0, 2.0, 3.0, 4.0], market_price=2.5)
    assert stats.count == 4
    assert stats.mean == pytest.approx(2.5)
    assert stats.median == pytest.approx(2.5)
    assert stats.std_dev == pytest.approx(math.sqrt(1.25))
    assert stats.min == 1.0 and stats.max == 4.0
    assert stats.probability_above_market == pytest.approx(0.5)
    assert stats.upside_vs_market == pytest.approx(0.0)
    assert compute_stats([]) is None
    assert compute_stats([1.0]).probability_above_market is None


def test_market_comparison(default_assumptions):
    result = run_monte_carlo(default_assumptions.with_changes(market_price=20.0), n=100, seed=1)
    prices = np.array(result.results)
    assert result.stats.probability_above_market == pytest.approx((prices > 20.0).mean())
    assert result.stats.upside_vs_market == pytest.approx((prices.mean() - 20.0) / 20.0)


def test_histogram():
    prices = list(np.linspace(0, 100, 301))
    bins = build_histogram(prices)
    assert len(bins) == 30
    assert sum(b.count for b in bins) == 301
    assert bins[0].lower == 0.0 and bins[-1].upper == 100.0
    assert sum(b.frequency for b in bins) == pytest.approx(1.0)
    assert build_histogram([]) == []


def test_result_to_dict(default_assumptions):
    data = run_monte_carlo(default_assumptions, n=20, seed=1, outlier_multiple=1.0).to_dict(include_results=False)
    assert data["results"] is None
    assert data["requested"] == 20
    assert all(isinstance(k, str) for k in data["rejections"])
    assert len(data["histogram"]) == 30 or data["stats"] is None
