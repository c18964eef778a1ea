"""
Tests for Hellinger affinity, the mixture fitters and order selection.
"""

import json
import warnings

import numpy as np
import pytest
from joblib import load
from scipy.stats import norm

from mhd.density import make_grid, standard_density
from mhd.errors import ConfigurationError, DomainError, NumericalWarning
from mhd.evaluate import evaluate_clustering
from mhd import model as mhd_model
from mhd.mixture import Mixture
from mhd.model import (
    assign_clusters,
    fit_mixture,
    fit_mixture_fixed,
    fit_mixture_order,
    hellinger_affinity,
    hellinger_deviation,
    initialize_mixture,
    save_artifacts,
    select_mixture_order,
)
from tailIndex.simulate import simulate_hill_clusters


@pytest.fixture(autouse=True)
def _quiet_optimizer():
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", NumericalWarning)
        yield


GRID = np.arange(-8.0, 8.0, 0.01)


def test_affinity_of_identical_densities_is_one():
    ref = norm.pdf(GRID)
    assert hellinger_affinity(0.0, 1.0, np.ones_like(GRID), ref, GRID) == pytest.approx(1.0, abs=1e-4)


def test_affinity_matches_bhattacharyya_coefficient():
    ref = norm.pdf(GRID)
    expected = np.exp(-(2.0 ** 2) / 8.0)
    assert hellinger_affinity(2.0, 1.0, np.ones_like(GRID), ref, GRID) == pytest.approx(expected, abs=1e-3)


def test_affinity_scales_with_responsibility():
    ref = norm.pdf(GRID)
    full = hellinger_affinity(0.0, 1.0, np.ones_like(GRID), ref, GRID)
    quarter = hellinger_affinity(0.0, 1.0, np.full_like(GRID, 0.25), ref, GRID)
    assert quarter == pytest.approx(0.5 * full)


def test_hellinger_deviation():
    ref = norm.pdf(GRID)
    assert hellinger_deviation(ref, ref) == pytest.approx(0.0)
    shifted = norm.pdf(GRID, 2.0, 1.0)
    # 2 * (1 - Bhattacharyya coefficient)
    assert hellinger_deviation(ref, shifted) == pytest.approx(2 * (1 - np.exp(-0.5)), abs=1e-3)


def test_initialize_uses_modes_then_quantiles():
    rng = np.random.default_rng(0)
    data = np.concatenate([rng.normal(0.0, 0.1, 300), rng.normal(2.0, 0.1, 200)])

    mix2 = initialize_mixture(data, 2)
    np.testing.assert_allclose(np.sort(mix2.means), [0.0, 2.0], atol=0.1)
    assert mix2.weights[np.argmin(mix2.means)] > 0.5
    np.testing.assert_allclose(mix2.sds, np.std(data, ddof=1) / 2)

    mix4 = initialize_mixture(data, 4)
    assert mix4.order == 4
    # two modes plus the 1/3 and 2/3 sample quantiles
    np.testing.assert_allclose(mix4.means[2:], np.quantile(data, [1 / 3, 2 / 3]))
    expected = standard_density(mix4.means[2:], data)
    ratio = mix4.weights[2:] / expected
    assert ratio[0] == pytest.approx(ratio[1])


def test_initialize_reuses_warm_start_of_same_order():
    data = np.random.default_rng(1).normal(size=100)
    warm = Mixture.from_arrays([0.4, 0.6], [-0.5, 0.5], [0.3, 0.4])
    assert initialize_mixture(data, 2, warm_start=warm) is warm
    assert initialize_mixture(data, 3, warm_start=warm).order == 3


def test_fit_single_gaussian():
    data = np.random.default_rng(2).normal(1.0, 0.3, 1000)
    result = fit_mixture(data, 1)
    assert result.mixture.order == 1
    assert result.mixture.weights[0] == pytest.approx(1.0)
    assert result.mixture.means[0] == pytest.approx(1.0, abs=0.05)
    assert result.mixture.sds[0] == pytest.approx(0.3, abs=0.05)
    assert 0.0 < result.hdis <= 1.0 + 1e-6
    assert 1 <= result.n_iter <= 50


def test_fit_two_components_against_fixed_reference():
    rng = np.random.default_rng(3)
    data = np.concatenate([rng.normal(0.0, 0.15, 400), rng.normal(1.5, 0.15, 400)])
    grid = make_grid(data)
    truth = Mixture.from_arrays([0.5, 0.5], [0.0, 1.5], [0.15, 0.15])
    result = fit_mixture_fixed(data, 2, truth.pdf(grid))

    order = np.argsort(result.mixture.means)
    np.testing.assert_allclose(result.mixture.means[order], [0.0, 1.5], atol=0.05)
    np.testing.assert_allclose(result.mixture.sds[order], [0.15, 0.15], atol=0.05)
    np.testing.assert_allclose(result.mixture.weights[order], [0.5, 0.5], atol=0.1)
    assert result.mixture.weights.sum() == pytest.approx(1.0)


def test_fixed_reference_must_match_grid():
    data = np.random.default_rng(4).normal(size=50)
    with pytest.raises(DomainError):
        fit_mixture_fixed(data, 1, np.ones(3))


def test_hdis_lags_parameters():
    # with one iteration the reported hdis comes from the starting mixture
    data = np.random.default_rng(5).normal(0.0, 1.0, 400)
    grid = make_grid(data)
    ref = norm.pdf(grid)
    start = Mixture.from_arrays([1.0], [0.5], [1.5])
    result = fit_mixture_fixed(data, 1, ref, init=start, max_iter=1)

    expected = np.sqrt(hellinger_affinity(0.5, 1.5, np.ones_like(grid), ref, grid))
    assert result.hdis == pytest.approx(expected, rel=1e-6)
    assert result.mixture.means[0] != pytest.approx(0.5)
    assert not result.converged


def test_fit_rejects_bad_configuration():
    data = np.random.default_rng(6).normal(size=50)
    with pytest.raises(ConfigurationError):
        fit_mixture(data, 0)
    with pytest.raises(ConfigurationError):
        fit_mixture(data, 1, tol=0.0)
    with pytest.raises(ConfigurationError):
        fit_mixture_order(data, max_order=0)
    with pytest.raises(ConfigurationError):
        fit_mixture_order(data, tol=-1.0)
    with pytest.raises(DomainError):
        fit_mixture_order([1.0])


def test_max_order_one_returns_single_component():
    data = np.random.default_rng(7).normal(size=200)
    selection = select_mixture_order(data, max_order=1)
    assert selection.order == 1
    assert selection.history == []


def test_single_gaussian_selects_order_one():
    data = np.random.default_rng(8).normal(1.0, 0.2, 2000)
    selection = select_mixture_order(data)
    assert selection.order == 1
    assert selection.history[-1]["decision"] == "stop"


@pytest.mark.parametrize("seed", [11, 200, 201, 202, 203, 206, 209])
def test_three_clusters_end_to_end(seed):
    values, labels = simulate_hill_clusters([0.5, 1.0, 2.0], 0.05, [0.3, 0.3, 0.4], 500, seed=seed)
    mixture = fit_mixture_order(values)
    assert mixture.order == 3
    np.testing.assert_allclose(np.sort(mixture.means), [0.5, 1.0, 2.0], atol=0.05)

    predicted = assign_clusters(values, mixture)
    assert set(np.unique(predicted)) <= {1, 2, 3}
    metrics = evaluate_clustering(labels, predicted)
    assert metrics["index"] >= 0.9


def test_sd_bounds_on_variance_scale():
    data = np.random.default_rng(12).normal(0.0, 2.0, 500)
    (mean_lo, mean_hi), (sd_lo, sd_hi) = mhd_model._parameter_bounds(data, 1.0)
    assert mean_lo == pytest.approx(data.min() - 1.0)
    assert mean_hi == pytest.approx(data.max() + 1.0)
    assert sd_lo == pytest.approx(np.sqrt(1e-3 * np.var(data, ddof=1)))
    assert sd_hi == pytest.approx(np.ptp(data))


def test_max_order_caps_growth():
    values, _ = simulate_hill_clusters([0.5, 1.0, 2.0], 0.05, [0.3, 0.3, 0.4], 500, seed=11)
    selection = select_mixture_order(values, max_order=2)
    assert selection.order == 2
    assert len(selection.history) == 1
    assert selection.history[-1]["decision"] == "grow"


def test_failed_candidate_fit_keeps_current_order(monkeypatch):
    def failing_fit(*args, **kwargs):
        raise DomainError("reference density does not overlap the mixture")

    monkeypatch.setattr(mhd_model, "fit_mixture_fixed", failing_fit)
    data = np.random.default_rng(13).normal(0.0, 1.0, 300)
    selection = select_mixture_order(data, max_order=5)

    assert selection.order == 1
    assert selection.history == [
        {"m": 1, "decision": "fit_failed", "error": "reference density does not overlap the mixture"}
    ]


def test_underflowed_weight_raises(monkeypatch):
    def starved_component(index, mean, sd, *args, **kwargs):
        return mean, sd, 1.0 if index == 0 else 1e-200

    monkeypatch.setattr(mhd_model, "_optimize_component", starved_component)
    data = np.random.default_rng(14).normal(0.0, 1.0, 300)
    grid = make_grid(data)
    start = Mixture.from_arrays([0.5, 0.5], [-0.5, 0.5], [0.5, 0.5])
    with pytest.raises(DomainError, match="underflowed"):
        fit_mixture_fixed(data, 2, norm.pdf(grid), init=start)


def test_optimizer_stopping_early_warns():
    data = np.random.default_rng(15).normal(0.0, 1.0, 300)
    start = Mixture.from_arrays([1.0], [1.5], [0.3])
    with pytest.warns(NumericalWarning, match="stopped early"):
        fit_mixture(data, 1, init=start, max_iter=1, optimizer_options={"maxiter": 1})


def test_assign_clusters_picks_weighted_argmax():
    mix = Mixture.from_arrays([0.5, 0.5], [0.0, 3.0], [0.5, 0.5])
    np.testing.assert_array_equal(assign_clusters([-0.2, 0.4, 2.9, 3.5], mix), [1, 1, 2, 2])


def test_save_artifacts(tmp_path):
    mix = Mixture.from_arrays([0.5, 0.5], [0.0, 3.0], [0.5, 0.5])
    paths = save_artifacts(mix, [0.1, 2.8, 3.1], {"order": 2}, outdir=str(tmp_path))

    assert load(paths["mixture_path"]) == mix
    with open(paths["summary_path"], encoding="utf-8") as f:
        summary = json.load(f)
    assert summary["mixture"]["means"] == [0.0, 3.0]
    with open(paths["assignments_path"], encoding="utf-8") as f:
        lines = f.read().strip().splitlines()
    assert lines[0] == "id,value,cluster"
    assert [line.split(",")[-1] for line in lines[1:]] == ["1", "2", "2"]
