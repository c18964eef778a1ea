"""
Tests for contingency tables, label matching and the Rand-type index.
"""

from pathlib import Path

import numpy as np
import pytest
from sklearn.metrics import rand_score

from mhd.errors import DomainError
from mhd.evaluate import evaluate_clustering, get_table, make_plots, match_labels, rand_index
from mhd.mixture import Mixture


def test_contingency_padding():
    table = get_table([1, 1, 2], [1, 3, 3])
    assert table.shape == (3, 3)
    assert list(table.index) == [1, 2, 3]
    assert list(table.columns) == [1, 2, 3]
    assert table.loc[1, 1] == 1
    assert table.loc[1, 3] == 1
    assert table.loc[2, 1] == 0
    assert table.loc[2, 3] == 1
    assert table.to_numpy().sum() == 3


def test_perfect_match():
    a = [1, 1, 2, 2, 3, 3, 3]
    assert evaluate_clustering(a, a) == {"index": 1.0, "loss": 0.0}
    assert evaluate_clustering([4, 4], [4, 4]) == {"index": 1.0, "loss": 0.0}


def test_relabeled_prediction_is_perfect():
    truth = [1, 1, 2, 2, 3, 3]
    predicted = [3, 3, 1, 1, 2, 2]
    mapping, relabeled = match_labels(truth, predicted)
    assert mapping == {1: 3, 2: 1, 3: 2}
    np.testing.assert_array_equal(relabeled, predicted)
    assert evaluate_clustering(truth, predicted) == {"index": 1.0, "loss": 0.0}


def test_assignment_is_bijection():
    mapping, _ = match_labels([1, 1, 2, 5], [7, 7, 7, 2])
    categories = {1, 2, 5, 7}
    assert set(mapping.keys()) == categories
    assert set(mapping.values()) == categories


def test_label_names_do_not_matter():
    a = np.array([1, 1, 2, 2, 3, 3, 3, 1])
    b = np.array([2, 2, 1, 3, 3, 3, 1, 2])
    base = evaluate_clustering(a, b)

    renamed_a = np.vectorize({1: 7, 2: 5, 3: 9}.get)(a)
    renamed_b = np.vectorize({1: 40, 2: 10, 3: 20}.get)(b)
    for left, right in [(renamed_a, b), (a, renamed_b), (renamed_a, renamed_b)]:
        result = evaluate_clustering(left, right)
        assert result["index"] == pytest.approx(base["index"])
        assert result["loss"] == pytest.approx(base["loss"])


def test_loss_counts_mismatches_after_matching():
    truth = [1, 1, 1, 2, 2, 2]
    predicted = [2, 2, 1, 1, 1, 1]
    result = evaluate_clustering(truth, predicted)
    assert result["loss"] == pytest.approx(1 / 6)


def test_rand_index_matches_sklearn():
    rng = np.random.default_rng(0)
    a = rng.integers(1, 4, size=200)
    b = rng.integers(1, 5, size=200)
    assert rand_index(a, b) == pytest.approx(rand_score(a, b))


def test_rand_index_needs_two_observations():
    with pytest.raises(DomainError):
        rand_index([1], [1])
    with pytest.raises(DomainError):
        evaluate_clustering([1], [2])


def test_length_mismatch_rejected():
    with pytest.raises(DomainError):
        get_table([1, 2], [1, 2, 3])


def test_make_plots_writes_figures(tmp_path):
    rng = np.random.default_rng(1)
    data = np.concatenate([rng.normal(0.0, 0.2, 100), rng.normal(1.5, 0.2, 100)])
    mixture = Mixture.from_arrays([0.5, 0.5], [0.0, 1.5], [0.2, 0.2])
    history = [{"m": 1, "d_m0": 0.3, "d_m1": 0.01, "alpha_n": 0.015, "decision": "grow"}]

    written = make_plots(data, mixture, history, reports_dir=str(tmp_path))
    assert set(written) == {"mixture_fit", "order_search"}
    for path in written.values():
        assert Path(path).exists()
