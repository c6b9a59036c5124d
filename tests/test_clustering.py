from itertools import combinations

import numpy as np
import pytest

from subscription_segments.clustering import (
    ClusteringResult,
    assign_to_medoids,
    pam,
    plot_silhouette_curve,
    silhouette_by_k,
    silhouette_widths,
)
from subscription_segments.dissimilarity import gower_matrix
from subscription_segments.exceptions import InvalidClusterCountError


@pytest.fixture
def color_price_matrix(color_price_records) -> np.ndarray:
    return gower_matrix(color_price_records, verbose=False)


@pytest.fixture
def mixed_matrix(mixed_records) -> np.ndarray:
    return gower_matrix(mixed_records, verbose=False)


def test_pam_separates_reds_from_blues(color_price_matrix) -> None:
    res = pam(color_price_matrix, 2)

    assert res.labels[0] == res.labels[1]
    assert res.labels[2] == res.labels[3]
    assert res.labels[0] != res.labels[2]
    assert res.medoids[0] in (0, 1)
    assert res.medoids[1] in (2, 3)
    # lowest index wins ties
    assert res.medoids == (0, 2)
    assert res.total_cost == 0.0


def test_no_improving_swap_at_start_terminates(color_price_matrix) -> None:
    res = pam(color_price_matrix, 2)

    assert res.converged
    assert res.n_iter == 0
    assert res.cost_history == (res.total_cost,)


@pytest.mark.parametrize("k", [0, 1, 5])
def test_invalid_cluster_count(color_price_matrix, k) -> None:
    with pytest.raises(InvalidClusterCountError):
        pam(color_price_matrix, k)


@pytest.mark.parametrize("k", [2, 3, 4, 6])
def test_every_record_goes_to_its_nearest_medoid(mixed_matrix, k) -> None:
    res = pam(mixed_matrix, k)
    meds = np.asarray(res.medoids)

    assert len(set(res.medoids)) == k
    assert list(meds) == sorted(meds)
    assert np.array_equal(res.assignment[meds], meds)
    for i in range(mixed_matrix.shape[0]):
        if i in res.medoids:
            continue
        d = mixed_matrix[i, meds]
        assert res.assignment[i] == meds[np.flatnonzero(d == d.min())[0]]


def test_cost_history_never_increases(mixed_matrix) -> None:
    for k in (2, 3, 5):
        res = pam(mixed_matrix, k)
        assert np.all(np.diff(res.cost_history) <= 0)
        assert res.cost_history[-1] == res.total_cost


def test_result_is_a_local_optimum(mixed_matrix) -> None:
    res = pam(mixed_matrix, 3)
    n = mixed_matrix.shape[0]

    for m in res.medoids:
        for h in range(n):
            if h in res.medoids:
                continue
            swapped = [x for x in res.medoids if x != m] + [h]
            _, cost = assign_to_medoids(mixed_matrix, swapped)
            assert cost >= res.total_cost - 1e-8


def test_small_problem_reaches_brute_force_optimum() -> None:
    rng = np.random.default_rng(11)
    pts = np.concatenate([rng.normal(0, 0.05, 5), rng.normal(1, 0.05, 5)])
    pts = (pts - pts.min()) / (pts.max() - pts.min())
    D = np.abs(pts[:, None] - pts[None, :])

    res = pam(D, 2)
    best = min(assign_to_medoids(D, list(c))[1] for c in combinations(range(len(pts)), 2))

    assert res.total_cost == pytest.approx(best)


def test_same_input_same_result(mixed_matrix) -> None:
    first = pam(mixed_matrix, 4)
    second = pam(mixed_matrix, 4)

    assert first.medoids == second.medoids
    assert np.array_equal(first.labels, second.labels)
    assert first.total_cost == second.total_cost
    assert first.cost_history == second.cost_history


def test_k_equal_n_puts_each_record_alone(color_price_matrix) -> None:
    res = pam(color_price_matrix, 4)

    assert res.medoids == (0, 1, 2, 3)
    assert sorted(res.labels.tolist()) == [0, 1, 2, 3]
    assert res.total_cost == 0.0
    assert np.all(silhouette_widths(color_price_matrix, res.labels) == 0.0)


def test_labels_are_read_only(color_price_matrix) -> None:
    res = pam(color_price_matrix, 2)
    with pytest.raises(ValueError):
        res.labels[0] = 1


def test_cluster_sizes_cover_all_records(mixed_matrix) -> None:
    res = pam(mixed_matrix, 3)
    assert sum(res.cluster_sizes().values()) == mixed_matrix.shape[0]
    assert all(n >= 1 for n in res.cluster_sizes().values())


def test_silhouette_by_k_skips_one_and_handles_k_equal_n(color_price_matrix) -> None:
    scores = silhouette_by_k(color_price_matrix, range(1, 5))

    assert sorted(scores) == [2, 3, 4]
    assert scores[2] == pytest.approx(1.0)
    assert scores[3] == pytest.approx(0.5)
    assert scores[4] == 0.0


def test_silhouette_by_k_rejects_k_above_n(color_price_matrix) -> None:
    with pytest.raises(InvalidClusterCountError):
        silhouette_by_k(color_price_matrix, [2, 5])


def test_silhouette_widths_are_bounded(mixed_matrix) -> None:
    res = pam(mixed_matrix, 3)
    widths = silhouette_widths(mixed_matrix, res.labels)

    assert widths.shape == (40,)
    assert np.all(widths >= -1.0)
    assert np.all(widths <= 1.0)


def test_plot_silhouette_curve_writes_png_and_csv(tmp_path) -> None:
    path = tmp_path / "sil.png"
    plot_silhouette_curve({2: 0.4, 3: 0.55, 4: 0.31}, str(path), "test")

    assert path.exists()
    assert (tmp_path / "sil.csv").read_text().startswith("k,silhouette")


def test_assignment_maps_through_medoids() -> None:
    res = ClusteringResult(k=2, medoids=(1, 3), labels=np.array([0, 0, 1, 1]), total_cost=0.2,
                           cost_history=(0.2,), n_iter=0, converged=True)

    assert res.assignment.tolist() == [1, 1, 3, 3]
    assert res.average_cost == pytest.approx(0.05)


def test_silhouette_by_k_accepts_a_generator(color_price_matrix) -> None:
    scores = silhouette_by_k(color_price_matrix, (k for k in (2, 3)))

    assert sorted(scores) == [2, 3]
    assert scores[2] == pytest.approx(1.0)


def test_silhouette_by_k_logs_with_default_tag(color_price_matrix, capsys) -> None:
    silhouette_by_k(color_price_matrix, [2])
    out = capsys.readouterr().out

    assert "[pam] Silhouette sweep over k=[2]" in out
    assert "[]" not in out


@pytest.mark.parametrize("max_iter", [0, 1])
def test_swap_phase_stops_at_iteration_cap(mixed_matrix, max_iter) -> None:
    free = pam(mixed_matrix, 4)
    capped = pam(mixed_matrix, 4, max_iter=max_iter)

    assert capped.n_iter <= max_iter
    assert len(capped.cost_history) == capped.n_iter + 1
    assert np.all(np.diff(capped.cost_history) <= 0)
    assert capped.total_cost >= free.total_cost
    if free.n_iter > max_iter:
        assert capped.converged is False
        assert capped.n_iter == max_iter
        assert capped.cost_history == free.cost_history[:max_iter + 1]
