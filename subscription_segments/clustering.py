# Partitioning around medoids on a precomputed dissimilarity matrix
import os
from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from sklearn.metrics import silhouette_samples

try:
    from .config import DPI, K_RANGE, PAM_MAX_ITER
    from .dissimilarity import validate_dissimilarity
    from .exceptions import InvalidClusterCountError
except ImportError:
    from config import DPI, K_RANGE, PAM_MAX_ITER
    from dissimilarity import validate_dissimilarity
    from exceptions import InvalidClusterCountError

# relative margin a swap must beat the current cost by to count as improving
_IMPROVE_RTOL = 1e-10


@dataclass(frozen=True, eq=False)
class ClusteringResult:
    """
    Outcome of one PAM run.

    ``medoids`` are record indices in ascending order; ``labels[i]`` is the
    position in ``medoids`` of the medoid record i is assigned to.
    """
    k: int
    medoids: Tuple[int, ...]
    labels: np.ndarray
    total_cost: float
    cost_history: Tuple[float, ...]
    n_iter: int
    converged: bool

    @property
    def assignment(self) -> np.ndarray:
        """Medoid record index for every record."""
        return np.asarray(self.medoids)[self.labels]

    @property
    def average_cost(self) -> float:
        return self.total_cost / len(self.labels)

    def cluster_sizes(self) -> Dict[int, int]:
        counts = np.bincount(self.labels, minlength=self.k)
        return {c: int(n) for c, n in enumerate(counts)}


def _check_k(k: int, n: int):
    if not isinstance(k, (int, np.integer)) or k < 2 or k > n:
        raise InvalidClusterCountError(k, n)


def assign_to_medoids(D: np.ndarray, medoids: Iterable[int]) -> Tuple[np.ndarray, float]:
    """
    Assign each record to its nearest medoid.

    Ties go to the lowest medoid index, and every medoid is assigned to itself
    even when another medoid sits at distance zero.

    Returns:
        Tuple of (labels as positions in sorted medoids, total cost)
    """
    meds = np.sort(np.asarray(list(medoids), dtype=int))
    dist = D[:, meds]
    labels = np.argmin(dist, axis=1)
    labels[meds] = np.arange(len(meds))
    cost = float(dist[np.arange(D.shape[0]), labels].sum())
    return labels, cost


def _build(D: np.ndarray, k: int) -> List[int]:
    """Greedy BUILD phase."""
    n = D.shape[0]
    medoids = [int(np.argmin(D.sum(axis=1)))]
    nearest = D[:, medoids[0]].copy()
    for _ in range(1, k):
        gains = np.maximum(nearest[:, None] - D, 0.0).sum(axis=0)
        gains[medoids] = -np.inf
        c = int(np.argmax(gains))
        medoids.append(c)
        nearest = np.minimum(nearest, D[:, c])
    return sorted(medoids)


def _best_swap(D: np.ndarray, medoids: List[int], current_cost: float):
    """
    Scan every (medoid, non-medoid) swap and return the best one.

    Returns (medoid, candidate, new_cost), or None when no swap strictly
    lowers the cost. Ties keep the first swap found, scanning medoids and
    then candidates in ascending index order.
    """
    n = D.shape[0]
    meds = np.asarray(medoids)
    dist = D[:, meds]
    order = np.argsort(dist, axis=1, kind="stable")
    first = dist[np.arange(n), order[:, 0]]
    second = dist[np.arange(n), order[:, 1]] if len(meds) > 1 else np.full(n, np.inf)

    is_candidate = np.ones(n, dtype=bool)
    is_candidate[meds] = False
    candidates = np.flatnonzero(is_candidate)
    if candidates.size == 0:
        return None

    best = None
    cand_dist = D[:, candidates]
    buf = np.empty_like(cand_dist)
    best_cost = current_cost - _IMPROVE_RTOL * max(1.0, current_cost)
    for pos, m in enumerate(meds):
        # distance to the nearest remaining medoid once m is removed
        without = np.where(order[:, 0] == pos, second, first)
        costs = np.minimum(without[:, None], cand_dist, out=buf).sum(axis=0)
        j = int(np.argmin(costs))
        if costs[j] < best_cost:
            best_cost = float(costs[j])
            best = (int(m), int(candidates[j]), best_cost)
    return best


def pam(D: np.ndarray, k: int, max_iter: int = PAM_MAX_ITER, label: str = "") -> ClusteringResult:
    """
    Partitioning Around Medoids (BUILD + SWAP).

    Args:
        D: Precomputed dissimilarity matrix
        k: Number of clusters, 2 <= k <= N
        max_iter: Cap on accepted swaps
        label: Label for logging

    Returns:
        ClusteringResult; the same input always yields the same result
    """
    D = validate_dissimilarity(D)
    n = D.shape[0]
    _check_k(k, n)

    medoids = _build(D, k)
    labels, cost = assign_to_medoids(D, medoids)
    history = [cost]
    if label:
        print(f"[{label}] k={k} BUILD cost={cost:.4f}")

    converged = False
    n_iter = 0
    while n_iter < max_iter:
        swap = _best_swap(D, medoids, cost)
        if swap is None:
            converged = True
            break
        m, h, _ = swap
        new_medoids = sorted([x for x in medoids if x != m] + [h])
        new_labels, new_cost = assign_to_medoids(D, new_medoids)
        if new_cost >= cost:
            # predicted gain lost to rounding; treat as a local optimum
            converged = True
            break
        medoids, labels, cost = new_medoids, new_labels, new_cost
        history.append(cost)
        n_iter += 1

    if label:
        status = "converged" if converged else f"stopped at max_iter={max_iter}"
        print(f"[{label}] k={k} SWAP {status} after {n_iter} swap(s), cost={cost:.4f}")

    labels.setflags(write=False)
    return ClusteringResult(k=k, medoids=tuple(int(m) for m in medoids), labels=labels,
                            total_cost=cost, cost_history=tuple(history), n_iter=n_iter,
                            converged=converged)


def silhouette_widths(D: np.ndarray, labels: np.ndarray) -> np.ndarray:
    """
    Silhouette width of every record on a precomputed matrix.

    Records in singleton clusters score 0, so a partition with one record per
    cluster yields all zeros.
    """
    labels = np.asarray(labels)
    n_labels = len(np.unique(labels))
    if n_labels < 2:
        raise InvalidClusterCountError(n_labels, len(labels))
    if n_labels == len(labels):
        return np.zeros(len(labels))
    return silhouette_samples(D, labels, metric="precomputed")


def silhouette_by_k(D: np.ndarray, k_range: Iterable[int] = K_RANGE, max_iter: int = PAM_MAX_ITER,
                    label: str = "pam") -> Dict[int, float]:
    """
    Average silhouette width of the PAM partition for each candidate k.

    k = 1 has no silhouette and is skipped. Picking k is left to the caller.
    """
    D = validate_dissimilarity(D)
    n = D.shape[0]
    ks = list(k_range)
    print(f"[{label}] Silhouette sweep over k={ks}...")

    scores = {}
    for k in ks:
        if k < 2:
            print(f"[{label}] k={k} skipped (silhouette undefined)")
            continue
        _check_k(k, n)
        res = pam(D, k, max_iter=max_iter)
        scores[k] = float(np.mean(silhouette_widths(D, res.labels)))
        print(f"[{label}] k={k} silhouette={scores[k]:.4f} cost={res.total_cost:.4f}")
    return scores


def plot_silhouette_curve(scores: Dict[int, float], path: str, title: str):
    """Plot average silhouette width by k and save the numbers alongside."""
    ks = sorted(scores)
    ss = [scores[k] for k in ks]

    pd.DataFrame({"k": ks, "silhouette": ss}).to_csv(os.path.splitext(path)[0] + ".csv", index=False)

    plt.figure(figsize=(7, 4))
    plt.plot(ks, ss, marker="o")
    plt.xlabel("Number of Clusters (k)")
    plt.ylabel("Average Silhouette Width")
    plt.title(title)
    plt.grid(alpha=0.3)
    plt.tight_layout()
    plt.savefig(path, dpi=DPI)
    plt.close()


def plot_silhouette_profile(D: np.ndarray, result: ClusteringResult, path: str, title: str):
    """Per-record silhouette widths, sorted within cluster."""
    widths = silhouette_widths(D, result.labels)
    fig, ax = plt.subplots(figsize=(7, 5))
    y = 0
    for c in range(result.k):
        w = np.sort(widths[result.labels == c])
        ax.barh(np.arange(y, y + len(w)), w, height=1.0, label=f"Cluster {c}")
        y += len(w) + 2
    ax.axvline(widths.mean(), color="k", linestyle="--", alpha=0.6)
    ax.set_xlabel("Silhouette Width")
    ax.set_yticks([])
    ax.set_title(title)
    ax.legend(loc="lower right", fontsize=8)
    fig.tight_layout()
    fig.savefig(path, dpi=DPI)
    plt.close(fig)
