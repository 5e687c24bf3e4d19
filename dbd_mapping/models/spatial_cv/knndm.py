"""k-fold nearest neighbour distance matching (kNNDM) fold assignment.

Cross-validation folds are built so that the distances between held-out
observations and the remaining training observations resemble the
distances between future prediction locations and the observations.

Procedure:
1. Sample prediction locations uniformly inside the domain.
2. Gij: distance from each prediction location to its nearest observation.
   Gj: leave-one-out nearest neighbour distance among observations.
3. If observations are not clustered relative to the domain (Gj is not
   stochastically smaller than Gij), random folds already match and are
   returned.
4. Otherwise cluster the observation coordinates for a range of cluster
   counts, merge each clustering into k folds and keep the assignment
   whose CV distances Gj* are closest to Gij in Wasserstein distance.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Literal

import numpy as np
from scipy.cluster.hierarchy import fcluster, linkage
from scipy.spatial import cKDTree
from scipy.stats import ks_2samp, wasserstein_distance
from shapely.geometry.base import BaseGeometry
from sklearn.cluster import KMeans  # type: ignore[import-untyped]

from dbd_mapping.errors import InsufficientDataError
from dbd_mapping.readers.domain import sample_points_in_polygon, validate_domain
from dbd_mapping.utils.logger import setup_logger

logger = setup_logger("knndm")

_KS_ALPHA = 0.05
_GRID_LENGTH = 100


@dataclass(frozen=True)
class SpatialFolds:
    """Fold assignment of observations plus distance diagnostics.

    Attributes:
        fold_ids: Fold index in ``0..k-1`` for each observation
        k: Number of folds
        method: "random", "hierarchical" or "kmeans"
        n_clusters: Clusters merged into the k folds (n for random)
        w_statistic: Wasserstein distance between Gj* and Gij
        gij: Prediction-location to observation NN distances
        gj: Leave-one-out observation NN distances
        gjstar: Observation to other-fold observation NN distances
    """

    fold_ids: np.ndarray
    k: int
    method: str
    n_clusters: int
    w_statistic: float
    gij: np.ndarray = field(repr=False)
    gj: np.ndarray = field(repr=False)
    gjstar: np.ndarray = field(repr=False)

    @property
    def n_points(self) -> int:
        return len(self.fold_ids)

    @property
    def test_indices(self) -> list[np.ndarray]:
        return [np.flatnonzero(self.fold_ids == f) for f in range(self.k)]

    @property
    def train_indices(self) -> list[np.ndarray]:
        return [np.flatnonzero(self.fold_ids != f) for f in range(self.k)]

    def splits(self) -> Iterator[tuple[np.ndarray, np.ndarray]]:
        """Yield ``(train_index, test_index)`` per fold."""
        yield from zip(self.train_indices, self.test_indices)


def cv_nn_distances(coords: np.ndarray, fold_ids: np.ndarray) -> np.ndarray:
    """Distance from each point to its nearest neighbour in another fold."""
    distances = np.full(len(coords), np.inf)
    for fold in np.unique(fold_ids):
        in_fold = fold_ids == fold
        if in_fold.all():
            continue
        tree = cKDTree(coords[~in_fold])
        distances[in_fold] = tree.query(coords[in_fold], k=1)[0]
    return distances


def random_folds(n_points: int, k: int, random_state: int = 42) -> np.ndarray:
    """Balanced random fold ids (every fold non-empty when n >= k)."""
    rng = np.random.default_rng(random_state)
    return rng.permutation(np.arange(n_points) % k)


def merge_clusters(cluster_ids: np.ndarray, k: int) -> np.ndarray | None:
    """Merge cluster labels into k folds, largest clusters first.

    The k largest clusters seed the folds; each further cluster joins the
    fold currently holding the fewest points. Size ties keep label order.

    Returns:
        Fold ids, or None if there are fewer than k clusters
    """
    labels, inverse, sizes = np.unique(cluster_ids, return_inverse=True, return_counts=True)
    if len(labels) < k:
        return None

    order = np.argsort(-sizes, kind="stable")
    label_to_fold = np.empty(len(labels), dtype=int)
    fold_sizes = np.zeros(k, dtype=int)
    for rank, label_idx in enumerate(order):
        fold = rank if rank < k else int(np.argmin(fold_sizes))
        label_to_fold[label_idx] = fold
        fold_sizes[fold] += sizes[label_idx]
    return label_to_fold[inverse]


def _cluster_grid(n_points: int, k: int) -> np.ndarray:
    """Log-spaced cluster counts from k to n - 2, denser at low counts."""
    upper = max(k, n_points - 2)
    grid = np.exp(np.linspace(np.log(k), np.log(upper), _GRID_LENGTH))
    return np.unique(np.round(grid).astype(int))


def knndm_partition(
    coords: np.ndarray,
    domain: BaseGeometry | None,
    k: int = 10,
    sample_size: int = 1000,
    clustering: Literal["hierarchical", "kmeans"] = "hierarchical",
    max_fold_fraction: float = 0.5,
    random_state: int = 42,
) -> SpatialFolds:
    """Assign observations to k folds by nearest neighbour distance matching.

    Args:
        coords: Observation coordinates, shape (n, 2), projected units
        domain: Polygon of the prediction domain
        k: Number of folds (2 <= k <= n)
        sample_size: Prediction locations sampled in the domain
        clustering: "hierarchical" (Ward) or "kmeans"
        max_fold_fraction: Largest share of observations allowed in one fold
        random_state: Seed for domain sampling, k-means and random folds

    Returns:
        SpatialFolds with the assignment minimising W

    Raises:
        InsufficientDataError: k < 2, k > n, or degenerate domain
    """
    coords = np.asarray(coords, dtype="float64").reshape(-1, 2)
    n_points = len(coords)
    if k < 2:
        raise InsufficientDataError(f"Need at least 2 folds, got k={k}")
    if k > n_points:
        raise InsufficientDataError(f"k={k} folds requested for {n_points} observations")
    if clustering not in ("hierarchical", "kmeans"):
        raise ValueError(f"Unknown clustering '{clustering}'")
    validate_domain(domain)

    prediction_points = sample_points_in_polygon(domain, sample_size, random_state)
    tree = cKDTree(coords)
    gij = tree.query(prediction_points, k=1)[0]
    gj = tree.query(coords, k=2)[0][:, 1]

    clustered = ks_2samp(gj, gij, alternative="greater").pvalue < _KS_ALPHA
    if not clustered:
        fold_ids = random_folds(n_points, k, random_state)
        gjstar = cv_nn_distances(coords, fold_ids)
        w_stat = float(wasserstein_distance(gjstar, gij))
        logger.info(
            f"Observations not clustered relative to the domain; random {k}-fold "
            f"assignment (W={w_stat:.4g})"
        )
        return SpatialFolds(fold_ids, k, "random", n_points, w_stat, gij, gj, gjstar)

    if clustering == "hierarchical":
        tree_links = linkage(coords, method="ward")

    best: tuple[float, int, np.ndarray, np.ndarray] | None = None
    for n_clusters in _cluster_grid(n_points, k):
        if clustering == "hierarchical":
            cluster_ids = fcluster(tree_links, t=n_clusters, criterion="maxclust")
        else:
            cluster_ids = KMeans(
                n_clusters=int(n_clusters), n_init=10, random_state=random_state
            ).fit_predict(coords)

        fold_ids = merge_clusters(cluster_ids, k)
        if fold_ids is None:
            continue
        if np.bincount(fold_ids, minlength=k).max() / n_points > max_fold_fraction:
            continue

        gjstar = cv_nn_distances(coords, fold_ids)
        w_stat = float(wasserstein_distance(gjstar, gij))
        logger.debug(f"{n_clusters} clusters -> W={w_stat:.4g}")
        if best is None or w_stat < best[0]:
            best = (w_stat, int(n_clusters), fold_ids, gjstar)

    if best is None:
        logger.warning(
            f"No clustering satisfies max_fold_fraction={max_fold_fraction}; "
            "falling back to random folds"
        )
        fold_ids = random_folds(n_points, k, random_state)
        gjstar = cv_nn_distances(coords, fold_ids)
        w_stat = float(wasserstein_distance(gjstar, gij))
        return SpatialFolds(fold_ids, k, "random", n_points, w_stat, gij, gj, gjstar)

    w_stat, n_clusters, fold_ids, gjstar = best
    logger.info(
        f"kNNDM: {clustering} clustering with {n_clusters} clusters merged into "
        f"{k} folds (W={w_stat:.4g}, fold sizes {np.bincount(fold_ids).tolist()})"
    )
    return SpatialFolds(fold_ids, k, clustering, n_clusters, w_stat, gij, gj, gjstar)
