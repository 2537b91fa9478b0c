"""Numeric helpers used by the segmentation strategies.

- Nearest-rank percentiles
- Per-column min-max normalisation
- Seeded k-means (Lloyd iterations, k-means++ seeding)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np
from sklearn.cluster import KMeans

#: Value assigned to every entry of a zero-width (constant) column.
CONSTANT_COLUMN_VALUE = 0.5


def percentiles(values: Sequence[float], ps: Sequence[float]) -> list[float]:
    """Nearest-rank percentiles of ``values``.

    Values are sorted ascending and the element at index ``floor(p * (n - 1))``
    is returned for each fraction ``p`` in ``ps``. The input is not modified.

    Raises
    ------
    ValueError
        If ``values`` is empty or a fraction falls outside [0, 1]

    Examples
    --------
    >>> percentiles([40, 10, 30, 20], [0.25, 0.5, 0.75])
    [10.0, 20.0, 30.0]
    """
    if len(values) == 0:
        raise ValueError("Cannot compute percentiles of an empty sequence")
    fractions = np.asarray(ps, dtype="float64")
    if np.any((fractions < 0) | (fractions > 1)):
        raise ValueError(f"Percentile fractions must be within [0, 1]: {list(ps)}")
    ordered = np.sort(np.asarray(values, dtype="float64"))
    # "lower" picks index floor(p * (n - 1)), i.e. nearest rank without interpolation
    result = np.quantile(ordered, fractions, method="lower")
    return [float(v) for v in np.atleast_1d(result)]


def min_max_normalize(matrix: Sequence[Sequence[float]] | np.ndarray) -> np.ndarray:
    """Scale each column of ``matrix`` to [0, 1].

    Constant columns map to :data:`CONSTANT_COLUMN_VALUE` instead of dividing
    by a zero range.
    """
    data = np.asarray(matrix, dtype="float64")
    if data.ndim != 2:
        raise ValueError(f"Expected a 2-D matrix, got shape {data.shape}")
    if data.shape[0] == 0:
        return data.copy()
    lows = data.min(axis=0)
    spans = data.max(axis=0) - lows
    constant = spans == 0
    safe_spans = np.where(constant, 1.0, spans)
    scaled = (data - lows) / safe_spans
    scaled[:, constant] = CONSTANT_COLUMN_VALUE
    return scaled


@dataclass(frozen=True)
class KMeansResult:
    """Outcome of a k-means run.

    Attributes
    ----------
    labels:
        Cluster index per input point
    centers:
        Cluster centres, one row per cluster
    inertia:
        Sum of squared distances to the assigned centre
    n_iter:
        Lloyd iterations performed
    """

    labels: np.ndarray
    centers: np.ndarray
    inertia: float
    n_iter: int

    @property
    def clusters(self) -> list[int]:
        return [int(label) for label in self.labels]


def kmeans(
    points: Sequence[Sequence[float]] | np.ndarray,
    k: int,
    init: str = "k-means++",
    random_state: int = 42,
    max_iter: int = 300,
) -> KMeansResult:
    """Cluster ``points`` into ``k`` groups.

    Uses a single seeded initialisation, so the same points, ``k`` and
    ``random_state`` always produce the same labels. Iteration stops on
    convergence or after ``max_iter`` Lloyd steps.

    Raises
    ------
    ValueError
        If ``k`` is not between 1 and the number of points
    """
    data = np.asarray(points, dtype="float64")
    if data.ndim != 2:
        raise ValueError(f"Expected a 2-D matrix, got shape {data.shape}")
    if not 1 <= k <= data.shape[0]:
        raise ValueError(f"k must be between 1 and {data.shape[0]}: {k}")

    model = KMeans(
        n_clusters=k,
        init=init,
        n_init=1,
        max_iter=max_iter,
        algorithm="lloyd",
        random_state=random_state,
    )
    labels = model.fit_predict(data)
    return KMeansResult(
        labels=labels,
        centers=model.cluster_centers_,
        inertia=float(model.inertia_),
        n_iter=int(model.n_iter_),
    )
