"""Tests for percentile, normalisation and k-means helpers."""

import numpy as np
import pytest

from customer_rfm.segmentation.stats import (
    CONSTANT_COLUMN_VALUE,
    kmeans,
    min_max_normalize,
    percentiles,
)


class TestPercentiles:
    """Nearest-rank percentiles."""

    def test_quartiles(self):
        assert percentiles([40, 10, 30, 20], [0.25, 0.5, 0.75]) == [10.0, 20.0, 30.0]

    def test_extremes(self):
        assert percentiles([5, 1, 9], [0.0, 1.0]) == [1.0, 9.0]

    def test_single_value(self):
        assert percentiles([7], [0.25, 0.5, 0.75]) == [7.0, 7.0, 7.0]

    def test_returns_sample_values_only(self):
        """No interpolation: every percentile is one of the inputs."""
        values = [3, 17, 8, 42, 23]
        assert set(percentiles(values, [0.1, 0.33, 0.5, 0.9])) <= {float(v) for v in values}

    def test_input_not_modified(self):
        values = [3, 1, 2]
        percentiles(values, [0.5])
        assert values == [3, 1, 2]

    def test_empty_raises(self):
        with pytest.raises(ValueError, match="empty sequence"):
            percentiles([], [0.5])

    def test_fraction_out_of_range_raises(self):
        with pytest.raises(ValueError, match=r"within \[0, 1\]"):
            percentiles([1, 2], [1.5])


class TestMinMaxNormalize:
    """Column-wise scaling."""

    def test_scales_to_unit_interval(self):
        scaled = min_max_normalize([[0, 10], [5, 20], [10, 30]])
        np.testing.assert_allclose(scaled, [[0.0, 0.0], [0.5, 0.5], [1.0, 1.0]])

    def test_constant_column(self):
        scaled = min_max_normalize([[1, 5], [3, 5]])
        np.testing.assert_allclose(scaled[:, 0], [0.0, 1.0])
        assert np.all(scaled[:, 1] == CONSTANT_COLUMN_VALUE)

    def test_empty_matrix(self):
        assert min_max_normalize(np.empty((0, 3))).shape == (0, 3)

    def test_rejects_vector(self):
        with pytest.raises(ValueError, match="2-D"):
            min_max_normalize([1, 2, 3])


class TestKMeans:
    """Seeded k-means wrapper."""

    POINTS = [[0.0, 0.0], [0.1, 0.0], [0.0, 0.1], [5.0, 5.0], [5.1, 5.0], [5.0, 5.1]]

    def test_separates_obvious_groups(self):
        result = kmeans(self.POINTS, 2)
        labels = result.clusters
        assert labels[0] == labels[1] == labels[2]
        assert labels[3] == labels[4] == labels[5]
        assert labels[0] != labels[3]
        assert result.centers.shape == (2, 2)
        assert result.inertia >= 0

    def test_deterministic_for_same_seed(self):
        first = kmeans(self.POINTS, 3, random_state=7)
        second = kmeans(self.POINTS, 3, random_state=7)
        assert first.clusters == second.clusters
        np.testing.assert_allclose(first.centers, second.centers)

    def test_single_cluster(self):
        result = kmeans(self.POINTS, 1)
        assert set(result.clusters) == {0}

    @pytest.mark.parametrize("k", [0, 7])
    def test_invalid_k(self, k):
        with pytest.raises(ValueError, match="k must be between 1 and 6"):
            kmeans(self.POINTS, k)
