"""Tests for connected-component labeling of converged modes."""
import numpy as np
from msseg.connectivity import connect, quantize_modes


class TestConnect:
    """Test 4-connected labeling of equal quantized modes."""

    def test_labels_in_raster_order(self):
        """Test labels, seed modes and tallies on a small map."""
        values = np.array([
            [0.2, 0.0, 5.0],
            [5.1, 0.4, 5.0],
        ])

        regions = connect(values.reshape(-1, 1), 2, 3)

        np.testing.assert_array_equal(regions.labels, [[0, 0, 1], [2, 0, 1]])
        # Each mode is the unrounded value of the region's first pixel
        np.testing.assert_allclose(regions.modes[:, 0], [0.2, 5.0, 5.1])
        np.testing.assert_array_equal(regions.mode_point_counts, [3, 2, 1])

    def test_diagonal_pixels_are_separate(self):
        """Test that equal colors touching only diagonally form separate regions."""
        values = np.array([[0, 9], [9, 0]], dtype=np.float64)

        regions = connect(values.reshape(-1, 1), 2, 2)

        assert regions.region_count == 4
        np.testing.assert_array_equal(regions.labels, [[0, 1], [2, 3]])

    def test_uniform_map(self):
        """Test that a uniform map is one region."""
        regions = connect(np.full((12, 3), 7.0), 3, 4)

        assert regions.region_count == 1
        assert regions.mode_point_counts[0] == 12

    def test_partition(self):
        """Test that tallies sum to the pixel count and labels are dense."""
        values = np.random.default_rng(2).integers(0, 3, size=(50, 3)).astype(np.float64)

        regions = connect(values, 5, 10)

        assert regions.mode_point_counts.sum() == 50
        np.testing.assert_array_equal(np.unique(regions.labels), np.arange(regions.region_count))

    def test_empty_map(self):
        """Test that an empty image has no regions."""
        regions = connect(np.zeros((0, 3)), 0, 4)

        assert regions.labels.shape == (0, 4)
        assert regions.region_count == 0
        assert regions.modes.shape == (0, 3)


class TestQuantizeModes:
    """Test rounding of converged values."""

    def test_rounds_to_nearest(self):
        np.testing.assert_array_equal(
            quantize_modes(np.array([[0.4, 0.6, -1.2]])), [[0, 1, -1]]
        )
