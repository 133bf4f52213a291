"""Tests for feature space construction."""
import pytest
import numpy as np
from msseg.feature_space import build_feature_space
from msseg.types import ImageFormatError


class TestBuildFeatureSpace:
    """Test joint spatial/range feature vectors."""

    def test_layout_is_raster_order(self):
        """Test that rows follow raster order with coordinates first."""
        image = np.arange(2 * 3 * 3, dtype=np.float64).reshape(2, 3, 3)

        features = build_feature_space(image)

        assert features.data.shape == (6, 5)
        assert features.height == 2
        assert features.width == 3
        assert features.range_dims == 3
        # Pixel (1, 2) is the last row
        np.testing.assert_array_equal(features.data[5], [1, 2, 15, 16, 17])
        np.testing.assert_array_equal(features.data[1, :2], [0, 1])

    def test_lattice_view(self):
        """Test that the lattice view indexes features by pixel."""
        image = np.random.default_rng(1).random((4, 5, 3))

        lattice = build_feature_space(image).lattice()

        assert lattice.shape == (4, 5, 5)
        np.testing.assert_array_equal(lattice[2, 3, 2:], image[2, 3])
        np.testing.assert_array_equal(lattice[2, 3, :2], [2, 3])

    def test_single_channel(self):
        """Test that a 2D range image gets one range dimension."""
        features = build_feature_space(np.ones((3, 3)))

        assert features.range_dims == 1
        assert features.dims == 3

    def test_empty_image(self):
        """Test that a zero-sized image gives an empty feature space."""
        features = build_feature_space(np.zeros((0, 5, 3)))

        assert features.size == 0
        assert features.data.shape == (0, 5)

    def test_rejects_bad_shape(self):
        """Test that a 4D array is rejected."""
        with pytest.raises(ImageFormatError):
            build_feature_space(np.zeros((2, 2, 2, 2)))
