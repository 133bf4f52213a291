"""Tests for mean-shift mode seeking."""
import pytest
import numpy as np
from msseg.feature_space import build_feature_space
from msseg.mode_seeker import ModeSeeker
from msseg.types import Speedup, ImageFormatError

ALL_SPEEDUPS = [Speedup.NO_SPEEDUP, Speedup.MEDIUM_SPEEDUP, Speedup.HIGH_SPEEDUP]


def stripes(levels, height=4, stripe_width=2):
    """Single-channel range image made of vertical stripes."""
    row = np.repeat(np.asarray(levels, dtype=np.float64), stripe_width)
    return np.tile(row, (height, 1))[..., np.newaxis]


class TestModeSeeker:
    """Test per-pixel mode seeking."""

    @pytest.mark.parametrize("speedup", ALL_SPEEDUPS)
    def test_separated_levels_keep_their_values(self, speedup):
        """Test that windows never mix levels further apart than sigma_r."""
        image = stripes([10, 200, 10, 200])
        features = build_feature_space(image)

        result = ModeSeeker(sigma_s=2, sigma_r=5, speedup=speedup).seek(features)

        np.testing.assert_allclose(result.filtered_range[:, 0], image.ravel())

    @pytest.mark.parametrize("speedup", ALL_SPEEDUPS)
    def test_trials_histogram_covers_every_pixel(self, speedup):
        """Test that every pixel is counted once in the trials histogram."""
        image = np.random.default_rng(3).random((6, 7, 3)) * 20
        features = build_feature_space(image)

        result = ModeSeeker(sigma_s=3, sigma_r=8, max_trial=4, speedup=speedup).seek(features)

        assert len(result.trials_to_converge) == 5
        assert result.trials_to_converge.sum() == features.size
        assert result.converged.shape == features.data.shape

    def test_no_speedup_iterates_every_pixel(self):
        """Test that without speedup no pixel inherits its mode."""
        features = build_feature_space(np.full((5, 5, 3), 40.0))

        result = ModeSeeker(sigma_s=3, sigma_r=5, speedup=Speedup.NO_SPEEDUP).seek(features)

        assert result.trials_to_converge[0] == 0

    @pytest.mark.parametrize("speedup", [Speedup.MEDIUM_SPEEDUP, Speedup.HIGH_SPEEDUP])
    def test_speedups_inherit_modes(self, speedup):
        """Test that speedups assign some modes without iterating."""
        features = build_feature_space(np.full((10, 10, 3), 40.0))

        result = ModeSeeker(sigma_s=3, sigma_r=5, speedup=speedup).seek(features)

        assert result.trials_to_converge[0] > 0
        np.testing.assert_allclose(result.filtered_range, 40.0)

    def test_high_speedup_collects_basin(self):
        """Test that the inner window of the first trajectory joins its basin."""
        features = build_feature_space(np.full((10, 10, 3), 40.0))

        result = ModeSeeker(sigma_s=3, sigma_r=5, speedup=Speedup.HIGH_SPEEDUP).seek(features)

        # (0, 1), (1, 0) and (1, 1) lie in the inner half of pixel (0, 0)'s window
        assert result.trials_to_converge[0] >= 3

    @pytest.mark.parametrize("speedup", ALL_SPEEDUPS)
    def test_modes_stay_within_input_range(self, speedup):
        """Test that converged values are averages of input values."""
        image = np.random.default_rng(5).random((8, 8, 3)) * 50
        features = build_feature_space(image)

        result = ModeSeeker(sigma_s=3, sigma_r=20, speedup=speedup).seek(features)

        filtered = result.filtered_range
        assert np.all(filtered >= image.reshape(-1, 3).min(axis=0) - 1e-9)
        assert np.all(filtered <= image.reshape(-1, 3).max(axis=0) + 1e-9)

    @pytest.mark.parametrize("speedup", ALL_SPEEDUPS)
    def test_single_pixel(self, speedup):
        """Test that a 1x1 image converges to itself in one step."""
        features = build_feature_space(np.array([[[10.0, 20.0, 30.0]]]))

        result = ModeSeeker(sigma_s=5, sigma_r=5, speedup=speedup).seek(features)

        np.testing.assert_allclose(result.converged, features.data)
        assert result.trials_to_converge[1] == 1

    @pytest.mark.parametrize("speedup", ALL_SPEEDUPS)
    def test_empty_windows_keep_start_point(self, speedup):
        """Test that a zero-weight window leaves the pixel at its start point."""
        features = build_feature_space(np.random.default_rng(7).random((4, 4, 3)))

        result = ModeSeeker(sigma_s=2, sigma_r=5, speedup=speedup).seek(
            features, weight_map=np.zeros((4, 4))
        )

        assert result.empty_windows == features.size
        np.testing.assert_array_equal(result.converged, features.data)

    def test_empty_feature_space(self):
        """Test that an empty image gives an empty result."""
        features = build_feature_space(np.zeros((0, 3, 3)))

        result = ModeSeeker(sigma_s=2, sigma_r=5).seek(features)

        assert result.converged.shape == (0, 5)
        assert result.trials_to_converge.sum() == 0

    def test_weight_map_shape_mismatch(self):
        """Test that a weight map of the wrong shape is rejected."""
        features = build_feature_space(np.zeros((4, 4, 3)))

        with pytest.raises(ImageFormatError):
            ModeSeeker(sigma_s=2, sigma_r=5).seek(features, weight_map=np.ones((3, 4)))

    def test_negative_weights_rejected(self):
        """Test that negative weights are rejected."""
        features = build_feature_space(np.zeros((2, 2, 3)))

        with pytest.raises(ImageFormatError):
            ModeSeeker(sigma_s=2, sigma_r=5).seek(features, weight_map=-np.ones((2, 2)))

    @pytest.mark.parametrize("speedup", [Speedup.MEDIUM_SPEEDUP, Speedup.HIGH_SPEEDUP])
    def test_empty_window_releases_attached_points(self, speedup, monkeypatch):
        """Test that points attached before an empty window keep their own start points."""
        features = build_feature_space(np.arange(12, dtype=np.float64).reshape(2, 2, 3))
        seeker = ModeSeeker(sigma_s=2, sigma_r=5, speedup=speedup)
        calls = []

        def window_mean(y, lattice, weights, collect_basin):
            calls.append(y.copy())
            if len(calls) == 1:
                # First step moves in range only and attaches pixels 1 and 2
                mean = y.copy()
                mean[2] += 1.0
                return mean, np.array([1, 2])
            if len(calls) == 2:
                return None, None
            return y.copy(), None

        monkeypatch.setattr(seeker, "_window_mean", window_mean)

        result = seeker.seek(features)

        assert result.empty_windows == 1
        np.testing.assert_array_equal(result.converged, features.data)
        # Pixels 1, 2 and 3 each ran a trajectory of their own
        assert len(calls) == 5
