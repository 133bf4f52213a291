"""Tests for the classic histogram-sampling algorithm."""
import pytest
import numpy as np
from msseg.segmentation import MeanShiftSegmentation
from msseg.types import (
    ClassicConfig,
    ClassicOption,
    MeanShiftConfig,
    ConfigurationError,
)

RED = (200, 30, 30)
BLUE = (30, 30, 200)


def halves(height=20, width=20):
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[:, :width // 2] = RED
    image[:, width // 2:] = BLUE
    return image


def island(size=20, island_size=2):
    image = np.zeros((size, size, 3), dtype=np.uint8)
    image[:] = RED
    start = size // 2 - island_size // 2
    image[start:start + island_size, start:start + island_size] = BLUE
    return image


def classic_config(**kwargs):
    return MeanShiftConfig(classic_algorithm=True, classic=ClassicConfig(**kwargs))


class TestClassicSegmentation:
    """Test color clustering by histogram sampling."""

    @pytest.mark.parametrize("option", list(ClassicOption))
    def test_two_colors(self, option):
        """Test that two flat halves give two classes."""
        image = halves()

        result = MeanShiftSegmentation(classic_config(option=option)).run(image)

        assert result.region_count == 2
        left, right = result.labels[0, 0], result.labels[0, 19]
        assert left != right
        assert np.all(result.labels[:, :10] == left)
        assert np.all(result.labels[:, 10:] == right)
        np.testing.assert_allclose(result.palette[left], RED, atol=2)
        np.testing.assert_allclose(result.palette[right], BLUE, atol=2)

    def test_rectangles(self):
        """Test segmentation seeded from user rectangles."""
        config = classic_config(rects=[(0, 0, 19, 9), (0, 10, 19, 19)])

        result = MeanShiftSegmentation(config).run(halves())

        assert result.region_count == 2
        assert result.labels[0, 0] != result.labels[0, 19]

    def test_no_filtered_image(self):
        """Test that the classic algorithm produces no filtered image."""
        filtered, segmented, labels, palette = MeanShiftSegmentation(
            classic_config()
        ).segment_images(halves())

        assert filtered is None
        assert segmented.shape == (20, 20, 3)
        assert labels.shape == (20, 20)

    def test_deterministic(self):
        """Test that repeated runs give the same labels."""
        segmentation = MeanShiftSegmentation(classic_config())

        first, _ = segmentation.segment(halves())
        second, _ = segmentation.segment(halves())

        np.testing.assert_array_equal(first, second)

    def test_small_fragment_eliminated(self):
        """Test that a small island joins the surrounding class."""
        config = classic_config(option=ClassicOption.OVERSEGMENTATION)

        labels, palette = MeanShiftSegmentation(config).segment(island())

        assert len(palette) == 1
        assert np.all(labels == 0)

    def test_quantization_keeps_fragments(self):
        """Test that plain quantization leaves small islands alone."""
        config = classic_config(option=ClassicOption.QUANTIZATION)

        labels, palette = MeanShiftSegmentation(config).segment(island())

        assert len(palette) == 2
        assert labels[10, 10] != labels[0, 0]

    def test_partition(self):
        """Test that class tallies add up to the pixel count."""
        rng = np.random.default_rng(11)
        image = rng.integers(0, 256, size=(16, 16, 3), dtype=np.uint8)

        result = MeanShiftSegmentation(classic_config()).run(image)

        assert result.mode_point_counts.sum() == 256
        np.testing.assert_array_equal(np.unique(result.labels), np.arange(result.region_count))

    def test_weight_map_ignored(self):
        """Test that a weight map does not change the classic result."""
        segmentation = MeanShiftSegmentation(classic_config())

        plain = segmentation.run(halves())
        weighted = segmentation.run(halves(), weight_map=np.ones((20, 20)))

        np.testing.assert_array_equal(plain.labels, weighted.labels)


class TestClassicConfiguration:
    """Test classic parameter validation."""

    def test_auto_segmentation_flag(self):
        assert ClassicConfig().auto_segmentation
        assert ClassicConfig(rects=[]).auto_segmentation
        assert not ClassicConfig(rects=[(0, 0, 5, 5)]).auto_segmentation

    @pytest.mark.parametrize("overrides", [
        {"option": 7},
        {"trial_to_converge": 0},
        {"max_trial_random_color": 0},
        {"class_threshold": (1.0, 2.0)},
        {"auto_radius": (1.0, 0.0, 2.0)},
        {"min_var": -1.0},
        {"rects": [(0, 0, 5)]},
    ])
    def test_invalid_parameters(self, overrides):
        """Test that invalid classic parameters are rejected."""
        with pytest.raises(ConfigurationError):
            MeanShiftSegmentation(classic_config(**overrides)).segment(halves())

    def test_validation_leaves_config_unchanged(self):
        """Test that an integer option is accepted without being rewritten."""
        config = classic_config(option=1)

        config.validate()
        labels, palette = MeanShiftSegmentation(config).segment(halves())

        assert type(config.classic.option) is int
        assert config.classic.option == 1
        assert len(palette) == 2

    def test_classic_parameters_ignored_by_density(self):
        """Test that classic parameters are not checked for the density algorithm."""
        config = MeanShiftConfig(classic=ClassicConfig(trial_to_converge=0))

        config.validate()
