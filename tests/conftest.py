"""Shared test images."""
import pytest
import numpy as np


RED = (200, 30, 30)
BLUE = (30, 30, 200)


def block_image(height=8, width=16, left=RED, right=BLUE):
    """Image split vertically into two flat color blocks."""
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[:, :width // 2] = left
    image[:, width // 2:] = right
    return image


@pytest.fixture
def two_block_image():
    return block_image()


@pytest.fixture
def uniform_image():
    image = np.zeros((8, 8, 3), dtype=np.uint8)
    image[:] = (120, 60, 30)
    return image


@pytest.fixture
def noisy_image():
    rng = np.random.default_rng(0)
    return rng.integers(0, 256, size=(10, 10, 3), dtype=np.uint8)
