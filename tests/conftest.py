"""Shared fixtures for the clearance tests."""

import io
from typing import Callable

import numpy as np
import pytest
from PIL import Image


def encode_png(pixels: np.ndarray) -> bytes:
    """Encode a uint8 grayscale or RGB array as PNG bytes."""
    buffer = io.BytesIO()
    Image.fromarray(pixels.astype(np.uint8)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def noise_pixels() -> np.ndarray:
    """Deterministic 32x32 grayscale noise in 0..200, leaving headroom for a brightness shift."""
    rng = np.random.RandomState(7)
    return rng.randint(0, 201, size=(32, 32)).astype(np.uint8)


@pytest.fixture
def png_factory() -> Callable[[np.ndarray], bytes]:
    return encode_png


@pytest.fixture
def logo_png(noise_pixels: np.ndarray) -> bytes:
    return encode_png(noise_pixels)
