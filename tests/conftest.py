"""
Pytest Configuration and Shared Fixtures

This file contains pytest configuration and fixtures that are available
to all test modules.
"""

import numpy as np
import pytest

from docrectify.rectify.types import TensorDescriptor


class FakeSession:
    """In-memory InferenceSession returning a canned output tensor."""

    def __init__(self, output=None, error=None):
        self.input = TensorDescriptor(name="image", shape=(1, 3, None, None))
        self.output = TensorDescriptor(name="output", shape=(1, 3, None, None))
        self._output = output
        self._error = error
        self.calls = []
        self.close_count = 0

    def run(self, tensor):
        self.calls.append(tensor)
        if self._error is not None:
            raise self._error
        if callable(self._output):
            return self._output(tensor)
        return self._output

    def close(self):
        self.close_count += 1


def make_mask_output(height, width, block=None, channels=3, value=1.0):
    """Build a (1, C, H, W) mask tensor with an optional solid block in channel 2.

    block is (x0, y0, x1, y1) with exclusive upper bounds.
    """
    output = np.zeros((1, channels, height, width), dtype=np.float32)
    if block is not None:
        x0, y0, x1, y1 = block
        output[0, 2, y0:y1, x0:x1] = value
    return output


@pytest.fixture
def fake_session_factory():
    """Fixture providing a factory for FakeSession instances."""
    return FakeSession


@pytest.fixture
def mask_output_factory():
    """Fixture providing make_mask_output."""
    return make_mask_output


@pytest.fixture
def sample_quadrilateral_points():
    """Fixture providing 4 page corners in scrambled order."""
    return np.array(
        [
            [300, 150],  # Top-right area
            [100, 200],  # Top-left area
            [320, 400],  # Bottom-right area
            [80, 380],  # Bottom-left area
        ],
        dtype=np.float32,
    )


@pytest.fixture
def sample_test_image():
    """Fixture providing a tilted light page on a dark background."""
    import cv2

    image = np.full((600, 800, 3), 40, dtype=np.uint8)

    # Page corners ordered TL, TR, BR, BL
    pts = np.array([[200, 150], [560, 120], [590, 470], [170, 500]], dtype=np.int32)

    cv2.fillPoly(image, [pts], (235, 235, 235))
    cv2.putText(
        image,
        "INVOICE 2024",
        (250, 300),
        cv2.FONT_HERSHEY_SIMPLEX,
        1.2,
        (20, 20, 20),
        3,
    )

    return image, pts.astype(np.float32)


@pytest.fixture
def gradient_image():
    """Fixture providing a 64x48 BGR image with distinct per-pixel values."""
    ys, xs = np.mgrid[0:48, 0:64]
    image = np.zeros((48, 64, 3), dtype=np.uint8)
    image[:, :, 0] = xs * 3
    image[:, :, 1] = ys * 5
    image[:, :, 2] = 128
    return image
