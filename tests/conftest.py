"""Shared fixtures: a fake inference engine and in-memory test images."""

import io

import numpy as np
import pytest
from PIL import Image

from img_similarity.embedding.engine import ElementType, InferenceEngine

RED = (255, 0, 0)
GREEN = (0, 255, 0)
BLUE = (0, 0, 255)
WHITE = (255, 255, 255)


def make_png(color, size=(2, 2), mode="RGB") -> bytes:
    """Encode a solid-color image as PNG bytes."""
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeEngine(InferenceEngine):
    """
    Engine that looks up a fixed output vector by the color of the first pixel.

    Solid-color images survive bilinear resizing unchanged, so each test
    color maps to exactly one vector.
    """

    name = "fake"

    def __init__(
        self,
        vectors=None,
        input_type=ElementType.FLOAT32,
        input_shape=(1, 2, 2, 3),
        output_shape=(1, 3),
    ):
        self.vectors = vectors or {}
        self.input_type = input_type
        self._input_shape = input_shape
        self._output_shape = output_shape
        self._handle = None
        self.load_count = 0
        self.released = []
        self.inputs = []

    def load(self):
        if self._handle is None:
            self.load_count += 1
            self._handle = object()
        return self._handle

    def input_shape(self, handle):
        return self._input_shape

    def output_shape(self, handle):
        return self._output_shape

    def input_element_type(self, handle):
        return self.input_type

    def run(self, handle, tensor):
        assert handle is self._handle
        self.inputs.append(tensor)
        pixel = np.asarray(tensor).reshape(-1)[:3]
        if self.input_type is ElementType.FLOAT32:
            key = tuple(int(round(float(v) * 255)) for v in pixel)
        else:
            key = tuple(int(v) for v in pixel)
        # Unknown colors raise KeyError, like an engine failing mid-run
        return np.asarray([self.vectors[key]], dtype=np.float32)

    def release(self, handle):
        self.released.append(handle)
        self._handle = None


@pytest.fixture
def fake_engine():
    return FakeEngine(
        vectors={
            RED: [1.0, 0.0, 0.0],
            GREEN: [0.0, 1.0, 0.0],
            BLUE: [0.0, 0.0, 1.0],
            WHITE: [1.0, 0.0, 0.0],
        }
    )
