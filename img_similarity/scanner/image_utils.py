"""Image decoding and tensor preprocessing utilities."""

import io
from pathlib import Path
from typing import Sequence

import numpy as np
from PIL import Image

from ..config import SUPPORTED_EXTENSIONS
from ..errors import DecodeError

# Pillow mode for each supported channel count
_CHANNEL_MODES = {1: "L", 3: "RGB", 4: "RGBA"}


def decode_image(raw_image: bytes) -> Image.Image:
    """
    Decode raw image bytes into a fully loaded PIL Image.

    Raises:
        DecodeError: If the bytes are not a recognized image format.
    """
    try:
        image = Image.open(io.BytesIO(raw_image))
        image.load()
    except (OSError, ValueError) as e:
        raise DecodeError(f"Failed to decode image: {e}") from e
    return image


def preprocess_image(raw_image: bytes, target_shape: Sequence[int]) -> np.ndarray:
    """
    Decode image bytes and turn them into a flat float tensor for the model.

    The shape is read as [batch, height, width, channels]; channels defaults
    to 3 when the shape has only three dimensions. Pixels are resized with
    bilinear interpolation and scaled to [0, 1], laid out row-major with
    channels interleaved (R, G, B per pixel).

    Args:
        raw_image: Encoded image bytes (PNG, JPEG, ...)
        target_shape: Model input shape

    Returns:
        float32 array with exactly prod(target_shape) elements
    """
    if len(target_shape) < 3:
        raise ValueError(f"Expected an input shape like [1, H, W, C], got {list(target_shape)}")

    batch, height, width = (int(d) for d in target_shape[:3])
    channels = int(target_shape[3]) if len(target_shape) > 3 else 3
    mode = _CHANNEL_MODES.get(channels)
    if mode is None:
        raise ValueError(f"Unsupported channel count: {channels}")

    image = decode_image(raw_image)
    if image.mode != mode:
        image = image.convert(mode)

    resized = image.resize((width, height), Image.Resampling.BILINEAR)
    pixels = np.asarray(resized, dtype=np.uint8).reshape(height, width, channels)

    tensor = (pixels.astype(np.float32) / 255.0).reshape(-1)
    if batch > 1:
        tensor = np.tile(tensor, batch)
    return tensor


def quantize_to_uint8(tensor: np.ndarray) -> np.ndarray:
    """
    Convert a [0, 1] float tensor to uint8.

    Values are clamped, scaled by 255 and rounded half away from zero.
    Inputs are non-negative after clamping, so floor(x + 0.5) is exact.
    """
    scaled = np.clip(np.asarray(tensor, dtype=np.float64), 0.0, 1.0) * 255.0
    return np.floor(scaled + 0.5).astype(np.uint8)


def load_image_bytes(file_path: Path) -> bytes:
    """Read an image file from disk as raw bytes."""
    with open(file_path, "rb") as f:
        return f.read()


def is_supported_image(file_path: Path) -> bool:
    """Check if file is a supported image format."""
    return file_path.suffix.lower() in SUPPORTED_EXTENSIONS
