"""Image embedding extraction and similarity scoring."""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Optional, Tuple

import numpy as np

from ..errors import DimensionMismatchError, InferenceError, NotLoadedError, SimilarityError
from ..scanner.image_utils import preprocess_image, quantize_to_uint8
from .engine import ElementType, InferenceEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoadedModel:
    """A loaded engine handle together with its cached tensor metadata."""

    handle: Any
    input_shape: Tuple[int, ...]
    output_shape: Tuple[int, ...]
    input_type: ElementType


class ImageEmbedder:
    """
    Turn raw image bytes into feature vectors with a classification model.

    The embedder is either unloaded (``state is None``) or holds a
    ``LoadedModel``. Every extraction requires the loaded state. Engine calls
    are serialized, since a loaded engine is not safe for concurrent use.
    """

    def __init__(self, engine: InferenceEngine):
        self.engine = engine
        self.state: Optional[LoadedModel] = None
        self._lock = threading.Lock()

    @property
    def is_loaded(self) -> bool:
        return self.state is not None

    def load_model(self) -> LoadedModel:
        """Load the engine once and cache its input/output metadata."""
        with self._lock:
            if self.state is not None:
                return self.state

            handle = self.engine.load()
            try:
                state = LoadedModel(
                    handle=handle,
                    input_shape=tuple(self.engine.input_shape(handle)),
                    output_shape=tuple(self.engine.output_shape(handle)),
                    input_type=self.engine.input_element_type(handle),
                )
            except Exception:
                # Metadata could not be read; nothing may keep the handle
                self.engine.release(handle)
                raise
            self.state = state
            logger.info(
                f"Model loaded: input {list(self.state.input_shape)} "
                f"({self.state.input_type.value}), output {list(self.state.output_shape)}"
            )
            return self.state

    def close(self):
        """Release the engine handle. Safe to call when not loaded."""
        with self._lock:
            if self.state is None:
                return
            self.engine.release(self.state.handle)
            self.state = None
            logger.info("Model released")

    def _require_loaded(self) -> LoadedModel:
        state = self.state
        if state is None:
            raise NotLoadedError("Model not loaded. Call load_model() first.")
        return state

    def embed_image(self, raw_image: bytes) -> np.ndarray:
        """
        Generate the feature vector for a single image.

        Args:
            raw_image: Encoded image bytes

        Returns:
            1-D float64 vector taken from the first row of the model output

        Raises:
            NotLoadedError: If the model has not been loaded
            DecodeError: If the image bytes cannot be decoded
            InferenceError: If the engine fails
        """
        state = self._require_loaded()
        tensor = preprocess_image(raw_image, state.input_shape)

        if state.input_type is ElementType.UINT8:
            tensor = quantize_to_uint8(tensor)
        tensor = tensor.reshape(state.input_shape)

        with self._lock:
            if self.state is not state:
                raise NotLoadedError("Model was released during extraction")
            try:
                raw = self.engine.run(state.handle, tensor)
            except SimilarityError:
                raise
            except Exception as e:
                raise InferenceError(f"Inference failed: {e}") from e

        embedding = flatten_output(raw)
        logger.debug(f"Embedding extracted: {embedding.shape[0]} values")
        return embedding

    def get_model_info(self) -> dict:
        """Get model information."""
        info = {
            "engine": self.engine.name,
            "loaded": self.is_loaded,
        }
        if self.state is not None:
            info.update({
                "input_shape": list(self.state.input_shape),
                "output_shape": list(self.state.output_shape),
                "input_type": self.state.input_type.value,
                "embedding_dim": int(self.state.output_shape[-1]),
            })
        return info


def flatten_output(raw: Any) -> np.ndarray:
    """
    Reduce a model output to one flat vector.

    Descends into index 0 of every leading dimension until a 1-D run of
    numbers remains, so only the first batch row is kept. A scalar becomes
    a length-1 vector.
    """
    try:
        arr = np.asarray(raw, dtype=np.float64)
    except ValueError:
        # Ragged nesting: the first row still has to be reached one level at a time
        return flatten_output(raw[0])

    if arr.ndim == 0:
        return arr.reshape(1)
    if arr.ndim > 1:
        if 0 in arr.shape[:-1]:
            return np.empty(0, dtype=np.float64)
        arr = arr[(0,) * (arr.ndim - 1)]
    return arr


def cosine_similarity(embedding1: np.ndarray, embedding2: np.ndarray) -> float:
    """
    Compute cosine similarity between two embeddings.

    Returns 0.0 when either vector has zero norm.

    Returns:
        Cosine similarity (-1 to 1, higher is more similar)

    Raises:
        DimensionMismatchError: If the vectors differ in length
    """
    a = np.asarray(embedding1, dtype=np.float64).reshape(-1)
    b = np.asarray(embedding2, dtype=np.float64).reshape(-1)
    if a.shape[0] != b.shape[0]:
        raise DimensionMismatchError(f"Vectors must have same length ({a.shape[0]} != {b.shape[0]})")

    denom = np.sqrt(np.dot(a, a) * np.dot(b, b))
    if denom == 0:
        return 0.0
    return float(np.clip(np.dot(a, b) / denom, -1.0, 1.0))


def compute_similarity(embedding1: np.ndarray, embedding2: np.ndarray) -> float:
    """
    Compute the similarity score between two embeddings.

    Cosine similarity is remapped from [-1, 1] to [0, 1] so a higher score
    always means more similar.
    """
    return (cosine_similarity(embedding1, embedding2) + 1.0) / 2.0


def compute_similarity_matrix(embeddings: np.ndarray) -> np.ndarray:
    """
    Compute the pairwise similarity score matrix.

    Args:
        embeddings: Array of embeddings, shape (n, embedding_dim)

    Returns:
        Score matrix in [0, 1], shape (n, n)
    """
    embeddings = np.asarray(embeddings, dtype=np.float64)
    if embeddings.ndim != 2:
        raise DimensionMismatchError(f"Expected a 2-D embedding array, got shape {embeddings.shape}")

    # scores[i, j] == compute_similarity(embeddings[i], embeddings[j]) exactly, for i <= j
    n = len(embeddings)
    scores = np.empty((n, n), dtype=np.float64)
    for i in range(n):
        for j in range(i, n):
            scores[i, j] = scores[j, i] = compute_similarity(embeddings[i], embeddings[j])
    return scores
