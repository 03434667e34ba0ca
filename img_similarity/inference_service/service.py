"""Caller-facing image similarity service.

This is the surface the outer layers (HTTP server, CLI) use:
- Loading and releasing the model
- Scoring one pair of images
- Finding pairs and groups of similar images in a small batch

No state about images is kept between calls.
"""

import logging
from typing import List, Sequence

import numpy as np
from tqdm import tqdm

from ..config import DEFAULT_SIMILARITY_THRESHOLD
from ..embedding.embedder import ImageEmbedder, LoadedModel, compute_similarity
from ..embedding.engine import InferenceEngine
from ..grouping import SimilarityResult, find_similar

logger = logging.getLogger(__name__)


class ImageSimilarityService:
    """Compare images by the cosine similarity of their model outputs."""

    def __init__(self, engine: InferenceEngine):
        self.embedder = ImageEmbedder(engine)

    def __enter__(self):
        self.load_model()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @property
    def is_loaded(self) -> bool:
        return self.embedder.is_loaded

    def load_model(self) -> LoadedModel:
        """Load the model. Call this once before comparing images."""
        return self.embedder.load_model()

    def close(self):
        """Release the model."""
        self.embedder.close()

    def get_model_info(self) -> dict:
        return self.embedder.get_model_info()

    def get_embedding(self, image: bytes) -> np.ndarray:
        return self.embedder.embed_image(image)

    def get_similarity(self, image_a: bytes, image_b: bytes) -> float:
        """
        Compare two images.

        Returns:
            Score in [0, 1]; 1.0 means very similar, 0.0 very different
        """
        embedding_a = self.embedder.embed_image(image_a)
        embedding_b = self.embedder.embed_image(image_b)
        return compute_similarity(embedding_a, embedding_b)

    def find_similar_images(
        self,
        images: Sequence[bytes],
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        show_progress: bool = False,
    ) -> SimilarityResult:
        """
        Find similar pairs and groups in a batch of images.

        Any failure while embedding aborts the whole batch.

        Args:
            images: Encoded images, in batch order
            threshold: Inclusive lower bound on the [0, 1] score
            show_progress: Show a progress bar while embedding

        Returns:
            SimilarityResult whose indices refer to positions in ``images``
        """
        if len(images) < 2:
            return SimilarityResult()

        embeddings: List[np.ndarray] = []
        for image in tqdm(images, desc="Embedding images", unit="image", disable=not show_progress):
            embeddings.append(self.embedder.embed_image(image))

        return find_similar(embeddings, threshold)
