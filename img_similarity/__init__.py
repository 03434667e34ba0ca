"""
Image similarity toolkit.

Scores images by the cosine similarity of their classification-model outputs
and groups batches of images into clusters of similar ones.
"""

from .embedding.embedder import ImageEmbedder, compute_similarity, cosine_similarity
from .embedding.engine import ElementType, InferenceEngine, OnnxEngine
from .errors import (
    DecodeError,
    DimensionMismatchError,
    InferenceError,
    NotLoadedError,
    SimilarityError,
)
from .grouping import SimilarPair, SimilarityResult, find_similar
from .inference_service.service import ImageSimilarityService

__version__ = "0.1.0"
__all__ = [
    "ImageEmbedder",
    "compute_similarity",
    "cosine_similarity",
    "ElementType",
    "InferenceEngine",
    "OnnxEngine",
    "DecodeError",
    "DimensionMismatchError",
    "InferenceError",
    "NotLoadedError",
    "SimilarityError",
    "SimilarPair",
    "SimilarityResult",
    "find_similar",
    "ImageSimilarityService",
]
