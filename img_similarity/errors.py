"""Error types raised by the similarity pipeline."""


class SimilarityError(Exception):
    """Base class for all pipeline errors."""


class DecodeError(SimilarityError, ValueError):
    """Image bytes could not be decoded as a known image format."""


class NotLoadedError(SimilarityError, RuntimeError):
    """An operation needed a loaded model but none was loaded."""


class DimensionMismatchError(SimilarityError, ValueError):
    """Two embedding vectors of different lengths were compared."""


class InferenceError(SimilarityError, RuntimeError):
    """The inference engine failed to load or run."""
