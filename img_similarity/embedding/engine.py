"""Inference engine contract and the ONNX Runtime implementation."""

import enum
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np

from .. import config
from ..errors import InferenceError

logger = logging.getLogger(__name__)


class ElementType(enum.Enum):
    """Element type a model expects for its input tensor."""

    FLOAT32 = "float32"
    UINT8 = "uint8"


class InferenceEngine(ABC):
    """
    Opaque image-classification engine.

    Implementations own their weights and graph; callers only go through
    this contract. A loaded handle is not safe for concurrent use.
    """

    name: str = "engine"

    @abstractmethod
    def load(self) -> Any:
        """Load the model and return a handle. Idempotent once loaded."""

    @abstractmethod
    def input_shape(self, handle: Any) -> Tuple[int, ...]:
        """Shape of the model input, e.g. (1, 224, 224, 3)."""

    @abstractmethod
    def output_shape(self, handle: Any) -> Tuple[int, ...]:
        """Shape of the model output, e.g. (1, 1001)."""

    @abstractmethod
    def input_element_type(self, handle: Any) -> ElementType:
        """Element type of the model input."""

    @abstractmethod
    def run(self, handle: Any, tensor: np.ndarray) -> Any:
        """Run the model on one input tensor and return its raw output."""

    @abstractmethod
    def release(self, handle: Any) -> None:
        """Free the resources held by a handle."""


def resolve_model_path(candidates: Sequence[str]) -> Path:
    """
    Return the first candidate model path that exists on disk.

    Raises:
        FileNotFoundError: If none of the candidates exist.
    """
    for candidate in candidates:
        path = Path(candidate)
        if path.is_file():
            return path
        logger.debug(f"Model not found at {path}")
    raise FileNotFoundError(f"No model file found; tried: {', '.join(str(c) for c in candidates)}")


def _static_shape(shape: Sequence[Any]) -> Tuple[int, ...]:
    # Dynamic dimensions come back as names or None; run them with size 1
    return tuple(d if isinstance(d, int) and d > 0 else 1 for d in shape)


_ONNX_ELEMENT_TYPES = {
    "tensor(float)": ElementType.FLOAT32,
    "tensor(uint8)": ElementType.UINT8,
}


class OnnxEngine(InferenceEngine):
    """Image classifier backed by an ONNX Runtime session."""

    name = "onnxruntime"

    def __init__(
        self,
        model_path: Optional[str] = None,
        candidates: Optional[List[str]] = None,
        providers: Optional[List[str]] = None,
    ):
        """
        Initialize engine.

        Args:
            model_path: Explicit model file; skips candidate resolution
            candidates: Paths to try in order (default: config.MODEL_CANDIDATES)
            providers: ONNX Runtime execution providers (default: CPU only)
        """
        self.candidates = [model_path] if model_path else list(candidates or config.MODEL_CANDIDATES)
        self.providers = providers or ["CPUExecutionProvider"]
        self.model_path: Optional[Path] = None
        self._session = None

    def load(self):
        if self._session is not None:
            return self._session

        self.model_path = resolve_model_path(self.candidates)

        import onnxruntime as ort

        logger.info(f"Loading ONNX model: {self.model_path}")
        sess_options = ort.SessionOptions()
        sess_options.log_severity_level = 3  # Suppress verbose logs
        try:
            self._session = ort.InferenceSession(
                str(self.model_path),
                sess_options=sess_options,
                providers=self.providers,
            )
        except Exception as e:
            raise InferenceError(f"Failed to load model {self.model_path}: {e}") from e
        return self._session

    def input_shape(self, handle) -> Tuple[int, ...]:
        return _static_shape(handle.get_inputs()[0].shape)

    def output_shape(self, handle) -> Tuple[int, ...]:
        return _static_shape(handle.get_outputs()[0].shape)

    def input_element_type(self, handle) -> ElementType:
        onnx_type = handle.get_inputs()[0].type
        if onnx_type not in _ONNX_ELEMENT_TYPES:
            raise InferenceError(f"Unsupported model input type: {onnx_type}")
        return _ONNX_ELEMENT_TYPES[onnx_type]

    def run(self, handle, tensor: np.ndarray):
        input_name = handle.get_inputs()[0].name
        try:
            outputs = handle.run(None, {input_name: tensor})
        except Exception as e:
            raise InferenceError(f"Model inference failed: {e}") from e
        return outputs[0]

    def release(self, handle) -> None:
        # Sessions free their memory once no reference remains
        if handle is self._session:
            self._session = None
        logger.info("Released ONNX session")
