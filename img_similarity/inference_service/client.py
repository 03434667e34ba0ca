"""Client for calling a remote similarity service.

This module handles communication with the similarity service,
including image encoding and response handling.
"""

import base64
import logging
from typing import List, Optional, Sequence

import httpx

from .. import config
from ..grouping import SimilarityResult, SimilarPair

logger = logging.getLogger(__name__)


class SimilarityClient:
    """Client for calling the similarity service.

    The service URL comes from SIMILARITY_SERVICE_URL when not given
    (default: http://127.0.0.1:8002).
    """

    def __init__(
        self,
        service_url: Optional[str] = None,
        timeout: float = config.REQUEST_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize client.

        Args:
            service_url: Base URL of the similarity service
            timeout: Request timeout in seconds
            transport: Custom httpx transport (used in tests)
        """
        self.service_url = (service_url or config.SERVICE_URL).rstrip("/")
        self.timeout = timeout
        self.client = httpx.Client(timeout=timeout, transport=transport)
        logger.info(f"SimilarityClient initialized: url={self.service_url}")

    def close(self):
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def health_check(self) -> bool:
        """
        Check if the service is healthy.

        Returns:
            True if service is accessible and healthy
        """
        try:
            response = self.client.get(f"{self.service_url}/health")
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.error(f"Health check failed: {e}")
            return False

    def get_model_info(self) -> dict:
        """Get information about the currently loaded model."""
        return self._request("GET", "/model-info")

    def get_similarity(self, image_a: bytes, image_b: bytes) -> float:
        """Score two encoded images; returns a value in [0, 1]."""
        result = self._request(
            "POST",
            "/similarity",
            json={"image_a": _encode(image_a), "image_b": _encode(image_b)},
        )
        return float(result["similarity"])

    def find_similar_images(
        self,
        images: Sequence[bytes],
        threshold: float = config.DEFAULT_SIMILARITY_THRESHOLD,
    ) -> SimilarityResult:
        """
        Find similar images by sending them as base64 to the service.

        Args:
            images: Encoded images
            threshold: Inclusive lower bound on the score

        Returns:
            SimilarityResult with pairs and groups
        """
        result = self._request(
            "POST",
            "/similar/base64",
            json={"images": [_encode(image) for image in images], "threshold": threshold},
        )
        pairs: List[SimilarPair] = [
            SimilarPair(p["index_a"], p["index_b"], float(p["score"])) for p in result["pairs"]
        ]
        return SimilarityResult(pairs=pairs, groups=[list(g) for g in result["groups"]])

    def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            response = self.client.request(method, f"{self.service_url}{path}", **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise


def _encode(image: bytes) -> str:
    return base64.b64encode(image).decode("utf-8")
