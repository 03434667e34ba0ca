"""HTTP server for comparing images.

This service is responsible for:
- Loading the model once at startup
- Accepting image data via HTTP
- Scoring image pairs and grouping similar images
- Returning results

Key principle: The service is stateless regarding images.
The client keeps track of which image is which.
"""

import base64
import binascii
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, File, HTTPException, UploadFile
from pydantic import BaseModel

from .. import config
from ..embedding.engine import OnnxEngine
from ..errors import DecodeError, DimensionMismatchError, InferenceError, NotLoadedError
from ..grouping import SimilarityResult
from .service import ImageSimilarityService

logger = logging.getLogger(__name__)


class SimilarityRequest(BaseModel):
    """Request to compare two images."""

    image_a: str  # Base64-encoded image
    image_b: str


class SimilarityResponse(BaseModel):
    """Similarity score for one image pair."""

    similarity: float


class SimilarImagesRequest(BaseModel):
    """Request to find similar images in a batch."""

    images: List[str]  # Base64-encoded images
    threshold: float = config.DEFAULT_SIMILARITY_THRESHOLD


class PairModel(BaseModel):
    index_a: int
    index_b: int
    score: float


class SimilarImagesResponse(BaseModel):
    """Pairs and groups found in a batch."""

    pairs: List[PairModel]
    groups: List[List[int]]
    count: int


def decode_base64_image(b64_image: str, index: int = 0) -> bytes:
    """Decode a base64 image, accepting data URIs."""
    # Handle data URI format if present
    if b64_image.startswith("data:image"):
        b64_image = b64_image.split(",", 1)[1]
    try:
        return base64.b64decode(b64_image, validate=True)
    except (binascii.Error, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Failed to decode image {index}: {e}")


def to_http_error(e: Exception) -> HTTPException:
    """Map a pipeline error to an HTTP error."""
    if isinstance(e, DecodeError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, NotLoadedError):
        return HTTPException(status_code=503, detail=str(e))
    if isinstance(e, (InferenceError, DimensionMismatchError)):
        logger.error(f"Comparison failed: {e}")
        return HTTPException(status_code=500, detail=str(e))
    logger.exception("Unexpected error during comparison")
    return HTTPException(status_code=500, detail=str(e))


def _similar_response(result: SimilarityResult, count: int) -> SimilarImagesResponse:
    return SimilarImagesResponse(
        pairs=[PairModel(**pair.to_dict()) for pair in result.pairs],
        groups=result.groups,
        count=count,
    )


def create_app(service: Optional[ImageSimilarityService] = None) -> FastAPI:
    """Create FastAPI application for the similarity service."""
    if service is None:
        service = ImageSimilarityService(OnnxEngine())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting similarity service...")
        service.load_model()
        logger.info("Similarity service ready")
        yield
        service.close()

    app = FastAPI(
        title="Image Similarity Service",
        description="Stateless service for comparing images by feature similarity",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.service = service

    @app.get("/health")
    @app.get("/healthz")  # Alias for K8s-style health checks
    def health():
        """Health check endpoint."""
        return {"status": "ok"}

    @app.get("/model-info")
    def get_model_info():
        """Get information about currently loaded model."""
        if not service.is_loaded:
            raise HTTPException(status_code=503, detail="No model loaded")
        return service.get_model_info()

    @app.post("/similarity", response_model=SimilarityResponse)
    def similarity(request: SimilarityRequest):
        """Compare two base64-encoded images."""
        image_a = decode_base64_image(request.image_a, 0)
        image_b = decode_base64_image(request.image_b, 1)
        try:
            score = service.get_similarity(image_a, image_b)
        except Exception as e:
            raise to_http_error(e) from e
        return SimilarityResponse(similarity=score)

    @app.post("/similar/base64", response_model=SimilarImagesResponse)
    def similar_base64(request: SimilarImagesRequest):
        """
        Find similar images among base64 strings.

        Args:
            request: SimilarImagesRequest with base64-encoded images

        Returns:
            SimilarImagesResponse with pairs and groups
        """
        images = [decode_base64_image(b64, i) for i, b64 in enumerate(request.images)]
        logger.info(f"Comparing {len(images)} images (threshold: {request.threshold})")
        try:
            result = service.find_similar_images(images, request.threshold)
        except Exception as e:
            raise to_http_error(e) from e
        return _similar_response(result, len(images))

    @app.post("/similar/batch", response_model=SimilarImagesResponse)
    def similar_batch(
        files: List[UploadFile] = File(...),
        threshold: float = config.DEFAULT_SIMILARITY_THRESHOLD,
    ):
        """
        Find similar images among multipart file uploads.

        This is more efficient than base64 encoding for large images.
        """
        images = [file.file.read() for file in files]
        logger.info(f"Comparing {len(images)} uploaded images (threshold: {threshold})")
        try:
            result = service.find_similar_images(images, threshold)
        except Exception as e:
            raise to_http_error(e) from e
        return _similar_response(result, len(images))

    return app


def main():
    """Main entry point."""
    import argparse
    import uvicorn

    parser = argparse.ArgumentParser(description="Image similarity service")
    parser.add_argument(
        "--host",
        type=str,
        default=config.SERVICE_HOST,
        help="Host to bind to (default: 127.0.0.1 or HOST env var)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=config.SERVICE_PORT,
        help="Port to bind to (default: 8002 or PORT env var)",
    )
    parser.add_argument(
        "--model-path",
        type=str,
        default=None,
        help="ONNX model file (default: first existing of MODEL_PATH, models/, bundled asset)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=config.LOG_LEVEL,
        choices=["debug", "info", "warning", "error"],
        help="Logging level (default: info or LOG_LEVEL env var)",
    )

    args = parser.parse_args()

    # Configure logging
    log_level = getattr(logging, args.log_level.upper())
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    logger.info(f"Starting similarity service on {args.host}:{args.port}")

    app = create_app(ImageSimilarityService(OnnxEngine(model_path=args.model_path)))
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
