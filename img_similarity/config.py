"""
Central configuration for the image similarity service.

Every value can be overridden through an environment variable.
"""
import os
from pathlib import Path

PACKAGE_DIR = Path(__file__).resolve().parent

# Similarity parameters
DEFAULT_SIMILARITY_THRESHOLD = float(os.getenv("SIMILARITY_THRESHOLD", "0.95"))  # inclusive, on the [0, 1] score
MIN_GROUP_SIZE = 2

# Model resolution: explicit MODEL_PATH first, then local models dir, then bundled asset
MODEL_FILENAME = "mobilenet_quant.onnx"
MODEL_CANDIDATES = [
    p for p in (
        os.getenv("MODEL_PATH"),
        str(Path("models") / MODEL_FILENAME),
        str(PACKAGE_DIR / "assets" / MODEL_FILENAME),
    ) if p
]

# Service settings
SERVICE_HOST = os.getenv("HOST", "127.0.0.1")
SERVICE_PORT = int(os.getenv("PORT", "8002"))
SERVICE_URL = os.getenv("SIMILARITY_SERVICE_URL", "http://127.0.0.1:8002")
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "300"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "info")

# Image parameters
SUPPORTED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".bmp", ".gif", ".tiff"}
