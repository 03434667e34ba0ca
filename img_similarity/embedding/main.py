"""Command-line interface for comparing and grouping images."""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List

from .. import config
from ..errors import SimilarityError
from ..inference_service.service import ImageSimilarityService
from ..scanner.image_utils import is_supported_image, load_image_bytes
from .engine import OnnxEngine

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def collect_image_paths(paths: List[Path]) -> List[Path]:
    """Expand directories into their supported images, keeping files as given."""
    collected = []
    for path in paths:
        if path.is_dir():
            collected.extend(sorted(p for p in path.iterdir() if p.is_file() and is_supported_image(p)))
        elif path.is_file():
            collected.append(path)
        else:
            raise FileNotFoundError(f"Image not found: {path}")
    return collected


def run_compare(service: ImageSimilarityService, args) -> int:
    score = service.get_similarity(load_image_bytes(args.image_a), load_image_bytes(args.image_b))
    print(f"{score:.6f}")
    return 0


def run_group(service: ImageSimilarityService, args) -> int:
    image_paths = collect_image_paths(args.paths)
    logger.info(f"Comparing {len(image_paths)} images (threshold: {args.threshold})")

    images = [load_image_bytes(p) for p in image_paths]
    result = service.find_similar_images(images, args.threshold, show_progress=True)

    output = {"files": [str(p) for p in image_paths], **result.to_dict()}
    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        with open(args.output, "w") as f:
            json.dump(output, f, indent=2)
        logger.info(f"Saved {len(result.groups)} groups to {args.output}")
    else:
        print(json.dumps(output, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Compare images by similarity of their classification vectors"
    )
    parser.add_argument(
        "--model-path",
        type=str,
        default=None,
        help="ONNX model file (default: first existing of MODEL_PATH, models/, bundled asset)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    compare_parser = subparsers.add_parser("compare", help="Score the similarity of two images")
    compare_parser.add_argument("image_a", type=Path)
    compare_parser.add_argument("image_b", type=Path)
    compare_parser.set_defaults(handler=run_compare)

    group_parser = subparsers.add_parser("group", help="Find groups of similar images")
    group_parser.add_argument("paths", type=Path, nargs="+", help="Image files or directories")
    group_parser.add_argument(
        "--threshold",
        type=float,
        default=config.DEFAULT_SIMILARITY_THRESHOLD,
        help="Similarity threshold (0-1, higher is more strict)",
    )
    group_parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write results to this JSON file instead of stdout",
    )
    group_parser.set_defaults(handler=run_group)

    return parser


def main(argv=None, engine=None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    if engine is None:
        engine = OnnxEngine(model_path=args.model_path)

    try:
        with ImageSimilarityService(engine) as service:
            return args.handler(service, args)
    except (FileNotFoundError, SimilarityError, ValueError) as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
