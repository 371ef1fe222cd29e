#!/usr/bin/env python3
"""
Model Setup Script - Pre-download rembg Models

This script:
1. Downloads the three rembg models used by the removal ladder
2. Creates a CPU session for each (and a GPU one when available)
3. Validates each session on a small synthetic image
4. Reports loading times

Models (configurable through settings):
- REMBG_MODEL_FULL       (default isnet-general-use)
- REMBG_MODEL_FP16       (default silueta)
- REMBG_MODEL_QUANTIZED  (default u2netp)

Run this during Docker build to avoid download at runtime:
    python scripts/setup_models.py

Environment variables:
    U2NET_HOME: Directory rembg caches models in (default: ~/.u2net)
"""

import os
import sys
import time
import logging
import argparse
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from PIL import Image  # noqa: E402

from banner_studio.engines.background_removal import (  # noqa: E402
    ComputeDevice,
    ModelPrecision,
    RemovalConfig,
    RembgInference,
)
from banner_studio.engines.background_removal.schemas import RemovalFailure  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def setup_models(cache_dir: str, validate: bool = True, include_gpu: bool = True) -> bool:
    """Download, load and optionally validate every model the ladder uses."""
    cache_path = Path(cache_dir)
    cache_path.mkdir(parents=True, exist_ok=True)
    os.environ["U2NET_HOME"] = str(cache_path)

    inference = RembgInference()
    has_gpu = include_gpu and inference.has_gpu()

    logger.info("=" * 60)
    logger.info("rembg Model Setup")
    logger.info("=" * 60)
    logger.info(f"Cache directory: {cache_path.absolute()}")
    logger.info(f"Providers: {inference.available_providers()}")
    logger.info("=" * 60)

    configs = [RemovalConfig(precision, ComputeDevice.CPU) for precision in ModelPrecision]
    if has_gpu:
        configs += [RemovalConfig(ModelPrecision.FULL, ComputeDevice.GPU),
                    RemovalConfig(ModelPrecision.FP16, ComputeDevice.GPU)]

    total_start = time.time()
    probe = Image.new("RGB", (64, 64), (255, 255, 255))

    for config in configs:
        name = f"{inference.model_name_for(config)} ({config.compute_device.value})"
        start = time.time()
        try:
            inference.preload([config])
            if validate:
                output = inference.remove(probe, config)
                assert output.mode == "RGBA"
        except RemovalFailure as failure:
            logger.error(f"Failed: {name}: {failure.kind.value}: {failure.cause}")
            return False
        logger.info(f"Ready: {name} in {time.time() - start:.1f}s")

    total_size = sum(f.stat().st_size for f in cache_path.rglob("*") if f.is_file())

    logger.info("=" * 60)
    logger.info("Model setup complete")
    logger.info(f"Total time: {time.time() - total_start:.1f}s")
    logger.info(f"Cache size: {total_size / (1024 * 1024):.1f}MB")
    logger.info(f"GPU sessions: {has_gpu}")
    logger.info("=" * 60)
    return True


def main():
    parser = argparse.ArgumentParser(
        description="Download and set up rembg models for background removal"
    )
    parser.add_argument(
        "--cache-dir",
        default=os.environ.get("U2NET_HOME", str(Path.home() / ".u2net")),
        help="Directory to cache models"
    )
    parser.add_argument(
        "--no-validate",
        action="store_true",
        help="Skip model validation"
    )
    parser.add_argument(
        "--cpu-only",
        action="store_true",
        help="Do not create GPU sessions"
    )

    args = parser.parse_args()

    success = setup_models(
        cache_dir=args.cache_dir,
        validate=not args.no_validate,
        include_gpu=not args.cpu_only,
    )

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
