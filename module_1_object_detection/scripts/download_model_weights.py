#!/usr/bin/env python3
"""Fetch YOLOv8 detection weights for the object detection pipeline."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import requests

LOGGER = logging.getLogger("download_model_weights")

RELEASE_URL = "https://github.com/ultralytics/assets/releases/download/v8.2.0/yolov8{variant}.pt"
VARIANTS = ("n", "s", "m", "l", "x")
DEFAULT_DIR = Path("models")
CHUNK_SIZE = 1 << 20


def weights_url(variant: str) -> str:
    return RELEASE_URL.format(variant=variant)


def download_weights(url: str, target: Path, *, force: bool = False, timeout: float = 60.0) -> Path:
    """Stream ``url`` into ``target``; an existing file is kept unless ``force`` is set."""

    if target.exists() and not force:
        LOGGER.info("Weights already present at %s, skipping download", target)
        return target

    target.parent.mkdir(parents=True, exist_ok=True)
    partial = target.with_suffix(target.suffix + ".part")
    with requests.get(url, stream=True, timeout=timeout) as response:
        response.raise_for_status()
        written = 0
        with partial.open("wb") as handle:
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                handle.write(chunk)
                written += len(chunk)
    partial.replace(target)
    LOGGER.info("Downloaded %.1f MB of weights to %s", written / CHUNK_SIZE, target)
    return target


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Download YOLOv8 detection weights")
    parser.add_argument("--variant", choices=VARIANTS, default="n", help="YOLOv8 model size")
    parser.add_argument("--url", type=str, default=None, help="Weights URL override")
    parser.add_argument("--output", type=Path, default=None, help="Destination file")
    parser.add_argument("--force", action="store_true", help="Replace an existing file")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    args = parse_args(argv)
    url = args.url or weights_url(args.variant)
    target = args.output or DEFAULT_DIR / Path(url).name
    try:
        download_weights(url, target, force=args.force)
    except requests.RequestException as exc:
        LOGGER.error("Download failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
