#!/usr/bin/env python3
"""CLI for detecting faces across a photo set and listing distinct candidates."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional, Sequence

from deletemyex.config import PipelineConfig, load_config
from deletemyex.harvest.batch import BatchRunner
from deletemyex.io_utils import ensure_dir, list_images, setup_logging
from deletemyex.library.photo_library import LocalPhotoLibrary
from deletemyex.run_state import save_run
from deletemyex.session import RemovalSession
from deletemyex.types import BatchProgress
from deletemyex.viz.thumbnails import save_face_thumbnail


LOGGER = logging.getLogger("scripts.find_faces")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Detect faces and write distinct face candidates")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--images-dir", type=Path, default=None, help="Directory of photos to scan")
    source.add_argument(
        "--library-root",
        type=Path,
        default=None,
        help="Local photo library root; photos keep their library ids for hide/delete",
    )
    parser.add_argument("--output-dir", type=Path, default=Path("data/run"), help="Run directory to write")
    parser.add_argument("--config", type=Path, default=None, help="Pipeline YAML (default configs/pipeline.yaml)")
    parser.add_argument("--detector", choices=["retinaface", "yolo"], default=None, help="Override detector")
    parser.add_argument("--no-embed", action="store_true", help="Skip ArcFace embeddings (geometric matching only)")
    parser.add_argument(
        "--whole-image-fallback",
        action="store_true",
        help="Treat the whole image as one face when nothing is detected (already-cropped inputs)",
    )
    parser.add_argument("--include-hidden", action="store_true", help="Include hidden library photos")
    parser.add_argument(
        "--providers",
        type=str,
        nargs="*",
        default=None,
        help="Execution providers for ONNXRuntime (e.g. CUDAExecutionProvider)",
    )
    parser.add_argument("--no-thumbnails", action="store_true", help="Do not write candidate thumbnails")
    return parser.parse_args(argv)


def apply_overrides(config: PipelineConfig, args: argparse.Namespace) -> PipelineConfig:
    """CLI flags win over YAML values."""
    if args.detector:
        config.batch.detector = args.detector
    if args.no_embed:
        config.batch.embed = False
    if args.whole_image_fallback:
        config.builder.whole_image_fallback = True
    if args.providers:
        config.batch.providers = tuple(args.providers)
    return config


def log_progress(progress: BatchProgress) -> None:
    LOGGER.debug("%s %d/%d", progress.stage.value, progress.current, progress.total)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging()
    config = apply_overrides(load_config(args.config), args)
    config.batch.progress_desc = "detecting"

    with BatchRunner(config=config.batch, builder_config=config.builder) as runner:
        session = RemovalSession(runner, config)
        if args.library_root is not None:
            session.ingest_library(LocalPhotoLibrary(args.library_root), include_hidden=args.include_hidden)
        else:
            images: List[Path] = list(list_images(args.images_dir))
            session.ingest_images(images)
        if not session.photos:
            LOGGER.error("No photos found to scan")
            return 1
        candidates = session.detect_candidates(on_progress=log_progress)

    output_dir = ensure_dir(args.output_dir)
    save_run(output_dir, session.photos, candidates, session.detections, config.dedup)
    if not args.no_thumbnails:
        thumbs_dir = ensure_dir(output_dir / "thumbnails")
        for face in candidates:
            try:
                save_face_thumbnail(face, thumbs_dir)
            except OSError as exc:
                LOGGER.warning("Thumbnail failed for %s: %s", face.id, exc)

    for rank, face in enumerate(candidates, start=1):
        LOGGER.info(
            "#%d %s quality=%s conf=%.2f embedding=%s",
            rank,
            face.id,
            face.quality.value,
            face.confidence,
            face.has_embedding,
        )
    LOGGER.info("Found %d unique faces; run saved to %s", len(candidates), output_dir)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
