#!/usr/bin/env python3
"""CLI for flagging every photo that contains the chosen face."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pandas as pd

from deletemyex.config import PipelineConfig, load_config
from deletemyex.harvest.batch import BatchRunner
from deletemyex.io_utils import dump_json, setup_logging
from deletemyex.recognition.matcher import STRICT_BASE_THRESHOLD
from deletemyex.run_state import PHOTOS_FILE, load_run
from deletemyex.session import RemovalSession
from deletemyex.types import BatchProgress


LOGGER = logging.getLogger("scripts.flag_photos")

REPORT_COLUMNS = [
    "photo_id",
    "image_ref",
    "native_asset_id",
    "flagged",
    "folder",
    "best_face_id",
    "similarity",
    "threshold",
]


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Flag photos containing the selected face")
    parser.add_argument("run_dir", type=Path, help="Run directory written by find_faces")
    parser.add_argument("--face-id", required=True, help="Candidate face id from candidates.json")
    parser.add_argument("--config", type=Path, default=None, help="Pipeline YAML (default configs/pipeline.yaml)")
    parser.add_argument("--strict", action="store_true", help=f"Use the {STRICT_BASE_THRESHOLD} base threshold")
    parser.add_argument("--threshold", type=float, default=None, help="Explicit base similarity threshold")
    parser.add_argument(
        "--reuse-detections",
        action="store_true",
        help="Match against saved detections instead of re-running detection",
    )
    parser.add_argument("--detector", choices=["retinaface", "yolo"], default=None, help="Override detector")
    parser.add_argument("--no-embed", action="store_true", help="Skip ArcFace embeddings")
    parser.add_argument("--output", type=Path, default=None, help="Report CSV (default <run_dir>/flagged.csv)")
    return parser.parse_args(argv)


def resolve_base_threshold(args: argparse.Namespace, config: PipelineConfig) -> float:
    """Explicit --threshold wins, then --strict, then the configured value."""
    if args.threshold is not None:
        return float(args.threshold)
    if args.strict:
        return STRICT_BASE_THRESHOLD
    return float(config.match.base_threshold)


def build_report(session: RemovalSession) -> pd.DataFrame:
    rows: List[Dict] = []
    for photo in session.photos:
        evidence = session.evidence.get(photo.id)
        rows.append(
            {
                "photo_id": photo.id,
                "image_ref": str(photo.image_ref),
                "native_asset_id": photo.native_asset_id or "",
                "flagged": photo.flagged,
                "folder": "archived" if photo.flagged else "clean",
                "best_face_id": evidence.face_id if evidence else "",
                "similarity": evidence.similarity if evidence else None,
                "threshold": evidence.threshold if evidence else None,
            }
        )
    return pd.DataFrame(rows, columns=REPORT_COLUMNS)


def log_progress(progress: BatchProgress) -> None:
    LOGGER.debug("%s %d/%d", progress.stage.value, progress.current, progress.total)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging()
    config = load_config(args.config)
    config.match.base_threshold = resolve_base_threshold(args, config)
    if args.reuse_detections:
        config.redetect_on_match = False
    if args.detector:
        config.batch.detector = args.detector
    if args.no_embed:
        config.batch.embed = False
    config.batch.progress_desc = "matching"

    state = load_run(args.run_dir)
    with BatchRunner(config=config.batch, builder_config=config.builder) as runner:
        session = RemovalSession(runner, config)
        session.resume(state.photos, state.candidates, state.detections)
        try:
            session.select_reference(args.face_id)
        except ValueError as exc:
            LOGGER.error("%s", exc)
            return 2
        flags = session.run_decision_pass(on_progress=log_progress)
    if flags is None:
        LOGGER.error("Decision pass did not complete")
        return 1

    report = build_report(session)
    output_path = args.output or args.run_dir / "flagged.csv"
    report.to_csv(output_path, index=False)
    dump_json(args.run_dir / PHOTOS_FILE, [photo.to_dict() for photo in session.photos])
    LOGGER.info(
        "Flagged %d of %d photos (base threshold %.2f); report written to %s",
        len(session.flagged_photos()),
        len(session.photos),
        config.match.base_threshold,
        output_path,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
