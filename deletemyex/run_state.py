"""Persist a run (photos, candidates, detections) between CLI steps."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from deletemyex.io_utils import dump_json, ensure_dir, load_json
from deletemyex.recognition.dedup import DedupConfig, presentation_score
from deletemyex.types import BatchResult, Face, Photo

LOGGER = logging.getLogger("deletemyex.run_state")

PHOTOS_FILE = "photos.json"
CANDIDATES_FILE = "candidates.json"
DETECTIONS_FILE = "detections.json"


@dataclass
class RunState:
    photos: List[Photo]
    candidates: List[Face]
    detections: List[BatchResult]


def save_run(
    run_dir: Path,
    photos: List[Photo],
    candidates: List[Face],
    detections: List[BatchResult],
    dedup_config: Optional[DedupConfig] = None,
) -> Path:
    ensure_dir(run_dir)
    dump_json(run_dir / PHOTOS_FILE, [photo.to_dict() for photo in photos])
    dump_json(
        run_dir / CANDIDATES_FILE,
        [
            dict(face.to_dict(), rank=rank, presentation_score=presentation_score(face, dedup_config))
            for rank, face in enumerate(candidates)
        ],
    )
    dump_json(run_dir / DETECTIONS_FILE, [result.to_dict() for result in detections])
    LOGGER.info("Saved run with %d photos and %d candidates to %s", len(photos), len(candidates), run_dir)
    return run_dir


def load_run(run_dir: Path) -> RunState:
    photos_path = run_dir / PHOTOS_FILE
    candidates_path = run_dir / CANDIDATES_FILE
    if not photos_path.exists() or not candidates_path.exists():
        raise FileNotFoundError(f"{run_dir} does not contain {PHOTOS_FILE} and {CANDIDATES_FILE}")
    photos = [Photo.from_dict(row) for row in load_json(photos_path)]
    candidates = [Face.from_dict(row) for row in load_json(candidates_path)]
    detections_path = run_dir / DETECTIONS_FILE
    detections: List[BatchResult] = []
    if detections_path.exists():
        detections = [BatchResult.from_dict(row) for row in load_json(detections_path)]
    return RunState(photos=photos, candidates=candidates, detections=detections)
