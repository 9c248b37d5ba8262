"""Collapse detected faces into representative candidates for selection.

The scan is greedy and first-seen: a face joins the output unless a face
already kept is similar to it. Groupings are not transitive (A~B and B~C does
not merge A with C) and later representatives are never folded back into
earlier ones.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from deletemyex.recognition.similarity import DEDUP_TOLERANCE_PX, face_similarity
from deletemyex.types import Face, Quality

LOGGER = logging.getLogger("deletemyex.recognition.dedup")


@dataclass
class DedupConfig:
    similarity_th: float = 0.8
    tolerance_px: float = DEDUP_TOLERANCE_PX
    quality_weights: Dict[Quality, float] = field(
        default_factory=lambda: {Quality.LOW: 1.0, Quality.MEDIUM: 2.0, Quality.HIGH: 3.0}
    )


def is_duplicate(candidate: Face, existing: Face, config: DedupConfig) -> bool:
    return face_similarity(candidate, existing, config.tolerance_px) > config.similarity_th


def deduplicate_faces(faces: Sequence[Face], config: Optional[DedupConfig] = None) -> List[Face]:
    """Return one representative per perceived person, in first-seen order."""
    config = config or DedupConfig()
    representatives: List[Face] = []
    for face in faces:
        if any(is_duplicate(face, rep, config) for rep in representatives):
            continue
        representatives.append(face)
    LOGGER.debug("Deduplicated %d faces into %d representatives", len(faces), len(representatives))
    return representatives


def presentation_score(face: Face, config: Optional[DedupConfig] = None) -> float:
    config = config or DedupConfig()
    return config.quality_weights.get(face.quality, 1.0) * 100.0 + face.confidence


def rank_candidates(representatives: Sequence[Face], config: Optional[DedupConfig] = None) -> List[Face]:
    """Best-quality candidates first; ties keep first-seen order."""
    config = config or DedupConfig()
    return sorted(representatives, key=lambda face: presentation_score(face, config), reverse=True)


def select_candidates(faces: Sequence[Face], config: Optional[DedupConfig] = None) -> List[Face]:
    """Deduplicate then rank for presentation."""
    config = config or DedupConfig()
    return rank_candidates(deduplicate_faces(faces, config), config)
