"""Similarity scores between face records."""

from __future__ import annotations

from typing import Optional

import numpy as np

from deletemyex.types import Face

DEDUP_TOLERANCE_PX = 50.0
MATCH_TOLERANCE_PX = 100.0


def cosine_similarity(a: Optional[np.ndarray], b: Optional[np.ndarray]) -> float:
    """Cosine similarity in [-1, 1].

    Missing vectors, mismatched lengths and zero magnitudes all score 0.
    """
    if a is None or b is None:
        return 0.0
    a = np.asarray(a, dtype=np.float64).reshape(-1)
    b = np.asarray(b, dtype=np.float64).reshape(-1)
    if a.shape != b.shape or a.size == 0:
        return 0.0
    norm = float(np.linalg.norm(a)) * float(np.linalg.norm(b))
    if norm == 0.0 or not np.isfinite(norm):
        return 0.0
    score = float(np.dot(a, b)) / norm
    return float(np.clip(score, -1.0, 1.0))


def geometric_similarity(a: Face, b: Face, tolerance_px: float) -> float:
    """Binary size heuristic used when an embedding is missing."""
    same_width = abs(a.region.width - b.region.width) < tolerance_px
    same_height = abs(a.region.height - b.region.height) < tolerance_px
    return 1.0 if same_width and same_height else 0.0


def both_embedded(a: Face, b: Face) -> bool:
    return a.has_embedding and b.has_embedding


def face_similarity(a: Face, b: Face, tolerance_px: float = MATCH_TOLERANCE_PX) -> float:
    """Symmetric similarity between two faces.

    Uses the embeddings when both faces carry one, else the geometric
    fallback with the caller's pixel tolerance.
    """
    if both_embedded(a, b):
        return cosine_similarity(a.embedding, b.embedding)
    return geometric_similarity(a, b, tolerance_px)
