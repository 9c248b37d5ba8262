"""Decide whether a photo contains the reference identity."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from deletemyex.recognition.similarity import (
    MATCH_TOLERANCE_PX,
    both_embedded,
    cosine_similarity,
    geometric_similarity,
)
from deletemyex.types import Face, Quality

LOGGER = logging.getLogger("deletemyex.recognition.matcher")

DEFAULT_BASE_THRESHOLD = 0.6
STRICT_BASE_THRESHOLD = 0.55


@dataclass
class MatchPolicy:
    """Adaptive-threshold constants.

    Higher-quality and higher-confidence candidate faces lower the bar.
    """

    base_threshold: float = DEFAULT_BASE_THRESHOLD
    high_quality_boost: float = 0.05
    medium_quality_boost: float = 0.02
    confidence_boost: float = 0.03
    confidence_boost_above: float = 0.7
    tolerance_px: float = MATCH_TOLERANCE_PX

    @classmethod
    def strict(cls) -> "MatchPolicy":
        return cls(base_threshold=STRICT_BASE_THRESHOLD)

    def threshold_for(self, candidate: Face) -> float:
        threshold = self.base_threshold
        if candidate.quality is Quality.HIGH:
            threshold -= self.high_quality_boost
        elif candidate.quality is Quality.MEDIUM:
            threshold -= self.medium_quality_boost
        if candidate.confidence > self.confidence_boost_above:
            threshold -= self.confidence_boost
        return threshold


@dataclass(frozen=True)
class MatchEvidence:
    face_id: str
    similarity: float
    threshold: Optional[float]
    matched: bool

    @property
    def used_embeddings(self) -> bool:
        return self.threshold is not None


class ReferenceMatcher:
    """Matches candidate faces against one chosen reference face."""

    def __init__(self, reference: Face, policy: Optional[MatchPolicy] = None) -> None:
        self.reference = reference
        self.policy = policy or MatchPolicy()

    def evaluate(self, candidate: Face) -> MatchEvidence:
        if both_embedded(self.reference, candidate):
            similarity = cosine_similarity(self.reference.embedding, candidate.embedding)
            threshold = self.policy.threshold_for(candidate)
            return MatchEvidence(candidate.id, similarity, threshold, similarity > threshold)
        similarity = geometric_similarity(self.reference, candidate, self.policy.tolerance_px)
        return MatchEvidence(candidate.id, similarity, None, similarity >= 1.0)

    def matches(self, candidate: Face) -> bool:
        return self.evaluate(candidate).matched

    def photo_contains(self, faces: Sequence[Face]) -> bool:
        """True if any face in the photo matches the reference."""
        return any(self.matches(face) for face in faces)

    def best_evidence(self, faces: Sequence[Face]) -> Optional[MatchEvidence]:
        """Highest-similarity evidence for a photo (matched faces first)."""
        evidences = [self.evaluate(face) for face in faces]
        if not evidences:
            return None
        evidences.sort(key=lambda ev: (ev.matched, ev.similarity), reverse=True)
        return evidences[0]


def photo_contains(reference: Face, faces: Sequence[Face], policy: Optional[MatchPolicy] = None) -> bool:
    return ReferenceMatcher(reference, policy).photo_contains(faces)


def decide_photos(
    reference: Face,
    per_photo_faces: Sequence[Sequence[Face]],
    policy: Optional[MatchPolicy] = None,
) -> List[bool]:
    """Index-aligned flags for each photo's faces."""
    matcher = ReferenceMatcher(reference, policy)
    flags = [matcher.photo_contains(faces) for faces in per_photo_faces]
    LOGGER.debug("Decision pass flagged %d/%d photos", sum(flags), len(flags))
    return flags


def decide_with_evidence(
    reference: Face,
    per_photo_faces: Sequence[Sequence[Face]],
    policy: Optional[MatchPolicy] = None,
) -> List[Tuple[bool, Optional[MatchEvidence]]]:
    matcher = ReferenceMatcher(reference, policy)
    return [(matcher.photo_contains(faces), matcher.best_evidence(faces)) for faces in per_photo_faces]
