"""Turn raw detections into normalized face records."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional, Sequence, Tuple

import numpy as np

from deletemyex.types import Face, Quality, RawDetection, Region

LOGGER = logging.getLogger("deletemyex.harvest.builder")

WHOLE_IMAGE_CONFIDENCE = 0.5


@dataclass
class BuilderConfig:
    accepted_labels: FrozenSet[str] = field(default_factory=lambda: frozenset({"person", "face"}))
    min_confidence: float = 0.5
    padding_px: float = 0.0
    whole_image_fallback: bool = False


@dataclass(frozen=True)
class FaceCandidate:
    """Face geometry decided before the embedding attempt."""

    index: int
    region: Region
    confidence: float
    quality: Quality


class FaceRecordBuilder:
    """Filters, clips and grades detections, then stamps out `Face` records."""

    def __init__(self, config: Optional[BuilderConfig] = None) -> None:
        self.config = config or BuilderConfig()
        self._labels = frozenset(label.lower() for label in self.config.accepted_labels)

    def accepts(self, detection: RawDetection) -> bool:
        if str(detection.label).lower() not in self._labels:
            return False
        return detection.confidence >= self.config.min_confidence

    def prepare(self, detection: RawDetection, index: int, image_size: Tuple[int, int]) -> Optional[FaceCandidate]:
        """Clip a detection to the image; None when no area is left."""
        width, height = image_size
        region = detection.region.pad(self.config.padding_px).clip(width, height)
        if region is None:
            LOGGER.debug("Discarding detection %d: empty after clipping to %dx%d", index, width, height)
            return None
        confidence = float(min(1.0, max(0.0, detection.confidence)))
        return FaceCandidate(index=index, region=region, confidence=confidence, quality=Quality.from_area(region.area))

    def candidates(self, detections: Sequence[RawDetection], image_size: Tuple[int, int]) -> List[FaceCandidate]:
        prepared: List[FaceCandidate] = []
        for index, detection in enumerate(detections):
            if not self.accepts(detection):
                continue
            candidate = self.prepare(detection, index, image_size)
            if candidate is not None:
                prepared.append(candidate)
        if not prepared and self.config.whole_image_fallback:
            width, height = image_size
            if width > 0 and height > 0:
                whole = Region(0.0, 0.0, float(width), float(height))
                prepared.append(
                    FaceCandidate(
                        index=0,
                        region=whole,
                        confidence=WHOLE_IMAGE_CONFIDENCE,
                        quality=Quality.from_area(whole.area),
                    )
                )
        return prepared

    @staticmethod
    def build(
        candidate: FaceCandidate,
        source_ref: str,
        embedding: Optional[np.ndarray] = None,
        id_prefix: Optional[str] = None,
    ) -> Face:
        """`id_prefix` replaces `source_ref` in the id when one ref occurs twice in a run."""
        if embedding is not None:
            embedding = np.asarray(embedding, dtype=np.float32).reshape(-1)
        return Face(
            id=f"{id_prefix or source_ref}-{candidate.index}",
            region=candidate.region,
            confidence=candidate.confidence,
            quality=candidate.quality,
            source_ref=source_ref,
            embedding=embedding,
        )

    def build_faces(
        self,
        detections: Sequence[RawDetection],
        image_size: Tuple[int, int],
        source_ref: str,
    ) -> List[Face]:
        """Build faces without embeddings."""
        return [self.build(candidate, source_ref) for candidate in self.candidates(detections, image_size)]
