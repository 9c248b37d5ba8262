"""Common dataclasses and type aliases used across the deletemyex package."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

# Region order: x, y, width, height (pixel coordinates)
RegionTuple = Tuple[float, float, float, float]

LOW_QUALITY_MAX_AREA = 1600.0
MEDIUM_QUALITY_MAX_AREA = 6400.0


class Quality(str, enum.Enum):
    """Coarse face quality derived from region area."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_area(cls, area: float) -> "Quality":
        if area < LOW_QUALITY_MAX_AREA:
            return cls.LOW
        if area < MEDIUM_QUALITY_MAX_AREA:
            return cls.MEDIUM
        return cls.HIGH


class ProgressStage(str, enum.Enum):
    DETECTING = "detecting"
    MATCHING = "matching"


@dataclass(frozen=True)
class Region:
    """Axis-aligned face region in source-image pixel space."""

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_xyxy(cls, x1: float, y1: float, x2: float, y2: float) -> "Region":
        return cls(float(x1), float(y1), float(x2) - float(x1), float(y2) - float(y1))

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)

    def as_xyxy(self) -> RegionTuple:
        return self.x, self.y, self.x + self.width, self.y + self.height

    def pad(self, padding: float) -> "Region":
        if padding <= 0:
            return self
        return Region(
            self.x - padding,
            self.y - padding,
            self.width + 2 * padding,
            self.height + 2 * padding,
        )

    def clip(self, image_width: float, image_height: float) -> Optional["Region"]:
        """Clip to [0, W] x [0, H]; returns None when nothing is left."""
        x1, y1, x2, y2 = self.as_xyxy()
        x1 = min(max(0.0, x1), image_width)
        y1 = min(max(0.0, y1), image_height)
        x2 = min(max(0.0, x2), image_width)
        y2 = min(max(0.0, y2), image_height)
        if x2 <= x1 or y2 <= y1:
            return None
        return Region.from_xyxy(x1, y1, x2, y2)


@dataclass
class RawDetection:
    """Detection returned by a detection adapter."""

    region: Region
    confidence: float
    label: str = "face"


@dataclass(frozen=True)
class Face:
    """One detected face instance. Never mutated after creation."""

    id: str
    region: Region
    confidence: float
    quality: Quality
    source_ref: str
    embedding: Optional[np.ndarray] = field(default=None, compare=False, repr=False)

    @property
    def has_embedding(self) -> bool:
        return self.embedding is not None and self.embedding.size > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source_ref": self.source_ref,
            "region": {
                "x": self.region.x,
                "y": self.region.y,
                "width": self.region.width,
                "height": self.region.height,
            },
            "confidence": self.confidence,
            "quality": self.quality.value,
            "embedding": None if self.embedding is None else self.embedding.astype(float).tolist(),
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Face":
        region = payload["region"]
        raw_embedding = payload.get("embedding")
        embedding = None
        if raw_embedding is not None:
            embedding = np.asarray(raw_embedding, dtype=np.float32).reshape(-1)
        return cls(
            id=str(payload["id"]),
            region=Region(
                float(region["x"]),
                float(region["y"]),
                float(region["width"]),
                float(region["height"]),
            ),
            confidence=float(payload["confidence"]),
            quality=Quality(payload["quality"]),
            source_ref=str(payload["source_ref"]),
            embedding=embedding,
        )


@dataclass
class Photo:
    """One image the user is operating on."""

    id: str
    image_ref: Any
    native_asset_id: Optional[str] = None
    flagged: bool = False

    @property
    def eligible_for_library_action(self) -> bool:
        return bool(self.native_asset_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "image_ref": str(self.image_ref),
            "native_asset_id": self.native_asset_id,
            "flagged": self.flagged,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Photo":
        return cls(
            id=str(payload["id"]),
            image_ref=payload["image_ref"],
            native_asset_id=payload.get("native_asset_id") or None,
            flagged=bool(payload.get("flagged", False)),
        )


@dataclass(frozen=True)
class BatchProgress:
    current: int
    total: int
    stage: ProgressStage

    @property
    def fraction(self) -> float:
        if self.total <= 0:
            return 1.0
        return self.current / self.total


@dataclass
class BatchResult:
    """Per-image output of the batch orchestrator."""

    image_ref: Any
    faces: List[Face] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "image_ref": str(self.image_ref),
            "faces": [face.to_dict() for face in self.faces],
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "BatchResult":
        return cls(
            image_ref=payload["image_ref"],
            faces=[Face.from_dict(face) for face in payload.get("faces", [])],
            error=payload.get("error"),
        )


def l2_normalize(vec: np.ndarray, eps: float = 1e-6) -> np.ndarray:
    """L2-normalize the input vector."""
    norm = np.linalg.norm(vec)
    if norm < eps:
        return vec
    return vec / norm


def image_size(image: Any) -> Tuple[int, int]:
    """Return (width, height) for an HxW[xC] array."""
    shape = getattr(image, "shape", None)
    if shape is None or len(shape) < 2:
        raise ValueError("image must be an array shaped (height, width[, channels])")
    return int(shape[1]), int(shape[0])


def source_ref_for(image_ref: Any) -> str:
    """Stable string identity for an image reference."""
    return str(image_ref)


def flatten_faces(results: Sequence[BatchResult]) -> List[Face]:
    faces: List[Face] = []
    for result in results:
        faces.extend(result.faces)
    return faces
