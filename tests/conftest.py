from typing import Optional, Sequence

import numpy as np
import pytest

from deletemyex.types import Face, Quality, Region


def unit(*values: float) -> np.ndarray:
    vec = np.asarray(values, dtype=np.float32)
    return vec / np.linalg.norm(vec)


def vector_with_similarity(similarity: float) -> np.ndarray:
    """3-d unit vector whose cosine to [1, 0, 0] equals `similarity`."""
    return np.asarray([similarity, np.sqrt(1.0 - similarity**2), 0.0], dtype=np.float64)


def build_face(
    face_id: str = "img-0",
    embedding: Optional[Sequence[float]] = None,
    width: float = 100.0,
    height: float = 100.0,
    confidence: float = 0.6,
    quality: Optional[Quality] = None,
    source_ref: str = "img",
) -> Face:
    region = Region(0.0, 0.0, width, height)
    return Face(
        id=face_id,
        region=region,
        confidence=confidence,
        quality=quality or Quality.from_area(region.area),
        source_ref=source_ref,
        embedding=None if embedding is None else np.asarray(embedding, dtype=np.float32),
    )


@pytest.fixture
def make_face():
    return build_face
