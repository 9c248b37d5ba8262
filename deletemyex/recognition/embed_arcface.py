"""ArcFace embedding adapter."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional, Protocol, Sequence

import numpy as np

from deletemyex.runtime import limit_threads, resolve_providers, rgb_to_bgr
from deletemyex.types import l2_normalize

LOGGER = logging.getLogger("deletemyex.recognition.embed")

DEFAULT_MODEL = "arcface_r100_v1"


class Embedder(Protocol):
    """Maps an RGB face crop to a fixed-length vector."""

    def embed(self, face_image: np.ndarray) -> np.ndarray:
        ...


def _pack_recognizer(providers: Sequence[str]) -> Any:
    from insightface.app import FaceAnalysis

    analysis = FaceAnalysis(name="buffalo_l", allowed_modules=["recognition"], providers=list(providers))
    analysis.prepare(ctx_id=0)
    return analysis.models.get("recognition")


class ArcFaceEmbedder:
    """ArcFace recognition model loaded through the InsightFace model zoo.

    A model path or zoo name may be given; when the zoo cannot provide it the
    recognizer bundled with the buffalo_l pack is used instead.
    """

    def __init__(self, model_path: Optional[str] = None, providers: Optional[Sequence[str]] = None) -> None:
        limit_threads()
        try:
            from insightface.model_zoo import get_model
        except ImportError as exc:  # pragma: no cover - import guard
            raise RuntimeError("ArcFaceEmbedder needs insightface: `pip install insightface`") from exc

        self.providers = resolve_providers(providers)
        name = str(Path(model_path).expanduser()) if model_path else DEFAULT_MODEL
        model = get_model(name, download=True, providers=list(self.providers))
        if model is None:
            LOGGER.info("ArcFace model %s unavailable; using the buffalo_l recognizer", name)
            model = _pack_recognizer(self.providers)
        if model is None:
            raise RuntimeError("No ArcFace recognition model could be loaded")
        if hasattr(model, "prepare"):
            model.prepare(ctx_id=0)
        self.model = model
        LOGGER.info("ArcFace ready model=%s providers=%s", name, ",".join(self.providers))

    def embed(self, face_image: np.ndarray) -> np.ndarray:
        """Unit-length embedding for a 112x112 RGB face crop."""
        if self.model is None:
            raise RuntimeError("ArcFaceEmbedder has been closed")
        feat = self.model.get_feat(rgb_to_bgr(face_image))
        return l2_normalize(np.asarray(feat, dtype=np.float32).reshape(-1))

    def close(self) -> None:
        self.model = None
