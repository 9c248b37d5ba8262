"""RetinaFace detection adapter backed by InsightFace."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from deletemyex.runtime import limit_threads, resolve_providers, rgb_to_bgr
from deletemyex.types import RawDetection, Region

LOGGER = logging.getLogger("deletemyex.detectors.face")

FACE_LABEL = "face"


class RetinaFaceDetector:
    """Face boxes from the detection module of an InsightFace model pack.

    Only the detector is loaded; recognition runs separately through
    `ArcFaceEmbedder` on the crops the batch runner produces.
    """

    def __init__(
        self,
        providers: Optional[Sequence[str]] = None,
        det_size: Tuple[int, int] = (640, 640),
        det_thresh: float = 0.45,
        model_pack: str = "buffalo_l",
    ) -> None:
        limit_threads()
        try:
            from insightface.app import FaceAnalysis
        except ImportError as exc:  # pragma: no cover - import guard
            raise RuntimeError("RetinaFaceDetector needs insightface: `pip install insightface`") from exc

        self.det_size = tuple(det_size)
        self.det_thresh = float(det_thresh)
        self.providers = resolve_providers(providers)
        self._analysis = FaceAnalysis(name=model_pack, allowed_modules=["detection"], providers=list(self.providers))
        # insightface applies its own det_thresh; ours is re-checked in detect()
        self._analysis.prepare(ctx_id=0, det_size=self.det_size, det_thresh=self.det_thresh)
        LOGGER.info(
            "RetinaFace ready pack=%s det_size=%s det_thresh=%.2f providers=%s",
            model_pack,
            self.det_size,
            self.det_thresh,
            ",".join(self.providers),
        )

    def detect(self, image: np.ndarray) -> List[RawDetection]:
        """Face detections for one RGB image, highest score first."""
        if self._analysis is None:
            raise RuntimeError("RetinaFaceDetector has been closed")
        detections: List[RawDetection] = []
        for face in self._analysis.get(rgb_to_bgr(image)):
            score = float(face.det_score)
            if score < self.det_thresh:
                continue
            x1, y1, x2, y2 = (float(v) for v in face.bbox[:4])
            detections.append(RawDetection(region=Region.from_xyxy(x1, y1, x2, y2), confidence=score, label=FACE_LABEL))
        detections.sort(key=lambda det: det.confidence, reverse=True)
        return detections

    def close(self) -> None:
        self._analysis = None
