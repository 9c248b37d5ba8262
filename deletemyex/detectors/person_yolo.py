"""Ultralytics YOLO detection adapter."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

import numpy as np

from deletemyex.runtime import rgb_to_bgr, torch_device
from deletemyex.types import RawDetection, Region

LOGGER = logging.getLogger("deletemyex.detectors.person")


class YOLOPersonDetector:
    """Labelled boxes from a YOLO model.

    Labels are the model's class names ("person" for COCO weights, "face" for
    face-trained weights). Deciding which labels count as a face is left to
    the face record builder.
    """

    def __init__(
        self,
        weights: str = "yolov8n.pt",
        device: Optional[str] = None,
        conf_thres: float = 0.25,
        iou_thres: float = 0.5,
        classes: Optional[Sequence[int]] = None,
    ) -> None:
        try:
            from ultralytics import YOLO
        except ImportError as exc:  # pragma: no cover - import guard
            raise RuntimeError("YOLOPersonDetector needs ultralytics: `pip install ultralytics`") from exc

        self.model = YOLO(weights)
        self.conf_thres = conf_thres
        self.iou_thres = iou_thres
        self.classes = list(classes) if classes is not None else None
        self.device = torch_device(device)
        if self.device is not None:
            try:
                self.model.to(self.device)
            except Exception as exc:  # pragma: no cover - device probing
                LOGGER.warning("YOLO cannot use device=%s (%s); leaving device selection to ultralytics", self.device, exc)
                self.device = None
        LOGGER.info("YOLO ready weights=%s device=%s conf=%.2f", weights, self.device or "auto", conf_thres)

    def detect(self, image: np.ndarray) -> List[RawDetection]:
        if self.model is None:
            raise RuntimeError("YOLOPersonDetector has been closed")
        results = self.model.predict(
            source=rgb_to_bgr(image),
            conf=self.conf_thres,
            iou=self.iou_thres,
            classes=self.classes,
            verbose=False,
        )
        detections: List[RawDetection] = []
        for result in results:
            boxes = result.boxes
            if boxes is None or len(boxes) == 0:
                continue
            names = result.names or {}
            xyxy = boxes.xyxy.cpu().numpy()
            scores = boxes.conf.cpu().numpy()
            class_ids = boxes.cls.cpu().numpy().astype(int)
            for (x1, y1, x2, y2), score, class_id in zip(xyxy, scores, class_ids):
                detections.append(
                    RawDetection(
                        region=Region.from_xyxy(x1, y1, x2, y2),
                        confidence=float(score),
                        label=str(names.get(int(class_id), class_id)),
                    )
                )
        return detections

    def close(self) -> None:
        self.model = None
