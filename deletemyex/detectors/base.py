"""Detection adapter contract and crop helpers shared by the adapters."""

from __future__ import annotations

from typing import List, Protocol, Tuple

import cv2
import numpy as np

from deletemyex.types import RawDetection, Region

FACE_CROP_SIZE: Tuple[int, int] = (112, 112)


class Detector(Protocol):
    """Anything that turns an image into raw detections."""

    def detect(self, image: np.ndarray) -> List[RawDetection]:
        ...


def crop_face(image: np.ndarray, region: Region, target_size: Tuple[int, int] = FACE_CROP_SIZE) -> np.ndarray:
    """Crop a region out of an image and resize it for the embedding model."""
    crop = _crop_to_region(image, region)
    width, height = [max(1, int(v)) for v in target_size]
    src_h, src_w = crop.shape[:2]
    if src_h == height and src_w == width:
        return crop.copy()
    return cv2.resize(crop, (width, height), interpolation=cv2.INTER_LINEAR)


def _crop_to_region(image: np.ndarray, region: Region) -> np.ndarray:
    x1, y1, x2, y2 = [int(round(v)) for v in region.as_xyxy()]
    if x2 <= x1 or y2 <= y1:
        return image.copy()
    crop = image[max(0, y1) : max(0, y2), max(0, x1) : max(0, x2)]
    if crop.size == 0:
        return image.copy()
    return crop
