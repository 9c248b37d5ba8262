"""Face thumbnail generation helpers."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Tuple

from PIL import Image, ImageOps

from deletemyex.io_utils import ensure_dir, path_from_ref
from deletemyex.types import Face

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]+")


def thumbnail_name(face: Face) -> str:
    """Filesystem-safe name for a face id."""
    return _UNSAFE.sub("_", face.id).strip("_") + ".jpg"


def save_face_thumbnail(face: Face, thumbnails_root: Path, size: Tuple[int, int] = (160, 160)) -> Path:
    """Crop the face region out of its source image and save a JPEG thumbnail."""
    ensure_dir(thumbnails_root)
    dest_path = thumbnails_root / thumbnail_name(face)
    x1, y1, x2, y2 = (int(round(v)) for v in face.region.as_xyxy())
    with Image.open(path_from_ref(face.source_ref)) as image:
        # regions are in the EXIF-rotated frame cv2.imread returns
        upright = ImageOps.exif_transpose(image)
        crop = upright.convert("RGB").crop((x1, y1, x2, y2))
        crop.thumbnail(size, Image.LANCZOS)
        crop.save(dest_path, optimize=True, quality=85)
    return dest_path
