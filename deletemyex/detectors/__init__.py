"""Detection adapters (external model runtimes wrapped behind `detect`)."""

from deletemyex.detectors.base import Detector, crop_face

__all__ = ["Detector", "crop_face"]
