"""ONNXRuntime / torch runtime selection shared by the model adapters."""

from __future__ import annotations

import logging
import os
import platform
from typing import Optional, Sequence, Tuple

import numpy as np

LOGGER = logging.getLogger("deletemyex.runtime")

_THREAD_ENV_VARS = ("OMP_NUM_THREADS", "MKL_NUM_THREADS", "ORT_INTRA_OP_NUM_THREADS")


def limit_threads(count: int = 2) -> None:
    """Cap native thread pools unless the caller already configured them."""
    for name in _THREAD_ENV_VARS:
        os.environ.setdefault(name, str(count))


def resolve_providers(providers: Optional[Sequence[str]] = None) -> Tuple[str, ...]:
    """Explicit providers win; otherwise CoreML on Apple silicon, else CPU."""
    if providers:
        return tuple(providers)
    if platform.system() == "Darwin" and platform.machine().lower() in {"arm64", "aarch64"}:
        return ("CoreMLExecutionProvider", "CPUExecutionProvider")
    return ("CPUExecutionProvider",)


def torch_device(preferred: Optional[str] = None) -> Optional[str]:
    """Best available torch device name, or None to let the library decide."""
    if preferred:
        return preferred
    try:
        import torch  # type: ignore
    except ImportError:
        return None
    if hasattr(torch.backends, "mps") and torch.backends.mps.is_available():
        return "mps"
    if torch.cuda.is_available():
        return "cuda"
    return None


def rgb_to_bgr(image: np.ndarray) -> np.ndarray:
    """InsightFace and Ultralytics expect OpenCV channel order."""
    if image.ndim == 3 and image.shape[2] == 3:
        return np.ascontiguousarray(image[..., ::-1])
    return image
