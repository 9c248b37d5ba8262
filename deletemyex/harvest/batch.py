"""Sequential batch orchestration over detection and embedding adapters."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np
from tqdm import tqdm

from deletemyex.detectors.base import Detector, crop_face
from deletemyex.errors import AdapterFailure
from deletemyex.harvest.builder import BuilderConfig, FaceRecordBuilder
from deletemyex.io_utils import load_image
from deletemyex.recognition.embed_arcface import Embedder
from deletemyex.types import BatchResult, Face, Region, image_size, source_ref_for

LOGGER = logging.getLogger("deletemyex.harvest")

ProgressCallback = Callable[[int, int], None]
ImageLoader = Callable[[Any], Any]
FaceCropper = Callable[[Any, Region], Any]


@dataclass
class BatchConfig:
    detector: str = "retinaface"
    det_thresh: float = 0.45
    det_size: Tuple[int, int] = (640, 640)
    yolo_weights: str = "yolov8n.pt"
    providers: Optional[Tuple[str, ...]] = None
    arcface_model: Optional[str] = None
    embed: bool = True
    show_progress: bool = False
    progress_desc: str = "faces"


def build_detector(config: BatchConfig) -> Detector:
    """Instantiate the configured detection adapter."""
    name = config.detector.lower()
    if name == "retinaface":
        from deletemyex.detectors.face_retina import RetinaFaceDetector

        return RetinaFaceDetector(providers=config.providers, det_size=config.det_size, det_thresh=config.det_thresh)
    if name == "yolo":
        from deletemyex.detectors.person_yolo import YOLOPersonDetector

        return YOLOPersonDetector(weights=config.yolo_weights, conf_thres=config.det_thresh)
    raise ValueError(f"Unknown detector '{config.detector}'; expected 'retinaface' or 'yolo'")


def build_embedder(config: BatchConfig) -> Embedder:
    from deletemyex.recognition.embed_arcface import ArcFaceEmbedder

    return ArcFaceEmbedder(model_path=config.arcface_model, providers=config.providers)


class BatchRunner:
    """Runs detection (and embedding) image by image.

    Adapters are created on first use and reused until `close()`. A failing
    image never aborts the batch: its result carries no faces and an error.
    """

    def __init__(
        self,
        detector: Optional[Detector] = None,
        embedder: Optional[Embedder] = None,
        config: Optional[BatchConfig] = None,
        builder_config: Optional[BuilderConfig] = None,
        *,
        detector_factory: Optional[Callable[[BatchConfig], Detector]] = None,
        embedder_factory: Optional[Callable[[BatchConfig], Embedder]] = None,
        loader: ImageLoader = load_image,
        cropper: FaceCropper = crop_face,
    ) -> None:
        self.config = config or BatchConfig()
        self.builder = FaceRecordBuilder(builder_config)
        self.detector = detector
        self.embedder = embedder
        self.detector_factory = detector_factory or build_detector
        self.embedder_factory = embedder_factory or build_embedder
        self.loader = loader
        self.cropper = cropper
        self.embedding_degraded = False
        self._embedder_checked = embedder is not None

    def __enter__(self) -> "BatchRunner":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _ensure_detector(self) -> Detector:
        if self.detector is None:
            self.detector = self.detector_factory(self.config)
        return self.detector

    def _ensure_embedder(self) -> Optional[Embedder]:
        """Initialize the embedder once; degrade to detection-only on failure."""
        if not self.config.embed:
            return None
        if self._embedder_checked:
            return self.embedder
        self._embedder_checked = True
        try:
            self.embedder = self.embedder_factory(self.config)
        except Exception as exc:
            LOGGER.warning(
                "Embedder initialization failed (%s); matching will use the geometric fallback for this run.",
                exc,
            )
            LOGGER.debug("Embedder initialization stack trace", exc_info=True)
            self.embedder = None
            self.embedding_degraded = True
        return self.embedder

    def close(self) -> None:
        """Release adapter resources; the runner can be reused afterwards."""
        for adapter in (self.detector, self.embedder):
            closer = getattr(adapter, "close", None)
            if callable(closer):
                closer()
        self.detector = None
        self.embedder = None
        self._embedder_checked = False

    def _embed(self, image: Any, region: Region, image_ref: Any, index: int) -> Optional[np.ndarray]:
        embedder = self._ensure_embedder()
        if embedder is None:
            return None
        try:
            return np.asarray(embedder.embed(self.cropper(image, region)), dtype=np.float32).reshape(-1)
        except Exception as exc:
            LOGGER.warning("Embedding failed for %s face %d: %s", image_ref, index, exc)
            return None

    def process_image(self, image_ref: Any, id_prefix: Optional[str] = None) -> BatchResult:
        """Detect and embed faces in one image, never raising adapter errors."""
        source_ref = source_ref_for(image_ref)
        try:
            image = self.loader(image_ref)
            size = image_size(image)
        except Exception as exc:
            failure = AdapterFailure("load", image_ref, exc)
            LOGGER.warning("%s", failure)
            return BatchResult(image_ref=image_ref, faces=[], error=str(failure))
        try:
            detections = self._ensure_detector().detect(image)
        except Exception as exc:
            failure = AdapterFailure("detection", image_ref, exc)
            LOGGER.warning("%s", failure)
            LOGGER.debug("Detection stack trace", exc_info=True)
            return BatchResult(image_ref=image_ref, faces=[], error=str(failure))

        faces: List[Face] = []
        for candidate in self.builder.candidates(detections, size):
            embedding = self._embed(image, candidate.region, image_ref, candidate.index)
            faces.append(self.builder.build(candidate, source_ref, embedding, id_prefix))
        LOGGER.debug("Image %s: %d detections -> %d faces", image_ref, len(detections), len(faces))
        return BatchResult(image_ref=image_ref, faces=faces)

    def iter_batch(
        self,
        images: Sequence[Any],
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Iterator[BatchResult]:
        """Yield results in input order, one image at a time."""
        total = len(images)
        occurrences: Dict[str, int] = {}
        bar = tqdm(total=total, desc=self.config.progress_desc, unit="img") if self.config.show_progress else None
        try:
            for position, image_ref in enumerate(images, start=1):
                if cancel_event is not None and cancel_event.is_set():
                    LOGGER.info("Batch cancelled after %d/%d images", position - 1, total)
                    return
                source_ref = source_ref_for(image_ref)
                seen = occurrences.get(source_ref, 0) + 1
                occurrences[source_ref] = seen
                # a repeated ref gets a "<ref>#<n>" id prefix
                result = self.process_image(image_ref, id_prefix=f"{source_ref}#{seen}" if seen > 1 else None)
                if bar is not None:
                    bar.update(1)
                if on_progress is not None:
                    on_progress(position, total)
                yield result
        finally:
            if bar is not None:
                bar.close()

    def process_batch(
        self,
        images: Sequence[Any],
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[BatchResult]:
        """Process every image and return index-aligned results.

        When cancelled, the returned list holds only the images finished
        before the cancel was observed.
        """
        images = list(images)
        LOGGER.info("Starting batch images=%d embed=%s", len(images), self.config.embed)
        results = list(self.iter_batch(images, on_progress=on_progress, cancel_event=cancel_event))
        failed = sum(1 for result in results if not result.ok)
        LOGGER.info(
            "Batch finished processed=%d/%d faces=%d failed=%d",
            len(results),
            len(images),
            sum(len(result.faces) for result in results),
            failed,
        )
        return results
