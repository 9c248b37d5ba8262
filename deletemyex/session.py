"""Upload -> select -> results flow for removing one person from a photo set."""

from __future__ import annotations

import enum
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Sequence

from deletemyex.config import PipelineConfig
from deletemyex.errors import LibraryError
from deletemyex.harvest.batch import BatchRunner
from deletemyex.library.photo_library import PhotoLibrary
from deletemyex.library.workflow import ActionKind, ActionOutcome, AssetActionWorkflow
from deletemyex.recognition.dedup import deduplicate_faces, rank_candidates
from deletemyex.recognition.matcher import MatchEvidence, ReferenceMatcher
from deletemyex.types import BatchProgress, BatchResult, Face, Photo, ProgressStage, flatten_faces

LOGGER = logging.getLogger("deletemyex.session")

StageCallback = Callable[[BatchProgress], None]


class SessionStep(str, enum.Enum):
    UPLOAD = "upload"
    SELECT = "select"
    RESULTS = "results"


class RemovalSession:
    """Holds the working photo set and walks it through detection, selection and decisions."""

    def __init__(
        self,
        runner: BatchRunner,
        config: Optional[PipelineConfig] = None,
        library: Optional[PhotoLibrary] = None,
    ) -> None:
        self.runner = runner
        self.config = config or PipelineConfig()
        self.library = library
        self._workflow: Optional[AssetActionWorkflow] = None
        self.reset()

    def reset(self) -> None:
        """Start over with an empty working set."""
        self.step = SessionStep.UPLOAD
        self.photos: List[Photo] = []
        self.detections: List[BatchResult] = []
        self.candidates: List[Face] = []
        self.reference: Optional[Face] = None
        self.evidence: Dict[str, Optional[MatchEvidence]] = {}

    def restart_selection(self) -> None:
        """Keep photos and candidates, drop the chosen face and every flag."""
        self.reference = None
        self.evidence = {}
        for photo in self.photos:
            photo.flagged = False
        self.step = SessionStep.SELECT if self.candidates else SessionStep.UPLOAD

    def resume(
        self,
        photos: Sequence[Photo],
        candidates: Sequence[Face],
        detections: Optional[Sequence[BatchResult]] = None,
    ) -> None:
        """Re-enter the selection step from a previously saved run."""
        self.reset()
        self.photos = list(photos)
        self.candidates = list(candidates)
        self.detections = list(detections or [])
        self.step = SessionStep.SELECT

    # ingest -----------------------------------------------------------------

    def ingest_images(self, image_refs: Sequence[Any]) -> List[Photo]:
        self.reset()
        self.photos = [Photo(id=f"photo-{idx}", image_ref=ref) for idx, ref in enumerate(image_refs)]
        LOGGER.info("Ingested %d images", len(self.photos))
        return list(self.photos)

    def ingest_library(self, library: Optional[PhotoLibrary] = None, include_hidden: bool = False) -> List[Photo]:
        """Load every library asset as a photo carrying its native id."""
        library = library or self.library
        if library is None:
            raise ValueError("No photo library configured for this session")
        if not library.request_permission():
            raise LibraryError("Photo library access denied")
        self.library = library
        self._workflow = None
        assets = library.list_assets(include_hidden=include_hidden)
        self.reset()
        self.photos = [
            Photo(id=f"photo-{idx}", image_ref=asset.uri, native_asset_id=asset.id)
            for idx, asset in enumerate(assets)
        ]
        LOGGER.info("Ingested %d library assets (include_hidden=%s)", len(self.photos), include_hidden)
        return list(self.photos)

    # batch stages -----------------------------------------------------------

    def _run_stage(
        self,
        stage: ProgressStage,
        on_progress: Optional[StageCallback],
        cancel_event: Optional[threading.Event],
    ) -> List[BatchResult]:
        total = len(self.photos)
        if on_progress is not None:
            on_progress(BatchProgress(0, total, stage))

        def _report(current: int, total_items: int) -> None:
            if on_progress is not None:
                on_progress(BatchProgress(current, total_items, stage))

        return self.runner.process_batch(
            [photo.image_ref for photo in self.photos],
            on_progress=_report,
            cancel_event=cancel_event,
        )

    def detect_candidates(
        self,
        on_progress: Optional[StageCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[Face]:
        """Detect faces in every photo and return ranked distinct candidates."""
        if not self.photos:
            raise RuntimeError("No photos ingested")
        self.detections = self._run_stage(ProgressStage.DETECTING, on_progress, cancel_event)
        if len(self.detections) < len(self.photos):
            LOGGER.warning("Detection cancelled after %d/%d photos", len(self.detections), len(self.photos))
        representatives = deduplicate_faces(flatten_faces(self.detections), self.config.dedup)
        self.candidates = rank_candidates(representatives, self.config.dedup)
        self.reference = None
        self.step = SessionStep.SELECT
        LOGGER.info("Found %d unique faces", len(self.candidates))
        return list(self.candidates)

    def select_reference(self, face_id: str) -> Face:
        for face in self.candidates:
            if face.id == face_id:
                self.reference = face
                LOGGER.info("Selected reference face %s from %s", face.id, face.source_ref)
                return face
        raise ValueError(f"Face {face_id!r} is not one of the current candidates")

    def run_decision_pass(
        self,
        on_progress: Optional[StageCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Optional[List[bool]]:
        """Flag every photo containing the reference face.

        Returns None, leaving flags untouched, when the pass is cancelled.
        """
        if self.reference is None:
            raise RuntimeError("Select a reference face before running the decision pass")
        if self.config.redetect_on_match or len(self.detections) != len(self.photos):
            results = self._run_stage(ProgressStage.MATCHING, on_progress, cancel_event)
        else:
            results = self._replay_detections(on_progress, cancel_event)
        if len(results) < len(self.photos):
            LOGGER.warning("Decision pass cancelled after %d/%d photos", len(results), len(self.photos))
            return None

        matcher = ReferenceMatcher(self.reference, self.config.match)
        flags: List[bool] = []
        self.evidence = {}
        for photo, result in zip(self.photos, results):
            photo.flagged = matcher.photo_contains(result.faces)
            self.evidence[photo.id] = matcher.best_evidence(result.faces)
            flags.append(photo.flagged)
        self.step = SessionStep.RESULTS
        LOGGER.info("Flagged %d of %d photos", sum(flags), len(flags))
        return flags

    def _replay_detections(
        self,
        on_progress: Optional[StageCallback],
        cancel_event: Optional[threading.Event],
    ) -> List[BatchResult]:
        total = len(self.detections)
        if on_progress is not None:
            on_progress(BatchProgress(0, total, ProgressStage.MATCHING))
        replayed: List[BatchResult] = []
        for position, result in enumerate(self.detections, start=1):
            if cancel_event is not None and cancel_event.is_set():
                break
            replayed.append(result)
            if on_progress is not None:
                on_progress(BatchProgress(position, total, ProgressStage.MATCHING))
        return replayed

    # results ----------------------------------------------------------------

    def flagged_photos(self) -> List[Photo]:
        return [photo for photo in self.photos if photo.flagged]

    def clean_photos(self) -> List[Photo]:
        return [photo for photo in self.photos if not photo.flagged]

    def apply_action(self, kind: ActionKind) -> ActionOutcome:
        """Hide or delete the flagged library photos, pruning them on success."""
        if self.library is None:
            raise ValueError("No photo library configured for this session")
        if self._workflow is None:
            self._workflow = AssetActionWorkflow(self.library)
        return self._workflow.request(ActionKind(kind), self.photos)
