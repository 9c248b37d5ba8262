import os
import threading

import numpy as np
import pytest

from conftest import vector_with_similarity
from deletemyex.config import PipelineConfig
from deletemyex.errors import LibraryError
from deletemyex.harvest.batch import BatchRunner
from deletemyex.io_utils import path_from_ref
from deletemyex.library.photo_library import LocalPhotoLibrary
from deletemyex.library.workflow import ActionKind, OutcomeStatus
from deletemyex.session import RemovalSession, SessionStep
from deletemyex.types import ProgressStage, RawDetection, Region

REFERENCE = np.array([1.0, 0.0, 0.0])
STRANGER = vector_with_similarity(0.1)


def _index_of(ref):
    return int(path_from_ref(ref).stem.replace("img", ""))


def _loader(ref):
    # pixel value = index + 1, so the embedder can tell the photos apart
    return np.full((300, 300, 3), _index_of(ref) + 1, dtype=np.uint8)


class _OneFaceDetector:
    def __init__(self):
        self.calls = 0

    def detect(self, image):
        self.calls += 1
        return [RawDetection(region=Region(50, 50, 100, 100), confidence=0.9, label="face")]


class _EvenIsReference:
    """Photos 0 and 2 show the reference person; 1 and 3 show someone else."""

    def embed(self, face_image):
        idx = int(face_image[0, 0, 0]) - 1
        return REFERENCE if idx % 2 == 0 else STRANGER


def _session(config=None, library=None):
    detector = _OneFaceDetector()
    runner = BatchRunner(detector=detector, embedder=_EvenIsReference(), loader=_loader)
    return RemovalSession(runner, config=config, library=library), detector


def test_end_to_end_flags_photos_with_reference():
    session, _ = _session()
    session.ingest_images([f"img{i}" for i in range(4)])
    progress = []

    candidates = session.detect_candidates(on_progress=progress.append)
    assert [face.id for face in candidates] == ["img0-0", "img1-0"]
    assert session.step is SessionStep.SELECT
    assert [(p.current, p.total) for p in progress] == [(0, 4), (1, 4), (2, 4), (3, 4), (4, 4)]
    assert {p.stage for p in progress} == {ProgressStage.DETECTING}

    session.select_reference("img0-0")
    progress.clear()
    flags = session.run_decision_pass(on_progress=progress.append)

    assert flags == [True, False, True, False]
    assert [photo.flagged for photo in session.photos] == flags
    assert {p.stage for p in progress} == {ProgressStage.MATCHING}
    assert session.step is SessionStep.RESULTS
    assert [photo.id for photo in session.flagged_photos()] == ["photo-0", "photo-2"]
    assert [photo.id for photo in session.clean_photos()] == ["photo-1", "photo-3"]
    assert session.evidence["photo-0"].matched
    assert not session.evidence["photo-1"].matched


def test_selecting_unknown_face_is_rejected():
    session, _ = _session()
    session.ingest_images(["img0"])
    session.detect_candidates()
    with pytest.raises(ValueError):
        session.select_reference("someone-else")


def test_decision_pass_requires_reference():
    session, _ = _session()
    session.ingest_images(["img0"])
    session.detect_candidates()
    with pytest.raises(RuntimeError):
        session.run_decision_pass()


def test_detection_requires_photos():
    session, _ = _session()
    with pytest.raises(RuntimeError):
        session.detect_candidates()


def test_cancelled_decision_pass_leaves_flags_alone():
    session, _ = _session()
    session.ingest_images([f"img{i}" for i in range(4)])
    session.detect_candidates()
    session.select_reference("img0-0")
    session.photos[1].flagged = True

    cancel = threading.Event()
    cancel.set()
    assert session.run_decision_pass(cancel_event=cancel) is None
    assert [photo.flagged for photo in session.photos] == [False, True, False, False]
    assert session.step is SessionStep.SELECT


def test_decision_pass_can_reuse_detections():
    session, detector = _session(config=PipelineConfig(redetect_on_match=False))
    session.ingest_images([f"img{i}" for i in range(4)])
    session.detect_candidates()
    calls_after_detection = detector.calls
    session.select_reference("img0-0")
    assert session.run_decision_pass() == [True, False, True, False]
    assert detector.calls == calls_after_detection


def test_restart_selection_clears_flags_and_reference():
    session, _ = _session()
    session.ingest_images([f"img{i}" for i in range(4)])
    session.detect_candidates()
    session.select_reference("img0-0")
    session.run_decision_pass()

    session.restart_selection()
    assert session.reference is None
    assert session.step is SessionStep.SELECT
    assert not any(photo.flagged for photo in session.photos)
    assert len(session.candidates) == 2


def test_apply_action_without_library_is_rejected():
    session, _ = _session()
    with pytest.raises(ValueError):
        session.apply_action(ActionKind.HIDE)


def _library_with_four_photos(root):
    for idx in range(4):
        path = root / f"img{idx}.jpg"
        path.write_bytes(b"fake")
        # img0 newest so library order matches the index
        stamp = 1_700_000_000 - idx * 60
        os.utime(path, (stamp, stamp))
    return LocalPhotoLibrary(root)


def test_library_session_deletes_flagged_photos(tmp_path):
    library = _library_with_four_photos(tmp_path)
    session, _ = _session(library=library)
    photos = session.ingest_library()
    assert [photo.native_asset_id for photo in photos] == ["img0.jpg", "img1.jpg", "img2.jpg", "img3.jpg"]

    session.detect_candidates()
    session.select_reference(session.candidates[0].id)
    assert session.run_decision_pass() == [True, False, True, False]

    outcome = session.apply_action(ActionKind.DELETE)
    assert outcome.status is OutcomeStatus.COMPLETED
    assert outcome.affected_count == 2
    assert [photo.native_asset_id for photo in session.photos] == ["img1.jpg", "img3.jpg"]
    assert sorted(p.name for p in tmp_path.glob("*.jpg")) == ["img1.jpg", "img3.jpg"]


def test_library_ingest_honours_permission(tmp_path):
    session, _ = _session(library=LocalPhotoLibrary(tmp_path, granted=False))
    with pytest.raises(LibraryError):
        session.ingest_library()


def test_hidden_assets_are_skipped_unless_requested(tmp_path):
    library = _library_with_four_photos(tmp_path)
    library.hide(["img1.jpg"])
    session, _ = _session(library=library)
    assert len(session.ingest_library()) == 3
    assert len(session.ingest_library(include_hidden=True)) == 4
