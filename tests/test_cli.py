import os
from argparse import Namespace

import numpy as np
import pytest
from PIL import Image

from conftest import vector_with_similarity
from deletemyex.config import PipelineConfig
from deletemyex.harvest.batch import BatchRunner
from deletemyex.io_utils import load_json, path_from_ref
from deletemyex.recognition.matcher import STRICT_BASE_THRESHOLD
from deletemyex.types import RawDetection, Region
from scripts import apply_action, find_faces, flag_photos


class _CenterFaceDetector:
    def detect(self, image):
        return [RawDetection(region=Region(40, 40, 80, 80), confidence=0.95, label="face")]


class _EvenIsReference:
    def embed(self, face_image):
        idx = int(face_image[0, 0, 0]) - 1
        return np.array([1.0, 0.0, 0.0]) if idx % 2 == 0 else vector_with_similarity(0.1)


def _loader(ref):
    idx = int(path_from_ref(ref).stem.replace("img", ""))
    return np.full((200, 200, 3), idx + 1, dtype=np.uint8)


def _stub_runner(config=None, builder_config=None):
    return BatchRunner(
        detector=_CenterFaceDetector(),
        embedder=_EvenIsReference(),
        config=config,
        builder_config=builder_config,
        loader=_loader,
    )


@pytest.fixture
def library_root(tmp_path):
    root = tmp_path / "library"
    root.mkdir()
    for idx in range(4):
        path = root / f"img{idx}.png"
        Image.new("RGB", (200, 200), color=(idx * 40, 10, 10)).save(path)
        stamp = 1_700_000_000 - idx * 60
        os.utime(path, (stamp, stamp))
    return root


def test_find_faces_overrides():
    args = find_faces.parse_args(
        ["--images-dir", "photos", "--detector", "yolo", "--no-embed", "--whole-image-fallback", "--providers", "CPU"]
    )
    config = find_faces.apply_overrides(PipelineConfig(), args)
    assert config.batch.detector == "yolo"
    assert config.batch.embed is False
    assert config.builder.whole_image_fallback is True
    assert config.batch.providers == ("CPU",)


def test_find_faces_requires_one_source():
    with pytest.raises(SystemExit):
        find_faces.parse_args(["--images-dir", "a", "--library-root", "b"])


def test_resolve_base_threshold_precedence():
    config = PipelineConfig()
    assert flag_photos.resolve_base_threshold(Namespace(threshold=None, strict=False), config) == 0.6
    assert flag_photos.resolve_base_threshold(Namespace(threshold=None, strict=True), config) == STRICT_BASE_THRESHOLD
    assert flag_photos.resolve_base_threshold(Namespace(threshold=0.42, strict=True), config) == 0.42


def test_find_flag_delete_round_trip(tmp_path, library_root, monkeypatch):
    monkeypatch.setattr(find_faces, "BatchRunner", _stub_runner)
    run_dir = tmp_path / "run"

    assert find_faces.main(["--library-root", str(library_root), "--output-dir", str(run_dir)]) == 0
    candidates = load_json(run_dir / "candidates.json")
    assert len(candidates) == 2
    assert [row["rank"] for row in candidates] == [0, 1]
    assert len(list((run_dir / "thumbnails").glob("*.jpg"))) == 2
    reference_id = candidates[0]["id"]
    assert reference_id.endswith("img0.png-0")

    assert flag_photos.main([str(run_dir), "--face-id", reference_id, "--reuse-detections"]) == 0
    report = (run_dir / "flagged.csv").read_text(encoding="utf-8").splitlines()
    assert report[0].startswith("photo_id,image_ref,native_asset_id,flagged,folder")
    photos = load_json(run_dir / "photos.json")
    assert [row["flagged"] for row in photos] == [True, False, True, False]

    assert apply_action.main([str(run_dir), "--library-root", str(library_root), "--action", "delete"]) == 2
    assert (library_root / "img0.png").exists()

    assert apply_action.main([str(run_dir), "--library-root", str(library_root), "--action", "delete", "--yes"]) == 0
    assert sorted(p.name for p in library_root.glob("*.png")) == ["img1.png", "img3.png"]
    remaining = load_json(run_dir / "photos.json")
    assert [row["native_asset_id"] for row in remaining] == ["img1.png", "img3.png"]


def test_flag_photos_rejects_unknown_face(tmp_path, library_root, monkeypatch):
    monkeypatch.setattr(find_faces, "BatchRunner", _stub_runner)
    run_dir = tmp_path / "run"
    find_faces.main(["--library-root", str(library_root), "--output-dir", str(run_dir), "--no-thumbnails"])
    assert flag_photos.main([str(run_dir), "--face-id", "nobody", "--reuse-detections"]) == 2
    assert not (run_dir / "flagged.csv").exists()


def test_apply_action_with_nothing_flagged_is_noop(tmp_path, library_root, monkeypatch):
    monkeypatch.setattr(find_faces, "BatchRunner", _stub_runner)
    run_dir = tmp_path / "run"
    find_faces.main(["--library-root", str(library_root), "--output-dir", str(run_dir), "--no-thumbnails"])
    assert apply_action.main([str(run_dir), "--library-root", str(library_root), "--action", "hide"]) == 0
    assert len(list(library_root.glob("*.png"))) == 4
    assert not (library_root / ".deletemyex" / "hidden.json").exists()
