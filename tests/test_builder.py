import numpy as np

from deletemyex.harvest.builder import BuilderConfig, FaceRecordBuilder, WHOLE_IMAGE_CONFIDENCE
from deletemyex.types import Quality, RawDetection, Region

IMAGE_SIZE = (200, 100)  # width, height


def detection(x, y, w, h, confidence=0.9, label="face"):
    return RawDetection(region=Region(x, y, w, h), confidence=confidence, label=label)


def test_region_is_clipped_to_image_bounds():
    builder = FaceRecordBuilder()
    [face] = builder.build_faces([detection(-20, 50, 100, 100)], IMAGE_SIZE, "img")
    assert face.region == Region(0.0, 50.0, 80.0, 50.0)
    assert face.quality is Quality.MEDIUM


def test_detection_outside_image_is_discarded():
    builder = FaceRecordBuilder()
    faces = builder.build_faces([detection(250, 10, 40, 40), detection(10, 10, 40, 40)], IMAGE_SIZE, "img")
    assert [face.id for face in faces] == ["img-1"]


def test_quality_thresholds_follow_clipped_area():
    builder = FaceRecordBuilder()
    faces = builder.build_faces(
        [
            detection(0, 0, 39, 40),
            detection(0, 0, 40, 40),
            detection(0, 0, 80, 80),
            detection(150, 0, 100, 100),
        ],
        (400, 400),
        "img",
    )
    assert [face.quality for face in faces] == [Quality.LOW, Quality.MEDIUM, Quality.HIGH, Quality.HIGH]
    builder_clipped = FaceRecordBuilder()
    [clipped] = builder_clipped.build_faces([detection(150, 0, 100, 100)], IMAGE_SIZE, "img")
    assert clipped.region.width == 50.0
    assert clipped.quality is Quality.MEDIUM


def test_only_accepted_labels_and_confident_detections_are_built():
    builder = FaceRecordBuilder()
    faces = builder.build_faces(
        [
            detection(0, 0, 50, 50, label="person"),
            detection(0, 0, 50, 50, label="dog"),
            detection(0, 0, 50, 50, confidence=0.3),
            detection(0, 0, 50, 50, label="Face"),
        ],
        IMAGE_SIZE,
        "img",
    )
    assert [face.id for face in faces] == ["img-0", "img-3"]


def test_whole_image_fallback_only_when_enabled():
    assert FaceRecordBuilder().build_faces([], IMAGE_SIZE, "img") == []
    builder = FaceRecordBuilder(BuilderConfig(whole_image_fallback=True))
    [face] = builder.build_faces([detection(0, 0, 50, 50, label="cat")], IMAGE_SIZE, "img")
    assert face.region == Region(0.0, 0.0, 200.0, 100.0)
    assert face.confidence == WHOLE_IMAGE_CONFIDENCE
    assert face.quality is Quality.HIGH


def test_padding_is_applied_before_clipping():
    builder = FaceRecordBuilder(BuilderConfig(padding_px=20))
    [face] = builder.build_faces([detection(10, 10, 40, 40)], IMAGE_SIZE, "img")
    assert face.region == Region(0.0, 0.0, 70.0, 70.0)


def test_build_attaches_embedding_and_stable_id():
    builder = FaceRecordBuilder()
    [candidate] = builder.candidates([detection(5, 5, 20, 20)], IMAGE_SIZE)
    face = builder.build(candidate, "photo.jpg", embedding=[[0.5, 0.5]])
    assert face.id == "photo.jpg-0"
    assert face.source_ref == "photo.jpg"
    assert face.quality is Quality.LOW
    assert face.has_embedding
    np.testing.assert_allclose(face.embedding, [0.5, 0.5])


def test_build_id_prefix_overrides_source_ref_in_id():
    candidate = FaceRecordBuilder().candidates([detection(10, 10, 50, 50)], (200, 200))[0]
    face = FaceRecordBuilder.build(candidate, "a.jpg", id_prefix="a.jpg#2")
    assert face.id == "a.jpg#2-0"
    assert face.source_ref == "a.jpg"
