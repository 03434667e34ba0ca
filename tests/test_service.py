import numpy as np
import pytest

from conftest import BLUE, GREEN, RED, WHITE, FakeEngine, make_png
from img_similarity.errors import DecodeError, InferenceError, NotLoadedError
from img_similarity.grouping import SimilarityResult
from img_similarity.inference_service.service import ImageSimilarityService


def unit(angle_degrees):
    theta = np.radians(angle_degrees)
    return [float(np.cos(theta)), float(np.sin(theta)), 0.0]


def test_get_similarity_requires_load(fake_engine):
    service = ImageSimilarityService(fake_engine)
    with pytest.raises(NotLoadedError):
        service.get_similarity(make_png(RED), make_png(RED))


def test_get_similarity_scores_pairs(fake_engine):
    with ImageSimilarityService(fake_engine) as service:
        assert service.is_loaded
        assert service.get_similarity(make_png(RED), make_png(WHITE)) == pytest.approx(1.0)
        assert service.get_similarity(make_png(RED), make_png(GREEN)) == pytest.approx(0.5)
    assert not service.is_loaded
    assert len(fake_engine.released) == 1


def test_fewer_than_two_images_skip_the_engine(fake_engine):
    service = ImageSimilarityService(fake_engine)
    # Not loaded, yet no error: nothing needs embedding
    assert service.find_similar_images([]) == SimilarityResult()
    assert service.find_similar_images([make_png(RED)], threshold=0.0) == SimilarityResult()


def test_find_similar_images_three_image_example():
    # cos 0.92 -> score 0.96; angles chosen so the other pairs stay far below threshold
    angle_01 = np.degrees(np.arccos(0.92))
    engine = FakeEngine(vectors={
        RED: unit(0),
        GREEN: unit(angle_01),
        BLUE: unit(120),
    })
    with ImageSimilarityService(engine) as service:
        result = service.find_similar_images([make_png(RED), make_png(GREEN), make_png(BLUE)], threshold=0.95)

    assert len(result.pairs) == 1
    pair = result.pairs[0]
    assert (pair.index_a, pair.index_b) == (0, 1)
    assert pair.score == pytest.approx(0.96)
    assert result.groups == [[0, 1]]


def test_find_similar_images_chains_into_one_group():
    engine = FakeEngine(vectors={
        RED: unit(0),
        GREEN: unit(20),
        BLUE: unit(40),
        WHITE: [0.0, 0.0, 1.0],
    })
    images = [make_png(c) for c in (RED, GREEN, BLUE, WHITE)]
    with ImageSimilarityService(engine) as service:
        # score(20 deg) = (cos 20 + 1) / 2 ~ 0.97, score(40 deg) ~ 0.88
        result = service.find_similar_images(images, threshold=0.95)

    assert [(p.index_a, p.index_b) for p in result.pairs] == [(0, 1), (1, 2)]
    assert result.groups == [[0, 1, 2]]


def test_duplicates_in_batch_group_together(fake_engine):
    images = [make_png(RED), make_png(GREEN), make_png(WHITE), make_png(GREEN)]
    with ImageSimilarityService(fake_engine) as service:
        result = service.find_similar_images(images, show_progress=True)
    assert result.groups == [[0, 2], [1, 3]]


def test_batch_fails_fast_on_bad_image(fake_engine):
    images = [make_png(RED), b"not an image", make_png(GREEN)]
    with ImageSimilarityService(fake_engine) as service:
        with pytest.raises(DecodeError):
            service.find_similar_images(images)
    # Third image was never embedded
    assert len(fake_engine.inputs) == 1


def test_batch_propagates_engine_failures(fake_engine):
    images = [make_png(RED), make_png((9, 9, 9))]
    with ImageSimilarityService(fake_engine) as service:
        with pytest.raises(InferenceError):
            service.find_similar_images(images)


def test_get_embedding_and_model_info(fake_engine):
    with ImageSimilarityService(fake_engine) as service:
        np.testing.assert_array_equal(service.get_embedding(make_png(BLUE)), [0.0, 0.0, 1.0])
        assert service.get_model_info()["output_shape"] == [1, 3]
