import copy

import pytest

from studydata.errors import InvalidInputError
from studydata.services import normalize_study_data, normalize_study_guide


def _guide(**overrides):
    guide = {
        "id": "g-1",
        "name": "Core 1",
        "createdAt": "2024-05-01T10:00:00.000Z",
        "processedVideos": [{"videoId": "v1", "watched": True}],
        "quizHistory": [{"score": 8, "total": 10}],
    }
    guide.update(overrides)
    return guide


def test_partial_shape_repair():
    out = normalize_study_data({"activeGuide": {"processedVideos": "not-an-array"}, "activeExam": 42})
    guide = out["activeGuide"]
    assert guide["processedVideos"] == []
    assert guide["quizHistory"] == []
    assert isinstance(guide["id"], str) and guide["id"]
    assert guide["name"].startswith("Study Guide ")
    assert isinstance(guide["createdAt"], str)
    assert out["activeExam"] == "A+"
    assert out["archivedGuides"] == []


def test_missing_active_guide_is_synthesized():
    out = normalize_study_data({})
    assert set(out["activeGuide"]) == {"id", "name", "createdAt", "processedVideos", "quizHistory"}
    assert out["activeGuide"]["processedVideos"] == []


def test_non_object_active_guide_is_replaced():
    out = normalize_study_data({"activeGuide": ["nope"], "activeExam": "Network+"})
    assert isinstance(out["activeGuide"], dict)
    assert out["activeExam"] == "Network+"


def test_valid_fields_are_kept():
    guide = _guide(extra="kept")
    out = normalize_study_data({"activeGuide": guide, "activeExam": "Security+", "theme": "dark"})
    assert out["activeGuide"] == guide
    assert out["activeExam"] == "Security+"
    assert out["theme"] == "dark"


def test_only_broken_fields_are_replaced():
    out = normalize_study_guide(_guide(id="", quizHistory=None))
    assert out["id"] and out["id"] != ""
    assert out["quizHistory"] == []
    assert out["name"] == "Core 1"
    assert out["processedVideos"] == [{"videoId": "v1", "watched": True}]


def test_numeric_created_at_is_accepted_but_bool_is_not():
    assert normalize_study_guide(_guide(createdAt=1714557600000))["createdAt"] == 1714557600000
    assert isinstance(normalize_study_guide(_guide(createdAt=True))["createdAt"], str)


def test_archived_guides_are_repaired_and_non_objects_dropped():
    body = {"archivedGuides": [_guide(), "junk", {"name": "Old"}, 7]}
    out = normalize_study_data(body)
    assert len(out["archivedGuides"]) == 2
    assert out["archivedGuides"][0] == _guide()
    assert out["archivedGuides"][1]["name"] == "Old"
    assert out["archivedGuides"][1]["processedVideos"] == []


def test_archived_guides_not_a_list():
    assert normalize_study_data({"archivedGuides": {"a": 1}})["archivedGuides"] == []


def test_normalization_is_idempotent():
    malformed = {"activeGuide": {"processedVideos": "x", "name": 3}, "archivedGuides": [{}, "y"], "activeExam": None}
    once = normalize_study_data(malformed)
    twice = normalize_study_data(once)
    assert twice == once


def test_input_is_not_mutated():
    body = {"activeGuide": {"processedVideos": "x"}, "activeExam": 1}
    before = copy.deepcopy(body)
    normalize_study_data(body)
    assert body == before


@pytest.mark.parametrize("body", ["hello", 42, None, [1, 2], True])
def test_non_object_body_is_rejected(body):
    with pytest.raises(InvalidInputError):
        normalize_study_data(body)
