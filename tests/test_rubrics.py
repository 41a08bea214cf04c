import pytest

from rubrics import BASE_RUBRIC, calculate_overall_score, get_rubric, interpret_score, rubric_to_dict


@pytest.mark.parametrize("output_type", ["deck", "code", "doc", "copy", "comms", "data", "other"])
def test_rubric_weights_sum_to_one(output_type):
    rubric = get_rubric(output_type)
    assert sum(d.weight for d in rubric.values()) == pytest.approx(1.0)


def test_type_rubric_adds_dimension_without_touching_base():
    rubric = get_rubric("code")
    assert "technical_accuracy" in rubric
    assert rubric["structure"].weight == pytest.approx(0.20 * 0.80)
    assert BASE_RUBRIC["structure"].weight == 0.20


def test_all_tens_is_100_and_all_ones_is_10():
    rubric = get_rubric("deck")
    assert calculate_overall_score({k: 10 for k in rubric}, rubric) == 100
    assert calculate_overall_score({k: 1 for k in rubric}, rubric) == 10


def test_missing_and_bad_scores_count_as_neutral():
    rubric = get_rubric("doc")
    assert calculate_overall_score({}, rubric) == 50
    assert calculate_overall_score({k: "n/a" for k in rubric}, rubric) == 50


def test_scores_are_clamped():
    rubric = get_rubric("doc")
    assert calculate_overall_score({k: 42 for k in rubric}, rubric) == 100
    assert calculate_overall_score({k: -3 for k in rubric}, rubric) == 10


def test_weighted_mean():
    rubric = dict(BASE_RUBRIC)
    scores = {"structure": 10, "specificity": 5, "actionability": 5, "tone_alignment": 5, "completeness": 5}
    # 0.2*10 + 0.8*5 = 6.0
    assert calculate_overall_score(scores, rubric) == 60


def test_extra_dimensions_are_ignored():
    rubric = dict(BASE_RUBRIC)
    scores = {k: 8 for k in rubric}
    scores["made_up"] = 1
    assert calculate_overall_score(scores, rubric) == 80


@pytest.mark.parametrize(
    "score,label",
    [(95, "Excellent"), (90, "Excellent"), (85, "Good"), (70, "Solid"), (60, "Fair"), (59, "Needs Work")],
)
def test_interpret_score(score, label):
    assert interpret_score(score)["label"] == label


def test_rubric_to_dict():
    d = rubric_to_dict(get_rubric("copy"))
    assert d["persuasiveness"]["name"] == "Persuasiveness"
    assert isinstance(d["structure"]["criteria"], list)
