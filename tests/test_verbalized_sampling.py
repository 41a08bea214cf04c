import json

from verbalized_sampling import (
    DEFAULT_LEVEL,
    DIVERSITY_LEVELS,
    build_vs_system_prompt,
    build_vs_user_prompt,
    get_level,
    get_option_label,
    level_for_slider,
    parse_vs_response,
    run_verbalized_sampling,
)

OPTIONS = {
    "options": [
        {"text": "Tail idea", "probability": 0.05, "reasoning": "rare", "approach": "Wild card"},
        {"text": "Obvious idea", "probability": 0.35, "reasoning": "common", "approach": "Classic"},
        {"text": "Middle idea", "probability": 0.2},
    ]
}


def test_option_labels_by_probability():
    assert get_option_label(0.35)["label"] == "Safe Bet"
    assert get_option_label(0.20)["label"] == "Alternative Angle"
    assert get_option_label(0.05)["label"] == "Creative / Out of Box"


def test_option_label_boundaries():
    assert get_option_label(0.3)["label"] == "Safe Bet"
    assert get_option_label(0.15)["label"] == "Alternative Angle"
    assert get_option_label(0.149)["label"] == "Creative / Out of Box"


def test_level_for_slider_snaps_to_nearest():
    assert level_for_slider(0).id == "safe"
    assert level_for_slider(30).id == "balanced"
    assert level_for_slider(50).id == "diverse"
    assert level_for_slider(88).id == "wild"
    assert level_for_slider(250).id == "wild"
    assert level_for_slider(-10).id == "safe"


def test_get_level_unknown_falls_back():
    assert get_level("nope").id == DEFAULT_LEVEL
    assert get_level(None).id == DEFAULT_LEVEL
    assert get_level("wild") is DIVERSITY_LEVELS["wild"]


def test_prompts_mention_tone_and_threshold():
    system = build_vs_system_prompt("casual", "copy")
    assert "casual" in system
    assert "marketing or creative copy" in system

    user = build_vs_user_prompt("Write a tagline", DIVERSITY_LEVELS["diverse"])
    assert "Write a tagline" in user
    assert "p<0.1" in user
    assert "5 distinct variations" in user

    safe = build_vs_user_prompt("x", DIVERSITY_LEVELS["safe"])
    assert "p=1.0" in safe


def test_parse_sorts_by_probability_and_fills_defaults():
    parsed = parse_vs_response(json.dumps(OPTIONS))
    assert parsed["success"] is True
    probs = [o["probability"] for o in parsed["options"]]
    assert probs == sorted(probs, reverse=True)

    top = parsed["options"][0]
    assert top["text"] == "Obvious idea"
    assert top["id"] == 2
    assert top["label"]["label"] == "Safe Bet"

    middle = parsed["options"][1]
    assert middle["reasoning"] == "No reasoning provided"
    assert middle["approach"] == "Option 3"


def test_parse_fenced_json_matches_bare_json():
    bare = json.dumps(OPTIONS)
    fenced = f"```json\n{bare}\n```"
    assert parse_vs_response(fenced) == parse_vs_response(bare)


def test_parse_json_with_surrounding_prose():
    text = "Here you go:\n" + json.dumps(OPTIONS) + "\nHope that helps."
    assert parse_vs_response(text)["success"] is True


def test_parse_ignores_braces_after_the_json():
    text = "noise " + json.dumps(OPTIONS) + " trailing {x}"
    parsed = parse_vs_response(text)
    assert parsed["success"] is True
    assert len(parsed["options"]) == len(OPTIONS["options"])


def test_parse_skips_unrelated_objects_before_options():
    text = 'meta {"model": "x"} then ' + json.dumps(OPTIONS)
    assert parse_vs_response(text)["success"] is True


def test_parse_malformed_json():
    parsed = parse_vs_response("{not json at all")
    assert parsed["success"] is False
    assert parsed["options"] == []
    assert parsed["error"]


def test_parse_missing_options_array():
    parsed = parse_vs_response(json.dumps({"choices": []}))
    assert parsed["success"] is False
    assert parsed["options"] == []


def test_parse_coerces_probabilities():
    parsed = parse_vs_response({"options": [
        {"text": "a", "probability": "high"},
        {"text": "b", "probability": 3},
        {"text": "c", "probability": 0},
    ]})
    by_text = {o["text"]: o["probability"] for o in parsed["options"]}
    assert by_text == {"a": 0.5, "b": 1.0, "c": 0.0}


def test_run_verbalized_sampling(fake_llm):
    llm = fake_llm(OPTIONS)
    result = run_verbalized_sampling("Write a tagline", "casual", "copy", "creative", llm)

    assert result["success"] is True
    assert len(result["options"]) == 3
    assert result["config"] == {
        "diversity_level": "creative",
        "tone": "casual",
        "output_type": "copy",
        "candidate_count": 5,
    }
    assert "casual" in llm.calls[0]["system"]


def test_run_verbalized_sampling_llm_error(fake_llm):
    result = run_verbalized_sampling("x", "casual", "doc", "balanced", fake_llm(RuntimeError("boom")))
    assert result["success"] is False
    assert result["error"] == "boom"
    assert result["options"] == []
    assert result["config"]["diversity_level"] == "balanced"
