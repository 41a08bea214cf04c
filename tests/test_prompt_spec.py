import pytest

from prompt_spec import (
    SCHEMA_VERSION,
    TYPE_DEFAULTS,
    PromptSpec,
    coerce_int,
    coerce_str_list,
    create_spec,
    is_minimally_valid,
    merge_spec,
    validate_spec,
)


def test_create_spec_uses_type_defaults():
    spec = create_spec("code")
    assert spec.output_type == "code"
    assert spec.version == SCHEMA_VERSION
    assert spec.type_specific == TYPE_DEFAULTS["code"]
    assert spec.audience.relationship == "neutral"

    spec.type_specific["dependencies"].append("requests")
    assert TYPE_DEFAULTS["code"]["dependencies"] == []


def test_create_spec_unknown_type():
    with pytest.raises(ValueError):
        create_spec("poem")


def test_merge_spec_is_shallow_per_section_and_does_not_mutate():
    spec = create_spec("doc")
    merged = merge_spec(spec, {
        "intent": {"primary_goal": "Write a launch plan"},
        "type_specific": {"include_toc": True},
    })

    assert merged.intent.primary_goal == "Write a launch plan"
    assert merged.intent.urgency == "normal"
    assert merged.type_specific["include_toc"] is True
    assert merged.type_specific["document_type"] == "report"
    assert spec.intent.primary_goal == ""


def test_merge_spec_merges_reasoning_one_level_deeper():
    spec = merge_spec(create_spec("doc"), {"inferred": {"tone": "casual", "reasoning": {"tone": "chatty input"}}})
    merged = merge_spec(spec, {"inferred": {"reasoning": {"format": "short request"}}})

    assert merged.inferred.tone == "casual"
    assert merged.inferred.reasoning == {"tone": "chatty input", "format": "short request"}


def test_merge_spec_scalars():
    merged = merge_spec(create_spec("doc"), {"generated_at": "2024-01-01T00:00:00", "version": ""})
    assert merged.generated_at == "2024-01-01T00:00:00"
    assert merged.version == SCHEMA_VERSION


def test_round_trip_drops_unknown_keys():
    data = create_spec("deck").to_dict()
    data["intent"]["mood"] = "sunny"
    spec = PromptSpec.from_dict(data)
    assert not hasattr(spec.intent, "mood")
    assert spec.to_dict()["type_specific"] == TYPE_DEFAULTS["deck"]


def test_validate_missing_spec():
    result = validate_spec(None)
    assert result.valid is False
    assert result.errors == ["Spec is missing"]


def test_validate_requires_primary_goal():
    result = validate_spec(create_spec("doc"))
    assert result.valid is False
    assert "Missing intent.primary_goal" in result.errors
    assert is_minimally_valid(create_spec("doc")) is False


def test_validate_warnings_do_not_invalidate():
    spec = merge_spec(create_spec("code"), {
        "intent": {"primary_goal": "Build an API", "urgency": "whenever"},
        "type_specific": {"language": "python", "framework": "rails"},
    })
    result = validate_spec(spec)
    assert result.valid is True
    assert "Invalid urgency: whenever" in result.warnings
    assert any("rails" in w for w in result.warnings)
    assert "Warnings (2):" in result.summary()


def test_validate_deck_slide_count():
    spec = merge_spec(create_spec("deck"), {
        "intent": {"primary_goal": "Pitch"},
        "type_specific": {"slide_count": 0},
    })
    result = validate_spec(spec)
    assert result.valid is False
    assert "Slide count must be at least 1" in result.errors

    big = merge_spec(spec, {"type_specific": {"slide_count": 120}})
    assert len(validate_spec(big).warnings) == 2


def test_validate_deck_slide_count_as_text():
    spec = merge_spec(create_spec("deck"), {
        "intent": {"primary_goal": "Pitch"},
        "type_specific": {"slide_count": "12"},
    })
    result = validate_spec(spec)
    assert result.valid
    assert result.warnings == []

    words = merge_spec(spec, {"type_specific": {"slide_count": "lots"}})
    result = validate_spec(words)
    assert result.valid
    assert result.warnings == ['Slide count "lots" is not a number and will be ignored']

    assert "Slide count must be at least 1" in validate_spec(
        merge_spec(spec, {"type_specific": {"slide_count": "0"}})
    ).errors


def test_validate_list_fields_given_as_strings():
    spec = merge_spec(create_spec("comms"), {
        "intent": {"primary_goal": "Chase the invoices"},
        "type_specific": {"action_items": "pay invoice", "channel": "sms"},
    })
    assert validate_spec(spec).warnings == []

    doc = merge_spec(create_spec("doc"), {
        "intent": {"primary_goal": "Write it up"},
        "type_specific": {"section_structure": "intro, body, close", "include_toc": True},
    })
    assert "Table of contents may not be useful with fewer than 3 sections" in validate_spec(doc).warnings


@pytest.mark.parametrize(
    "value,expected",
    [(12, 12), ("12", 12), (" 7.0 ", 7), (True, None), ("lots", None), (None, None), (float("nan"), None)],
)
def test_coerce_int(value, expected):
    assert coerce_int(value) == expected


def test_coerce_str_list():
    assert coerce_str_list("intro") == ["intro"]
    assert coerce_str_list(["a", None, " ", 3]) == ["a", "3"]
    assert coerce_str_list({"a": 1}) == []
    assert coerce_str_list("  ") == []


def test_validate_comms_rules():
    spec = merge_spec(create_spec("comms"), {
        "intent": {"primary_goal": "Nudge the team"},
        "type_specific": {"channel": "slack", "formality_level": "formal", "thread_context": "reply"},
    })
    warnings = validate_spec(spec).warnings
    assert "Formal tone may feel out of place in Slack" in warnings
    assert "Replies in a thread may not need a full greeting" in warnings


def test_valid_spec_summary():
    spec = merge_spec(create_spec("doc"), {"intent": {"primary_goal": "Explain the roadmap"}})
    result = validate_spec(spec)
    assert result.valid and result.summary() == "Spec is valid"
    assert is_minimally_valid(spec)
