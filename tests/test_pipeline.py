import json

import pytest

from analyzer import analyze_intent, spec_from_analysis
from generator import GenerationError, generate_prompt, parse_generation_response, type_specific_instructions
from pipeline import PipelineResult, apply_overrides, run_analysis_only, run_generation_only, run_pipeline
from prompt_spec import create_spec, merge_spec
from prompts import ANALYZER_SYSTEM, ASSESSOR_SYSTEM, GENERATOR_SYSTEM

ANALYSIS = {
    "intent": {"primary_goal": "Announce the Q3 product launch", "success_criteria": ["clear date"], "urgency": "high"},
    "audience": {"primary": "customers", "expertise_level": "general"},
    "context": {"setting": "email newsletter"},
    "recommended_settings": {
        "tone": "friendly",
        "format": "sections",
        "length": "short",
        "reasoning": {"tone": "customer-facing"},
    },
    "type_specific_suggestions": {"channel": "email", "include_signature": False},
}

GENERATION = {
    "expanded_prompt": "Write a friendly launch email announcing the Q3 product launch to customers.",
    "structure_summary": "Goal, audience, tone",
    "key_elements": ["launch date", "call to action"],
}


def routed(responses):
    """Fake call_llm that answers by system prompt."""
    calls = []

    def _call(user, system=""):
        calls.append(system)
        reply = responses[system]
        if isinstance(reply, Exception):
            raise reply
        return reply if isinstance(reply, str) else json.dumps(reply)

    _call.calls = calls
    return _call


def _assessment(score):
    from rubrics import get_rubric
    return {
        "dimensions": {k: {"score": score, "feedback": "ok"} for k in get_rubric("comms")},
        "strengths": ["Clear goal"],
        "improvements": [],
    }


# ------------------ analyzer ------------------

def test_analyze_intent_builds_spec(fake_llm):
    spec = analyze_intent("launch email pls", "comms", fake_llm(ANALYSIS))

    assert spec.output_type == "comms"
    assert spec.intent.primary_goal == "Announce the Q3 product launch"
    assert spec.intent.urgency == "high"
    assert spec.audience.relationship == "neutral"
    assert spec.inferred.tone == "friendly"
    assert spec.inferred.reasoning == {"tone": "customer-facing"}
    assert spec.type_specific["include_signature"] is False
    assert spec.type_specific["include_greeting"] is True
    assert spec.generated_at


def test_analyze_intent_falls_back_on_bad_json(fake_llm):
    spec = analyze_intent("launch email pls", "comms", fake_llm("not json"))
    assert spec.intent.primary_goal == "launch email pls"
    assert spec.inferred.tone is None


def test_analyze_intent_falls_back_on_llm_error(fake_llm):
    spec = analyze_intent("launch email pls", "doc", fake_llm(RuntimeError("down")))
    assert spec.output_type == "doc"
    assert spec.intent.primary_goal == "launch email pls"


def test_spec_from_analysis_defaults():
    spec = spec_from_analysis({}, "raw input", "doc")
    assert spec.intent.primary_goal == "raw input"
    assert spec.inferred.format == "paragraph"


def test_spec_from_analysis_tolerates_wrong_section_types():
    analysis = {
        "intent": "launch the product",
        "audience": ["customers"],
        "context": None,
        "recommended_settings": "friendly please",
        "type_specific_suggestions": ["email"],
    }
    spec = spec_from_analysis(analysis, "raw input", "comms")

    assert spec.intent.primary_goal == "raw input"
    assert spec.audience.primary == ""
    assert spec.inferred.tone == "professional"
    assert spec.inferred.reasoning == {}
    assert spec.type_specific["channel"] == "email"


def test_spec_from_analysis_coerces_field_types():
    analysis = {
        "intent": {"primary_goal": "   ", "success_criteria": "be brief", "urgency": 3},
        "audience": {"expectations": ["clarity", None, 7]},
        "recommended_settings": {"tone": ["casual"], "reasoning": "Short because it is a reminder"},
    }
    spec = spec_from_analysis(analysis, "raw input", "doc")

    assert spec.intent.primary_goal == "raw input"
    assert spec.intent.success_criteria == ["be brief"]
    assert spec.intent.urgency == "3"
    assert spec.audience.expectations == ["clarity", "7"]
    assert spec.inferred.tone == "professional"
    assert spec.inferred.reasoning == {"summary": "Short because it is a reminder"}


def test_analyze_intent_top_level_list_reply(fake_llm):
    spec = analyze_intent("launch email pls", "comms", fake_llm([{"intent": "x"}]))
    assert spec.output_type == "comms"
    assert spec.intent.primary_goal == "launch email pls"


def test_analysis_prompt_includes_notes(fake_llm):
    llm = fake_llm(ANALYSIS)
    run_analysis_only("launch email", "comms", llm, notes="mention the discount")
    assert "mention the discount" in llm.calls[0]["user"]
    assert llm.calls[0]["system"] == ANALYZER_SYSTEM


# ------------------ generator ------------------

def test_type_specific_instructions():
    text = type_specific_instructions("code", {"language": "python", "include_tests": True})
    assert "- Use python" in text
    assert "- Include test cases" in text
    assert type_specific_instructions("unknown", {}) == ""


def test_type_specific_instructions_accept_bare_strings():
    doc = type_specific_instructions("doc", {"section_structure": "intro, body"})
    assert "- Include sections: intro, body" in doc

    comms = type_specific_instructions("comms", {"action_items": "reply by Friday"})
    assert "- Include action items: reply by Friday" in comms

    assert "For this document:" in type_specific_instructions("doc", "not a mapping")


def test_deck_instructions_follow_deck_type():
    text = type_specific_instructions("deck", {"deck_type": "investor", "slide_count": "12"})
    assert "For this slide deck (Investor Pitch):" in text
    assert "- Target 12 slides" in text
    assert "Market Opportunity (TAM/SAM/SOM)" in text
    assert "Lead with traction" in text
    assert "| # | Title | Key Message |" in text


def test_deck_instructions_without_count_use_type_range():
    text = type_specific_instructions("deck", {"deck_type": "board", "slide_count": "lots"})
    assert "- Target 10-15 slides" in text

    default = type_specific_instructions("deck", {})
    assert "(Internal Meeting)" in default
    assert "- Target 6-10 slides" in default


def test_generate_prompt_sends_deck_structure(fake_llm):
    spec = merge_spec(create_spec("deck"), {
        "intent": {"primary_goal": "Raise a seed round"},
        "type_specific": {"deck_type": "investor"},
    })
    llm = fake_llm(GENERATION)
    generate_prompt(spec, llm)
    assert "The Ask (amount, use of funds)" in llm.calls[0]["user"]


def test_parse_generation_response_string_key_elements():
    parsed = parse_generation_response({"expanded_prompt": "Do it", "key_elements": "one thing"})
    assert parsed["key_elements"] == ["one thing"]


def test_parse_generation_response_raw_text_fallback():
    parsed = parse_generation_response("Just write the email.")
    assert parsed == {
        "expanded_prompt": "Just write the email.",
        "structure_summary": "Unable to parse structure",
        "key_elements": [],
    }


def test_generate_prompt(fake_llm):
    spec = merge_spec(create_spec("comms"), {"intent": {"primary_goal": "Announce launch"}})
    llm = fake_llm(GENERATION)
    result = generate_prompt(spec, llm)

    assert result == GENERATION
    assert "Announce launch" in llm.calls[0]["user"]
    assert "- Channel: email" in llm.calls[0]["user"]


def test_generate_prompt_llm_error(fake_llm):
    with pytest.raises(GenerationError):
        run_generation_only(create_spec("doc"), fake_llm(RuntimeError("down")))


# ------------------ pipeline ------------------

def test_apply_overrides():
    spec = create_spec("doc")
    out = apply_overrides(spec, {
        "tone": "casual",
        "format": "bullets",
        "length": "long",
        "constraints": {"forbidden": ["jargon"]},
        "audience": {"primary": "interns"},
        "type_specific": {"include_toc": True},
    })

    assert out.inferred.tone == "casual"
    assert out.inferred.format == "bullets"
    assert out.constraints.length == "long"
    assert out.constraints.forbidden == ["jargon"]
    assert out.audience.primary == "interns"
    assert out.type_specific["include_toc"] is True
    assert apply_overrides(spec, None) is spec


def test_run_pipeline_end_to_end():
    llm = routed({ANALYZER_SYSTEM: ANALYSIS, GENERATOR_SYSTEM: GENERATION, ASSESSOR_SYSTEM: _assessment(8)})
    result = run_pipeline("launch email pls", "comms", llm, overrides={"tone": "executive"})

    assert isinstance(result, PipelineResult)
    assert llm.calls == [ANALYZER_SYSTEM, GENERATOR_SYSTEM, ASSESSOR_SYSTEM]
    assert result.spec.inferred.tone == "executive"
    assert result.expanded_prompt == GENERATION["expanded_prompt"]
    assert result.key_elements == ["launch date", "call to action"]
    assert result.reasoning == {"tone": "customer-facing"}
    assert result.validation.valid
    assert result.quality.overall_score == 80
    assert result.quality.quick_check is False
    assert result.to_dict()["quality"]["overall_score"] == 80


def test_run_pipeline_with_existing_spec_skips_analysis():
    spec = merge_spec(create_spec("doc"), {"intent": {"primary_goal": "Quarterly report"}})
    llm = routed({GENERATOR_SYSTEM: GENERATION})
    result = run_pipeline("ignored", "doc", llm, existing_spec=spec, assess=False)

    assert llm.calls == [GENERATOR_SYSTEM]
    assert result.quality is None
    assert result.spec.intent.primary_goal == "Quarterly report"


def test_run_pipeline_falls_back_to_heuristic_quality():
    llm = routed({ANALYZER_SYSTEM: ANALYSIS, GENERATOR_SYSTEM: GENERATION, ASSESSOR_SYSTEM: RuntimeError("429")})
    result = run_pipeline("launch email pls", "comms", llm)
    assert result.quality.quick_check is True
    assert 30 <= result.quality.overall_score <= 95


def test_run_pipeline_applies_preferences():
    llm = routed({ANALYZER_SYSTEM: ANALYSIS, GENERATOR_SYSTEM: GENERATION})
    prefs = {"common_issues": ["More specific"], "successful_settings": {}, "type_preferences": {}}
    result = run_pipeline("launch email pls", "comms", llm, preferences=prefs, assess=False)
    assert any("too vague" in a for a in result.spec.quality.anti_patterns)


def test_run_pipeline_string_reasoning_and_slide_count():
    analysis = {
        "intent": {"primary_goal": "Quarterly board update"},
        "recommended_settings": {"tone": "executive", "reasoning": "Board members skim"},
        "type_specific_suggestions": {"slide_count": "12", "deck_type": "board"},
    }
    llm = routed({ANALYZER_SYSTEM: analysis, GENERATOR_SYSTEM: GENERATION})
    result = run_pipeline("board deck", "deck", llm, assess=False)

    assert result.reasoning == {"summary": "Board members skim"}
    assert result.validation.valid
    assert result.validation.warnings == []


def test_run_pipeline_bad_slide_count_is_a_warning():
    analysis = {
        "intent": {"primary_goal": "Quarterly board update"},
        "type_specific_suggestions": {"slide_count": "a dozen or so"},
    }
    llm = routed({ANALYZER_SYSTEM: analysis, GENERATOR_SYSTEM: GENERATION})
    result = run_pipeline("board deck", "deck", llm, assess=False)

    assert result.validation.valid
    assert any("a dozen or so" in w for w in result.validation.warnings)
