from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, Mapping

from constants import get_output_type
from llm_client import generate_json
from logger import get_logger
from prompt_spec import PromptSpec, coerce_str_list, create_spec, merge_spec
from prompts import ANALYZER_SYSTEM, analysis_prompt

logger = get_logger(__name__)


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


# The analysis is model output: every field may have the wrong type.

def _section(analysis: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = analysis.get(key)
    return value if isinstance(value, Mapping) else {}


def _text(value: Any, default: str = "") -> str:
    if isinstance(value, str) and value.strip():
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return default


def _reasoning(value: Any) -> Dict[str, str]:
    if isinstance(value, Mapping):
        return {str(k): str(v) for k, v in value.items() if v is not None}
    if isinstance(value, str) and value.strip():
        return {"summary": value}
    return {}


def basic_spec(user_input: str, output_type: str) -> PromptSpec:
    return merge_spec(create_spec(output_type), {
        "generated_at": _now(),
        "intent": {"primary_goal": user_input},
    })


def spec_from_analysis(analysis: Mapping[str, Any], user_input: str, output_type: str) -> PromptSpec:
    intent = _section(analysis, "intent")
    audience = _section(analysis, "audience")
    context = _section(analysis, "context")
    settings = _section(analysis, "recommended_settings")
    suggestions = _section(analysis, "type_specific_suggestions")

    return merge_spec(create_spec(output_type), {
        "generated_at": _now(),
        "intent": {
            "primary_goal": _text(intent.get("primary_goal"), user_input),
            "success_criteria": coerce_str_list(intent.get("success_criteria")),
            "action_desired": _text(intent.get("action_desired")),
            "urgency": _text(intent.get("urgency"), "normal"),
        },
        "audience": {
            "primary": _text(audience.get("primary")),
            "expertise_level": _text(audience.get("expertise_level"), "general"),
            "relationship": _text(audience.get("relationship"), "neutral"),
            "expectations": coerce_str_list(audience.get("expectations")),
        },
        "context": {
            "setting": _text(context.get("setting")),
            "prior_knowledge": coerce_str_list(context.get("prior_knowledge")),
        },
        "type_specific": dict(suggestions),
        "inferred": {
            "tone": _text(settings.get("tone"), "professional"),
            "format": _text(settings.get("format"), "paragraph"),
            "length": _text(settings.get("length"), "medium"),
            "reasoning": _reasoning(settings.get("reasoning")),
        },
    })


def analyze_intent(
    user_input: str,
    output_type: str,
    call_llm: Callable[[str, str], Any],
    notes: str = "",
) -> PromptSpec:
    """Ask the LLM to read the request and infer a PromptSpec.

    Any failure falls back to a default spec whose primary goal is the raw input.
    """
    prompt = analysis_prompt(user_input, get_output_type(output_type), notes)

    try:
        analysis = generate_json(call_llm, ANALYZER_SYSTEM, prompt)
    except Exception as e:
        logger.error("Intent analysis failed: %s", e)
        analysis = {"error": str(e)}

    if not isinstance(analysis, Mapping) or analysis.get("error"):
        error = analysis.get("error") if isinstance(analysis, Mapping) else "not a JSON object"
        logger.warning("Falling back to a basic spec: %s", error)
        return basic_spec(user_input, output_type)

    try:
        return spec_from_analysis(analysis, user_input, output_type)
    except (TypeError, ValueError, AttributeError) as e:
        logger.warning("Could not build a spec from the analysis, using a basic spec: %s", e)
        return basic_spec(user_input, output_type)
