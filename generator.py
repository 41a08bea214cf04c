from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Mapping

from deck_templates import SLIDE_FORMAT, get_deck_type
from llm_client import safe_json_load
from logger import get_logger
from prompt_spec import PromptSpec, coerce_int, coerce_str_list
from prompts import GENERATOR_SYSTEM, generation_prompt

logger = get_logger(__name__)


class GenerationError(RuntimeError):
    pass


def _deck(ts: Mapping[str, Any]) -> List[str]:
    deck_type = get_deck_type(ts.get("deck_type"))
    parts = [f"For this slide deck ({deck_type.label}):"]
    slide_count = coerce_int(ts.get("slide_count"))
    if slide_count and slide_count > 0:
        parts.append(f"- Target {slide_count} slides")
    else:
        parts.append(f"- Target {deck_type.slide_range} slides")
    if ts.get("duration_minutes"):
        parts.append(f"- Designed for a {ts['duration_minutes']} minute presentation")
    if ts.get("include_speaker_notes"):
        parts.append("- Include speaker notes for each slide")
    if ts.get("include_visual_suggestions"):
        parts.append("- Include a visual suggestion for each slide")
    parts.append("- Each slide has a title, 3-5 key points, a visual suggestion and speaker notes")
    parts.append("- Suggested structure:")
    parts.extend(f"  {i}. {slide}" for i, slide in enumerate(deck_type.structure, 1))
    parts.append(f"- Focus: {deck_type.focus}")
    parts.append(f"- Lay the outline out as a table: {SLIDE_FORMAT}")
    return parts


def _code(ts: Mapping[str, Any]) -> List[str]:
    parts = ["For this code output:"]
    if ts.get("language"):
        parts.append(f"- Use {ts['language']}")
    if ts.get("framework"):
        parts.append(f"- Use the {ts['framework']} framework")
    if ts.get("include_tests"):
        parts.append("- Include test cases")
    if ts.get("include_comments"):
        parts.append("- Include inline comments")
    parts.append(f"- Error handling level: {ts.get('error_handling') or 'standard'}")
    return parts


def _doc(ts: Mapping[str, Any]) -> List[str]:
    parts = ["For this document:"]
    if ts.get("document_type"):
        parts.append(f"- Document type: {ts['document_type']}")
    sections = coerce_str_list(ts.get("section_structure"))
    if sections:
        parts.append(f"- Include sections: {', '.join(sections)}")
    if ts.get("include_executive_summary"):
        parts.append("- Open with an executive summary")
    if ts.get("include_toc"):
        parts.append("- Include a table of contents")
    return parts


def _data(ts: Mapping[str, Any]) -> List[str]:
    parts = ["For this data output:", f"- Output format: {ts.get('output_format') or 'table'}"]
    if ts.get("include_headers"):
        parts.append("- Include column headers")
    if ts.get("include_descriptions"):
        parts.append("- Include field descriptions")
    return parts


def _copy(ts: Mapping[str, Any]) -> List[str]:
    parts = ["For this marketing copy:"]
    if ts.get("copy_type"):
        parts.append(f"- Copy type: {ts['copy_type']}")
    if ts.get("emotional_appeal"):
        parts.append(f"- Primary emotional appeal: {ts['emotional_appeal']}")
    if ts.get("cta_type"):
        parts.append(f"- Call to action: {ts['cta_type']}")
    return parts


def _comms(ts: Mapping[str, Any]) -> List[str]:
    parts = [
        "For this communication:",
        f"- Channel: {ts.get('channel') or 'email'}",
        f"- Formality: {ts.get('formality_level') or 'professional'}",
    ]
    action_items = coerce_str_list(ts.get("action_items"))
    if action_items:
        parts.append(f"- Include action items: {', '.join(action_items)}")
    if ts.get("include_greeting"):
        parts.append("- Include an appropriate greeting")
    if ts.get("include_signature"):
        parts.append("- Include a signature block")
    return parts


_TYPE_INSTRUCTIONS = {
    "deck": _deck,
    "code": _code,
    "doc": _doc,
    "data": _data,
    "copy": _copy,
    "comms": _comms,
}


def type_specific_instructions(output_type: str, type_specific: Mapping[str, Any]) -> str:
    build = _TYPE_INSTRUCTIONS.get(output_type)
    ts = type_specific if isinstance(type_specific, Mapping) else {}
    return "\n".join(build(ts)) if build else ""


def parse_generation_response(response: Any) -> Dict[str, Any]:
    """Read the generator's JSON; unparseable text becomes the blueprint itself."""
    if isinstance(response, dict) and response.get("expanded_prompt"):
        data = response
    else:
        raw = response if isinstance(response, str) else json.dumps(response)
        data = safe_json_load(raw)
        if data.get("error") or not data.get("expanded_prompt"):
            logger.warning("Could not parse generation response, using raw text")
            return {
                "expanded_prompt": raw,
                "structure_summary": "Unable to parse structure",
                "key_elements": [],
            }

    return {
        "expanded_prompt": str(data["expanded_prompt"]),
        "structure_summary": data.get("structure_summary") or "",
        "key_elements": coerce_str_list(data.get("key_elements")),
    }


def generate_prompt(spec: PromptSpec, call_llm: Callable[[str, str], Any]) -> Dict[str, Any]:
    spec_dict = spec.to_dict()
    prompt = generation_prompt(spec_dict, type_specific_instructions(spec.output_type, spec.type_specific))

    try:
        response = call_llm(prompt, GENERATOR_SYSTEM)
    except Exception as e:
        logger.error("Prompt generation failed: %s", e)
        raise GenerationError(f"Prompt generation failed: {e}") from e

    return parse_generation_response(response)
