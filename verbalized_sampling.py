"""verbalized_sampling.py

Verbalized Sampling (VS): ask the model for several candidate responses in one
call, each with a self-reported probability of being the "typical" answer, then
parse and rank them.

The diversity slider (0-100) maps onto five probability thresholds. Lower
thresholds push the model further into the tail of its distribution.

Parsed options look like:

{
  "id": 1,
  "text": "...",
  "probability": 0.42,
  "reasoning": "...",
  "approach": "ROI Focus",
  "label": {"label": "Safe Bet", "description": "...", "color": "green"}
}
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from llm_client import strip_code_fences
from logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class DiversityLevel:
    id: str
    label: str
    slider_position: int
    description: str
    probability_threshold: float
    candidate_count: int
    temperature: float


DIVERSITY_LEVELS: Dict[str, DiversityLevel] = {
    "safe": DiversityLevel(
        "safe", "Safe", 0,
        "Full distribution (p=1.0): typical, expected responses included",
        1.0, 5, 0.7,
    ),
    "balanced": DiversityLevel(
        "balanced", "Balanced", 25,
        "Most obvious answer excluded (p<0.50): mix of typical and alternative",
        0.50, 5, 0.75,
    ),
    "diverse": DiversityLevel(
        "diverse", "Diverse", 50,
        "Typical answers excluded (p<0.10): mostly alternative approaches",
        0.10, 5, 0.8,
    ),
    "creative": DiversityLevel(
        "creative", "Creative", 75,
        "Novel angles only (p<0.05)",
        0.05, 5, 0.85,
    ),
    "wild": DiversityLevel(
        "wild", "Wild", 100,
        "Extreme tail only (p<0.01): highly unconventional options",
        0.01, 5, 0.9,
    ),
}

DIVERSITY_LEVELS_ORDERED: List[DiversityLevel] = sorted(
    DIVERSITY_LEVELS.values(), key=lambda lvl: lvl.slider_position
)

DEFAULT_LEVEL = "balanced"

OPTION_LABELS = {
    "high": {"label": "Safe Bet", "description": "Standard approach most would expect", "color": "green"},
    "medium": {"label": "Alternative Angle", "description": "Different but reasonable approach", "color": "yellow"},
    "low": {"label": "Creative / Out of Box", "description": "Novel framing from the distribution tail", "color": "purple"},
}

OUTPUT_TYPE_DESCRIPTIONS = {
    "doc": "document or written content",
    "deck": "presentation or deck",
    "data": "data analysis or research",
    "code": "technical documentation or code",
    "copy": "marketing or creative copy",
    "comms": "business communication",
}


def level_for_slider(position: float) -> DiversityLevel:
    """Snap a 0-100 slider position to the nearest diversity level."""
    step = 100 / (len(DIVERSITY_LEVELS_ORDERED) - 1)
    pos = min(100.0, max(0.0, float(position)))
    idx = int(pos / step + 0.5)
    return DIVERSITY_LEVELS_ORDERED[idx]


def get_level(level_id: Optional[str]) -> DiversityLevel:
    level = DIVERSITY_LEVELS.get(level_id or "")
    if level is None:
        logger.warning("Unknown diversity level %r, using %s", level_id, DEFAULT_LEVEL)
        return DIVERSITY_LEVELS[DEFAULT_LEVEL]
    return level


def get_option_label(probability: float) -> Dict[str, str]:
    if probability >= 0.3:
        return OPTION_LABELS["high"]
    if probability >= 0.15:
        return OPTION_LABELS["medium"]
    return OPTION_LABELS["low"]


# ------------------ Prompt templating ------------------

def build_vs_system_prompt(tone: str, output_type: str) -> str:
    output_desc = OUTPUT_TYPE_DESCRIPTIONS.get(output_type, "content")
    return (
        f"You write {output_desc} and you write it in a {tone} tone.\n"
        "You will produce several variations of the same piece. Each one must take "
        "its own angle or framing rather than rewording another."
    )


def _threshold_instruction(p: float) -> str:
    if p >= 1.0:
        return (
            "Draw from the whole distribution (p=1.0): include the typical, "
            "high-probability answer alongside a few less likely alternatives."
        )
    if p >= 0.50:
        return (
            f"Only include responses with probability below {p} (p<{p}). Leave out "
            "the single most expected answer; keep the alternatives reasonable."
        )
    if p >= 0.10:
        return (
            f"Only include responses with probability below {p} (p<{p}). Skip the "
            "typical answers entirely and favour approaches few people would reach for first."
        )
    if p >= 0.05:
        return (
            f"Only include responses with probability below {p} (p<{p}). Aim for "
            "novel angles the reader is unlikely to have considered."
        )
    return (
        f"Only include responses from the far tail, probability below {p} (p<{p}). "
        "Be unconventional and experimental."
    )


def build_vs_user_prompt(prompt: str, level: DiversityLevel) -> str:
    return f"""Write {level.candidate_count} distinct variations of a response to the prompt below.

---
{prompt}
---

Rules:
1. Reply with strict JSON only.
2. Every option carries:
   - "text": the full response
   - "probability": 0.0-1.0, how typical the response is (1.0 = the most expected answer)
   - "reasoning": one or two sentences on the angle taken
   - "approach": a 2-4 word name for the approach
3. {_threshold_instruction(level.probability_threshold)}
4. Vary framing, structure, emphasis, examples or call to action between options.

Schema:
{{
  "options": [
    {{"text": "...", "probability": 0.0, "reasoning": "...", "approach": "..."}}
  ]
}}
"""


# ------------------ Parsing ------------------

def _coerce_probability(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        return 0.5
    try:
        p = float(value)
    except (TypeError, ValueError):
        return 0.5
    if p != p:  # NaN
        return 0.5
    return min(1.0, max(0.0, p))


def _load_options_payload(response: Any) -> Dict[str, Any]:
    if isinstance(response, dict):
        return response

    text = response if isinstance(response, str) else json.dumps(response)
    text = strip_code_fences(text)

    # First balanced object carrying "options" wins; prose or stray braces
    # around it are ignored.
    decoder = json.JSONDecoder()
    first = None
    idx = text.find("{")
    while idx != -1:
        try:
            parsed, end = decoder.raw_decode(text, idx)
        except ValueError:
            idx = text.find("{", idx + 1)
            continue
        if isinstance(parsed, dict):
            if "options" in parsed:
                return parsed
            if first is None:
                first = parsed
        idx = text.find("{", end)

    if first is None:
        raise ValueError("Response is not a JSON object")
    return first


def parse_vs_response(response: Any) -> Dict[str, Any]:
    """Parse a VS reply into ranked options. Never raises."""
    try:
        parsed = _load_options_payload(response)
        raw_options = parsed.get("options")
        if not isinstance(raw_options, list):
            raise ValueError("Response missing options array")

        options = []
        for idx, opt in enumerate(raw_options):
            if not isinstance(opt, dict):
                opt = {"text": str(opt)}
            probability = _coerce_probability(opt.get("probability"))
            options.append({
                "id": idx + 1,
                "text": opt.get("text") or "",
                "probability": probability,
                "reasoning": opt.get("reasoning") or "No reasoning provided",
                "approach": opt.get("approach") or f"Option {idx + 1}",
                "label": get_option_label(probability),
            })

        options.sort(key=lambda o: o["probability"], reverse=True)
        return {"success": True, "options": options}

    except (ValueError, TypeError) as e:
        preview = response[:200] if isinstance(response, str) else response
        logger.warning("Failed to parse Verbalized Sampling response: %s | %r", e, preview)
        return {"success": False, "error": str(e), "options": []}


def run_verbalized_sampling(
    prompt: str,
    tone: str,
    output_type: str,
    diversity_level: str,
    call_llm: Callable[[str, str], Any],
) -> Dict[str, Any]:
    level = get_level(diversity_level)
    system_prompt = build_vs_system_prompt(tone, output_type)
    user_prompt = build_vs_user_prompt(prompt, level)

    config = {
        "diversity_level": level.id,
        "tone": tone,
        "output_type": output_type,
        "candidate_count": level.candidate_count,
    }

    try:
        response = call_llm(user_prompt, system_prompt)
    except Exception as e:
        logger.error("Verbalized Sampling generation failed: %s", e)
        return {"success": False, "error": str(e), "options": [], "config": config}

    parsed = parse_vs_response(response)
    if not parsed["success"]:
        return {**parsed, "config": config}

    return {"success": True, "options": parsed["options"], "config": config}
