"""judge.py

LLM-as-judge + heuristic (rule-based) quality checks for generated prompts.

Rubric assessment keeps a stable JSON shape so it can be logged and compared:

{
  "overall_score": 0-100,
  "interpretation": {"label": "...", "color": "...", "description": "..."},
  "dimensions": {"structure": {"score": 1-10, "feedback": "..."}, ...},
  "strengths": ["..."],
  "improvements": ["..."]
}
"""

from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from llm_client import generate_json, safe_json_load
from logger import get_logger
from prompt_spec import PromptSpec
from prompts import (
    ASSESSOR_SYSTEM,
    OUTPUT_JUDGE_SYSTEM,
    assessment_prompt,
    output_judge_prompt,
)
from rubrics import Dimension, calculate_overall_score, get_rubric, interpret_score

logger = get_logger(__name__)


class QualityAssessmentError(RuntimeError):
    pass


@dataclass
class QualityResult:
    overall_score: int
    interpretation: Dict[str, str]
    dimensions: Dict[str, Dict[str, Any]]
    strengths: List[str] = field(default_factory=list)
    improvements: List[str] = field(default_factory=list)
    quick_check: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ------------------ Rubric assessment (LLM) ------------------

def _rubric_lines(rubric: Mapping[str, Dimension]) -> str:
    return "\n".join(
        f"- {key} / {d.name} ({round(d.weight * 100)}%): {d.description}\n  Criteria: {'; '.join(d.criteria)}"
        for key, d in rubric.items()
    )


def _clamp_1_10(x: Any) -> int:
    try:
        v = float(x)
    except (TypeError, ValueError):
        return 5
    if v != v:
        return 5
    return int(max(1, min(10, round(v))))


def parse_assessment(response: Any, rubric: Mapping[str, Dimension]) -> Dict[str, Any]:
    """Normalize an assessment reply. Parse failures give neutral 5s."""
    if isinstance(response, dict):
        data = response
    else:
        data = safe_json_load(response if isinstance(response, str) else json.dumps(response))

    dims_in = data.get("dimensions") if isinstance(data, dict) else None
    if data.get("error") or not isinstance(dims_in, dict):
        logger.warning("Failed to parse assessment response: %s", data.get("error") or "missing dimensions")
        return {
            "dimensions": {k: {"score": 5, "feedback": "Unable to assess"} for k in rubric},
            "strengths": [],
            "improvements": ["Assessment parsing failed - please try again"],
        }

    dimensions = {}
    for key in rubric:
        dim = dims_in.get(key) if isinstance(dims_in.get(key), dict) else {}
        dimensions[key] = {
            "score": _clamp_1_10(dim.get("score", 5)),
            "feedback": dim.get("feedback") or "No feedback provided",
        }

    return {
        "dimensions": dimensions,
        "strengths": list(data.get("strengths") or []),
        "improvements": list(data.get("improvements") or []),
    }


def assess_quality(blueprint: str, spec: PromptSpec, call_llm: Callable[[str, str], Any]) -> QualityResult:
    rubric = get_rubric(spec.output_type)
    prompt = assessment_prompt(blueprint, spec.to_dict(), _rubric_lines(rubric), next(iter(rubric)))

    try:
        response = call_llm(prompt, ASSESSOR_SYSTEM)
    except Exception as e:
        logger.error("Quality assessment failed: %s", e)
        raise QualityAssessmentError(f"Quality assessment failed: {e}") from e

    parsed = parse_assessment(response, rubric)
    scores = {k: d["score"] for k, d in parsed["dimensions"].items()}
    overall = calculate_overall_score(scores, rubric)

    return QualityResult(
        overall_score=overall,
        interpretation=interpret_score(overall),
        dimensions=parsed["dimensions"],
        strengths=parsed["strengths"],
        improvements=parsed["improvements"],
    )


# ------------------ Heuristic check (no LLM) ------------------

_HEADING_RE = re.compile(r"^#+\s", re.MULTILINE)
_CAPS_LABEL_RE = re.compile(r"\n\n[A-Z][^a-z\n]*:")
VAGUE_TERMS = ["things", "stuff", "etc", "various", "some", "many"]


def quick_quality_check(blueprint: str, spec: PromptSpec) -> QualityResult:
    """Deterministic, surface-signal based check.

    Not semantic: a fast baseline and the fallback when the LLM assessor fails.
    """
    text = (blueprint or "").strip()
    lower = text.lower()
    issues: List[str] = []
    strengths: List[str] = []

    word_count = len(text.split())
    if word_count < 50:
        issues.append("Prompt may be too short to be comprehensive")
    elif word_count > 2000:
        issues.append("Prompt may be too long - consider condensing")
    else:
        strengths.append("Good prompt length")

    has_headings = bool(_HEADING_RE.search(text) or _CAPS_LABEL_RE.search(text))
    if has_headings:
        strengths.append("Has clear structure with sections")
    elif word_count > 200:
        issues.append("Consider adding section headings for clarity")

    vague_count = sum(1 for term in VAGUE_TERMS if re.search(rf"\b{term}\b", lower))
    if vague_count > 2:
        issues.append("Contains vague terms - be more specific")

    goal = (spec.intent.primary_goal or "").lower()
    goal_words = goal.split()
    if goal_words:
        matched = sum(1 for w in goal_words if len(w) > 3 and w in lower)
        if matched / len(goal_words) < 0.3:
            issues.append("Prompt may not fully address the stated goal")

    score = max(30, min(95, 70 - 10 * len(issues) + 5 * len(strengths)))

    if word_count < 50:
        completeness = {"score": 4, "feedback": "May be too brief to cover all aspects"}
    elif word_count > 2000:
        completeness = {"score": 6, "feedback": "Very comprehensive but consider condensing"}
    else:
        completeness = {"score": 8, "feedback": "Good coverage of the topic"}

    dimensions = {
        "structure": {
            "score": 8 if has_headings else (5 if word_count > 200 else 7),
            "feedback": "Good use of sections and structure" if has_headings
            else "Consider adding section headings for clarity",
        },
        "specificity": {
            "score": 5 if vague_count > 2 else (7 if vague_count else 8),
            "feedback": "Contains vague terms that could be more specific" if vague_count > 2
            else "Good level of specificity",
        },
        "completeness": completeness,
    }

    return QualityResult(
        overall_score=score,
        interpretation=interpret_score(score),
        dimensions=dimensions,
        strengths=strengths,
        improvements=issues,
        quick_check=True,
    )


# ------------------ Executor-output judge ------------------

def judge_output(
    request: str,
    blueprint: str,
    output: str,
    *,
    output_type: Mapping[str, str],
    tone: Mapping[str, str],
    length: Mapping[str, str],
    fmt: Mapping[str, str],
    call_judge: Callable[[str, str], Any],
    baselines: Optional[Sequence[Mapping[str, Any]]] = None,
) -> Dict[str, Any]:
    """Score an executed blueprint 1-10. Errors come back as score 0.

    `baselines` are reference outputs with known scores; when given, the judge
    is asked to anchor its score to them.
    """
    user = output_judge_prompt(request, output_type, tone, length, fmt, blueprint, output, baselines)
    try:
        data = generate_json(call_judge, OUTPUT_JUDGE_SYSTEM, user)
    except Exception as e:
        logger.error("Judge call failed: %s", e)
        return {"score": 0, "critique": f"Judge error: {e}"}

    if data.get("error"):
        return {"score": 0, "critique": f"Judge error: {data['error']}"}

    try:
        score = int(data.get("score") or 0)
    except (TypeError, ValueError):
        score = 0
    return {"score": max(0, min(10, score)), "critique": data.get("critique") or ""}
