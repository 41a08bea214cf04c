"""rubrics.py

Weighted scoring rubrics for generated prompts.

Dimension scores are on a 1-10 scale; the overall score is the weighted mean
scaled to 0-100.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping


@dataclass(frozen=True)
class Dimension:
    name: str
    weight: float
    description: str
    criteria: List[str] = field(default_factory=list)
    score_guide: Dict[int, str] = field(default_factory=dict)


BASE_RUBRIC: Dict[str, Dimension] = {
    "structure": Dimension(
        name="Structure",
        weight=0.20,
        description="Organization and logical flow",
        criteria=[
            "Sections are clearly organized",
            "Each part leads naturally into the next",
            "Nesting depth suits the content",
        ],
        score_guide={1: "No discernible structure", 5: "Adequate, some flow issues", 7: "Logical flow", 10: "Exemplary organization"},
    ),
    "specificity": Dimension(
        name="Specificity",
        weight=0.25,
        description="Concrete details and clarity",
        criteria=[
            "Concrete wording instead of vague terms",
            "Relevant details and context are included",
            "No boilerplate that would fit any request",
        ],
        score_guide={1: "Entirely generic", 5: "Mix of specific and vague", 7: "Mostly specific", 10: "Precise throughout"},
    ),
    "actionability": Dimension(
        name="Actionability",
        weight=0.25,
        description="Clear instructions and outcomes",
        criteria=[
            "Can be followed without guessing",
            "Requirements are unambiguous",
            "Success is observable or measurable",
        ],
        score_guide={1: "Nothing actionable", 5: "Some ambiguity", 7: "Minor ambiguity", 10: "No ambiguity"},
    ),
    "tone_alignment": Dimension(
        name="Tone Alignment",
        weight=0.15,
        description="Consistency with the requested tone",
        criteria=[
            "Tone stays consistent",
            "Matches the requested tone",
            "Fits the target audience",
        ],
        score_guide={1: "Mismatched tone", 5: "Partially aligned", 7: "Well aligned", 10: "Consistent throughout"},
    ),
    "completeness": Dimension(
        name="Completeness",
        weight=0.15,
        description="All required elements present",
        criteria=[
            "Every element the request asks for is present",
            "No obvious gaps",
            "Covers the whole request",
        ],
        score_guide={1: "Major elements missing", 5: "Some gaps", 7: "Most elements present", 10: "Complete"},
    ),
}

TYPE_RUBRICS: Dict[str, Dict[str, Dimension]] = {
    "deck": {
        "visual_guidance": Dimension(
            name="Visual Guidance",
            weight=0.10,
            description="Quality of visual suggestions",
            criteria=["Suggests visuals per slide", "Slide order is clear", "Speaker notes are useful"],
        ),
    },
    "code": {
        "technical_accuracy": Dimension(
            name="Technical Accuracy",
            weight=0.20,
            description="Correctness of technical requirements",
            criteria=["Correct expectations for the language", "Idiomatic patterns", "Error handling is specified"],
        ),
    },
    "doc": {
        "document_structure": Dimension(
            name="Document Structure",
            weight=0.10,
            description="Organization suited to the document type",
            criteria=["Sections match the document type", "Headings and hierarchy are used well", "Flow fits the purpose"],
        ),
    },
    "copy": {
        "persuasiveness": Dimension(
            name="Persuasiveness",
            weight=0.15,
            description="Effectiveness of persuasive elements",
            criteria=["Clear emotional appeal", "Compelling call to action", "Appropriate urgency"],
        ),
    },
    "comms": {
        "appropriateness": Dimension(
            name="Channel Appropriateness",
            weight=0.10,
            description="Fit for the communication channel",
            criteria=["Length suits the channel", "Formality matches the context", "Action items are clear"],
        ),
    },
    "data": {
        "data_clarity": Dimension(
            name="Data Clarity",
            weight=0.10,
            description="Clarity of data requirements",
            criteria=["Structure is defined", "Field types and formats are given", "Relationships are explained"],
        ),
    },
}

NEUTRAL_SCORE = 5
MIN_SCORE = 1
MAX_SCORE = 10


def get_rubric(output_type: str) -> Dict[str, Dimension]:
    """Base dimensions plus any type-specific ones, weights summing to 1.0."""
    type_dims = TYPE_RUBRICS.get(output_type) or {}
    if not type_dims:
        return dict(BASE_RUBRIC)

    type_weight = sum(d.weight for d in type_dims.values())
    base_scale = 1 - type_weight

    combined = {k: replace(d, weight=d.weight * base_scale) for k, d in BASE_RUBRIC.items()}
    combined.update(type_dims)
    return combined


def _clamp_score(value: Any) -> float:
    if isinstance(value, bool):
        return NEUTRAL_SCORE
    try:
        score = float(value)
    except (TypeError, ValueError):
        return NEUTRAL_SCORE
    if math.isnan(score):
        return NEUTRAL_SCORE
    return min(MAX_SCORE, max(MIN_SCORE, score))


def calculate_overall_score(scores: Mapping[str, Any], rubric: Mapping[str, Dimension]) -> int:
    """Weighted 1-10 mean over the rubric's dimensions, scaled to 0-100.

    Missing or non-numeric scores count as neutral (5). Dimensions outside the
    rubric are ignored.
    """
    total_weight = 0.0
    weighted_sum = 0.0
    for key, dim in rubric.items():
        weighted_sum += _clamp_score(scores.get(key)) * dim.weight
        total_weight += dim.weight

    if total_weight <= 0:
        return 0

    # round half up, not banker's rounding
    return int(math.floor((weighted_sum / total_weight) * 10 + 0.5))


def interpret_score(score: float) -> Dict[str, str]:
    if score >= 90:
        return {"label": "Excellent", "color": "green", "description": "Exceptionally well-crafted prompt"}
    if score >= 80:
        return {"label": "Good", "color": "green", "description": "Well-crafted, minor improvements possible"}
    if score >= 70:
        return {"label": "Solid", "color": "yellow", "description": "Functional but could be improved"}
    if score >= 60:
        return {"label": "Fair", "color": "yellow", "description": "Needs some work to be effective"}
    return {"label": "Needs Work", "color": "red", "description": "Requires significant improvement"}


def rubric_to_dict(rubric: Mapping[str, Dimension]) -> Dict[str, Dict[str, Any]]:
    return {
        key: {"name": d.name, "weight": d.weight, "description": d.description, "criteria": list(d.criteria)}
        for key, d in rubric.items()
    }
