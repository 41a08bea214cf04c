"""outcomes.py

Outcome feedback for generated prompts, and the per-user preferences learned
from it. Outcomes are append-only; preferences are a small JSON document per
user.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional

import db
from logger import get_logger
from prompt_spec import PromptSpec, merge_spec

logger = get_logger(__name__)

RATINGS = ("positive", "negative")

OUTCOME_OPTIONS = [
    {"id": "used_as_is", "label": "Used as-is"},
    {"id": "small_edits", "label": "Small edits"},
    {"id": "major_edits", "label": "Major edits"},
    {"id": "abandoned", "label": "Didn't use"},
]

EDIT_OPTIONS = [
    "More specific",
    "Different tone",
    "Shorter",
    "Longer",
    "Different structure",
    "Missing context",
    "Too complex",
    "Too simple",
]

MAX_COMMON_ISSUES = 20

_OUTCOME_IDS = {o["id"] for o in OUTCOME_OPTIONS}


def _empty_stats() -> Dict[str, Any]:
    return {
        "total": 0,
        "positive_rate": 0.0,
        "used_as_is_rate": 0.0,
        "common_edits": [],
        "by_output_type": {},
    }


def default_preferences() -> Dict[str, Any]:
    return {"successful_settings": {}, "common_issues": [], "type_preferences": {}}


def settings_key(spec: PromptSpec) -> str:
    return ":".join([
        spec.output_type or "unknown",
        spec.inferred.tone or "default",
        spec.inferred.format or "default",
    ])


# ------------------ Outcome records ------------------

def record_outcome(
    user_id: str,
    prompt_id: str,
    spec: PromptSpec,
    rating: str,
    outcome: str,
    edits_needed: Optional[List[str]] = None,
    feedback: str = "",
) -> int:
    if not user_id:
        raise ValueError("user_id is required to record an outcome")
    if rating not in RATINGS:
        raise ValueError(f"Invalid rating: {rating}")
    if outcome not in _OUTCOME_IDS:
        raise ValueError(f"Invalid outcome: {outcome}")

    outcome_id = db.save_outcome(
        user_id=user_id,
        prompt_id=prompt_id,
        output_type=spec.output_type,
        rating=rating,
        outcome=outcome,
        edits_needed=list(edits_needed or []),
        feedback=feedback,
        spec=spec.to_dict(),
    )
    learn_from_outcome(user_id, spec, rating, outcome, edits_needed or [])
    return outcome_id


def get_outcome_stats(user_id: str) -> Dict[str, Any]:
    outcomes = db.fetch_outcomes(user_id)
    if not outcomes:
        return _empty_stats()

    total = len(outcomes)
    positive = sum(1 for o in outcomes if o["rating"] == "positive")
    used_as_is = sum(1 for o in outcomes if o["outcome"] == "used_as_is")

    edit_counts: Dict[str, int] = {}
    by_type: Dict[str, Dict[str, int]] = {}
    for o in outcomes:
        for edit in o["edits_needed"]:
            edit_counts[edit] = edit_counts.get(edit, 0) + 1
        bucket = by_type.setdefault(o["output_type"] or "unknown", {"total": 0, "positive": 0, "used_as_is": 0})
        bucket["total"] += 1
        if o["rating"] == "positive":
            bucket["positive"] += 1
        if o["outcome"] == "used_as_is":
            bucket["used_as_is"] += 1

    common = sorted(edit_counts.items(), key=lambda kv: kv[1], reverse=True)[:5]

    return {
        "total": total,
        "positive_rate": positive / total,
        "used_as_is_rate": used_as_is / total,
        "common_edits": [{"edit": e, "count": c} for e, c in common],
        "by_output_type": by_type,
    }


def get_recent_outcomes(user_id: str, count: int = 10) -> List[Dict[str, Any]]:
    return db.fetch_outcomes(user_id, limit=count)


# ------------------ Preferences ------------------

def get_preferences(user_id: str) -> Dict[str, Any]:
    if not user_id:
        return default_preferences()
    return db.fetch_preferences(user_id) or default_preferences()


def learn_from_outcome(
    user_id: str,
    spec: PromptSpec,
    rating: str,
    outcome: str,
    edits_needed: List[str],
) -> Dict[str, Any]:
    """Reinforce settings that worked and remember what needed fixing."""
    prefs = get_preferences(user_id)

    if rating == "positive" and outcome == "used_as_is":
        key = settings_key(spec)
        successful = prefs.setdefault("successful_settings", {})
        successful[key] = successful.get(key, 0) + 1

        type_prefs = prefs.setdefault("type_preferences", {}).setdefault(spec.output_type, {})
        type_prefs["success_count"] = type_prefs.get("success_count", 0) + 1

    if rating == "negative":
        issues = prefs.setdefault("common_issues", [])
        for issue in edits_needed:
            if issue not in issues:
                issues.append(issue)
        prefs["common_issues"] = issues[-MAX_COMMON_ISSUES:]

    db.save_preferences(user_id, prefs)
    return prefs


def apply_preferences(spec: PromptSpec, prefs: Optional[Dict[str, Any]]) -> PromptSpec:
    if not prefs:
        return spec

    issues = prefs.get("common_issues") or []
    anti_patterns = copy.copy(spec.quality.anti_patterns)
    if "More specific" in issues:
        anti_patterns.append("Being too vague (based on your history, you often need more specificity)")
    if "Different tone" in issues:
        anti_patterns.append("Mismatched tone (consider your past preferences)")

    updates: Dict[str, Any] = {}
    if anti_patterns != spec.quality.anti_patterns:
        updates["quality"] = {"anti_patterns": anti_patterns}

    count = (prefs.get("successful_settings") or {}).get(settings_key(spec), 0)
    if count >= 2:
        updates["inferred"] = {
            "reasoning": {"history": f"These settings have worked well for you {count} times before"},
        }

    return merge_spec(spec, updates) if updates else spec


def get_preference_suggestions(prefs: Optional[Dict[str, Any]], output_type: str) -> Dict[str, List[str]]:
    suggestions: List[str] = []
    warnings: List[str] = []
    if not prefs:
        return {"suggestions": suggestions, "warnings": warnings}

    success_count = ((prefs.get("type_preferences") or {}).get(output_type) or {}).get("success_count", 0)
    if success_count >= 3:
        suggestions.append(f"You've had {success_count} successful prompts of this type")

    issues = prefs.get("common_issues") or []
    if issues:
        warnings.append(f"Watch out for: {', '.join(issues[:3])}")

    return {"suggestions": suggestions, "warnings": warnings}
