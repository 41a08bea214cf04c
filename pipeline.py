from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from analyzer import analyze_intent
from generator import generate_prompt
from judge import QualityAssessmentError, QualityResult, assess_quality, quick_quality_check
from logger import get_logger
from outcomes import apply_preferences
from prompt_spec import PromptSpec, ValidationResult, merge_spec, validate_spec

logger = get_logger(__name__)

_PASSTHROUGH_SECTIONS = ("intent", "audience", "context", "quality")


@dataclass
class PipelineResult:
    spec: PromptSpec
    expanded_prompt: str
    structure: str
    key_elements: List[str]
    validation: ValidationResult
    # dataclasses require non-default fields before default fields
    reasoning: Dict[str, str] = field(default_factory=dict)
    quality: Optional[QualityResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "spec": self.spec.to_dict(),
            "expanded_prompt": self.expanded_prompt,
            "structure": self.structure,
            "key_elements": list(self.key_elements),
            "reasoning": dict(self.reasoning),
            "quality": self.quality.to_dict() if self.quality else None,
            "validation": {
                "valid": self.validation.valid,
                "errors": list(self.validation.errors),
                "warnings": list(self.validation.warnings),
            },
        }


def apply_overrides(spec: PromptSpec, overrides: Optional[Dict[str, Any]]) -> PromptSpec:
    """Apply the user's explicit choices on top of the inferred spec.

    tone/format land in `inferred`, length in `constraints`; whole sections
    (intent, audience, context, constraints, quality, type_specific) pass through.
    """
    if not overrides:
        return spec

    updates: Dict[str, Any] = {}
    inferred = {k: overrides[k] for k in ("tone", "format") if overrides.get(k)}
    if inferred:
        updates["inferred"] = inferred
    if overrides.get("length"):
        updates["constraints"] = {"length": overrides["length"]}
    if overrides.get("type_specific"):
        updates["type_specific"] = overrides["type_specific"]

    for name in _PASSTHROUGH_SECTIONS:
        if overrides.get(name):
            updates[name] = overrides[name]
    if overrides.get("constraints"):
        updates["constraints"] = {**updates.get("constraints", {}), **overrides["constraints"]}

    return merge_spec(spec, updates)


def _reasoning_dict(reasoning: Any) -> Dict[str, str]:
    if isinstance(reasoning, Mapping):
        return {str(k): str(v) for k, v in reasoning.items()}
    if isinstance(reasoning, str) and reasoning.strip():
        return {"summary": reasoning}
    return {}


def _assess(expanded_prompt: str, spec: PromptSpec, call_llm: Callable[[str, str], Any]) -> QualityResult:
    try:
        return assess_quality(expanded_prompt, spec, call_llm)
    except QualityAssessmentError as e:
        logger.warning("Falling back to heuristic quality check: %s", e)
        return quick_quality_check(expanded_prompt, spec)


def run_pipeline(
    user_input: str,
    output_type: str,
    call_llm: Callable[[str, str], Any],
    *,
    notes: str = "",
    existing_spec: Optional[PromptSpec] = None,
    overrides: Optional[Dict[str, Any]] = None,
    preferences: Optional[Dict[str, Any]] = None,
    assess: bool = True,
) -> PipelineResult:
    """Analyze -> override -> validate -> generate -> assess.

    Passing `existing_spec` skips analysis. Validation problems are logged but
    do not stop generation; most of them are recoverable by the generator.
    Generation errors propagate as GenerationError.
    """
    if existing_spec is not None:
        spec = existing_spec
    else:
        spec = analyze_intent(user_input, output_type, call_llm, notes=notes)

    spec = apply_overrides(spec, overrides)
    spec = apply_preferences(spec, preferences)

    validation = validate_spec(spec)
    if not validation.valid:
        logger.warning("Spec validation issues: %s", "; ".join(validation.errors))

    generation = generate_prompt(spec, call_llm)
    expanded = generation["expanded_prompt"]

    quality = _assess(expanded, spec, call_llm) if assess and expanded else None

    return PipelineResult(
        spec=spec,
        expanded_prompt=expanded,
        structure=generation["structure_summary"],
        key_elements=generation["key_elements"],
        validation=validation,
        reasoning=_reasoning_dict(spec.inferred.reasoning),
        quality=quality,
    )


def run_analysis_only(user_input: str, output_type: str, call_llm: Callable[[str, str], Any],
                      notes: str = "") -> PromptSpec:
    return analyze_intent(user_input, output_type, call_llm, notes=notes)


def run_generation_only(spec: PromptSpec, call_llm: Callable[[str, str], Any]) -> Dict[str, Any]:
    return generate_prompt(spec, call_llm)
