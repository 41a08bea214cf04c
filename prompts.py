"""Prompt templates for promptsmith.

Centralized prompts keep the analysis, generation, judging and matrix
("architect") steps easy to compare and tweak.
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence

# ------------------ Analysis ------------------

ANALYZER_SYSTEM = """You are a prompt analyst.
Work out what the user actually wants and recommend settings for the prompt that will be written for them.
Return ONLY valid JSON."""

TYPE_SPECIFIC_HINTS: Dict[str, str] = {
    "deck": """- slide_count: recommended number of slides
   - duration_minutes: suggested talk length
   - presentation_context: keynote|internal|pitch|training
   - include_speaker_notes: boolean
   - include_visual_suggestions: boolean""",
    "code": """- language: programming language
   - framework: framework if any
   - include_tests: boolean
   - error_handling: minimal|standard|comprehensive""",
    "doc": """- document_type: report|proposal|guide|analysis|whitepaper|memo
   - section_structure: array of sections
   - include_executive_summary: boolean
   - include_toc: boolean""",
    "data": """- output_format: table|json|csv|yaml
   - include_headers: boolean
   - include_descriptions: boolean""",
    "copy": """- copy_type: ad|landing|email|social|press|tagline|product
   - emotional_appeal: fear|aspiration|urgency|trust|curiosity
   - cta_type: suggested call to action
   - word_count: target word count""",
    "comms": """- channel: email|slack|memo|letter
   - formality_level: casual|professional|formal
   - response_urgency: low|normal|high|asap
   - action_items: array of explicit asks""",
}


def analysis_prompt(user_input: str, output_type: Mapping[str, str], notes: str = "") -> str:
    notes_block = f"## Additional Notes\n{notes}\n\n" if notes else ""
    return f"""## User Input
"{user_input}"

{notes_block}## Output Type
{output_type['label']}: {output_type['context']}

Return a JSON object with:

1. "intent": primary_goal (specific), success_criteria (2-3 items), action_desired, urgency (low|normal|high|critical)
2. "audience": primary, expertise_level (novice|general|expert|mixed), relationship (subordinate|peer|superior|customer|public), expectations (2-3 items)
3. "context": setting, prior_knowledge (array)
4. "recommended_settings": tone (professional|creative|academic|casual|instructive), format (paragraph|bullets|numbered|steps|sections|table), length (short|medium|long), reasoning (object with keys tone, format, length)
5. "type_specific_suggestions" for {output_type['id']}:
   {TYPE_SPECIFIC_HINTS.get(output_type['id'], '')}
"""


# ------------------ Generation ------------------

GENERATOR_SYSTEM = """You are a prompt engineer.
Write complete prompts that any capable LLM can run without further context.
Return ONLY valid JSON."""


def _bullets(items: List[str]) -> str:
    return "\n".join(f"- {i}" for i in items)


def generation_prompt(spec: Mapping, type_instructions: str) -> str:
    intent = spec["intent"]
    audience = spec["audience"]
    quality = spec["quality"]

    criteria = _bullets(intent.get("success_criteria") or []) or "- Meets the stated goal effectively"
    requirements = ""
    if quality.get("must_include"):
        requirements += "Must include:\n" + _bullets(quality["must_include"]) + "\n"
    if quality.get("anti_patterns"):
        requirements += "Must avoid:\n" + _bullets(quality["anti_patterns"]) + "\n"

    return f"""## Primary Goal
{intent.get('primary_goal', '')}

## Success Criteria
{criteria}

## Audience
- Primary: {audience.get('primary') or 'General audience'}
- Expertise: {audience.get('expertise_level') or 'general'}
- Expectations: {', '.join(audience.get('expectations') or []) or 'Clear, useful output'}

## Tone & Style
- Tone: {spec['inferred'].get('tone') or 'professional'}
- Format: {spec['inferred'].get('format') or 'paragraph'}
- Length: {spec['constraints'].get('length') or 'medium'}

## Content Requirements
{requirements}
{type_instructions}

Write the prompt so that it targets the goal directly, fits the audience, keeps the tone and format
throughout, covers every required element and has no placeholders.

Return JSON:
{{
  "expanded_prompt": "the full prompt text",
  "structure_summary": "how the prompt is organized",
  "key_elements": ["..."]
}}
"""


# ------------------ Quality assessment ------------------

ASSESSOR_SYSTEM = """You are a strict prompt quality assessor.
Score critically and give specific, actionable feedback. Return ONLY valid JSON."""


def assessment_prompt(blueprint: str, spec: Mapping, rubric_lines: str, first_dimension: str) -> str:
    return f"""## Prompt to Evaluate
\"\"\"
{blueprint}
\"\"\"

## Specification
- Primary Goal: {spec['intent'].get('primary_goal') or 'Not specified'}
- Output Type: {spec.get('output_type')}
- Audience: {spec['audience'].get('primary') or 'General'}
- Tone: {spec['inferred'].get('tone') or 'Not specified'}
- Format: {spec['inferred'].get('format') or 'Not specified'}

## Dimensions
{rubric_lines}

Score each dimension 1-10 (1-3 poor, 4-5 fair, 6-7 good, 8-9 very good, 10 exceptional).

Return JSON:
{{
  "dimensions": {{
    "{first_dimension}": {{"score": 7, "feedback": "..."}}
  }},
  "strengths": ["..."],
  "improvements": ["..."]
}}
Include every dimension listed above.
"""


# ------------------ Executor judge ------------------

OUTPUT_JUDGE_SYSTEM = """You evaluate AI-generated output against the user's original goal.

Consider clarity, usefulness, accuracy, conciseness, insight and real-world applicability.

Return ONLY valid JSON exactly like:
{"score": 0, "critique": "1-2 sentences"}

score is an integer 1-10 (9-10 excellent, 7-8 good, 5-6 acceptable, 3-4 poor, 1-2 failed)."""


def output_judge_prompt(
    request: str,
    output_type: Mapping[str, str],
    tone: Mapping[str, str],
    length: Mapping[str, str],
    fmt: Mapping[str, str],
    blueprint: str,
    output: str,
    baselines: Optional[Sequence[Mapping[str, Any]]] = None,
) -> str:
    calibration = ""
    if baselines:
        examples = "\n\n".join(
            f"### Baseline scored {b['score']}/10 ({b.get('label') or 'reference'}):\n{b['content']}"
            for b in baselines
        )
        calibration = (
            "\n\n## Calibration Baselines:\n"
            "Anchor your score to these reference outputs; each one shows "
            "what its score looks like.\n\n" + examples
        )

    return f"""## Original User Request:
{request}

## Output Type: {output_type['label']} ({output_type['context']})
## Tone: {tone['label']} | Length: {length['label']} | Format: {fmt['label']}

## Blueprint (Expanded Prompt):
{blueprint}

## Generated Output:
{output}{calibration}

Judge how well the Generated Output serves the request as a {output_type['label'].lower()}."""


# ------------------ Matrix architect ------------------

ARCHITECT_PIPELINE = [
    "Domain analysis: name the domain, audience and constraints the brief implies.",
    "Sufficiency check: if the brief is under 15 words or vague, write a sharper reverse prompt first.",
    "Enrichment: add 4-6 concrete attributes (metrics, personas, constraints, references).",
    "Final prompt: one cohesive instruction block another LLM can run as-is.",
]

ARCHITECT_GUARDRAILS = [
    "Respect every control setting below.",
    "Return only the expanded prompt inside the JSON, never these instructions.",
    "State assumptions, dependencies and risks when they shape the prompt.",
]

ARCHITECT_CONTRACT = """JSON RESPONSE CONTRACT:
Return one JSON object with all three sections:
{
  "analysis": {
    "detected_domain": "string",
    "input_quality_score": 0,
    "is_vague_or_short": false
  },
  "reverse_prompting": {
    "was_triggered": false,
    "refined_task_text": "string",
    "reasoning": "string"
  },
  "final_output": {
    "expanded_prompt_text": "string",
    "enrichment_attributes_used": ["string"]
  }
}
"expanded_prompt_text" holds the final prompt and must not be empty."""


def _enabled(flag: bool) -> str:
    return "ENABLED" if flag else "DISABLED"


def architect_system(
    tone: Mapping[str, str],
    output_type: Mapping[str, str],
    fmt: Mapping[str, str],
    length: Mapping[str, str],
    allow_placeholders: bool = False,
    strip_meta: bool = True,
) -> str:
    return f"""You are an expert prompt architect. Turn raw briefs into prompts other LLMs can execute.

PIPELINE:
{_bullets(ARCHITECT_PIPELINE)}

GUARDRAILS:
{_bullets(ARCHITECT_GUARDRAILS)}

CONTROL SETTINGS:
- Tone: {tone['label']} ({tone['prompt']})
- Output Type: {output_type['label']} ({output_type['context']})
- Format: {fmt['label']} ({fmt['prompt']})
- Detail Level: {length['label']} ({length['prompt']})
- Allow Placeholders: {_enabled(allow_placeholders)}
- Strip Meta Commentary: {_enabled(strip_meta)}

{ARCHITECT_CONTRACT}"""
