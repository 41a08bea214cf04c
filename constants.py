"""Shared setting tables for tones, formats, lengths and output types.

Used by the Streamlit selectors, the pipeline prompts and the matrix runner.
"""

from typing import Dict, List, Optional

TONES: List[Dict[str, str]] = [
    {"id": "professional", "label": "Professional", "prompt": "formal, objective, and expert"},
    {"id": "friendly", "label": "Friendly", "prompt": "warm, approachable, and conversational"},
    {"id": "casual", "label": "Casual", "prompt": "relaxed, informal, and easy-going"},
    {"id": "executive", "label": "Executive", "prompt": "concise, strategic, and high-level"},
    {"id": "academic", "label": "Academic", "prompt": "rigorous, citation-focused, and analytical"},
    {"id": "creative", "label": "Creative", "prompt": "imaginative, evocative, and storytelling"},
    {"id": "instructive", "label": "Instructive", "prompt": "didactic, step-by-step teacher"},
    {"id": "technical", "label": "Technical", "prompt": "precise, detailed, and specification-focused"},
]

FORMATS: List[Dict[str, str]] = [
    {"id": "paragraph", "label": "Paragraph", "prompt": "Flowing, cohesive narrative"},
    {"id": "bullets", "label": "Bullet Points", "prompt": "Concise bulleted list"},
    {"id": "numbered", "label": "Numbered List", "prompt": "Sequential numbered list"},
    {"id": "steps", "label": "Step-by-Step", "prompt": "Clear, actionable steps"},
    {"id": "sections", "label": "Structured Sections", "prompt": "Clear, hierarchical sections with headings"},
    {"id": "email", "label": "Email", "prompt": "Professional email format"},
    {"id": "table", "label": "Table", "prompt": "Structured table with headers"},
    {"id": "qa", "label": "Q&A", "prompt": "Question and Answer session"},
]

LENGTHS: List[Dict[str, str]] = [
    {"id": "short", "label": "Short", "prompt": "Concise and high-level"},
    {"id": "medium", "label": "Medium", "prompt": "Balanced detail"},
    {"id": "long", "label": "Long", "prompt": "Exhaustive and detailed"},
]

OUTPUT_TYPES: List[Dict[str, str]] = [
    {"id": "deck", "label": "Deck", "context": "Slide Deck Outline (Titles, Visuals, Notes)"},
    {"id": "doc", "label": "Doc", "context": "Comprehensive Written Document"},
    {"id": "data", "label": "Data", "context": "Structured Data / Tables"},
    {"id": "code", "label": "Code", "context": "Production-Ready Code"},
    {"id": "copy", "label": "Copy", "context": "Marketing Copy / Creative Writing"},
    {"id": "comms", "label": "Comms", "context": "Email / Communication"},
]


def _find(table: List[Dict[str, str]], item_id: Optional[str]) -> Optional[Dict[str, str]]:
    for item in table:
        if item["id"] == item_id:
            return item
    return None


def get_tone(tone_id: Optional[str]) -> Dict[str, str]:
    return _find(TONES, tone_id) or TONES[0]


def get_format(format_id: Optional[str]) -> Dict[str, str]:
    return _find(FORMATS, format_id) or FORMATS[0]


def get_length(length_id: Optional[str]) -> Dict[str, str]:
    return _find(LENGTHS, length_id) or LENGTHS[1]


def get_output_type(type_id: Optional[str]) -> Dict[str, str]:
    return _find(OUTPUT_TYPES, type_id) or OUTPUT_TYPES[1]
