"""templates.py

Quick-start templates: a ready-made request plus the type_specific settings
and constraints that go with it. `template_overrides` turns one into the
overrides dict `run_pipeline` accepts.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional

QUICK_START_TEMPLATES: List[Dict[str, Any]] = [
    # Deck
    {
        "id": "quarterly-review",
        "label": "Quarterly Review",
        "output_type": "deck",
        "description": "Business performance review for leadership",
        "defaults": {
            "type_specific": {
                "slide_count": 12,
                "duration_minutes": 30,
                "presentation_context": "internal",
                "include_speaker_notes": True,
                "include_visual_suggestions": True,
            },
            "constraints": {"tone_markers": ["professional", "data-driven"]},
        },
        "example_input": "Q3 2024 performance review for the executive team",
    },
    {
        "id": "product-launch",
        "label": "Product Launch",
        "output_type": "deck",
        "description": "Announce a new product or feature",
        "defaults": {
            "type_specific": {
                "slide_count": 15,
                "duration_minutes": 20,
                "presentation_context": "keynote",
                "visual_style": "image-rich",
                "include_visual_suggestions": True,
            },
            "constraints": {"tone_markers": ["creative", "inspiring"]},
        },
        "example_input": "Launch presentation for our new AI-powered analytics feature",
    },
    {
        "id": "investor-pitch",
        "label": "Investor Pitch",
        "output_type": "deck",
        "description": "Fundraising pitch for investors",
        "defaults": {
            "type_specific": {
                "deck_type": "investor",
                "slide_count": 10,
                "duration_minutes": 15,
                "presentation_context": "pitch",
                "include_speaker_notes": True,
            },
            "constraints": {"tone_markers": ["professional", "compelling"]},
        },
        "example_input": "Series A pitch for our B2B SaaS platform",
    },
    # Doc
    {
        "id": "technical-blog",
        "label": "Technical Blog Post",
        "output_type": "doc",
        "description": "In-depth technical article",
        "defaults": {
            "type_specific": {
                "document_type": "guide",
                "include_toc": True,
                "section_structure": ["introduction", "background", "implementation", "results", "conclusion"],
            },
            "constraints": {"length": "long", "tone_markers": ["instructive", "technical"]},
        },
        "example_input": "How we reduced API latency by 60% using edge caching",
    },
    {
        "id": "meeting-summary",
        "label": "Meeting Summary",
        "output_type": "doc",
        "description": "Recap of a meeting with decisions and owners",
        "defaults": {
            "type_specific": {
                "document_type": "report",
                "section_structure": ["attendees", "discussion", "decisions", "action_items"],
            },
            "constraints": {"length": "medium", "tone_markers": ["professional", "concise"]},
        },
        "example_input": "Summarize the product roadmap planning meeting",
    },
    {
        "id": "project-proposal",
        "label": "Project Proposal",
        "output_type": "doc",
        "description": "Pitch a project for approval",
        "defaults": {
            "type_specific": {
                "document_type": "proposal",
                "include_executive_summary": True,
                "section_structure": [
                    "executive_summary", "problem_statement", "proposed_solution",
                    "timeline", "budget", "conclusion",
                ],
            },
            "constraints": {"length": "long", "tone_markers": ["professional", "persuasive"]},
        },
        "example_input": "Proposal for implementing a new CRM system",
    },
    # Code
    {
        "id": "api-docs",
        "label": "API Documentation",
        "output_type": "code",
        "description": "Reference docs for an endpoint",
        "defaults": {
            "type_specific": {"include_comments": True, "error_handling": "comprehensive"},
            "constraints": {
                "tone_markers": ["professional", "precise"],
                "format_requirements": ["examples", "error codes"],
            },
        },
        "example_input": "Document the /users endpoint with CRUD operations",
    },
    {
        "id": "react-component",
        "label": "React Component",
        "output_type": "code",
        "description": "Reusable UI component with tests",
        "defaults": {
            "type_specific": {
                "language": "typescript",
                "framework": "react",
                "include_tests": True,
                "include_comments": True,
                "error_handling": "standard",
            },
            "constraints": {},
        },
        "example_input": "Create a reusable data table component with sorting and pagination",
    },
    # Comms
    {
        "id": "cold-outreach",
        "label": "Cold Outreach Email",
        "output_type": "comms",
        "description": "First-touch email to a prospect",
        "defaults": {
            "type_specific": {
                "channel": "email",
                "formality_level": "professional",
                "response_urgency": "normal",
                "include_greeting": True,
                "include_signature": True,
            },
            "constraints": {"length": "short", "tone_markers": ["professional", "personalized"]},
        },
        "example_input": "Reach out to VP of Engineering about our developer tools",
    },
    {
        "id": "team-update",
        "label": "Team Update",
        "output_type": "comms",
        "description": "Weekly status post for the team channel",
        "defaults": {
            "type_specific": {"channel": "slack", "formality_level": "casual", "response_urgency": "low"},
            "constraints": {"length": "short", "tone_markers": ["friendly", "informative"]},
        },
        "example_input": "Weekly engineering team update on sprint progress",
    },
    # Copy
    {
        "id": "landing-page",
        "label": "Landing Page",
        "output_type": "copy",
        "description": "Hero and section copy for a landing page",
        "defaults": {
            "type_specific": {"copy_type": "landing", "emotional_appeal": "aspiration", "cta_type": "Get Started"},
            "constraints": {"tone_markers": ["compelling", "clear"]},
        },
        "example_input": "Landing page for a project management tool targeting startups",
    },
    {
        "id": "social-post",
        "label": "Social Post",
        "output_type": "copy",
        "description": "Short post for a social network",
        "defaults": {
            "type_specific": {"copy_type": "social", "emotional_appeal": "curiosity", "platform": "linkedin"},
            "constraints": {"length": "short", "tone_markers": ["engaging", "professional"]},
        },
        "example_input": "LinkedIn post announcing our new feature release",
    },
    # Data
    {
        "id": "sample-data",
        "label": "Sample Data",
        "output_type": "data",
        "description": "Realistic fake records for testing",
        "defaults": {
            "type_specific": {"output_format": "json", "include_headers": True, "include_descriptions": True},
            "constraints": {},
        },
        "example_input": "Generate 10 sample user records with name, email, role, and signup date",
    },
]


def get_templates_by_type(output_type: str) -> List[Dict[str, Any]]:
    return [t for t in QUICK_START_TEMPLATES if t["output_type"] == output_type]


def get_template_by_id(template_id: str) -> Optional[Dict[str, Any]]:
    return next((t for t in QUICK_START_TEMPLATES if t["id"] == template_id), None)


def get_template_output_types() -> List[str]:
    """Output types that have at least one template, in first-seen order."""
    seen: List[str] = []
    for t in QUICK_START_TEMPLATES:
        if t["output_type"] not in seen:
            seen.append(t["output_type"])
    return seen


def template_overrides(template: Dict[str, Any]) -> Dict[str, Any]:
    # Deep copy so callers can edit the result without touching the template
    defaults = template.get("defaults") or {}
    return {
        "type_specific": copy.deepcopy(defaults.get("type_specific") or {}),
        "constraints": copy.deepcopy(defaults.get("constraints") or {}),
    }
