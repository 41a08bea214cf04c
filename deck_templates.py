"""deck_templates.py

Slide outlines for the common kinds of deck. The generator folds the chosen
outline into its deck instructions; `deck_type` lives in the deck's
type_specific settings and defaults to an internal meeting.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

DEFAULT_DECK_TYPE = "internal"

SLIDE_FORMAT = "| # | Title | Key Message | Visual Suggestion | Speaker Notes |"


@dataclass(frozen=True)
class DeckType:
    id: str
    label: str
    min_slides: int
    max_slides: int
    structure: Tuple[str, ...]
    focus: str

    @property
    def slide_range(self) -> str:
        return f"{self.min_slides}-{self.max_slides}"


DECK_TYPES: Dict[str, DeckType] = {
    "investor": DeckType(
        "investor", "Investor Pitch", 10, 12,
        (
            "Title + Tagline",
            "Problem (quantified pain)",
            "Solution (before/after)",
            "Market Opportunity (TAM/SAM/SOM)",
            "Traction (metrics, milestones)",
            "Business Model (revenue, unit economics)",
            "Competition (2x2 matrix, moat)",
            "Go-to-Market (channels, CAC)",
            "Team (founders, key hires)",
            "Financials (3-year projection)",
            "The Ask (amount, use of funds)",
            "Closing (CTA, contact)",
        ),
        "Investors want: clear problem, large market, strong team, path to returns. "
        "Lead with traction if you have it.",
    ),
    "sales": DeckType(
        "sales", "Sales Deck", 8, 12,
        (
            "Hook (provocative question)",
            "The Challenge (their world, cost of inaction)",
            "Vision (what great looks like)",
            "Solution (capabilities, how it works)",
            "Proof Points (2-3 case studies)",
            "Differentiators (why you vs. alternatives)",
            "Implementation (timeline to value)",
            "Investment (pricing, ROI)",
            "Next Steps (clear CTA)",
        ),
        "Speak to their pain, prove results, make buying easy. "
        "Every slide should build toward the close.",
    ),
    "board": DeckType(
        "board", "Board Update", 10, 15,
        (
            "Executive Summary (3-5 headlines, health indicator)",
            "Metrics Dashboard (KPIs with trends)",
            "Wins & Highlights",
            "Financial Performance (P&L, cash, runway)",
            "Challenges & Risks (honest assessment)",
            "Product Update (roadmap progress)",
            "Team & Org (headcount, key changes)",
            "Competitive Landscape",
            "Strategic Priorities (next quarter)",
            "Asks & Decisions (board input needed)",
            "Appendix (detailed data)",
        ),
        "Be direct, data-driven, and honest. Board members want signal, not noise. "
        "Flag issues early.",
    ),
    "internal": DeckType(
        "internal", "Internal Meeting", 6, 10,
        (
            "Title + Purpose (what we're deciding)",
            "Background (current state, how we got here)",
            "Analysis (data, findings)",
            "Options (pros/cons for each)",
            "Recommendation (with rationale)",
            "Implementation Plan (milestones, owners)",
            "Resource Ask (budget, team)",
            "Discussion (key questions)",
            "Next Steps (actions, owners)",
        ),
        "Optimize for decision-making. Present options clearly, make recommendation, "
        "get alignment.",
    ),
    "training": DeckType(
        "training", "Training/Workshop", 15, 25,
        (
            "Title + Learning Objectives",
            "Agenda (with times)",
            "Why This Matters (relevance, pain points)",
            "Content Modules (1 concept per slide)",
            "Interactive Exercises (instructions, time)",
            "Key Takeaways (summary)",
            "Resources (further reading, tools)",
            "Q&A",
        ),
        "Engage with activities. One concept per slide. "
        "Include practice opportunities and memory aids.",
    ),
}


def get_deck_type(deck_type_id: Optional[str]) -> DeckType:
    """Unknown or missing ids fall back to the internal meeting outline."""
    key = deck_type_id.strip().lower() if isinstance(deck_type_id, str) else ""
    return DECK_TYPES.get(key) or DECK_TYPES[DEFAULT_DECK_TYPE]


def list_deck_types() -> List[Dict[str, str]]:
    return [{"id": d.id, "label": d.label, "slides": d.slide_range} for d in DECK_TYPES.values()]
