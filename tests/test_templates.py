from deck_templates import DECK_TYPES, DEFAULT_DECK_TYPE, get_deck_type, list_deck_types
from pipeline import apply_overrides
from prompt_spec import OUTPUT_TYPES, create_spec
from templates import (
    QUICK_START_TEMPLATES,
    get_template_by_id,
    get_template_output_types,
    get_templates_by_type,
    template_overrides,
)


# ------------------ deck types ------------------

def test_deck_types():
    assert set(DECK_TYPES) == {"investor", "sales", "board", "internal", "training"}
    assert get_deck_type("investor").label == "Investor Pitch"
    assert get_deck_type(" Board ").id == "board"
    assert get_deck_type("training").slide_range == "15-25"


def test_unknown_deck_type_falls_back_to_internal():
    assert get_deck_type("keynote").id == DEFAULT_DECK_TYPE
    assert get_deck_type(None).id == "internal"
    assert get_deck_type(5).id == "internal"


def test_list_deck_types():
    listed = list_deck_types()
    assert listed[0] == {"id": "investor", "label": "Investor Pitch", "slides": "10-12"}
    assert len(listed) == len(DECK_TYPES)


def test_deck_default_type_is_known():
    assert create_spec("deck").type_specific["deck_type"] in DECK_TYPES


# ------------------ quick start ------------------

def test_templates_are_well_formed():
    ids = [t["id"] for t in QUICK_START_TEMPLATES]
    assert len(ids) == len(set(ids)) == 13
    for t in QUICK_START_TEMPLATES:
        assert t["output_type"] in OUTPUT_TYPES
        assert t["example_input"]
        assert set(t["defaults"]) == {"type_specific", "constraints"}


def test_templates_by_type():
    decks = get_templates_by_type("deck")
    assert [t["id"] for t in decks] == ["quarterly-review", "product-launch", "investor-pitch"]
    assert get_templates_by_type("poem") == []


def test_template_by_id():
    assert get_template_by_id("team-update")["defaults"]["type_specific"]["channel"] == "slack"
    assert get_template_by_id("missing") is None


def test_template_output_types_in_order():
    assert get_template_output_types() == ["deck", "doc", "code", "comms", "copy", "data"]


def test_template_overrides_are_copies():
    template = get_template_by_id("technical-blog")
    overrides = template_overrides(template)
    overrides["type_specific"]["section_structure"].append("appendix")

    assert "appendix" not in template["defaults"]["type_specific"]["section_structure"]


def test_template_overrides_apply_to_a_spec():
    template = get_template_by_id("project-proposal")
    spec = apply_overrides(create_spec("doc"), template_overrides(template))

    assert spec.type_specific["document_type"] == "proposal"
    assert spec.type_specific["include_executive_summary"] is True
    assert spec.constraints.length == "long"
    assert spec.constraints.tone_markers == ["professional", "persuasive"]
