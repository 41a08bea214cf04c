import json

import pytest

import db
import experiment_runner
from experiment_runner import (
    extract_expanded_prompt,
    get_baselines,
    normalize_baselines,
    run_and_log,
    run_experiment_cell,
    run_matrix_experiment,
    save_baselines,
)

MATRIX = {"tones": ["professional", "casual"], "lengths": ["short"], "formats": ["paragraph", "table"]}


def architect_reply(text):
    return json.dumps({
        "analysis": {"detected_domain": "marketing", "input_quality_score": 4, "is_vague_or_short": True},
        "reverse_prompting": {"was_triggered": False, "refined_task_text": "", "reasoning": ""},
        "final_output": {"expanded_prompt_text": text, "enrichment_attributes_used": []},
    })


@pytest.mark.parametrize(
    "response,expected",
    [
        ({"final_output": {"expanded_prompt_text": " A "}}, "A"),
        ({"final_output": {"expandedPromptText": "B"}}, "B"),
        ({"expanded_prompt_text": "C"}, "C"),
        ({"expandedPromptText": "D"}, "D"),
        ({"final_output": "E "}, "E"),
        ({"final_output": {"other": 1}}, '{"other": 1}'),
        ({"something": "else"}, '{"something": "else"}'),
        ("  plain text  ", "plain text"),
        ("", ""),
        (None, ""),
    ],
)
def test_extract_expanded_prompt(response, expected):
    assert extract_expanded_prompt(response) == expected


def test_extract_expanded_prompt_from_json_text():
    assert extract_expanded_prompt("```json\n" + architect_reply("Blueprint") + "\n```") == "Blueprint"


def test_cell_without_models_only_calls_architect(fake_llm):
    llm = fake_llm(architect_reply("Blueprint"))
    result = run_experiment_cell({"tone": "casual", "length": "short", "format": "table"}, "sell shoes", "copy", llm)

    assert result == {"config": {"tone": "casual", "length": "short", "format": "table"}, "blueprint": "Blueprint"}
    system = llm.calls[0]["system"]
    assert "Tone: Casual" in system
    assert "Format: Table" in system
    assert "Output Type: Copy" in system
    assert llm.calls[0]["user"] == "sell shoes"


def test_cell_unknown_ids_fall_back_to_defaults(fake_llm):
    llm = fake_llm(architect_reply("Blueprint"))
    run_experiment_cell({"tone": "???", "length": "???", "format": "???"}, "x", "???", llm)
    system = llm.calls[0]["system"]
    assert "Tone: Professional" in system
    assert "Detail Level: Medium" in system
    assert "Format: Paragraph" in system
    assert "Output Type: Doc" in system


def test_cell_executes_and_judges(fake_llm, monkeypatch):
    seen = []

    def fake_call_model(model_id, user, system, api_keys, **kwargs):
        seen.append((model_id, user, kwargs.get("json_mode", True)))
        if model_id == "gpt-4o":
            return "Executed output"
        return json.dumps({"score": 7, "critique": "Decent"})

    monkeypatch.setattr(experiment_runner, "call_model", fake_call_model)
    models = {
        "execution_model": "gpt-4o",
        "judge_model": "claude-3-5-haiku-20241022",
        "enable_judge": True,
        "api_keys": {"openai": "k", "anthropic": "k"},
    }
    result = run_experiment_cell(
        {"tone": "casual", "length": "short", "format": "table"}, "sell shoes", "copy",
        fake_llm(architect_reply("Blueprint")), models=models,
    )

    assert seen[0] == ("gpt-4o", "Blueprint", False)
    assert result["execution_result"] == "Executed output"
    assert result["execution_model_id"] == "gpt-4o"
    assert result["evaluation"] == {"ai": {"score": 7, "critique": "Decent"}}
    assert result["judge_model_id"] == "claude-3-5-haiku-20241022"


def test_cell_judge_gets_baselines_for_its_output_type(fake_llm, monkeypatch):
    judge_prompts = []

    def fake_call_model(model_id, user, system, api_keys, **kwargs):
        if model_id == "gpt-4o":
            return "Executed output"
        judge_prompts.append(user)
        return json.dumps({"score": 7, "critique": "On par"})

    monkeypatch.setattr(experiment_runner, "call_model", fake_call_model)
    models = {
        "execution_model": "gpt-4o",
        "judge_model": "gpt-4o-mini",
        "enable_judge": True,
        "api_keys": {"openai": "k"},
        "baselines": {
            "copy": [{"score": 9, "label": "Hero", "content": "Run further in shoes that fit"}],
            "doc": [{"score": 3, "label": "Weak", "content": "Unrelated doc"}],
        },
    }
    run_experiment_cell(
        {"tone": "casual", "length": "short", "format": "table"}, "sell shoes", "copy",
        fake_llm(architect_reply("Blueprint")), models=models,
    )

    assert "Run further in shoes that fit" in judge_prompts[0]
    assert "Unrelated doc" not in judge_prompts[0]


def test_normalize_baselines():
    raw = {
        "copy": [
            {"score": "12", "label": " Hero ", "content": " Buy now "},
            {"score": 5, "content": "   "},
            "not an entry",
        ],
        "doc": {"content": "Single entry", "score": None},
        "deck": "nope",
        "data": [],
    }
    assert normalize_baselines(raw) == {
        "copy": [{"score": 10, "label": "Hero", "content": "Buy now"}],
        "doc": [{"score": 7, "label": "", "content": "Single entry"}],
    }
    assert normalize_baselines(["x"]) == {}


def test_baselines_are_stored_per_user(tmp_db):
    assert get_baselines("u1") == {}

    saved = save_baselines("u1", {"doc": [{"score": 8, "label": "Ref", "content": "A tidy report"}]})
    assert saved == {"doc": [{"score": 8, "label": "Ref", "content": "A tidy report"}]}
    assert get_baselines("u1") == saved
    assert get_baselines("u2") == {}

    save_baselines("u1", {"doc": [{"score": 4, "content": "Replaced"}]})
    assert get_baselines("u1")["doc"][0]["content"] == "Replaced"


def test_run_and_log_keeps_keys_and_baselines_out_of_the_row(tmp_db, fake_llm):
    models = {"execution_model": None, "api_keys": {"openai": "secret"},
              "baselines": {"doc": [{"score": 7, "content": "private reference"}]}}
    eid, _ = run_and_log("x", MATRIX, "doc", fake_llm(architect_reply("Blueprint")), user_id="u1", models=models)

    conn = db._connect()
    try:
        stored = conn.execute("SELECT models_json FROM experiments WHERE experiment_id = ?", (eid,)).fetchone()[0]
    finally:
        conn.close()
    assert "secret" not in stored
    assert "private reference" not in stored


def test_cell_execution_error_is_recorded(fake_llm, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("no credit")

    monkeypatch.setattr(experiment_runner, "call_model", boom)
    result = run_experiment_cell(
        {"tone": "casual", "length": "short", "format": "table"}, "x", "doc",
        fake_llm(architect_reply("Blueprint")),
        models={"execution_model": "gpt-4o", "api_keys": {"openai": "k"}},
    )
    assert result["execution_error"] == "no credit"
    assert "evaluation" not in result


def test_matrix_runs_every_cell_in_order_with_progress(fake_llm):
    llm = fake_llm(architect_reply("Blueprint"))
    progress = []
    results = run_matrix_experiment("x", MATRIX, "doc", llm, on_progress=lambda d, t, r: progress.append((d, t)))

    assert [r["config"] for r in results] == [
        {"tone": "professional", "length": "short", "format": "paragraph"},
        {"tone": "professional", "length": "short", "format": "table"},
        {"tone": "casual", "length": "short", "format": "paragraph"},
        {"tone": "casual", "length": "short", "format": "table"},
    ]
    assert progress == [(1, 4), (2, 4), (3, 4), (4, 4)]
    assert len(llm.calls) == 4


def test_matrix_cell_failure_does_not_stop_the_run(fake_llm):
    llm = fake_llm(RuntimeError("rate limited"), architect_reply("Blueprint"))
    results = run_matrix_experiment("x", MATRIX, "doc", llm)

    assert results[0] == {
        "config": {"tone": "professional", "length": "short", "format": "paragraph"},
        "blueprint": "",
        "error": "rate limited",
    }
    assert all(r["blueprint"] == "Blueprint" for r in results[1:])


def test_matrix_empty_config(fake_llm):
    llm = fake_llm("unused")
    assert run_matrix_experiment("x", {"tones": [], "lengths": ["short"], "formats": ["table"]}, "doc", llm) == []
    assert llm.calls == []


def test_run_and_log_persists(tmp_db, tmp_path, fake_llm):
    xlsx = str(tmp_path / "runs.xlsx")
    models = {"execution_model": None, "api_keys": {"openai": "secret"}}
    eid, results = run_and_log("x", MATRIX, "doc", fake_llm(architect_reply("Blueprint")),
                               user_id="u1", models=models, xlsx_path=xlsx)

    experiments = db.fetch_experiments("u1")
    assert experiments[0]["experiment_id"] == eid
    assert experiments[0]["cell_count"] == 4
    assert db.fetch_experiments("someone-else") == []

    rows = db.fetch_experiment_results(eid)
    assert [r["cell_index"] for r in rows] == [0, 1, 2, 3]
    assert rows[1]["format"] == "table"
    assert rows[1]["blueprint"] == "Blueprint"

    from openpyxl import load_workbook
    ws = load_workbook(xlsx)["experiments"]
    assert ws.max_row == 5
    assert ws.cell(2, 2).value == eid
