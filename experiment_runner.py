from __future__ import annotations

import json
import uuid
from typing import Any, Callable, Dict, List, Mapping, Optional

import config
import db
from constants import get_format, get_length, get_output_type, get_tone
from excel_logger import append_experiment_rows
from judge import judge_output
from llm_client import call_model, make_caller, safe_json_load
from logger import get_logger
from matrix import build_matrix_combos
from prompt_spec import coerce_int
from prompts import architect_system

logger = get_logger(__name__)

ProgressCallback = Callable[[int, int, Dict[str, Any]], None]

_PROMPT_PATHS = [
    ("final_output", "expanded_prompt_text"),
    ("final_output", "expandedPromptText"),
    ("expanded_prompt_text",),
    ("expandedPromptText",),
]


def extract_expanded_prompt(response: Any) -> str:
    """Pull the blueprint text out of an architect reply.

    Known paths are tried in order; otherwise final_output (or the whole
    reply) is stringified so the cell still has something to show.
    """
    if not response:
        return ""
    if isinstance(response, str):
        parsed = safe_json_load(response)
        if parsed.get("error") or "data" in parsed:
            return response.strip()
        response = parsed

    for path in _PROMPT_PATHS:
        value: Any = response
        for key in path:
            value = value.get(key) if isinstance(value, dict) else None
        if isinstance(value, str) and value.strip():
            return value.strip()

    final = response.get("final_output") if isinstance(response, dict) else None
    if final:
        return final.strip() if isinstance(final, str) else json.dumps(final, ensure_ascii=False)
    return json.dumps(response, ensure_ascii=False)


# ------------------ Judge baselines ------------------

def normalize_baselines(raw: Any) -> Dict[str, List[Dict[str, Any]]]:
    """{output_type: [{score, label, content}]}; entries without content are dropped."""
    if not isinstance(raw, Mapping):
        return {}
    out: Dict[str, List[Dict[str, Any]]] = {}
    for output_type, entries in raw.items():
        if isinstance(entries, Mapping):
            entries = [entries]
        if not isinstance(entries, list):
            continue
        cleaned = []
        for entry in entries:
            if not isinstance(entry, Mapping):
                continue
            content = str(entry.get("content") or "").strip()
            if not content:
                continue
            score = coerce_int(entry.get("score"))
            cleaned.append({
                "score": max(1, min(10, score if score is not None else 7)),
                "label": str(entry.get("label") or "").strip(),
                "content": content,
            })
        if cleaned:
            out[str(output_type)] = cleaned
    return out


def get_baselines(user_id: str) -> Dict[str, List[Dict[str, Any]]]:
    return normalize_baselines(db.fetch_baselines(user_id))


def save_baselines(user_id: str, baselines: Mapping[str, Any]) -> Dict[str, List[Dict[str, Any]]]:
    cleaned = normalize_baselines(baselines)
    db.save_baselines(user_id, cleaned)
    return cleaned


def run_experiment_cell(
    combo: Mapping[str, str],
    prompt: str,
    output_type: str,
    call_llm: Callable[[str, str], Any],
    toggles: Optional[Dict[str, bool]] = None,
    models: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Architect -> (optional) executor -> (optional) judge for one combination.

    `models` may carry execution_model, judge_model, enable_judge, api_keys
    and baselines (keyed by output type, see normalize_baselines).
    Executor failures are recorded on the cell, they do not abort it.
    """
    toggles = toggles or {}
    models = models or {}

    tone = get_tone(combo.get("tone"))
    length = get_length(combo.get("length"))
    fmt = get_format(combo.get("format"))
    type_obj = get_output_type(output_type)

    system = architect_system(
        tone,
        type_obj,
        fmt,
        length,
        allow_placeholders=toggles.get("allow_placeholders", False),
        strip_meta=toggles.get("strip_meta", True),
    )

    response = call_llm(prompt, system)
    blueprint = extract_expanded_prompt(response)
    result: Dict[str, Any] = {"config": dict(combo), "blueprint": blueprint}

    execution_model = models.get("execution_model")
    api_keys = models.get("api_keys")
    if not (execution_model and api_keys and blueprint):
        return result

    try:
        execution = call_model(execution_model, blueprint, "", api_keys, json_mode=False)
    except Exception as e:
        logger.warning("Execution failed for %s: %s", dict(combo), e)
        result["execution_error"] = str(e)
        return result

    result["execution_result"] = execution
    result["execution_model_id"] = execution_model

    judge_model = models.get("judge_model")
    if models.get("enable_judge") and judge_model:
        result["evaluation"] = {
            "ai": judge_output(
                prompt,
                blueprint,
                execution,
                output_type=type_obj,
                tone=tone,
                length=length,
                fmt=fmt,
                call_judge=lambda u, s: call_model(judge_model, u, s, api_keys),
                baselines=(models.get("baselines") or {}).get(output_type),
            )
        }
        result["judge_model_id"] = judge_model

    return result


def run_matrix_experiment(
    prompt: str,
    matrix_config: Mapping[str, Any],
    output_type: str,
    call_llm: Callable[[str, str], Any],
    *,
    toggles: Optional[Dict[str, bool]] = None,
    models: Optional[Dict[str, Any]] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> List[Dict[str, Any]]:
    """Run every tone x length x format cell, one after another."""
    combos = build_matrix_combos(matrix_config)
    if not combos:
        return []

    results: List[Dict[str, Any]] = []
    for completed, combo in enumerate(combos, start=1):
        try:
            result = run_experiment_cell(combo, prompt, output_type, call_llm, toggles, models)
        except Exception as e:
            logger.error("Experiment cell %s failed: %s", combo, e)
            result = {"config": combo, "blueprint": "", "error": str(e) or "Unknown error"}
        results.append(result)

        if on_progress:
            on_progress(completed, len(combos), result)

    return results


def run_and_log(
    prompt: str,
    matrix_config: Mapping[str, Any],
    output_type: str,
    call_llm: Callable[[str, str], Any],
    *,
    user_id: str = "local",
    toggles: Optional[Dict[str, bool]] = None,
    models: Optional[Dict[str, Any]] = None,
    on_progress: Optional[ProgressCallback] = None,
    xlsx_path: Optional[str] = None,
):
    """Runs a matrix experiment and stores it in SQLite (and Excel if xlsx_path is set).

    Returns (experiment_id, results).
    """
    experiment_id = uuid.uuid4().hex[:10]
    results = run_matrix_experiment(
        prompt,
        matrix_config,
        output_type,
        call_llm,
        toggles=toggles,
        models=models,
        on_progress=on_progress,
    )

    # Keys and baselines stay out of the experiment row
    logged_models = {k: v for k, v in (models or {}).items() if k not in ("api_keys", "baselines")}
    db.save_experiment(
        experiment_id=experiment_id,
        user_id=user_id,
        prompt=prompt,
        output_type=output_type,
        matrix=dict(matrix_config),
        models=logged_models,
        results=results,
    )

    if xlsx_path:
        append_experiment_rows(
            experiment_id=experiment_id,
            user_input=prompt,
            output_type=output_type,
            results=results,
            path=xlsx_path,
        )

    logger.info("Experiment %s logged with %d cells", experiment_id, len(results))
    return experiment_id, results


if __name__ == "__main__":
    # Quick CLI smoke test
    db.init_db()
    q = input("User prompt: ").strip()
    caller = make_caller(config.GEMINI_MODEL, config.env_api_keys())
    matrix = {"tones": ["professional", "casual"], "lengths": ["medium"], "formats": ["paragraph"]}
    eid, res = run_and_log(q, matrix, "doc", caller, user_id="cli", xlsx_path=config.XLSX_PATH)
    print("Logged experiment_id:", eid)
    for r in res:
        cfg = r["config"]
        status = r.get("error") or f"{len(r['blueprint'].split())} words"
        print(f"\n[{cfg['tone']}/{cfg['length']}/{cfg['format']}] {status}")
