import os
import time
import uuid

import pandas as pd
import streamlit as st

import config
from alerts import get_active_alerts, dismiss_alert
from api_keys import balance_status, get_effective_api_keys, get_stored_balances, mask_api_key, save_user_key
from constants import FORMATS, LENGTHS, OUTPUT_TYPES, TONES
from db import DB_PATH, fetch_experiment_results, fetch_experiments, init_db
from excel_logger import workbook_bytes
from experiment_runner import get_baselines, run_and_log, save_baselines
from generator import GenerationError
from history import (
    backup_filename,
    clear_history,
    delete_history_item,
    export_history,
    filter_history,
    get_history,
    import_history,
    save_to_history,
    toggle_private,
)
from llm_client import SUPPORTED_MODELS, LLMError, call_model
from matrix import combo_count
from orgs import accept_invite, create_invite, ensure_personal_org, get_org_invites, get_user_organizations
from outcomes import EDIT_OPTIONS, OUTCOME_OPTIONS, get_outcome_stats, get_preferences, record_outcome
from pipeline import run_pipeline
from roles import ROLE_LABELS, has_permission
from templates import QUICK_START_TEMPLATES, get_template_by_id, template_overrides
from usage import FEATURE_LABELS, format_cost, format_tokens, get_monthly_aggregate, log_call
from verbalized_sampling import DIVERSITY_LEVELS_ORDERED, level_for_slider, run_verbalized_sampling


def _toggle(label: str, value: bool = False, key: str = "") -> bool:
    """Use st.toggle when available, otherwise fall back to st.checkbox."""
    if hasattr(st, "toggle"):
        return st.toggle(label, value=value, key=key)
    return st.checkbox(label, value=value, key=key)


def _labels(table):
    return {item["id"]: item["label"] for item in table}


def _caller(model_id: str, keys: dict, feature: str, *, json_mode: bool = True):
    """call_llm(user, system) bound to a model, with usage logged per call."""

    def _call(user: str, system: str = "") -> str:
        out = call_model(model_id, user, system, keys, json_mode=json_mode)
        log_call(org_id, user_id, model_id, (system or "") + user, out, feature)
        return out

    return _call


# ------------------ PAGE SETUP ------------------

st.set_page_config(page_title="PromptSmith", layout="wide")
st.title("PromptSmith — Prompt Builder & Experiments")

init_db()

if "session_id" not in st.session_state:
    st.session_state["session_id"] = str(uuid.uuid4())
if "last_submit_ts" not in st.session_state:
    st.session_state["last_submit_ts"] = 0.0

TONE_LABELS = _labels(TONES)
FORMAT_LABELS = _labels(FORMATS)
LENGTH_LABELS = _labels(LENGTHS)
TYPE_LABELS = _labels(OUTPUT_TYPES)
MODEL_LABELS = {m["id"]: f"{m['label']} ({m['provider']})" for m in SUPPORTED_MODELS}

# ------------------ SIDEBAR SETTINGS ------------------
with st.sidebar:
    st.header("Settings")

    user_id = st.text_input("Your user id", value="", placeholder="e.g., mahek", key="user_id").strip() or "local"
    ensure_personal_org(user_id)

    user_orgs = get_user_organizations(user_id)
    org_names = {o["id"]: f"{o['name']} · {ROLE_LABELS.get(o['role'], o['role'])}" for o in user_orgs}
    org_id = st.selectbox("Organization", list(org_names), format_func=org_names.get, key="org_id")
    org_role = next(o["role"] for o in user_orgs if o["id"] == org_id)

    invite_code = st.text_input("Join with invite code", value="", key="invite_code")
    if st.button("Join", use_container_width=True) and invite_code.strip():
        joined = accept_invite(invite_code, user_id)
        if joined["success"]:
            st.success(f"Joined {joined['org_name']}")
        else:
            st.error(joined["error"])

    st.divider()
    model_id = st.selectbox("Model", list(MODEL_LABELS), format_func=MODEL_LABELS.get, key="model_id")
    api_keys = get_effective_api_keys(user_id, org_id)

    with st.expander("Personal API keys"):
        for provider in ("gemini", "openai", "anthropic"):
            current = api_keys.get(provider)
            st.caption(f"{provider}: {mask_api_key(current) if current else 'not set'}")
            new_key = st.text_input(f"New {provider} key", value="", type="password", key=f"key_{provider}")
            if new_key and st.button(f"Save {provider} key", key=f"save_{provider}"):
                save_user_key(user_id, provider, new_key.strip())
                st.success("Saved")

    admin_secret = config.ADMIN_KEY
    admin_key = ""
    if admin_secret:
        admin_key = st.text_input("Admin key (optional)", value="", type="password", key="admin_key")
    is_admin = bool(admin_secret) and (admin_key == admin_secret)

    st.divider()
    st.caption("SQLite logging")
    st.write(f"DB: `{DB_PATH}`")
    if os.path.exists(DB_PATH):
        with open(DB_PATH, "rb") as f:
            st.download_button(
                "Download SQLite DB",
                data=f.read(),
                file_name=os.path.basename(DB_PATH),
                mime="application/x-sqlite3",
                use_container_width=True,
            )
    xlsx = workbook_bytes(config.XLSX_PATH)
    if xlsx:
        st.download_button(
            "Download experiments (xlsx)",
            data=xlsx,
            file_name=os.path.basename(config.XLSX_PATH),
            use_container_width=True,
        )

# ------------------ ALERTS ------------------
if has_permission(org_role, "VIEW_ORG_USAGE"):
    monthly = get_monthly_aggregate(org_id)
    for alert in get_active_alerts(org_id, monthly["total_cost"], get_stored_balances(org_id)):
        box = st.error if alert["severity"] == "critical" else st.warning
        box(f"**{alert['title']}** — {alert['message']}")
        if st.button("Dismiss", key=f"dismiss_{alert['id']}"):
            dismiss_alert(org_id, alert["id"])
            st.rerun()

tab_build, tab_vs, tab_matrix, tab_history, tab_org = st.tabs(
    ["Build", "Verbalized Sampling", "Matrix", "History", "Organization"]
)

# ------------------ BUILD ------------------
with tab_build:
    template_labels = {t["id"]: f"{t['label']} ({TYPE_LABELS.get(t['output_type'], t['output_type'])})"
                       for t in QUICK_START_TEMPLATES}
    template_id = st.selectbox("Quick start", ["(none)"] + list(template_labels),
                               format_func=lambda t: template_labels.get(t, t))
    template = get_template_by_id(template_id)
    if template:
        st.caption(template["description"])

    type_ids = list(TYPE_LABELS)
    type_index = type_ids.index(template["output_type"]) if template else 1
    c1, c2, c3, c4 = st.columns(4)
    output_type = c1.selectbox("Output type", type_ids, index=type_index, format_func=TYPE_LABELS.get)
    tone = c2.selectbox("Tone", ["(auto)"] + list(TONE_LABELS), format_func=lambda t: TONE_LABELS.get(t, t))
    fmt = c3.selectbox("Format", ["(auto)"] + list(FORMAT_LABELS), format_func=lambda f: FORMAT_LABELS.get(f, f))
    length = c4.selectbox("Length", ["(auto)"] + list(LENGTH_LABELS), format_func=lambda x: LENGTH_LABELS.get(x, x))

    query = st.text_area(
        "What do you need?",
        value=template["example_input"] if template else "",
        height=140,
        placeholder="Type a messy or unclear request...",
        key=f"query_{template_id}",
    )
    notes = st.text_input("Notes (optional)", value="")
    assess = _toggle("Assess quality", value=True, key="assess")

    if st.button("Build prompt", type="primary", use_container_width=True):
        q = (query or "").strip()
        if not q:
            st.warning("Please enter a request.")
            st.stop()

        overrides = {k: v for k, v in {"tone": tone, "format": fmt, "length": length}.items() if v != "(auto)"}
        if template and template["output_type"] == output_type:
            overrides = {**template_overrides(template), **overrides}
            if "length" in overrides:
                overrides["constraints"]["length"] = overrides["length"]
        try:
            with st.spinner("Analyzing and generating..."):
                result = run_pipeline(
                    q,
                    output_type,
                    _caller(model_id, api_keys, "prompt_generation"),
                    notes=notes,
                    overrides=overrides,
                    preferences=get_preferences(user_id),
                    assess=assess,
                )
        except (GenerationError, LLMError) as e:
            st.error(str(e))
            st.stop()

        st.session_state["last_build"] = {"prompt_id": str(uuid.uuid4()), "result": result}
        save_to_history(
            user_id,
            original_text=q,
            final_prompt=result.expanded_prompt,
            output_type=output_type,
            tone=result.spec.inferred.tone or "professional",
            format=result.spec.inferred.format or "paragraph",
            length=result.spec.constraints.length or "medium",
            notes=notes,
            toggles={"assess": assess},
            type_specific=result.spec.type_specific,
        )

    build = st.session_state.get("last_build")
    if build:
        result = build["result"]
        st.markdown("### Expanded prompt")
        st.code(result.expanded_prompt)
        st.caption(result.structure)

        left, right = st.columns(2, gap="large")
        with left:
            if result.quality:
                q = result.quality
                st.metric("Quality", f"{q.overall_score}/100", q.interpretation["label"])
                st.dataframe(
                    pd.DataFrame([{"dimension": k, **v} for k, v in q.dimensions.items()]),
                    use_container_width=True,
                )
                for s in q.strengths:
                    st.write(f"✅ {s}")
                for i in q.improvements:
                    st.write(f"🔧 {i}")
        with right:
            if result.reasoning:
                st.markdown("**Why these settings**")
                st.json(result.reasoning)
            if not result.validation.valid:
                st.warning(result.validation.summary())
            if is_admin:
                with st.expander("Spec (admin)"):
                    st.json(result.spec.to_dict())

        st.divider()
        st.markdown("#### How did it go?")
        rating = st.radio("Rating", ["positive", "negative"], horizontal=True, key="rating")
        outcome_labels = {o["id"]: o["label"] for o in OUTCOME_OPTIONS}
        outcome = st.radio("Outcome", list(outcome_labels), format_func=outcome_labels.get, horizontal=True)
        edits = st.multiselect("Edits needed", EDIT_OPTIONS)
        feedback = st.text_area("Feedback (optional)", height=80)

        if st.button("Submit feedback", use_container_width=True):
            now = time.time()
            if now - float(st.session_state.get("last_submit_ts", 0.0)) < 3.0:
                st.warning("Please wait a couple seconds before submitting again.")
                st.stop()
            try:
                record_outcome(user_id, build["prompt_id"], result.spec, rating, outcome, edits, feedback)
                st.session_state["last_submit_ts"] = now
                st.success("Saved ✅")
            except ValueError as e:
                st.error(str(e))

# ------------------ VERBALIZED SAMPLING ------------------
with tab_vs:
    vs_prompt = st.text_area("Request", height=120, key="vs_prompt")
    c1, c2 = st.columns(2)
    vs_tone = c1.selectbox("Tone", list(TONE_LABELS), format_func=TONE_LABELS.get, key="vs_tone")
    vs_type = c2.selectbox("Output type", list(TYPE_LABELS), index=1, format_func=TYPE_LABELS.get, key="vs_type")
    slider = st.select_slider(
        "Diversity",
        options=[lvl.slider_position for lvl in DIVERSITY_LEVELS_ORDERED],
        value=25,
        format_func=lambda p: level_for_slider(p).label,
    )
    level = level_for_slider(slider)
    st.caption(level.description)

    if st.button("Generate options", type="primary", use_container_width=True):
        if not vs_prompt.strip():
            st.warning("Please enter a request.")
            st.stop()
        with st.spinner("Sampling..."):
            vs = run_verbalized_sampling(
                vs_prompt.strip(), vs_tone, vs_type, level.id, _caller(model_id, api_keys, "prompt_generation")
            )
        if not vs["success"]:
            st.error(vs["error"])
        for opt in vs["options"]:
            with st.container(border=True):
                st.markdown(f"**{opt['approach']}** · {opt['label']['label']} · p={opt['probability']:.2f}")
                st.write(opt["text"])
                st.caption(opt["reasoning"])

# ------------------ MATRIX ------------------
with tab_matrix:
    m_prompt = st.text_area("Request", height=120, key="m_prompt")
    m_type = st.selectbox("Output type", list(TYPE_LABELS), index=1, format_func=TYPE_LABELS.get, key="m_type")
    matrix_config = {
        "tones": st.multiselect("Tones", list(TONE_LABELS), default=["professional"], format_func=TONE_LABELS.get),
        "lengths": st.multiselect("Lengths", list(LENGTH_LABELS), default=["medium"], format_func=LENGTH_LABELS.get),
        "formats": st.multiselect("Formats", list(FORMAT_LABELS), default=["paragraph"], format_func=FORMAT_LABELS.get),
    }
    st.caption(f"{combo_count(matrix_config)} cells")

    execute = _toggle("Execute blueprints", value=False, key="execute")
    models = {}
    if execute:
        models["execution_model"] = st.selectbox("Execution model", list(MODEL_LABELS), format_func=MODEL_LABELS.get)
        models["enable_judge"] = _toggle("Judge outputs", value=True, key="enable_judge")
        models["judge_model"] = st.selectbox("Judge model", list(MODEL_LABELS), format_func=MODEL_LABELS.get)
        models["api_keys"] = api_keys
        if models["enable_judge"]:
            baselines = get_baselines(user_id)
            with st.expander(f"Judge baselines for {TYPE_LABELS.get(m_type, m_type)}"):
                current = (baselines.get(m_type) or [{}])[0]
                b_content = st.text_area("Reference output", value=current.get("content", ""), key="b_content")
                b1, b2 = st.columns(2)
                b_score = b1.slider("Its score", 1, 10, int(current.get("score", 7)), key="b_score")
                b_label = b2.text_input("Label", value=current.get("label", ""), key="b_label")
                if st.button("Save baseline"):
                    entry = {"score": b_score, "label": b_label, "content": b_content}
                    baselines = save_baselines(user_id, {**baselines, m_type: [entry]})
                    st.success("Baseline saved")
            models["baselines"] = baselines
    log_excel = _toggle("Also log to Excel", value=False, key="log_excel")

    if st.button("Run matrix", type="primary", use_container_width=True):
        if not m_prompt.strip() or combo_count(matrix_config) == 0:
            st.warning("Enter a request and pick at least one value per axis.")
            st.stop()

        bar = st.progress(0.0)

        def _progress(done, total, _result):
            bar.progress(done / total, text=f"{done}/{total}")

        try:
            eid, results = run_and_log(
                m_prompt.strip(),
                matrix_config,
                m_type,
                _caller(model_id, api_keys, "experiment"),
                user_id=user_id,
                models=models,
                on_progress=_progress,
                xlsx_path=config.XLSX_PATH if log_excel else None,
            )
        except RuntimeError as e:
            st.error(str(e))
            st.stop()

        st.success(f"Experiment {eid} saved")
        rows = []
        for r in results:
            ai = (r.get("evaluation") or {}).get("ai") or {}
            rows.append({
                **r["config"],
                "blueprint": r.get("blueprint", ""),
                "output": r.get("execution_result"),
                "judge_score": ai.get("score"),
                "critique": ai.get("critique"),
                "error": r.get("error") or r.get("execution_error"),
            })
        st.dataframe(pd.DataFrame(rows), use_container_width=True)

# ------------------ HISTORY ------------------
with tab_history:
    stats = get_outcome_stats(user_id)
    c1, c2, c3 = st.columns(3)
    c1.metric("Rated prompts", stats["total"])
    c2.metric("Positive", f"{stats['positive_rate']:.0%}")
    c3.metric("Used as-is", f"{stats['used_as_is_rate']:.0%}")
    if stats["common_edits"]:
        st.dataframe(pd.DataFrame(stats["common_edits"]), use_container_width=True)

    st.markdown("### Saved prompts")
    search = st.text_input("Search history", key="history_search")
    items = filter_history(get_history(user_id), search)
    for item in items:
        title = f"{item['original_text'][:60]} · {item['output_type']} · {item['tone']} · v{item['version']}"
        with st.expander(("🔒 " if item["is_private"] else "") + title):
            st.code(item["final_prompt"])
            h1, h2 = st.columns(2)
            if h1.button("Private on/off", key=f"priv_{item['id']}"):
                toggle_private(user_id, item["id"])
                st.rerun()
            if h2.button("Delete", key=f"del_{item['id']}"):
                delete_history_item(user_id, item["id"])
                st.rerun()
    if not items:
        st.caption("(no saved prompts)")

    e1, e2, e3 = st.columns(3)
    e1.download_button(
        "Export history",
        data=export_history(user_id).encode("utf-8"),
        file_name=backup_filename(),
        mime="application/json",
        use_container_width=True,
    )
    if e2.button("Clear history", use_container_width=True):
        clear_history(user_id)
        st.rerun()
    upload = e3.file_uploader("Import backup", type=["json"], key="history_import")
    if upload is not None and st.button("Import"):
        report = import_history(user_id, upload.getvalue())
        if report.get("error"):
            st.error(report["error"])
        else:
            st.success(f"Imported {report['imported']}, skipped {report['skipped']} duplicates, "
                       f"{report['errors']} unreadable")

    st.markdown("### Experiments")
    experiments = fetch_experiments(user_id, limit=50)
    if experiments:
        st.dataframe(pd.DataFrame(experiments), use_container_width=True, height=240)
        chosen = st.selectbox("Inspect experiment", [e["experiment_id"] for e in experiments])
        st.dataframe(pd.DataFrame(fetch_experiment_results(chosen)), use_container_width=True)
    else:
        st.caption("(no experiments yet)")

# ------------------ ORGANIZATION ------------------
with tab_org:
    if not has_permission(org_role, "ACCESS_ADMIN_PANEL"):
        st.info("Only owners and admins can manage this organization.")
    else:
        monthly = get_monthly_aggregate(org_id)
        c1, c2, c3 = st.columns(3)
        c1.metric("Requests this month", monthly["total_requests"])
        c2.metric("Tokens", format_tokens(monthly["total_input_tokens"] + monthly["total_output_tokens"]))
        c3.metric("Cost", format_cost(monthly["total_cost"]))
        if monthly["by_feature"]:
            st.dataframe(
                pd.DataFrame([
                    {"feature": FEATURE_LABELS.get(f, f), **v} for f, v in monthly["by_feature"].items()
                ]),
                use_container_width=True,
            )

        balances = get_stored_balances(org_id)
        for provider, info in balances.items():
            st.caption(f"{provider}: ${info.get('balance') or 0:.2f} ({balance_status(info)})")

        st.markdown("### Invites")
        role = st.selectbox("Invite role", ["member", "admin"], format_func=ROLE_LABELS.get)
        if st.button("Create invite"):
            inv = create_invite(org_id, user_id, role=role)
            st.success(f"Invite code: {inv['code']}")
        invites = get_org_invites(org_id)
        if invites:
            st.dataframe(
                pd.DataFrame(invites)[["code", "role", "use_count", "max_uses", "expires_at", "active"]],
                use_container_width=True,
            )
