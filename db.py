import json
import sqlite3
from datetime import datetime
from typing import Any, Dict, List, Optional

import config

# Single SQLite file for the whole app
DB_PATH = config.DB_PATH


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


def _dumps(obj: Any) -> str:
    return json.dumps(obj if obj is not None else {}, ensure_ascii=False)


def _loads(txt: Optional[str], default: Any = None) -> Any:
    if not txt:
        return {} if default is None else default
    return json.loads(txt)


def _connect() -> sqlite3.Connection:
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    return conn


def init_db():
    conn = sqlite3.connect(DB_PATH)
    cur = conn.cursor()

    # NOTE: SQLite has no native JSON type -> we store JSON blobs as TEXT.
    cur.execute("""
    CREATE TABLE IF NOT EXISTS organizations (
        org_id TEXT PRIMARY KEY,
        name TEXT,
        created_at TEXT,
        created_by TEXT,
        members_json TEXT,
        settings_json TEXT,
        api_keys_json TEXT,
        alert_settings_json TEXT,
        dismissed_alerts_json TEXT,
        balances_json TEXT
    )
    """)

    # Reverse index: which orgs a user belongs to
    cur.execute("""
    CREATE TABLE IF NOT EXISTS user_orgs (
        user_id TEXT,
        org_id TEXT,
        role TEXT,
        joined_at TEXT,
        PRIMARY KEY (user_id, org_id)
    )
    """)

    cur.execute("""
    CREATE TABLE IF NOT EXISTS user_keys (
        user_id TEXT PRIMARY KEY,
        keys_json TEXT,
        balances_json TEXT,
        updated_at TEXT
    )
    """)

    cur.execute("""
    CREATE TABLE IF NOT EXISTS invites (
        code TEXT PRIMARY KEY,
        org_id TEXT,
        org_name TEXT,
        role TEXT,
        created_by TEXT,
        created_at TEXT,
        expires_at TEXT,
        max_uses INTEGER,
        use_count INTEGER,
        used_by_json TEXT
    )
    """)

    cur.execute("""
    CREATE TABLE IF NOT EXISTS outcomes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        ts TEXT,
        user_id TEXT,
        prompt_id TEXT,
        output_type TEXT,
        rating TEXT,
        outcome TEXT,
        edits_needed_json TEXT,
        feedback TEXT,
        spec_json TEXT
    )
    """)

    cur.execute("""
    CREATE TABLE IF NOT EXISTS preferences (
        user_id TEXT PRIMARY KEY,
        prefs_json TEXT,
        updated_at TEXT
    )
    """)

    cur.execute("""
    CREATE TABLE IF NOT EXISTS experiments (
        experiment_id TEXT PRIMARY KEY,
        ts TEXT,
        user_id TEXT,
        prompt TEXT,
        output_type TEXT,
        matrix_json TEXT,
        models_json TEXT,
        cell_count INTEGER
    )
    """)

    cur.execute("""
    CREATE TABLE IF NOT EXISTS experiment_results (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        experiment_id TEXT,
        cell_index INTEGER,
        tone TEXT,
        length TEXT,
        format TEXT,
        blueprint TEXT,
        execution_result TEXT,
        judge_score INTEGER,
        judge_critique TEXT,
        error TEXT,
        result_json TEXT
    )
    """)

    cur.execute("""
    CREATE TABLE IF NOT EXISTS usage_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        ts TEXT,
        month TEXT,
        user_id TEXT,
        org_id TEXT,
        provider TEXT,
        model TEXT,
        feature TEXT,
        key_source TEXT,
        input_tokens INTEGER,
        output_tokens INTEGER,
        cost REAL
    )
    """)

    # One row per distinct request; regenerations append to versions_json
    cur.execute("""
    CREATE TABLE IF NOT EXISTS prompt_history (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT,
        created_at TEXT,
        signature TEXT,
        original_text TEXT,
        final_prompt TEXT,
        output_type TEXT,
        tone TEXT,
        format TEXT,
        length TEXT,
        notes TEXT,
        toggles_json TEXT,
        type_specific_json TEXT,
        is_reverse_prompted INTEGER,
        is_private INTEGER,
        version INTEGER,
        versions_json TEXT,
        imported_from TEXT
    )
    """)

    cur.execute("""
    CREATE TABLE IF NOT EXISTS experiment_baselines (
        user_id TEXT PRIMARY KEY,
        baselines_json TEXT,
        updated_at TEXT
    )
    """)

    conn.commit()
    conn.close()


# ------------------ Organizations ------------------

def _org_from_row(row: sqlite3.Row) -> Dict[str, Any]:
    return {
        "id": row["org_id"],
        "name": row["name"],
        "created_at": row["created_at"],
        "created_by": row["created_by"],
        "members": _loads(row["members_json"]),
        "settings": _loads(row["settings_json"]),
        "api_keys": _loads(row["api_keys_json"]),
        "alert_settings": _loads(row["alert_settings_json"]),
        "dismissed_alerts": _loads(row["dismissed_alerts_json"], default=[]),
        "balances": _loads(row["balances_json"]),
    }


def save_org(org_id: str, org: Dict[str, Any]):
    """Insert or fully replace an organization record."""
    conn = _connect()
    try:
        conn.execute(
            """
            INSERT OR REPLACE INTO organizations (
                org_id, name, created_at, created_by,
                members_json, settings_json, api_keys_json,
                alert_settings_json, dismissed_alerts_json, balances_json
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                org_id,
                org.get("name", ""),
                org.get("created_at") or _now(),
                org.get("created_by"),
                _dumps(org.get("members")),
                _dumps(org.get("settings")),
                _dumps(org.get("api_keys")),
                _dumps(org.get("alert_settings")),
                json.dumps(org.get("dismissed_alerts") or []),
                _dumps(org.get("balances")),
            ),
        )
        conn.commit()
    finally:
        conn.close()


def fetch_org(org_id: str) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute("SELECT * FROM organizations WHERE org_id = ?", (org_id,)).fetchone()
    finally:
        conn.close()
    return _org_from_row(row) if row else None


def delete_org(org_id: str):
    conn = _connect()
    try:
        conn.execute("DELETE FROM organizations WHERE org_id = ?", (org_id,))
        conn.execute("DELETE FROM user_orgs WHERE org_id = ?", (org_id,))
        conn.commit()
    finally:
        conn.close()


def upsert_membership(user_id: str, org_id: str, role: str):
    conn = _connect()
    try:
        conn.execute(
            "INSERT OR REPLACE INTO user_orgs (user_id, org_id, role, joined_at) VALUES (?, ?, ?, ?)",
            (user_id, org_id, role, _now()),
        )
        conn.commit()
    finally:
        conn.close()


def delete_membership(user_id: str, org_id: str):
    conn = _connect()
    try:
        conn.execute("DELETE FROM user_orgs WHERE user_id = ? AND org_id = ?", (user_id, org_id))
        conn.commit()
    finally:
        conn.close()


def fetch_memberships(user_id: str) -> List[Dict[str, Any]]:
    conn = _connect()
    try:
        rows = conn.execute(
            "SELECT org_id, role, joined_at FROM user_orgs WHERE user_id = ? ORDER BY joined_at",
            (user_id,),
        ).fetchall()
    finally:
        conn.close()
    return [dict(r) for r in rows]


# ------------------ User keys ------------------

def fetch_user_keys(user_id: str) -> Dict[str, Any]:
    conn = _connect()
    try:
        row = conn.execute("SELECT keys_json, balances_json FROM user_keys WHERE user_id = ?", (user_id,)).fetchone()
    finally:
        conn.close()
    if not row:
        return {"keys": {}, "balances": {}}
    return {"keys": _loads(row["keys_json"]), "balances": _loads(row["balances_json"])}


def save_user_keys(user_id: str, keys: Dict[str, Any], balances: Dict[str, Any]):
    conn = _connect()
    try:
        conn.execute(
            "INSERT OR REPLACE INTO user_keys (user_id, keys_json, balances_json, updated_at) VALUES (?, ?, ?, ?)",
            (user_id, _dumps(keys), _dumps(balances), _now()),
        )
        conn.commit()
    finally:
        conn.close()


# ------------------ Invites ------------------

def _invite_from_row(row: sqlite3.Row) -> Dict[str, Any]:
    return {
        "code": row["code"],
        "org_id": row["org_id"],
        "org_name": row["org_name"],
        "role": row["role"],
        "created_by": row["created_by"],
        "created_at": row["created_at"],
        "expires_at": row["expires_at"],
        "max_uses": row["max_uses"],
        "use_count": row["use_count"],
        "used_by": _loads(row["used_by_json"], default=[]),
    }


def insert_invite(invite: Dict[str, Any]) -> bool:
    """Returns False if the code already exists."""
    conn = _connect()
    try:
        conn.execute(
            """
            INSERT INTO invites (
                code, org_id, org_name, role, created_by, created_at,
                expires_at, max_uses, use_count, used_by_json
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                invite["code"],
                invite["org_id"],
                invite.get("org_name", ""),
                invite["role"],
                invite["created_by"],
                invite.get("created_at") or _now(),
                invite.get("expires_at"),
                int(invite.get("max_uses") or 0),
                int(invite.get("use_count") or 0),
                json.dumps(invite.get("used_by") or []),
            ),
        )
        conn.commit()
        return True
    except sqlite3.IntegrityError:
        return False
    finally:
        conn.close()


def fetch_invite(code: str) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute("SELECT * FROM invites WHERE code = ?", (code,)).fetchone()
    finally:
        conn.close()
    return _invite_from_row(row) if row else None


def fetch_org_invites(org_id: str) -> List[Dict[str, Any]]:
    conn = _connect()
    try:
        rows = conn.execute(
            "SELECT * FROM invites WHERE org_id = ? ORDER BY created_at DESC", (org_id,)
        ).fetchall()
    finally:
        conn.close()
    return [_invite_from_row(r) for r in rows]


def record_invite_use(code: str, user_id: str):
    invite = fetch_invite(code)
    if invite is None:
        return
    used_by = invite["used_by"] + [user_id]
    conn = _connect()
    try:
        conn.execute(
            "UPDATE invites SET use_count = use_count + 1, used_by_json = ? WHERE code = ?",
            (json.dumps(used_by), code),
        )
        conn.commit()
    finally:
        conn.close()


def delete_invite(code: str):
    conn = _connect()
    try:
        conn.execute("DELETE FROM invites WHERE code = ?", (code,))
        conn.commit()
    finally:
        conn.close()


# ------------------ Outcomes & preferences ------------------

def save_outcome(
    *,
    user_id: str,
    prompt_id: str,
    output_type: str,
    rating: str,
    outcome: str,
    edits_needed: List[str],
    feedback: str,
    spec: Dict[str, Any],
) -> int:
    conn = _connect()
    try:
        cur = conn.execute(
            """
            INSERT INTO outcomes (
                ts, user_id, prompt_id, output_type, rating, outcome,
                edits_needed_json, feedback, spec_json
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                _now(),
                user_id,
                prompt_id,
                output_type,
                rating,
                outcome,
                json.dumps(edits_needed or [], ensure_ascii=False),
                feedback or "",
                _dumps(spec),
            ),
        )
        conn.commit()
        return cur.lastrowid
    finally:
        conn.close()


def _outcome_from_row(row: sqlite3.Row) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "ts": row["ts"],
        "prompt_id": row["prompt_id"],
        "output_type": row["output_type"],
        "rating": row["rating"],
        "outcome": row["outcome"],
        "edits_needed": _loads(row["edits_needed_json"], default=[]),
        "feedback": row["feedback"],
        "spec": _loads(row["spec_json"]),
    }


def fetch_outcomes(user_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    sql = "SELECT * FROM outcomes WHERE user_id = ? ORDER BY id DESC"
    params: tuple = (user_id,)
    if limit is not None:
        sql += " LIMIT ?"
        params = (user_id, limit)
    conn = _connect()
    try:
        rows = conn.execute(sql, params).fetchall()
    finally:
        conn.close()
    return [_outcome_from_row(r) for r in rows]


def fetch_preferences(user_id: str) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute("SELECT prefs_json FROM preferences WHERE user_id = ?", (user_id,)).fetchone()
    finally:
        conn.close()
    return _loads(row["prefs_json"]) if row else None


def save_preferences(user_id: str, prefs: Dict[str, Any]):
    conn = _connect()
    try:
        conn.execute(
            "INSERT OR REPLACE INTO preferences (user_id, prefs_json, updated_at) VALUES (?, ?, ?)",
            (user_id, _dumps(prefs), _now()),
        )
        conn.commit()
    finally:
        conn.close()


# ------------------ Experiments ------------------

def save_experiment(
    *,
    experiment_id: str,
    user_id: str,
    prompt: str,
    output_type: str,
    matrix: Dict[str, Any],
    models: Dict[str, Any],
    results: List[Dict[str, Any]],
):
    """Persist one matrix experiment and one row per cell."""
    conn = _connect()
    try:
        conn.execute(
            """
            INSERT OR REPLACE INTO experiments (
                experiment_id, ts, user_id, prompt, output_type,
                matrix_json, models_json, cell_count
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                experiment_id,
                _now(),
                user_id,
                prompt,
                output_type,
                _dumps(matrix),
                _dumps(models),
                len(results),
            ),
        )
        for idx, r in enumerate(results):
            cfg = r.get("config") or {}
            ai = ((r.get("evaluation") or {}).get("ai")) or {}
            conn.execute(
                """
                INSERT INTO experiment_results (
                    experiment_id, cell_index, tone, length, format,
                    blueprint, execution_result, judge_score, judge_critique,
                    error, result_json
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    experiment_id,
                    idx,
                    cfg.get("tone"),
                    cfg.get("length"),
                    cfg.get("format"),
                    r.get("blueprint") or "",
                    r.get("execution_result"),
                    ai.get("score"),
                    ai.get("critique"),
                    r.get("error") or r.get("execution_error"),
                    _dumps(r),
                ),
            )
        conn.commit()
    finally:
        conn.close()


def fetch_experiments(user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
    """A user's experiments, newest first."""
    conn = _connect()
    try:
        rows = conn.execute(
            """
            SELECT experiment_id, ts, user_id, prompt, output_type, cell_count
            FROM experiments
            WHERE user_id = ?
            ORDER BY ts DESC
            LIMIT ?
            """,
            (user_id, limit),
        ).fetchall()
    finally:
        conn.close()
    return [dict(r) for r in rows]


def fetch_experiment_results(experiment_id: str) -> List[Dict[str, Any]]:
    conn = _connect()
    try:
        rows = conn.execute(
            """
            SELECT cell_index, tone, length, format, blueprint, execution_result,
                   judge_score, judge_critique, error
            FROM experiment_results
            WHERE experiment_id = ?
            ORDER BY cell_index
            """,
            (experiment_id,),
        ).fetchall()
    finally:
        conn.close()
    return [dict(r) for r in rows]


def fetch_baselines(user_id: str) -> Dict[str, Any]:
    conn = _connect()
    try:
        row = conn.execute(
            "SELECT baselines_json FROM experiment_baselines WHERE user_id = ?", (user_id,)
        ).fetchone()
    finally:
        conn.close()
    return _loads(row["baselines_json"]) if row else {}


def save_baselines(user_id: str, baselines: Dict[str, Any]):
    conn = _connect()
    try:
        conn.execute(
            "INSERT OR REPLACE INTO experiment_baselines (user_id, baselines_json, updated_at) VALUES (?, ?, ?)",
            (user_id, _dumps(baselines), _now()),
        )
        conn.commit()
    finally:
        conn.close()


# ------------------ Prompt history ------------------

_HISTORY_COLUMNS = (
    "created_at", "signature", "original_text", "final_prompt", "output_type",
    "tone", "format", "length", "notes", "toggles_json", "type_specific_json",
    "is_reverse_prompted", "is_private", "version", "versions_json", "imported_from",
)

_HISTORY_INSERT_SQL = "INSERT INTO prompt_history (user_id, {cols}) VALUES (?, {marks})".format(
    cols=", ".join(_HISTORY_COLUMNS),
    marks=", ".join("?" for _ in _HISTORY_COLUMNS),
)
_HISTORY_UPDATE_SQL = "UPDATE prompt_history SET {sets} WHERE id = ? AND user_id = ?".format(
    sets=", ".join(c + " = ?" for c in _HISTORY_COLUMNS),
)


def _history_values(item: Dict[str, Any]) -> tuple:
    return (
        item.get("created_at") or _now(),
        item.get("signature") or "",
        item.get("original_text") or "",
        item.get("final_prompt") or "",
        item.get("output_type") or "doc",
        item.get("tone") or "professional",
        item.get("format") or "paragraph",
        item.get("length") or "medium",
        item.get("notes") or "",
        _dumps(item.get("toggles")),
        _dumps(item.get("type_specific")),
        int(bool(item.get("is_reverse_prompted"))),
        int(bool(item.get("is_private"))),
        int(item.get("version") or 1),
        json.dumps(item.get("versions") or [], ensure_ascii=False),
        item.get("imported_from"),
    )


def _history_from_row(row: sqlite3.Row) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "created_at": row["created_at"],
        "signature": row["signature"],
        "original_text": row["original_text"],
        "final_prompt": row["final_prompt"],
        "output_type": row["output_type"],
        "tone": row["tone"],
        "format": row["format"],
        "length": row["length"],
        "notes": row["notes"],
        "toggles": _loads(row["toggles_json"]),
        "type_specific": _loads(row["type_specific_json"]),
        "is_reverse_prompted": bool(row["is_reverse_prompted"]),
        "is_private": bool(row["is_private"]),
        "version": row["version"],
        "versions": _loads(row["versions_json"], default=[]),
        "imported_from": row["imported_from"],
    }


def insert_history_item(user_id: str, item: Dict[str, Any]) -> int:
    conn = _connect()
    try:
        cur = conn.execute(_HISTORY_INSERT_SQL, (user_id,) + _history_values(item))
        conn.commit()
        return cur.lastrowid
    finally:
        conn.close()


def update_history_item(user_id: str, item_id: int, item: Dict[str, Any]):
    conn = _connect()
    try:
        conn.execute(_HISTORY_UPDATE_SQL, _history_values(item) + (item_id, user_id))
        conn.commit()
    finally:
        conn.close()


def fetch_history(user_id: str) -> List[Dict[str, Any]]:
    """Newest first; ties broken by insertion order."""
    conn = _connect()
    try:
        rows = conn.execute(
            "SELECT * FROM prompt_history WHERE user_id = ? ORDER BY created_at DESC, id DESC",
            (user_id,),
        ).fetchall()
    finally:
        conn.close()
    return [_history_from_row(r) for r in rows]


def fetch_history_item(user_id: str, item_id: int) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute(
            "SELECT * FROM prompt_history WHERE id = ? AND user_id = ?", (item_id, user_id)
        ).fetchone()
    finally:
        conn.close()
    return _history_from_row(row) if row else None


def delete_history_item(user_id: str, item_id: int) -> bool:
    conn = _connect()
    try:
        cur = conn.execute("DELETE FROM prompt_history WHERE id = ? AND user_id = ?", (item_id, user_id))
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


def clear_history(user_id: str) -> int:
    conn = _connect()
    try:
        cur = conn.execute("DELETE FROM prompt_history WHERE user_id = ?", (user_id,))
        conn.commit()
        return cur.rowcount
    finally:
        conn.close()


# ------------------ Usage ------------------

def insert_usage_log(entry: Dict[str, Any]) -> int:
    conn = _connect()
    try:
        cur = conn.execute(
            """
            INSERT INTO usage_logs (
                ts, month, user_id, org_id, provider, model, feature,
                key_source, input_tokens, output_tokens, cost
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry.get("ts") or _now(),
                entry["month"],
                entry.get("user_id"),
                entry.get("org_id"),
                entry["provider"],
                entry["model"],
                entry["feature"],
                entry.get("key_source") or "org",
                int(entry.get("input_tokens") or 0),
                int(entry.get("output_tokens") or 0),
                float(entry.get("cost") or 0.0),
            ),
        )
        conn.commit()
        return cur.lastrowid
    finally:
        conn.close()


def fetch_usage_logs(
    *,
    org_id: Optional[str] = None,
    user_id: Optional[str] = None,
    month: Optional[str] = None,
    limit: int = 1000,
) -> List[Dict[str, Any]]:
    clauses = []
    params: List[Any] = []
    if org_id is not None:
        clauses.append("org_id = ?")
        params.append(org_id)
    if user_id is not None:
        clauses.append("user_id = ?")
        params.append(user_id)
    if month is not None:
        clauses.append("month = ?")
        params.append(month)

    sql = "SELECT * FROM usage_logs"
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    sql += " ORDER BY id DESC LIMIT ?"
    params.append(limit)

    conn = _connect()
    try:
        rows = conn.execute(sql, params).fetchall()
    finally:
        conn.close()
    return [dict(r) for r in rows]
