"""history.py

Saved prompts per user. Each distinct request (by signature) is one history
item; regenerating the same request bumps its version and appends a snapshot
to `versions`. Backups are a JSON array of items without ids.
"""

from __future__ import annotations

import hashlib
import json
import sqlite3
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

import db
from logger import get_logger

logger = get_logger(__name__)

SIGNATURE_PREFIX_CHARS = 60

# Fields a backup item may carry; anything else is dropped on import
_BACKUP_FIELDS = (
    "original_text", "final_prompt", "output_type", "tone", "format", "length",
    "notes", "toggles", "type_specific", "is_reverse_prompted", "is_private",
    "signature", "version", "versions",
)


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


def generate_signature(text: str) -> str:
    """Dedup key: the first 60 chars of the request, trimmed and lower-cased."""
    prefix = (text or "").strip()[:SIGNATURE_PREFIX_CHARS].lower()
    return hashlib.sha256(prefix.encode("utf-8")).hexdigest()[:16]


def _versions(item: Dict[str, Any]) -> List[Dict[str, Any]]:
    # Imported backups may carry anything here
    versions = item.get("versions")
    return list(versions) if isinstance(versions, list) else []


def save_to_history(
    user_id: str,
    *,
    original_text: str,
    final_prompt: str,
    output_type: str,
    tone: str,
    format: str,
    length: str,
    notes: str = "",
    toggles: Optional[Dict[str, Any]] = None,
    type_specific: Optional[Dict[str, Any]] = None,
    is_reverse_prompted: bool = False,
    history_id: Optional[int] = None,
) -> int:
    """Insert a new item, or add a version to the one this request already has."""
    if not user_id:
        raise ValueError("user_id is required to save history")

    signature = generate_signature(original_text)
    snapshot = {
        "original_text": original_text,
        "final_prompt": final_prompt,
        "output_type": output_type,
        "tone": tone,
        "format": format,
        "length": length,
        "notes": notes or "",
        "toggles": dict(toggles or {}),
        "type_specific": dict(type_specific or {}),
        "is_reverse_prompted": bool(is_reverse_prompted),
        "created_at": _now(),
        "signature": signature,
    }

    existing = db.fetch_history_item(user_id, history_id) if history_id is not None else None
    if existing is None:
        existing = next((h for h in db.fetch_history(user_id) if h["signature"] == signature), None)

    if existing is None:
        return db.insert_history_item(user_id, {
            **snapshot,
            "is_private": False,
            "version": 1,
            "versions": [snapshot],
        })

    db.update_history_item(user_id, existing["id"], {
        **snapshot,
        "is_private": existing["is_private"],
        "version": (existing["version"] or 1) + 1,
        "versions": _versions(existing) + [snapshot],
    })
    return existing["id"]


def get_history(user_id: str) -> List[Dict[str, Any]]:
    if not user_id:
        return []
    return db.fetch_history(user_id)


def filter_history(items: List[Dict[str, Any]], query: str) -> List[Dict[str, Any]]:
    """Case-insensitive match on request text, output type or tone."""
    q = (query or "").strip().lower()
    if not q:
        return items
    return [
        item for item in items
        if any(q in (item.get(k) or "").lower() for k in ("original_text", "output_type", "tone"))
    ]


def delete_history_item(user_id: str, item_id: int) -> bool:
    return db.delete_history_item(user_id, item_id)


def clear_history(user_id: str) -> int:
    removed = db.clear_history(user_id)
    logger.info("Cleared %d history items for %s", removed, user_id)
    return removed


def toggle_private(user_id: str, item_id: int) -> Optional[bool]:
    item = db.fetch_history_item(user_id, item_id)
    if item is None:
        return None
    item["is_private"] = not item["is_private"]
    db.update_history_item(user_id, item_id, item)
    return item["is_private"]


# ------------------ Backup / restore ------------------

def backup_filename(day: Optional[date] = None) -> str:
    return f"prompt-history-backup-{(day or date.today()).isoformat()}.json"


def export_history(user_id: str) -> str:
    items = []
    for item in get_history(user_id):
        exported = {k: item[k] for k in _BACKUP_FIELDS}
        exported["created_at"] = item["created_at"]
        items.append(exported)
    return json.dumps(items, indent=2, ensure_ascii=False)


def import_history(user_id: str, payload: Union[str, bytes]) -> Dict[str, Any]:
    """Restore a backup. Items whose signature is already present are skipped.

    Returns {"imported", "skipped", "errors"}, plus "error" when the file itself
    could not be read.
    """
    counts: Dict[str, Any] = {"imported": 0, "skipped": 0, "errors": 0}
    if not user_id:
        return {**counts, "error": "You must be signed in to import history"}

    try:
        data = json.loads(payload)
    except (TypeError, ValueError) as e:
        logger.warning("Could not parse history backup: %s", e)
        return {**counts, "error": "Failed to parse backup file. Please ensure it is a valid JSON file."}
    if not isinstance(data, list):
        return {**counts, "error": "Invalid backup file format. Expected an array of history items."}

    seen = {h["signature"] for h in db.fetch_history(user_id) if h["signature"]}

    for raw in data:
        if not isinstance(raw, dict):
            counts["errors"] += 1
            continue

        signature = raw.get("signature") if isinstance(raw.get("signature"), str) else ""
        if signature and signature in seen:
            counts["skipped"] += 1
            continue

        item = {k: raw.get(k) for k in _BACKUP_FIELDS}
        item["imported_from"] = raw.get("created_at")
        item["signature"] = signature
        try:
            db.insert_history_item(user_id, item)
        except (TypeError, ValueError, sqlite3.Error) as e:
            logger.warning("Skipping unreadable history item: %s", e)
            counts["errors"] += 1
            continue

        counts["imported"] += 1
        if signature:
            seen.add(signature)

    return counts
