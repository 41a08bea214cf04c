"""api_keys.py

Provider key management: which key a call should use, testing keys against
the providers, and credit balances.

Resolution order is the user's personal key, then the org key. An org with
require_org_keys set only ever hands out org keys; allow_user_keys=False
skips personal keys but still falls back to the org.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

import requests

import config
import db
import roles
from llm_client import ANTHROPIC_URL, ANTHROPIC_VERSION
from logger import get_logger

logger = get_logger(__name__)

PROVIDERS = ("openai", "anthropic", "gemini")

OPENAI_MODELS_URL = "https://api.openai.com/v1/models"
OPENAI_CREDITS_URL = "https://api.openai.com/v1/dashboard/billing/credit_grants"
GEMINI_MODELS_URL = "https://generativelanguage.googleapis.com/v1/models"
KEY_TEST_MODEL = "claude-3-haiku-20240307"

RATE_LIMITED = "Rate limited - key may be valid but quota exceeded"


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


def mask_api_key(key: Optional[str]) -> str:
    if not key or len(key) < 12:
        return "****"
    return key[:8] + "*" * (len(key) - 12) + key[-4:]


# ------------------ Resolution ------------------

def _resolved(key: Optional[str], source: Optional[str], provider: str) -> Dict[str, Any]:
    return {"key": key or None, "source": source if key else None, "provider": provider}


def _user_key(user_id: str, provider: str) -> Optional[str]:
    entry = db.fetch_user_keys(user_id)["keys"].get(provider) or {}
    return entry.get("key")


def resolve_api_key(user_id: str, org_id: Optional[str], provider: str) -> Dict[str, Any]:
    if not user_id or not provider:
        return _resolved(None, None, provider)

    org = db.fetch_org(org_id or f"org_{user_id}")
    if org is None:
        return _resolved(_user_key(user_id, provider), "user", provider)

    settings = org["settings"] or {}
    org_key = ((org["api_keys"] or {}).get(provider) or {}).get("key")

    if settings.get("require_org_keys"):
        return _resolved(org_key, "org", provider)

    if settings.get("allow_user_keys", True):
        user_key = _user_key(user_id, provider)
        if user_key:
            return _resolved(user_key, "user", provider)

    return _resolved(org_key, "org", provider)


def resolve_all_keys(user_id: str, org_id: Optional[str]) -> Dict[str, Dict[str, Any]]:
    return {p: resolve_api_key(user_id, org_id, p) for p in PROVIDERS}


def get_effective_api_keys(user_id: str, org_id: Optional[str],
                           fallback: Optional[Dict[str, Optional[str]]] = None) -> Dict[str, Optional[str]]:
    """Keys dict for llm_client. Environment keys fill any gaps by default."""
    fallback = config.env_api_keys() if fallback is None else fallback
    resolved = resolve_all_keys(user_id, org_id)
    return {p: resolved[p]["key"] or fallback.get(p) for p in PROVIDERS}


def get_key_sources(user_id: str, org_id: Optional[str]) -> Dict[str, Optional[str]]:
    return {p: r["source"] for p, r in resolve_all_keys(user_id, org_id).items()}


# ------------------ Storage ------------------

def get_user_api_keys(user_id: str) -> Dict[str, Any]:
    if not user_id:
        return {}
    return db.fetch_user_keys(user_id)["keys"]


def save_user_key(user_id: str, provider: str, key: str, **metadata):
    if not user_id or provider not in PROVIDERS:
        raise ValueError("Missing required parameters")

    stored = db.fetch_user_keys(user_id)
    stored["keys"][provider] = {"key": key, "added_at": _now(), **metadata}
    db.save_user_keys(user_id, stored["keys"], stored["balances"])
    logger.info("Saved %s key for user %s", provider, user_id)


def remove_user_key(user_id: str, provider: str):
    if not user_id or not provider:
        raise ValueError("Missing required parameters")

    stored = db.fetch_user_keys(user_id)
    if stored["keys"].pop(provider, None) is not None:
        db.save_user_keys(user_id, stored["keys"], stored["balances"])


def has_user_key(user_id: str, provider: str) -> bool:
    return bool(_user_key(user_id, provider))


def save_org_key(org_id: str, actor_id: str, provider: str, key: Optional[str]) -> Dict[str, Any]:
    """Set (or clear, with key=None) an org-level key. Needs EDIT_ORG_API_KEYS."""
    if provider not in PROVIDERS:
        raise ValueError(f"Unknown provider: {provider}")

    org = db.fetch_org(org_id)
    if org is None:
        return {"success": False, "error": "Organization not found"}
    actor_role = roles.get_user_role(org["members"], actor_id)
    if not roles.has_permission(actor_role, "EDIT_ORG_API_KEYS"):
        return {"success": False, "error": "You do not have permission to edit organization keys"}

    api_keys = org["api_keys"] or {}
    if key:
        api_keys[provider] = {"key": key, "added_at": _now(), "added_by": actor_id}
    else:
        api_keys.pop(provider, None)
    org["api_keys"] = api_keys
    db.save_org(org_id, org)
    return {"success": True}


# ------------------ Key testing ------------------

def _test_result(resp: requests.Response, invalid_statuses) -> Dict[str, Any]:
    if resp.ok:
        return {"valid": True, "error": None}
    if resp.status_code in invalid_statuses:
        return {"valid": False, "error": "Invalid API key"}
    if resp.status_code == 429:
        return {"valid": False, "error": RATE_LIMITED}
    try:
        data = resp.json()
    except ValueError:
        data = {}
    err = data.get("error") if isinstance(data, dict) else None
    message = err.get("message") if isinstance(err, dict) else None
    return {"valid": False, "error": message or f"HTTP {resp.status_code}"}


def test_api_key(provider: str, api_key: Optional[str]) -> Dict[str, Any]:
    """Make the cheapest call that proves the key works."""
    if not api_key or not api_key.strip():
        return {"valid": False, "error": "API key is required"}
    if provider not in PROVIDERS:
        return {"valid": False, "error": f"Unknown provider: {provider}"}

    try:
        if provider == "openai":
            resp = requests.get(
                OPENAI_MODELS_URL,
                headers={"Authorization": f"Bearer {api_key}"},
                timeout=config.REQUEST_TIMEOUT_S,
            )
            return _test_result(resp, (401,))

        if provider == "anthropic":
            resp = requests.post(
                ANTHROPIC_URL,
                headers={
                    "x-api-key": api_key,
                    "anthropic-version": ANTHROPIC_VERSION,
                    "content-type": "application/json",
                },
                json={"model": KEY_TEST_MODEL, "max_tokens": 1, "messages": [{"role": "user", "content": "Hi"}]},
                timeout=config.REQUEST_TIMEOUT_S,
            )
            return _test_result(resp, (401,))

        resp = requests.get(GEMINI_MODELS_URL, params={"key": api_key}, timeout=config.REQUEST_TIMEOUT_S)
        return _test_result(resp, (400, 403))
    except requests.RequestException as e:
        return {"valid": False, "error": f"Network error: {e}"}


def test_all_keys(api_keys: Dict[str, Optional[str]]) -> Dict[str, Dict[str, Any]]:
    results = {}
    for provider in PROVIDERS:
        if api_keys.get(provider):
            results[provider] = test_api_key(provider, api_keys[provider])
        else:
            results[provider] = {"valid": False, "error": "No key provided"}
    return results


# ------------------ Balances ------------------

def fetch_openai_balance(api_key: Optional[str]) -> Dict[str, Any]:
    if not api_key:
        return {"balance": None, "error": "No API key provided", "source": "auto"}

    try:
        resp = requests.get(
            OPENAI_CREDITS_URL,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=config.REQUEST_TIMEOUT_S,
        )
    except requests.RequestException as e:
        logger.error("Failed to fetch OpenAI balance: %s", e)
        return {"balance": None, "error": str(e) or "Network error", "source": "auto"}

    if resp.status_code == 401:
        return {"balance": None, "error": "Invalid API key", "source": "auto"}
    if resp.status_code == 403:
        return {"balance": None, "error": "API key lacks billing permissions", "source": "auto"}
    if not resp.ok:
        return {"balance": None, "error": f"API error: {resp.status_code}", "source": "auto"}

    data = resp.json()
    granted = data.get("total_granted") or 0
    used = data.get("total_used") or 0
    return {
        "balance": max(0, granted - used),
        "limit": granted,
        "used": used,
        "currency": "USD",
        "fetched_at": _now(),
        "error": None,
        "source": "auto",
    }


_MANUAL_HINTS = {
    "anthropic": "Anthropic requires manual balance entry. Check console.anthropic.com",
    "gemini": "Gemini requires manual balance entry. Check Google Cloud Console",
}


def fetch_provider_balance(provider: str, api_key: Optional[str]) -> Dict[str, Any]:
    if provider == "openai":
        return fetch_openai_balance(api_key)
    if provider not in _MANUAL_HINTS:
        return {"balance": None, "error": "Unknown provider", "source": "auto"}
    if not api_key:
        return {"balance": None, "error": "No API key provided", "source": "auto"}
    # No balance API for these; the value has to be typed in
    return {"balance": None, "error": _MANUAL_HINTS[provider], "source": "manual", "fetched_at": _now()}


def fetch_all_balances(api_keys: Dict[str, Optional[str]]) -> Dict[str, Dict[str, Any]]:
    return {p: fetch_provider_balance(p, api_keys.get(p)) for p in PROVIDERS}


def set_manual_balance(org_id: str, provider: str, balance: float):
    org = db.fetch_org(org_id) if org_id else None
    if org is None or not provider:
        raise ValueError("Missing required parameters")

    balances = org.get("balances") or {}
    balances[provider] = {
        "balance": float(balance),
        "currency": "USD",
        "fetched_at": _now(),
        "source": "manual",
        "error": None,
    }
    org["balances"] = balances
    db.save_org(org_id, org)


def get_stored_balances(org_id: str) -> Dict[str, Any]:
    org = db.fetch_org(org_id) if org_id else None
    return (org.get("balances") or {}) if org else {}


def refresh_balances(org_id: str, api_keys: Dict[str, Optional[str]]) -> Dict[str, Dict[str, Any]]:
    """Fetch balances and store those that came back (manual ones keep their typed value)."""
    org = db.fetch_org(org_id) if org_id else None
    if org is None:
        raise ValueError("Missing required parameters")

    fetched = fetch_all_balances(api_keys)
    stored = org.get("balances") or {}
    for provider, info in fetched.items():
        if info["balance"] is not None:
            stored[provider] = info
    org["balances"] = stored
    db.save_org(org_id, org)
    return fetched


def format_balance(info: Optional[Dict[str, Any]]) -> str:
    if not info:
        return "—"
    if info.get("balance") is None:
        return "N/A" if info.get("error") else "—"
    return f"${info['balance']:.2f}"


def balance_status(info: Optional[Dict[str, Any]], warning: float = 10, critical: float = 5) -> str:
    if not info or info.get("balance") is None:
        return "unknown"
    if info["balance"] <= critical:
        return "critical"
    if info["balance"] <= warning:
        return "warning"
    return "ok"
