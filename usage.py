"""usage.py

Model pricing, token estimates and usage logging.

Prices are USD per 1M tokens. Monthly totals are computed from usage_logs on
read instead of being kept as a separate running aggregate.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import db
from logger import get_logger

logger = get_logger(__name__)

MODEL_PRICING: Dict[str, Dict[str, float]] = {
    # OpenAI
    "gpt-4o": {"input": 2.50, "output": 10.00},
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-4-turbo": {"input": 10.00, "output": 30.00},
    "gpt-4": {"input": 30.00, "output": 60.00},
    "gpt-3.5-turbo": {"input": 0.50, "output": 1.50},
    # Anthropic
    "claude-3-5-sonnet-20241022": {"input": 3.00, "output": 15.00},
    "claude-3-5-sonnet-latest": {"input": 3.00, "output": 15.00},
    "claude-3-5-haiku-20241022": {"input": 0.80, "output": 4.00},
    "claude-3-opus-20240229": {"input": 15.00, "output": 75.00},
    "claude-3-haiku-20240307": {"input": 0.25, "output": 1.25},
    # Gemini
    "gemini-1.5-pro": {"input": 1.25, "output": 5.00},
    "gemini-1.5-flash": {"input": 0.075, "output": 0.30},
    "gemini-2.0-flash": {"input": 0.10, "output": 0.40},
    "gemini-2.0-flash-exp": {"input": 0.10, "output": 0.40},
}

PROVIDER_NAMES = {"openai": "OpenAI", "anthropic": "Anthropic", "gemini": "Google Gemini"}

FEATURES = {
    "PROMPT_GENERATION": "prompt_generation",
    "EXPERIMENT": "experiment",
    "REVERSE_PROMPT": "reverse_prompt",
    "QUALITY_ASSESSMENT": "quality_assessment",
    "AUTO_IMPROVE": "auto_improve",
    "REFINEMENT": "refinement",
}

FEATURE_LABELS = {
    "prompt_generation": "Prompt Generation",
    "experiment": "Experiments",
    "reverse_prompt": "Reverse Prompt",
    "quality_assessment": "Quality Assessment",
    "auto_improve": "Auto Improve",
    "refinement": "Refinement",
    "unknown": "Other",
}


# ------------------ Pricing ------------------

def get_model_pricing(model_id: str) -> Optional[Dict[str, float]]:
    return MODEL_PRICING.get(model_id)


def calculate_cost(model_id: str, input_tokens: int, output_tokens: int) -> Optional[float]:
    """USD cost rounded to 6 decimals, or None for an unknown model."""
    pricing = get_model_pricing(model_id)
    if pricing is None:
        return None
    cost = (input_tokens / 1_000_000) * pricing["input"] + (output_tokens / 1_000_000) * pricing["output"]
    return round(cost, 6)


def format_cost(cost: Optional[float], decimals: int = 4) -> str:
    if cost is None:
        return "—"
    if cost == 0:
        return "$0.00"
    if cost < 0.0001:
        return "< $0.0001"
    return f"${cost:.{decimals}f}"


def format_tokens(tokens: Optional[int]) -> str:
    if tokens is None:
        return "—"
    if tokens >= 1_000_000:
        return f"{tokens / 1_000_000:.1f}M"
    if tokens >= 1_000:
        return f"{tokens / 1_000:.0f}K"
    return str(tokens)


def provider_from_model(model_id: str) -> Optional[str]:
    model_id = model_id or ""
    if model_id.startswith("gpt-"):
        return "openai"
    if model_id.startswith("claude-"):
        return "anthropic"
    if model_id.startswith("gemini-"):
        return "gemini"
    return None


def estimate_tokens(text: str) -> int:
    """Rough word-length based estimate; no tokenizer needed."""
    if not text:
        return 0
    total = 0.0
    for word in text.split():
        if len(word) <= 3:
            total += 1
        elif len(word) <= 7:
            total += 1.5
        else:
            total += 2
    return math.ceil(total)


# ------------------ Aggregation ------------------

def aggregate_by_provider(records: Iterable[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    result: Dict[str, Dict[str, Any]] = {}
    for r in records:
        provider = r.get("provider") or provider_from_model(r.get("model") or "")
        if not provider:
            continue
        p = result.setdefault(provider, {
            "requests": 0, "input_tokens": 0, "output_tokens": 0, "cost": 0.0, "by_model": {},
        })
        p["requests"] += 1
        p["input_tokens"] += r.get("input_tokens") or 0
        p["output_tokens"] += r.get("output_tokens") or 0
        p["cost"] += r.get("cost") or 0.0

        model = r.get("model")
        if model:
            m = p["by_model"].setdefault(model, {"requests": 0, "input_tokens": 0, "output_tokens": 0, "cost": 0.0})
            m["requests"] += 1
            m["input_tokens"] += r.get("input_tokens") or 0
            m["output_tokens"] += r.get("output_tokens") or 0
            m["cost"] += r.get("cost") or 0.0
    return result


def aggregate_by_user(records: Iterable[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    result: Dict[str, Dict[str, Any]] = {}
    for r in records:
        user_id = r.get("user_id")
        if not user_id:
            continue
        u = result.setdefault(user_id, {"requests": 0, "cost": 0.0, "key_source": r.get("key_source") or "org"})
        u["requests"] += 1
        u["cost"] += r.get("cost") or 0.0
    return result


def aggregate_by_feature(records: Iterable[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    result: Dict[str, Dict[str, Any]] = {}
    for r in records:
        f = result.setdefault(r.get("feature") or "unknown", {"requests": 0, "cost": 0.0})
        f["requests"] += 1
        f["cost"] += r.get("cost") or 0.0
    return result


# ------------------ Logging ------------------

def month_key(when: Optional[datetime] = None) -> str:
    return (when or datetime.now()).strftime("%Y-%m")


def log_usage(
    org_id: str,
    user_id: str,
    model: str,
    input_tokens: int,
    output_tokens: int,
    feature: str = "unknown",
    key_source: str = "org",
) -> Optional[int]:
    """Record one API call. Returns the log id, or None if it could not be logged."""
    if not org_id or not user_id or not model:
        logger.warning("Missing required parameters for usage logging")
        return None

    entry = {
        "month": month_key(),
        "org_id": org_id,
        "user_id": user_id,
        "provider": provider_from_model(model) or "unknown",
        "model": model,
        "feature": feature or "unknown",
        "key_source": key_source,
        "input_tokens": input_tokens or 0,
        "output_tokens": output_tokens or 0,
        "cost": calculate_cost(model, input_tokens or 0, output_tokens or 0) or 0.0,
    }
    try:
        return db.insert_usage_log(entry)
    except Exception as e:
        logger.error("Failed to log usage: %s", e)
        return None


def log_call(org_id: str, user_id: str, model: str, prompt: str, response: str, feature: str,
             key_source: str = "org") -> Optional[int]:
    """Log a call when the provider did not report token counts."""
    return log_usage(org_id, user_id, model, estimate_tokens(prompt), estimate_tokens(response), feature, key_source)


def get_usage_logs(org_id: Optional[str] = None, user_id: Optional[str] = None,
                   month: Optional[str] = None, limit: int = 1000) -> List[Dict[str, Any]]:
    return db.fetch_usage_logs(org_id=org_id, user_id=user_id, month=month, limit=limit)


def get_monthly_aggregate(org_id: str, month: Optional[str] = None) -> Dict[str, Any]:
    month = month or month_key()
    records = db.fetch_usage_logs(org_id=org_id, month=month, limit=1_000_000)
    return {
        "org_id": org_id,
        "month": month,
        "total_requests": len(records),
        "total_input_tokens": sum(r["input_tokens"] or 0 for r in records),
        "total_output_tokens": sum(r["output_tokens"] or 0 for r in records),
        "total_cost": round(sum(r["cost"] or 0.0 for r in records), 6),
        "by_provider": aggregate_by_provider(records),
        "by_user": aggregate_by_user(records),
        "by_feature": aggregate_by_feature(records),
    }
