"""alerts.py

Budget and balance alerts for an organization.

Alert ids are "<kind>_<millis>" (balance alerts: "<kind>_<provider>_<millis>").
Dismissing one alert hides every later alert with the same prefix, so a user
who dismisses a usage warning is not shown it again every page load.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Any, Dict, List, Optional

import db
from logger import get_logger
from usage import PROVIDER_NAMES

logger = get_logger(__name__)

DEFAULT_ALERT_SETTINGS: Dict[str, Any] = {
    "enabled": True,
    "monthly_budget": 100,
    "warning_threshold": 80,   # % of budget
    "critical_threshold": 95,  # % of budget
    "balance_warning": 10,     # USD
    "balance_critical": 5,     # USD
}

ALERT_TYPES = {
    "USAGE_WARNING": "usage_warning",
    "USAGE_CRITICAL": "usage_critical",
    "BALANCE_WARNING": "balance_warning",
    "BALANCE_CRITICAL": "balance_critical",
    "KEY_INVALID": "key_invalid",
}

BALANCE_PROVIDERS = ("openai", "anthropic", "gemini")


def _millis() -> int:
    return int(time.time() * 1000)


def _alert(alert_id: str, kind: str, severity: str, title: str, message: str,
           provider: Optional[str] = None) -> Dict[str, Any]:
    alert = {
        "id": alert_id,
        "type": kind,
        "severity": severity,
        "title": title,
        "message": message,
        "created_at": datetime.now().isoformat(timespec="seconds"),
        "dismissed": False,
    }
    if provider:
        alert["provider"] = provider
    return alert


# ------------------ Checks ------------------

def check_usage_alert(current_cost: float, settings: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not settings or not settings.get("enabled") or not settings.get("monthly_budget"):
        return None

    budget = settings["monthly_budget"]
    percent = current_cost / budget * 100
    message = (
        f"You've used {percent:.0f}% of your monthly budget "
        f"(${current_cost:.2f} of ${budget})"
    )

    if percent >= settings["critical_threshold"]:
        return _alert(f"usage_critical_{_millis()}", "usage", "critical", "Usage Critical", message)
    if percent >= settings["warning_threshold"]:
        return _alert(f"usage_warning_{_millis()}", "usage", "warning", "Usage Warning", message)
    return None


def check_balance_alert(provider: str, balance: Optional[float],
                        settings: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not settings or not settings.get("enabled") or balance is None:
        return None

    name = PROVIDER_NAMES.get(provider, provider)
    if balance <= settings["balance_critical"]:
        return _alert(
            f"balance_critical_{provider}_{_millis()}", "balance", "critical",
            f"{name} Balance Critical", f"Your {name} balance is very low: ${balance:.2f}", provider,
        )
    if balance <= settings["balance_warning"]:
        return _alert(
            f"balance_warning_{provider}_{_millis()}", "balance", "warning",
            f"{name} Balance Low", f"Your {name} balance is running low: ${balance:.2f}", provider,
        )
    return None


def check_all_balance_alerts(balances: Optional[Dict[str, Any]],
                             settings: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if not settings or not settings.get("enabled"):
        return []

    alerts = []
    for provider in BALANCE_PROVIDERS:
        info = (balances or {}).get(provider) or {}
        alert = check_balance_alert(provider, info.get("balance"), settings)
        if alert:
            alerts.append(alert)
    return alerts


def generate_alerts(current_cost: float, balances: Optional[Dict[str, Any]],
                    settings: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if not settings or not settings.get("enabled"):
        return []

    alerts = []
    usage_alert = check_usage_alert(current_cost, settings)
    if usage_alert:
        alerts.append(usage_alert)
    alerts.extend(check_all_balance_alerts(balances, settings))
    return alerts


def filter_dismissed(alerts: List[Dict[str, Any]], dismissed_ids: Optional[List[str]]) -> List[Dict[str, Any]]:
    if not dismissed_ids:
        return alerts

    active = []
    for alert in alerts:
        prefix = alert["id"].rsplit("_", 1)[0]
        if any(d == alert["id"] or d.startswith(prefix) for d in dismissed_ids):
            continue
        active.append(alert)
    return active


# ------------------ Storage ------------------

def get_alert_settings(org_id: str) -> Dict[str, Any]:
    org = db.fetch_org(org_id) if org_id else None
    if org is None:
        return dict(DEFAULT_ALERT_SETTINGS)
    return {**DEFAULT_ALERT_SETTINGS, **(org["alert_settings"] or {})}


def update_alert_settings(org_id: str, settings: Dict[str, Any]) -> Dict[str, Any]:
    org = db.fetch_org(org_id) if org_id else None
    if org is None:
        raise ValueError(f"Organization not found: {org_id}")

    org["alert_settings"] = {**DEFAULT_ALERT_SETTINGS, **(org["alert_settings"] or {}), **settings}
    db.save_org(org_id, org)
    return org["alert_settings"]


def get_dismissed_alerts(org_id: str) -> List[str]:
    org = db.fetch_org(org_id) if org_id else None
    return list(org["dismissed_alerts"]) if org else []


def dismiss_alert(org_id: str, alert_id: str):
    if not org_id or not alert_id:
        return
    org = db.fetch_org(org_id)
    if org is None:
        return
    if alert_id not in org["dismissed_alerts"]:
        org["dismissed_alerts"].append(alert_id)
        db.save_org(org_id, org)
    logger.info("Dismissed alert %s for %s", alert_id, org_id)


def get_active_alerts(org_id: str, current_cost: float, balances: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    alerts = generate_alerts(current_cost, balances, get_alert_settings(org_id))
    return filter_dismissed(alerts, get_dismissed_alerts(org_id))
