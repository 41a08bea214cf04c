"""orgs.py

Organizations, memberships and invite codes on top of the SQLite store.

User-facing failures come back as {"success": False, "error": "..."}; missing
required arguments raise ValueError.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import db
import roles
from logger import get_logger

logger = get_logger(__name__)

# No 0/O/1/I/L
INVITE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
INVITE_CODE_LENGTH = 8
DEFAULT_INVITE_DAYS = 7


def generate_invite_code() -> str:
    return "".join(secrets.choice(INVITE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))


def personal_org_id(user_id: str) -> str:
    return f"org_{user_id}"


# ------------------ Organizations ------------------

def create_organization(name: str, creator_id: str, creator_email: str = "", creator_name: str = "",
                        org_id: Optional[str] = None) -> str:
    if not name or not creator_id:
        raise ValueError("Missing required parameters")

    org_id = org_id or f"org_{uuid.uuid4().hex[:12]}"
    org = roles.new_organization(name, creator_id, creator_email, creator_name)
    db.save_org(org_id, org)
    add_user_to_org_membership(creator_id, org_id, roles.OWNER)
    logger.info("Created organization %s (%s)", org_id, name)
    return org_id


def ensure_personal_org(user_id: str, email: str = "") -> Dict[str, Any]:
    org_id = personal_org_id(user_id)
    org = db.fetch_org(org_id)
    if org is None:
        create_organization("Personal", user_id, email, org_id=org_id)
        org = db.fetch_org(org_id)
    return org


def get_organization(org_id: str) -> Optional[Dict[str, Any]]:
    if not org_id:
        return None
    return db.fetch_org(org_id)


def get_user_organizations(user_id: str) -> List[Dict[str, Any]]:
    """Every org the user belongs to; the personal org is always first."""
    if not user_id:
        return []

    personal_id = personal_org_id(user_id)
    orgs = [{"id": personal_id, "name": "Personal", "role": roles.OWNER, "is_personal": True}]

    for m in db.fetch_memberships(user_id):
        if m["org_id"] == personal_id:
            continue
        org = db.fetch_org(m["org_id"])
        if org is None:
            logger.warning("Membership points at missing org %s", m["org_id"])
            continue
        orgs.append({
            "id": m["org_id"],
            "name": org["name"] or "Unnamed Org",
            "role": roles.get_user_role(org["members"], user_id) or roles.MEMBER,
            "is_personal": False,
        })
    return orgs


def add_user_to_org_membership(user_id: str, org_id: str, role: str = roles.MEMBER):
    if not user_id or not org_id:
        return
    db.upsert_membership(user_id, org_id, role)


def remove_user_from_org_membership(user_id: str, org_id: str):
    if not user_id or not org_id:
        return
    db.delete_membership(user_id, org_id)


def _load_for_actor(org_id: str, actor_id: str):
    org = db.fetch_org(org_id)
    if org is None:
        return None, None, {"success": False, "error": "Organization not found"}
    actor_role = roles.get_user_role(org["members"], actor_id)
    if actor_role is None:
        return org, None, {"success": False, "error": "You are not a member of this organization"}
    return org, actor_role, None


def update_member_role(org_id: str, actor_id: str, target_id: str, new_role: str) -> Dict[str, Any]:
    org, actor_role, err = _load_for_actor(org_id, actor_id)
    if err:
        return err

    members = org["members"]
    current_role = roles.get_user_role(members, target_id)
    if current_role is None:
        return {"success": False, "error": "User is not a member of this organization"}

    valid, error = roles.validate_role_change(
        actor_role, current_role, new_role, roles.is_only_owner(members, target_id)
    )
    if not valid:
        return {"success": False, "error": error}

    members[target_id]["role"] = new_role
    db.save_org(org_id, org)
    db.upsert_membership(target_id, org_id, new_role)
    return {"success": True}


def remove_member(org_id: str, actor_id: str, target_id: str) -> Dict[str, Any]:
    org, actor_role, err = _load_for_actor(org_id, actor_id)
    if err:
        return err

    members = org["members"]
    target_role = roles.get_user_role(members, target_id)
    if target_role is None:
        return {"success": False, "error": "User is not a member of this organization"}
    if roles.is_only_owner(members, target_id):
        return {"success": False, "error": "Cannot remove the only owner"}
    if not roles.has_permission(actor_role, "REMOVE_USERS") or not roles.can_manage_role(actor_role, target_role):
        return {"success": False, "error": "You do not have permission to manage this user"}

    del members[target_id]
    db.save_org(org_id, org)
    remove_user_from_org_membership(target_id, org_id)
    return {"success": True}


def update_org_settings(org_id: str, actor_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
    org, actor_role, err = _load_for_actor(org_id, actor_id)
    if err:
        return err
    if not roles.has_permission(actor_role, "EDIT_ORG_SETTINGS"):
        return {"success": False, "error": "You do not have permission to edit settings"}

    org["settings"] = {**(org["settings"] or {}), **updates}
    db.save_org(org_id, org)
    return {"success": True, "settings": org["settings"]}


# ------------------ Invites ------------------

def _is_expired(invite: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    if not invite.get("expires_at"):
        return False
    return datetime.fromisoformat(invite["expires_at"]) < (now or datetime.now())


def _is_exhausted(invite: Dict[str, Any]) -> bool:
    return invite["max_uses"] > 0 and invite["use_count"] >= invite["max_uses"]


def create_invite(
    org_id: str,
    created_by: str,
    role: str = roles.MEMBER,
    max_uses: int = 0,
    expires_in_days: int = DEFAULT_INVITE_DAYS,
) -> Dict[str, Any]:
    """Create an invite code. max_uses=0 means unlimited, expires_in_days=0 never expires."""
    if not org_id or not created_by:
        raise ValueError("Missing required parameters")
    if role not in (roles.ADMIN, roles.MEMBER):
        raise ValueError(f"Invites cannot grant the {role} role")

    org = db.fetch_org(org_id)
    expires_at = None
    if expires_in_days > 0:
        expires_at = (datetime.now() + timedelta(days=expires_in_days)).isoformat(timespec="seconds")

    invite = {
        "org_id": org_id,
        "org_name": org["name"] if org else "",
        "role": role,
        "created_by": created_by,
        "expires_at": expires_at,
        "max_uses": int(max_uses),
        "use_count": 0,
        "used_by": [],
    }

    # Retry on the (unlikely) code collision
    while True:
        invite["code"] = generate_invite_code()
        if db.insert_invite(invite):
            return invite


def get_invite(code: str) -> Optional[Dict[str, Any]]:
    if not code:
        return None
    invite = db.fetch_invite(code.strip().upper())
    if invite is None:
        return None
    invite["expired"] = _is_expired(invite)
    invite["exhausted"] = _is_exhausted(invite)
    return invite


def accept_invite(code: str, user_id: str, email: str = "", display_name: str = "") -> Dict[str, Any]:
    if not code or not user_id:
        return {"success": False, "error": "Missing required parameters"}

    try:
        invite = get_invite(code)
        if invite is None:
            return {"success": False, "error": "Invalid invite code"}
        if invite["expired"]:
            return {"success": False, "error": "This invite has expired"}
        if invite["exhausted"]:
            return {"success": False, "error": "This invite has reached its maximum uses"}
        if user_id in invite["used_by"]:
            return {"success": False, "error": "You have already used this invite"}

        org = db.fetch_org(invite["org_id"])
        if org is None:
            return {"success": False, "error": "Organization no longer exists"}
        if user_id in org["members"]:
            return {"success": False, "error": "You are already a member of this organization"}

        org["members"][user_id] = roles.create_member(
            invite["role"], email, display_name, invited_by=invite["created_by"]
        )
        db.save_org(invite["org_id"], org)
        db.record_invite_use(invite["code"], user_id)
        add_user_to_org_membership(user_id, invite["org_id"], invite["role"])

        return {"success": True, "org_id": invite["org_id"], "org_name": org["name"]}
    except Exception as e:
        logger.error("Error accepting invite %s: %s", code, e)
        return {"success": False, "error": "Failed to join organization"}


def get_org_invites(org_id: str) -> List[Dict[str, Any]]:
    invites = []
    for inv in db.fetch_org_invites(org_id):
        inv["expired"] = _is_expired(inv)
        inv["exhausted"] = _is_exhausted(inv)
        inv["active"] = not inv["expired"] and not inv["exhausted"]
        invites.append(inv)
    return invites


def delete_invite(code: str):
    if not code:
        return
    db.delete_invite(code.strip().upper())
