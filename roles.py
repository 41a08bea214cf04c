"""roles.py

Role-based access control for organizations.

Members are stored as a mapping of user id -> member dict:

{"role": "admin", "email": "...", "display_name": "...", "joined_at": "...", "invited_by": None}
"""

from __future__ import annotations

import copy
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from logger import get_logger

logger = get_logger(__name__)

OWNER = "owner"
ADMIN = "admin"
MEMBER = "member"

# Higher rank = more permissions
ROLES = {MEMBER: 0, ADMIN: 1, OWNER: 2}

ROLE_LABELS = {OWNER: "Owner", ADMIN: "Admin", MEMBER: "Member"}

DEFAULT_ORG_SETTINGS: Dict[str, Any] = {
    "allow_user_keys": True,
    "require_org_keys": False,
    "default_provider": "gemini",
    "usage_alerts": {
        "enabled": True,
        "warn_threshold": 0.20,
        "critical_threshold": 0.10,
    },
}

_STAFF = (OWNER, ADMIN)
_EVERYONE = (OWNER, ADMIN, MEMBER)

PERMISSIONS: Dict[str, Tuple[str, ...]] = {
    # API keys
    "VIEW_ORG_API_KEYS": _STAFF,
    "EDIT_ORG_API_KEYS": _STAFF,
    "MANAGE_PERSONAL_KEYS": _EVERYONE,
    # Usage
    "VIEW_ORG_USAGE": _STAFF,
    "VIEW_USER_USAGE": _STAFF,
    "EXPORT_USAGE": _STAFF,
    # Users
    "VIEW_USERS": _STAFF,
    "INVITE_USERS": _STAFF,
    "MANAGE_ROLES": _STAFF,
    "REMOVE_USERS": _STAFF,
    # Organization
    "VIEW_ORG_SETTINGS": _STAFF,
    "EDIT_ORG_SETTINGS": _STAFF,
    "DELETE_ORGANIZATION": (OWNER,),
    "TRANSFER_OWNERSHIP": (OWNER,),
    # General
    "USE_ORG_API_KEYS": _EVERYONE,
    "ACCESS_ADMIN_PANEL": _STAFF,
}


def has_permission(role: Optional[str], permission: str) -> bool:
    allowed = PERMISSIONS.get(permission)
    if allowed is None:
        logger.warning("Unknown permission: %s", permission)
        return False
    return role in allowed


def can_manage_role(actor_role: Optional[str], target_role: Optional[str]) -> bool:
    """Owners manage anyone, admins manage members only, members manage nobody."""
    if not has_permission(actor_role, "MANAGE_ROLES"):
        return False
    if actor_role == OWNER:
        return True
    if actor_role == ADMIN:
        return target_role == MEMBER
    return False


def get_assignable_roles(actor_role: Optional[str]) -> List[str]:
    if actor_role == OWNER:
        return [ADMIN, MEMBER]
    if actor_role == ADMIN:
        return [MEMBER]
    return []


def is_only_owner(members: Mapping[str, Mapping[str, Any]], user_id: str) -> bool:
    owners = [uid for uid, m in (members or {}).items() if m.get("role") == OWNER]
    return owners == [user_id]


def get_user_role(members: Optional[Mapping[str, Mapping[str, Any]]], user_id: str) -> Optional[str]:
    member = (members or {}).get(user_id)
    if not member:
        return None
    return member.get("role") or None


def is_org_admin(members, user_id: str) -> bool:
    return get_user_role(members, user_id) in _STAFF


def is_org_owner(members, user_id: str) -> bool:
    return get_user_role(members, user_id) == OWNER


def create_member(
    role: str,
    email: str,
    display_name: str = "",
    invited_by: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "role": role,
        "email": email,
        "display_name": display_name,
        "joined_at": datetime.now().isoformat(timespec="seconds"),
        "invited_by": invited_by,
    }


def new_organization(name: str, owner_id: str, owner_email: str, owner_display_name: str = "") -> Dict[str, Any]:
    """Build an organization record with the creator as sole owner."""
    return {
        "name": name,
        "created_at": datetime.now().isoformat(timespec="seconds"),
        "created_by": owner_id,
        "members": {
            owner_id: create_member(OWNER, owner_email, owner_display_name),
        },
        "settings": copy.deepcopy(DEFAULT_ORG_SETTINGS),
        "api_keys": {},
    }


def validate_role_change(
    actor_role: Optional[str],
    current_role: Optional[str],
    new_role: str,
    only_owner: bool,
) -> Tuple[bool, Optional[str]]:
    """Return (valid, error_message) for changing a member's role."""
    if current_role == new_role:
        return False, "Role is already set"

    if current_role == OWNER and only_owner:
        return False, "Cannot demote the only owner"

    if not can_manage_role(actor_role, current_role):
        return False, "You do not have permission to manage this user"

    if new_role not in get_assignable_roles(actor_role):
        return False, f"You cannot assign the {new_role} role"

    return True, None
