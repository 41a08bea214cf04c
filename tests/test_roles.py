import pytest

from roles import (
    ADMIN,
    MEMBER,
    OWNER,
    can_manage_role,
    create_member,
    get_assignable_roles,
    get_user_role,
    has_permission,
    is_only_owner,
    is_org_admin,
    is_org_owner,
    new_organization,
    validate_role_change,
)


@pytest.mark.parametrize(
    "role,permission,expected",
    [
        (OWNER, "DELETE_ORGANIZATION", True),
        (ADMIN, "DELETE_ORGANIZATION", False),
        (ADMIN, "INVITE_USERS", True),
        (MEMBER, "INVITE_USERS", False),
        (MEMBER, "USE_ORG_API_KEYS", True),
        (MEMBER, "MANAGE_PERSONAL_KEYS", True),
        (None, "USE_ORG_API_KEYS", False),
        (OWNER, "NOT_A_PERMISSION", False),
    ],
)
def test_has_permission(role, permission, expected):
    assert has_permission(role, permission) is expected


def test_can_manage_role():
    assert can_manage_role(OWNER, ADMIN) is True
    assert can_manage_role(OWNER, OWNER) is True
    assert can_manage_role(ADMIN, MEMBER) is True
    assert can_manage_role(ADMIN, ADMIN) is False
    assert can_manage_role(ADMIN, OWNER) is False
    assert can_manage_role(MEMBER, MEMBER) is False


def test_get_assignable_roles():
    assert get_assignable_roles(OWNER) == [ADMIN, MEMBER]
    assert get_assignable_roles(ADMIN) == [MEMBER]
    assert get_assignable_roles(MEMBER) == []


def test_membership_helpers():
    org = new_organization("Acme", "u1", "u1@acme.test", "Una")
    members = org["members"]
    members["u2"] = create_member(ADMIN, "u2@acme.test", invited_by="u1")

    assert get_user_role(members, "u1") == OWNER
    assert get_user_role(members, "nobody") is None
    assert is_org_owner(members, "u1")
    assert is_org_admin(members, "u2")
    assert not is_org_owner(members, "u2")
    assert is_only_owner(members, "u1")

    members["u3"] = create_member(OWNER, "u3@acme.test")
    assert not is_only_owner(members, "u1")


def test_new_organization_settings_are_independent_copies():
    a = new_organization("A", "u1", "")
    b = new_organization("B", "u2", "")
    a["settings"]["usage_alerts"]["enabled"] = False
    assert b["settings"]["usage_alerts"]["enabled"] is True
    assert a["settings"]["allow_user_keys"] is True


@pytest.mark.parametrize(
    "actor,current,new,only_owner,ok,error",
    [
        (OWNER, MEMBER, ADMIN, False, True, None),
        (ADMIN, MEMBER, MEMBER, False, False, "Role is already set"),
        (OWNER, OWNER, ADMIN, True, False, "Cannot demote the only owner"),
        (ADMIN, ADMIN, MEMBER, False, False, "You do not have permission to manage this user"),
        (ADMIN, MEMBER, ADMIN, False, False, "You cannot assign the admin role"),
        (OWNER, OWNER, MEMBER, False, True, None),
    ],
)
def test_validate_role_change(actor, current, new, only_owner, ok, error):
    assert validate_role_change(actor, current, new, only_owner) == (ok, error)
