from app.models.enums import UserRole
from app.services.access import ModerationTarget, can_moderate, can_modify_content, has_role


def test_only_admins_moderate():
    target = ModerationTarget(user_id=7, role="user")
    assert can_moderate("admin", target, actor_id=1)
    denied = can_moderate("owner", target, actor_id=2)
    assert not denied
    assert denied.reason == "Admin access required"


def test_admins_and_self_are_off_limits():
    assert not can_moderate("admin", ModerationTarget(user_id=2, role="admin"), actor_id=1)
    assert not can_moderate("admin", ModerationTarget(user_id=1, role="user"), actor_id=1)


def test_restaurant_owner_protection_is_configurable():
    target = ModerationTarget(user_id=5, role="owner", owns_reviewed_restaurant=True)
    assert not can_moderate("admin", target, actor_id=1)
    assert can_moderate("admin", target, actor_id=1, protect_restaurant_owner=False)
    # Owning some other restaurant is not a shield.
    assert can_moderate("admin", ModerationTarget(user_id=5, role="owner"), actor_id=1)


def test_content_modification():
    assert can_modify_content(3, "user", content_owner_id=3)
    assert not can_modify_content(4, "user", content_owner_id=3)
    assert can_modify_content(1, "admin", content_owner_id=3)
    assert not can_modify_content(1, "admin", content_owner_id=3, allow_admin=False)


def test_has_role():
    assert has_role("owner", UserRole.owner, UserRole.admin)
    assert not has_role("user", UserRole.owner)
