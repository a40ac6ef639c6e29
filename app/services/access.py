"""Who may act on what.

Pure predicates, no database access: callers load the rows and describe the
target, the policy only answers allow/deny.
"""

from __future__ import annotations

from dataclasses import dataclass

from app.models.enums import UserRole


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = Decision(True)


def deny(reason: str) -> Decision:
    return Decision(False, reason)


@dataclass(frozen=True)
class ModerationTarget:
    user_id: int
    role: str
    # Set when the action stems from a review on a restaurant this user owns.
    owns_reviewed_restaurant: bool = False


def can_moderate(
    actor_role: str,
    target: ModerationTarget,
    *,
    actor_id: int | None = None,
    protect_restaurant_owner: bool = True,
) -> Decision:
    """Gate for strikes, bans and unbans."""
    if actor_role != UserRole.admin.value:
        return deny("Admin access required")
    if actor_id is not None and actor_id == target.user_id:
        return deny("You cannot moderate your own account")
    if target.role == UserRole.admin.value:
        return deny("Admins cannot be moderated")
    if protect_restaurant_owner and target.owns_reviewed_restaurant:
        return deny("The restaurant owner cannot receive a strike for a review on their own restaurant")
    return ALLOW


def can_modify_content(actor_id: int, actor_role: str, *, content_owner_id: int, allow_admin: bool = True) -> Decision:
    if actor_id == content_owner_id:
        return ALLOW
    if allow_admin and actor_role == UserRole.admin.value:
        return ALLOW
    return deny("You do not have permission to modify this content")


def has_role(actor_role: str, *allowed: UserRole) -> bool:
    return actor_role in {r.value for r in allowed}
