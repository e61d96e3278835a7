from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from wiki_api.models.enums import MembershipRole
from wiki_api.models.identity import Group, GroupUser, Membership, User

DEFAULT_GROUP_NAME = "Everyone"


def get_default_group(*, session: Session, workspace_id: UUID) -> Group:
    group = (
        session.execute(
            select(Group)
            .where(Group.workspace_id == workspace_id, Group.is_default.is_(True))
            .order_by(Group.created_at.asc())
        )
        .scalars()
        .first()
    )
    if group is None:
        group = Group(workspace_id=workspace_id, name=DEFAULT_GROUP_NAME, is_default=True)
        session.add(group)
        session.flush()
    return group


def add_user_to_workspace(
    *,
    session: Session,
    user: User,
    role: MembershipRole = MembershipRole.member,
) -> Membership:
    """Grant workspace membership and join the default group.

    Callers own the transaction; both rows land in the same flush so a user
    never exists with only one of them.
    """
    membership = Membership(workspace_id=user.workspace_id, user_id=user.id, role=role)
    session.add(membership)

    group = get_default_group(session=session, workspace_id=user.workspace_id)
    session.add(GroupUser(group_id=group.id, user_id=user.id))
    session.flush()
    return membership
