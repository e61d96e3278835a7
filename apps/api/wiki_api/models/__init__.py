from __future__ import annotations

from wiki_api.models.audit import AuditEvent  # noqa: F401
from wiki_api.models.auth import AuthSession, PendingSignup  # noqa: F401
from wiki_api.models.base import Base as Base  # noqa: F401
from wiki_api.models.enums import MembershipRole, UserTokenKind  # noqa: F401
from wiki_api.models.identity import Group, GroupUser, Membership, User, Workspace  # noqa: F401
