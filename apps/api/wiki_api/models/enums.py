from __future__ import annotations

import enum


class MembershipRole(enum.StrEnum):
    owner = "owner"
    admin = "admin"
    member = "member"


class UserTokenKind(enum.StrEnum):
    discord_pending_login = "discord_pending_login"
