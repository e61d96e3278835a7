from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import delete, or_, select
from sqlalchemy.orm import Session

from wiki_api.core.config import get_settings
from wiki_api.core.errors import InvalidOrExpiredToken
from wiki_api.core.security import hash_password, hash_token, new_random_token
from wiki_api.models.auth import AuthSession, PendingSignup
from wiki_api.models.enums import UserTokenKind
from wiki_api.models.identity import User, Workspace
from wiki_api.services.audit import record_event
from wiki_api.services.auth.sessions import create_session
from wiki_api.services.workspaces import add_user_to_workspace

logger = logging.getLogger("wiki.api")

PENDING_TOKEN_PURPOSE = UserTokenKind.discord_pending_login.value


@dataclass(frozen=True)
class DraftProfile:
    discord_id: str
    email: str
    name: str | None
    avatar_url: str | None
    locale: str | None


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is written in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def purge_expired_pending_signups(*, session: Session, now: datetime | None = None) -> int:
    """Delete abandoned signups whose token can no longer be redeemed."""
    cutoff = now or datetime.now(UTC)
    result = session.execute(
        delete(PendingSignup)
        .where(PendingSignup.expires_at <= cutoff)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        logger.info("Purged %s expired pending Discord signups", result.rowcount)
    return result.rowcount or 0


def create_pending_signup(
    *,
    session: Session,
    workspace_id: UUID,
    draft: DraftProfile,
    now: datetime | None = None,
) -> tuple[str, PendingSignup]:
    settings = get_settings()
    created_at = now or datetime.now(UTC)
    purge_expired_pending_signups(session=session, now=created_at)
    token = new_random_token()

    row = PendingSignup(
        token_hash=hash_token(token, purpose=PENDING_TOKEN_PURPOSE),
        kind=UserTokenKind.discord_pending_login,
        workspace_id=workspace_id,
        discord_id=draft.discord_id,
        email=draft.email,
        name=draft.name,
        avatar_url=draft.avatar_url,
        locale=draft.locale,
        created_at=created_at,
        expires_at=created_at + timedelta(seconds=settings.PENDING_SIGNUP_TTL_SECONDS),
    )
    session.add(row)
    session.flush()
    return token, row


def complete_pending_signup(
    *,
    session: Session,
    token: str,
    workspace_id: UUID,
    pending_id: UUID,
    password: str,
    now: datetime | None = None,
) -> tuple[str, AuthSession, User]:
    """Turn a pending Discord signup into an active account.

    User, workspace membership, default-group membership, the pending row's
    deletion and the new session share the caller's transaction. A crash
    before commit leaves the token usable; after commit the token is gone.
    """
    current = now or datetime.now(UTC)

    row = (
        session.execute(
            select(PendingSignup)
            .where(PendingSignup.token_hash == hash_token(token, purpose=PENDING_TOKEN_PURPOSE))
            .with_for_update()
        )
        .scalars()
        .first()
    )
    if (
        row is None
        or row.kind != UserTokenKind.discord_pending_login
        or row.workspace_id != workspace_id
        or row.id != pending_id
        or _as_utc(row.expires_at) <= current
    ):
        raise InvalidOrExpiredToken()

    workspace = session.get(Workspace, row.workspace_id)
    if workspace is None:
        raise InvalidOrExpiredToken()

    taken = (
        session.execute(
            select(User.id).where(
                User.workspace_id == workspace.id,
                or_(User.discord_id == row.discord_id, User.email == row.email),
            )
        )
        .scalars()
        .first()
    )
    if taken is not None:
        # Another signup or an admin got there first; this token is stale.
        raise InvalidOrExpiredToken()

    user = User(
        workspace_id=workspace.id,
        email=row.email,
        name=row.name,
        password_hash=hash_password(password),
        avatar_url=row.avatar_url,
        discord_id=row.discord_id,
        locale=row.locale,
        email_verified_at=current,
        last_login_at=current,
    )
    session.add(user)
    session.flush()

    add_user_to_workspace(session=session, user=user)

    session.delete(row)
    session.flush()

    session_token, auth_session = create_session(session=session, user=user)
    record_event(
        session,
        "auth.discord_signup",
        workspace_id=workspace.id,
        actor_user_id=user.id,
        discord_id=user.discord_id,
    )
    logger.info("Completed Discord signup user_id=%s workspace_id=%s", user.id, workspace.id)
    return session_token, auth_session, user
