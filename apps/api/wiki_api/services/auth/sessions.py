from __future__ import annotations

from datetime import UTC, datetime, timedelta
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from wiki_api.core.config import get_settings
from wiki_api.core.security import (
    SESSION_TOKEN_PURPOSE,
    hash_password,
    hash_token,
    new_random_token,
    password_needs_rehash,
    verify_password,
)
from wiki_api.models.auth import AuthSession
from wiki_api.models.identity import User
from wiki_api.services.audit import record_event


def normalize_email(email: str) -> str:
    return email.strip().lower()


def create_session(*, session: Session, user: User) -> tuple[str, AuthSession]:
    """Issue an opaque session token for `user` in its workspace.

    The raw token is returned once for the cookie; only its HMAC is stored.
    """
    token = new_random_token()
    issued_at = datetime.now(UTC)
    auth_session = AuthSession(
        user_id=user.id,
        workspace_id=user.workspace_id,
        token_hash=hash_token(token, purpose=SESSION_TOKEN_PURPOSE),
        expires_at=issued_at + timedelta(seconds=get_settings().SESSION_TTL_SECONDS),
    )
    session.add(auth_session)
    session.flush()
    return token, auth_session


def password_login(
    *,
    session: Session,
    workspace_id: UUID,
    email: str,
    password: str,
) -> tuple[str, AuthSession, User]:
    user = session.execute(
        select(User).where(
            User.workspace_id == workspace_id, User.email == normalize_email(email)
        )
    ).scalar_one_or_none()

    # Same message for unknown users and bad passwords.
    if user is None or user.is_disabled or not verify_password(password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="email or password does not match",
        )

    if password_needs_rehash(user.password_hash):
        user.password_hash = hash_password(password)
    user.last_login_at = datetime.now(UTC)

    token, auth_session = create_session(session=session, user=user)
    record_event(
        session, "auth.login", workspace_id=workspace_id, actor_user_id=user.id, method="password"
    )
    return token, auth_session, user


def logout(*, session: Session, auth_session: AuthSession) -> None:
    auth_session.revoked_at = datetime.now(UTC)
    auth_session.revoked_reason = "logout"
    record_event(
        session,
        "auth.logout",
        workspace_id=auth_session.workspace_id,
        actor_user_id=auth_session.user_id,
    )
