from __future__ import annotations

import hmac
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from wiki_api.core.config import get_settings
from wiki_api.core.security import SESSION_TOKEN_PURPOSE, hash_token
from wiki_api.db.session import get_session
from wiki_api.models.auth import AuthSession
from wiki_api.models.enums import MembershipRole
from wiki_api.models.identity import Membership, User, Workspace

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


@dataclass(frozen=True)
class Authenticated:
    session: AuthSession
    user: User


@dataclass(frozen=True)
class WorkspaceContext:
    """Everything a workspace-scoped handler needs about the caller."""

    workspace: Workspace
    membership: Membership
    user: User
    session: AuthSession

    @property
    def workspace_id(self) -> UUID:
        return self.workspace.id

    @property
    def role(self) -> MembershipRole:
        return self.membership.role


def require_csrf_header(request: Request) -> None:
    """Double-submit check for state-changing requests.

    The SPA reads the CSRF cookie and echoes it in a header; a cross-site form
    post can send the cookie but cannot set the header.
    """
    if request.method in SAFE_METHODS:
        return

    settings = get_settings()
    cookie_token = request.cookies.get(settings.CSRF_COOKIE_NAME) or ""
    header_token = request.headers.get(settings.CSRF_HEADER_NAME) or ""
    if not cookie_token or not hmac.compare_digest(cookie_token, header_token):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="CSRF token missing or invalid",
        )


def require_session(
    request: Request,
    session: Session = Depends(get_session),
) -> Authenticated:
    raw = request.cookies.get(get_settings().SESSION_COOKIE_NAME)
    if not raw:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    row = session.execute(
        select(AuthSession, User)
        .join(User, User.id == AuthSession.user_id)
        .where(
            AuthSession.token_hash == hash_token(raw, purpose=SESSION_TOKEN_PURPOSE),
            AuthSession.revoked_at.is_(None),
            AuthSession.expires_at > datetime.now(UTC),
        )
    ).first()
    if row is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session")

    auth_session, user = row
    if user.is_disabled:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User disabled")
    return Authenticated(session=auth_session, user=user)


def require_workspace(
    auth: Authenticated = Depends(require_session),
    session: Session = Depends(get_session),
) -> WorkspaceContext:
    # Sessions are bound to the workspace they were issued for.
    row = session.execute(
        select(Workspace, Membership)
        .join(Membership, Membership.workspace_id == Workspace.id)
        .where(
            Workspace.id == auth.session.workspace_id,
            Membership.user_id == auth.user.id,
        )
    ).first()
    if row is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Not a member of this workspace"
        )

    workspace, membership = row
    return WorkspaceContext(
        workspace=workspace, membership=membership, user=auth.user, session=auth.session
    )


def require_roles(*roles: MembershipRole):
    allowed = frozenset(roles)

    def _dep(ctx: WorkspaceContext = Depends(require_workspace)) -> WorkspaceContext:
        if ctx.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return ctx

    return _dep
