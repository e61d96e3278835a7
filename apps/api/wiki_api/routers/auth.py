from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from sqlalchemy import select
from sqlalchemy.orm import Session

from wiki_api.core.deps import Authenticated, require_csrf_header, require_session
from wiki_api.core.security import (
    clear_auth_cookies,
    new_random_token,
    set_csrf_cookie,
    set_session_cookie,
)
from wiki_api.db.session import get_session
from wiki_api.models.identity import Membership, Workspace
from wiki_api.schemas.auth import CsrfTokenResponse, LoginRequest, LoginResponse
from wiki_api.services.auth.sessions import logout, password_login

router = APIRouter(prefix="/auth", tags=["auth"], dependencies=[Depends(require_csrf_header)])


@router.get("/csrf", response_model=CsrfTokenResponse)
def issue_csrf(response: Response) -> CsrfTokenResponse:
    token = new_random_token()
    set_csrf_cookie(response, token)
    return CsrfTokenResponse(csrf_token=token)


@router.post("/login", response_model=LoginResponse)
def password_sign_in(
    payload: LoginRequest, response: Response, session: Session = Depends(get_session)
) -> LoginResponse:
    token, auth_session, user = password_login(
        session=session,
        workspace_id=payload.workspace_id,
        email=payload.email,
        password=payload.password,
    )
    workspace, membership = session.execute(
        select(Workspace, Membership)
        .join(Membership, Membership.workspace_id == Workspace.id)
        .where(Workspace.id == user.workspace_id, Membership.user_id == user.id)
    ).one()
    session.commit()

    # A fresh CSRF token per session; the old one may have been seen pre-login.
    csrf = new_random_token()
    set_session_cookie(response, token)
    set_csrf_cookie(response, csrf)
    return LoginResponse(
        user=user,
        workspace=workspace,
        role=membership.role.value,
        session=auth_session,
        csrf_token=csrf,
    )


@router.post("/logout")
def sign_out(
    response: Response,
    auth: Authenticated = Depends(require_session),
    session: Session = Depends(get_session),
) -> dict[str, str]:
    logout(session=session, auth_session=auth.session)
    session.commit()
    clear_auth_cookies(response)
    return {"status": "ok"}
