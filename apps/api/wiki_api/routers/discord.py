from __future__ import annotations

import json
from dataclasses import asdict
from urllib.parse import quote
from uuid import UUID

import httpx
from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from wiki_api.core.config import get_settings
from wiki_api.core.crypto import StateCodec, get_state_codec
from wiki_api.core.deps import WorkspaceContext, require_csrf_header, require_roles
from wiki_api.core.errors import DiscordAuthError, InvalidState, ProviderRejected
from wiki_api.core.http import get_http_client
from wiki_api.core.metrics import observe_discord_login
from wiki_api.core.security import set_session_cookie
from wiki_api.db.session import get_session
from wiki_api.models.enums import MembershipRole
from wiki_api.schemas.auth import (
    CompleteDiscordSetupRequest,
    DiscordConfigOut,
    DiscordConfigUpdate,
)
from wiki_api.services.discord.config import get_discord_config, update_discord_config
from wiki_api.services.discord.login import (
    ExistingAccount,
    complete_discord_callback,
    start_discord_login,
)
from wiki_api.services.discord.pending import complete_pending_signup

router = APIRouter(
    prefix="/auth",
    tags=["discord"],
    dependencies=[Depends(require_csrf_header)],
)

require_workspace_admin = require_roles(MembershipRole.owner, MembershipRole.admin)


@router.get("/discord")
def discord_login(
    workspace_id: UUID | None = None,
    session: Session = Depends(get_session),
    codec: StateCodec = Depends(get_state_codec),
) -> RedirectResponse:
    url = start_discord_login(session=session, codec=codec, workspace_id=workspace_id)
    return RedirectResponse(
        url=url,
        status_code=status.HTTP_302_FOUND,
        headers={"Cache-Control": "no-store"},
    )


@router.get("/discord/callback")
def discord_callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    session: Session = Depends(get_session),
    http_client: httpx.Client = Depends(get_http_client),
    codec: StateCodec = Depends(get_state_codec),
) -> RedirectResponse:
    try:
        if not state:
            raise InvalidState()
        if error or not code:
            raise ProviderRejected()
        result = complete_discord_callback(
            session=session,
            http_client=http_client,
            codec=codec,
            code=code,
            state=state,
        )
    except DiscordAuthError as e:
        observe_discord_login(outcome=type(e).__name__)
        raise
    session.commit()

    frontend_url = get_settings().FRONTEND_URL.rstrip("/")
    if isinstance(result, ExistingAccount):
        observe_discord_login(outcome="existing")
        redirect = RedirectResponse(
            url=frontend_url,
            status_code=status.HTTP_302_FOUND,
            headers={"Cache-Control": "no-store"},
        )
        set_session_cookie(redirect, result.session_token)
        return redirect

    observe_discord_login(outcome="pending")
    data = quote(json.dumps(result.as_client_payload(), separators=(",", ":")), safe="")
    return RedirectResponse(
        url=f"{frontend_url}/discord-setup?data={data}",
        status_code=status.HTTP_302_FOUND,
        headers={"Cache-Control": "no-store"},
    )


@router.post("/discord/complete-setup")
def discord_complete_setup(
    payload: CompleteDiscordSetupRequest,
    response: Response,
    session: Session = Depends(get_session),
) -> dict[str, str]:
    try:
        token, _auth_session, _user = complete_pending_signup(
            session=session,
            token=payload.pending_user.token,
            workspace_id=payload.pending_user.workspace_id,
            pending_id=payload.pending_user.id,
            password=payload.password,
        )
    except DiscordAuthError as e:
        observe_discord_login(outcome=type(e).__name__)
        raise
    session.commit()
    observe_discord_login(outcome="completed")

    set_session_cookie(response, token)
    response.headers["Cache-Control"] = "no-store"
    return {"status": "ok"}


@router.get("/discord-config", response_model=DiscordConfigOut)
def discord_config(ctx: WorkspaceContext = Depends(require_workspace_admin)) -> DiscordConfigOut:
    view = get_discord_config(ctx.workspace)
    return DiscordConfigOut(**asdict(view))


@router.patch("/discord-config", response_model=DiscordConfigOut)
def discord_config_update(
    payload: DiscordConfigUpdate,
    ctx: WorkspaceContext = Depends(require_workspace_admin),
    session: Session = Depends(get_session),
) -> DiscordConfigOut:
    view = update_discord_config(
        session=session,
        workspace=ctx.workspace,
        actor_user_id=ctx.user.id,
        changes=payload.model_dump(exclude_unset=True),
    )
    session.commit()
    return DiscordConfigOut(**asdict(view))
