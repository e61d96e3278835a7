from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from wiki_api.core.config import get_settings
from wiki_api.core.errors import NotConfigured
from wiki_api.models.identity import Workspace
from wiki_api.services.discord.config import decrypt_client_secret


@dataclass(frozen=True)
class DiscordClientConfig:
    workspace_id: UUID
    client_id: str
    client_secret: str = field(repr=False)
    redirect_uri: str
    guild_id: str | None
    jit_enabled: bool
    default_locale: str | None = None


def _load_workspace(session: Session, workspace_id: UUID | None) -> Workspace | None:
    if workspace_id is not None:
        return session.get(Workspace, workspace_id)

    # Single-tenant deployments may omit the hint.
    count = session.execute(select(func.count()).select_from(Workspace)).scalar_one()
    if count != 1:
        return None
    return session.execute(select(Workspace)).scalars().first()


def resolve_discord_client(
    session: Session,
    *,
    workspace_id: UUID | None,
) -> DiscordClientConfig:
    """Read the workspace's Discord application credentials.

    Runs on every redirect and callback; nothing is cached, so an admin's
    PATCH takes effect on the next login attempt.
    """
    workspace = _load_workspace(session, workspace_id)
    if (
        workspace is None
        or not workspace.discord_enabled
        or not workspace.discord_client_id
        or not workspace.discord_client_secret_encrypted
    ):
        raise NotConfigured()

    client_secret = decrypt_client_secret(workspace)
    if not client_secret:
        raise NotConfigured()

    return DiscordClientConfig(
        workspace_id=workspace.id,
        client_id=workspace.discord_client_id,
        client_secret=client_secret,
        redirect_uri=get_settings().discord_redirect_uri,
        guild_id=workspace.discord_guild_id or None,
        jit_enabled=workspace.discord_jit_enabled,
        default_locale=workspace.default_locale,
    )
