from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from uuid import UUID

import httpx
from sqlalchemy import select
from sqlalchemy.orm import Session

from wiki_api.core.config import get_settings
from wiki_api.core.crypto import StateCodec, StateToken
from wiki_api.core.errors import AccountConflict, ProviderRejected, ProvisioningDisabled
from wiki_api.models.identity import User
from wiki_api.services.audit import record_event
from wiki_api.services.auth.sessions import create_session, normalize_email
from wiki_api.services.discord.avatar import compute_avatar_url
from wiki_api.services.discord.client import (
    ExternalIdentity,
    build_authorization_url,
    exchange_code_for_tokens,
    get_current_user,
    verify_guild_membership,
)
from wiki_api.services.discord.pending import DraftProfile, create_pending_signup
from wiki_api.services.discord.resolver import DiscordClientConfig, resolve_discord_client

logger = logging.getLogger("wiki.api")

AVATAR_SIZE = 256


@dataclass(frozen=True)
class ExistingAccount:
    session_token: str
    user: User


@dataclass(frozen=True)
class PendingAccount:
    token: str
    workspace_id: UUID
    pending_id: UUID

    def as_client_payload(self) -> dict[str, str]:
        return {
            "token": self.token,
            "workspaceId": str(self.workspace_id),
            "id": str(self.pending_id),
        }


LinkResult = ExistingAccount | PendingAccount


def _log_login_event(event: str, **fields: object) -> None:
    logger.info(
        json.dumps(
            {"event": event, **{k: str(v) for k, v in fields.items()}},
            separators=(",", ":"),
            sort_keys=True,
        )
    )


def start_discord_login(
    *,
    session: Session,
    codec: StateCodec,
    workspace_id: UUID | None,
) -> str:
    client_config = resolve_discord_client(session, workspace_id=workspace_id)
    state = codec.encode(StateToken.issue(client_config.workspace_id))
    return build_authorization_url(
        client_id=client_config.client_id,
        redirect_uri=client_config.redirect_uri,
        state=state,
    )


def find_user_by_discord_id(
    session: Session, *, workspace_id: UUID, discord_id: str
) -> User | None:
    return (
        session.execute(
            select(User).where(User.workspace_id == workspace_id, User.discord_id == discord_id)
        )
        .scalars()
        .first()
    )


def link_discord_identity(
    *,
    session: Session,
    client_config: DiscordClientConfig,
    identity: ExternalIdentity,
    avatar_url: str,
) -> LinkResult:
    """Map a verified Discord identity to a local account.

    Known identities get a session; unknown ones get a pending signup when
    JIT provisioning is on. No user row is created here.
    """
    workspace_id = client_config.workspace_id

    existing = find_user_by_discord_id(
        session, workspace_id=workspace_id, discord_id=identity.provider_user_id
    )
    if existing is not None:
        if existing.is_disabled:
            raise ProviderRejected("User is disabled")
        if existing.avatar_url != avatar_url:
            existing.avatar_url = avatar_url
        existing.last_login_at = datetime.now(UTC)
        session.add(existing)

        session_token, _auth_session = create_session(session=session, user=existing)
        record_event(
            session,
            "auth.discord_login",
            workspace_id=workspace_id,
            actor_user_id=existing.id,
            discord_id=identity.provider_user_id,
        )
        _log_login_event(
            "auth.discord_login.existing", user_id=existing.id, workspace_id=workspace_id
        )
        return ExistingAccount(session_token=session_token, user=existing)

    if not client_config.jit_enabled:
        raise ProvisioningDisabled()

    if not identity.email:
        raise ProviderRejected("Discord email not found")
    email = normalize_email(identity.email)

    email_owner = (
        session.execute(
            select(User.id).where(User.workspace_id == workspace_id, User.email == email)
        )
        .scalars()
        .first()
    )
    if email_owner is not None:
        raise AccountConflict()

    token, row = create_pending_signup(
        session=session,
        workspace_id=workspace_id,
        draft=DraftProfile(
            discord_id=identity.provider_user_id,
            email=email,
            name=identity.username,
            avatar_url=avatar_url,
            locale=client_config.default_locale or get_settings().DEFAULT_LOCALE,
        ),
    )
    _log_login_event("auth.discord_login.pending", pending_id=row.id, workspace_id=workspace_id)
    return PendingAccount(token=token, workspace_id=workspace_id, pending_id=row.id)


def complete_discord_callback(
    *,
    session: Session,
    http_client: httpx.Client,
    codec: StateCodec,
    code: str,
    state: str,
) -> LinkResult:
    """Handle the provider redirect end to end.

    Every network call runs before the first write, so a provider failure
    leaves the database untouched.
    """
    decoded = codec.decode(state)
    client_config = resolve_discord_client(session, workspace_id=decoded.workspace_id)

    tokens = exchange_code_for_tokens(
        http_client,
        code=code,
        client_id=client_config.client_id,
        client_secret=client_config.client_secret,
        redirect_uri=client_config.redirect_uri,
    )
    identity = get_current_user(http_client, access_token=tokens.access_token)
    if not identity.email:
        raise ProviderRejected("Discord email not found")

    if client_config.guild_id:
        membership = verify_guild_membership(
            http_client,
            access_token=tokens.access_token,
            guild_id=client_config.guild_id,
        )
        identity = replace(identity, guild_avatar_hash=membership.avatar_hash)

    avatar_url = compute_avatar_url(
        identity.provider_user_id,
        identity.avatar_hash,
        identity.guild_avatar_hash,
        guild_id=client_config.guild_id,
        size=AVATAR_SIZE,
    )

    return link_discord_identity(
        session=session,
        client_config=client_config,
        identity=identity,
        avatar_url=avatar_url,
    )
