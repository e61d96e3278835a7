from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from cryptography.exceptions import InvalidTag
from sqlalchemy.orm import Session

from wiki_api.core.crypto import decrypt_bytes, encrypt_bytes
from wiki_api.models.identity import Workspace
from wiki_api.services.audit import record_event

logger = logging.getLogger("wiki.api")

UPDATABLE_FIELDS = ("enabled", "client_id", "client_secret", "guild_id", "jit_enabled")


@dataclass(frozen=True)
class DiscordConfigView:
    enabled: bool
    client_id: str | None
    client_secret: str | None
    guild_id: str | None
    jit_enabled: bool


def _client_secret_aad(workspace_id: UUID) -> bytes:
    return f"workspaces:{workspace_id}:discord_client_secret".encode()


def set_client_secret(workspace: Workspace, client_secret: str) -> None:
    workspace.discord_client_secret_encrypted = encrypt_bytes(
        plaintext=client_secret.encode("utf-8"),
        aad=_client_secret_aad(workspace.id),
    )


def decrypt_client_secret(workspace: Workspace) -> str | None:
    blob = workspace.discord_client_secret_encrypted
    if not blob:
        return None
    try:
        return decrypt_bytes(blob=blob, aad=_client_secret_aad(workspace.id)).decode("utf-8")
    except (InvalidTag, ValueError):
        # Rotated key or corrupt blob; the admin has to save the secret again.
        logger.warning("Discord client secret for workspace %s cannot be decrypted", workspace.id)
        return None


def get_discord_config(workspace: Workspace) -> DiscordConfigView:
    return DiscordConfigView(
        enabled=workspace.discord_enabled,
        client_id=workspace.discord_client_id,
        client_secret=decrypt_client_secret(workspace),
        guild_id=workspace.discord_guild_id,
        jit_enabled=workspace.discord_jit_enabled,
    )


def update_discord_config(
    *,
    session: Session,
    workspace: Workspace,
    actor_user_id: UUID,
    changes: dict[str, Any],
) -> DiscordConfigView:
    """Apply a partial update; keys absent from `changes` are left alone."""
    unknown = set(changes) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown Discord config fields: {sorted(unknown)}")

    if changes.get("enabled") is not None:
        workspace.discord_enabled = bool(changes["enabled"])
    if changes.get("jit_enabled") is not None:
        workspace.discord_jit_enabled = bool(changes["jit_enabled"])
    if changes.get("client_id"):
        workspace.discord_client_id = changes["client_id"].strip()
    if changes.get("client_secret"):
        set_client_secret(workspace, changes["client_secret"])
    if "guild_id" in changes:
        # An empty guild id removes the membership gate.
        workspace.discord_guild_id = (changes["guild_id"] or "").strip() or None

    session.add(workspace)
    session.flush()

    # Field names only; values may include the secret.
    record_event(
        session,
        "workspace.discord_config_updated",
        workspace_id=workspace.id,
        actor_user_id=actor_user_id,
        fields=sorted(changes),
    )
    return get_discord_config(workspace)
