from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import httpx

from wiki_api.core.config import get_settings
from wiki_api.core.errors import NotAMember, ProviderRejected, ProviderUnavailable
from wiki_api.core.metrics import observe_discord_call

logger = logging.getLogger("wiki.api")

DISCORD_SCOPES = ["identify", "email", "guilds", "guilds.members.read"]


@dataclass(frozen=True)
class DiscordTokenResponse:
    access_token: str
    token_type: str | None
    expires_in: int
    refresh_token: str | None
    scope: str | None


@dataclass(frozen=True)
class ExternalIdentity:
    provider_user_id: str
    email: str | None
    username: str
    avatar_hash: str | None
    access_token: str
    verified: bool = False
    guild_avatar_hash: str | None = None


@dataclass(frozen=True)
class GuildMembership:
    guild_id: str
    avatar_hash: str | None
    nick: str | None


def _api_url(path: str) -> str:
    return f"{get_settings().DISCORD_API_BASE_URL.rstrip('/')}{path}"


def _send(
    client: httpx.Client, method: str, path: str, *, operation: str, **kwargs: Any
) -> httpx.Response:
    started = time.perf_counter()
    status: int | None = None
    try:
        res = client.request(method, _api_url(path), **kwargs)
        status = res.status_code
        return res
    except httpx.HTTPError as e:
        logger.warning("Discord %s failed: %s", operation, type(e).__name__)
        raise ProviderUnavailable() from e
    finally:
        observe_discord_call(
            operation=operation, status=status, seconds=time.perf_counter() - started
        )


def _json(res: httpx.Response) -> Any:
    try:
        return res.json()
    except ValueError as e:
        raise ProviderUnavailable() from e


def _str_field(payload: dict[str, Any], key: str) -> str | None:
    value = payload.get(key)
    return value if isinstance(value, str) and value else None


def _expires_in(payload: dict[str, Any]) -> int:
    try:
        return int(payload.get("expires_in") or 0)
    except (TypeError, ValueError) as e:
        logger.warning("Discord token exchange returned a malformed expires_in")
        raise ProviderUnavailable() from e


def _raise_for_upstream(res: httpx.Response, *, label: str) -> None:
    if res.status_code < 400:
        return
    # Only the status is logged; the body may echo credentials.
    logger.warning("Discord %s failed with HTTP %s", label, res.status_code)
    if res.status_code >= 500:
        raise ProviderUnavailable()
    raise ProviderRejected()


def build_authorization_url(
    *,
    client_id: str,
    redirect_uri: str,
    state: str,
    scopes: list[str] | None = None,
) -> str:
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": " ".join(scopes or DISCORD_SCOPES),
        "state": state,
    }
    return f"{get_settings().DISCORD_AUTHORIZE_URL}?{urlencode(params)}"


def exchange_code_for_tokens(
    client: httpx.Client,
    *,
    code: str,
    client_id: str,
    client_secret: str,
    redirect_uri: str,
) -> DiscordTokenResponse:
    res = _send(
        client,
        "POST",
        "/oauth2/token",
        operation="token_exchange",
        data={
            "code": code,
            "client_id": client_id,
            "client_secret": client_secret,
            "redirect_uri": redirect_uri,
            "grant_type": "authorization_code",
        },
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    _raise_for_upstream(res, label="token exchange")

    payload = _json(res)
    access_token = _str_field(payload, "access_token") if isinstance(payload, dict) else None
    if not access_token:
        raise ProviderRejected("Discord did not return an access token")
    return DiscordTokenResponse(
        access_token=access_token,
        token_type=_str_field(payload, "token_type"),
        expires_in=_expires_in(payload),
        refresh_token=_str_field(payload, "refresh_token"),
        scope=_str_field(payload, "scope"),
    )


def get_current_user(client: httpx.Client, *, access_token: str) -> ExternalIdentity:
    res = _send(
        client,
        "GET",
        "/users/@me",
        operation="current_user",
        headers={"Authorization": f"Bearer {access_token}"},
    )
    _raise_for_upstream(res, label="profile fetch")

    me = _json(res)
    if not isinstance(me, dict) or not me.get("id"):
        raise ProviderRejected("Invalid Discord user id")
    user_id = str(me["id"])
    return ExternalIdentity(
        provider_user_id=user_id,
        email=_str_field(me, "email"),
        username=_str_field(me, "username") or _str_field(me, "global_name") or user_id,
        avatar_hash=_str_field(me, "avatar"),
        access_token=access_token,
        verified=bool(me.get("verified")),
    )


def verify_guild_membership(
    client: httpx.Client,
    *,
    access_token: str,
    guild_id: str,
) -> GuildMembership:
    """Confirm the token's user belongs to `guild_id`.

    Discord answers 404 (or 403 without the members scope) when the user is
    not in the guild; both mean `NotAMember`. 5xx and transport errors are
    `ProviderUnavailable` so the user knows a retry may help.
    """
    res = _send(
        client,
        "GET",
        f"/users/@me/guilds/{guild_id}/member",
        operation="guild_member",
        headers={"Authorization": f"Bearer {access_token}"},
    )
    if res.status_code >= 500:
        logger.warning("Discord guild member lookup failed with HTTP %s", res.status_code)
        raise ProviderUnavailable()
    if res.status_code >= 300:
        raise NotAMember()

    member = _json(res)
    if not isinstance(member, dict):
        raise NotAMember()
    return GuildMembership(
        guild_id=guild_id,
        avatar_hash=_str_field(member, "avatar"),
        nick=_str_field(member, "nick"),
    )
