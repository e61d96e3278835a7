from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CsrfTokenResponse(BaseModel):
    csrf_token: str


class LoginRequest(BaseModel):
    workspace_id: UUID
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1, max_length=128)


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    name: str | None
    avatar_url: str | None
    discord_id: str | None


class WorkspaceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str


class SessionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    expires_at: datetime


class LoginResponse(BaseModel):
    user: UserOut
    workspace: WorkspaceOut
    role: str
    session: SessionOut
    csrf_token: str


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PendingUserIn(_CamelModel):
    token: str = Field(min_length=1, max_length=256)
    workspace_id: UUID
    id: UUID


class CompleteDiscordSetupRequest(_CamelModel):
    pending_user: PendingUserIn
    password: str = Field(min_length=8, max_length=128)


class DiscordConfigOut(_CamelModel):
    enabled: bool
    client_id: str | None
    client_secret: str | None
    guild_id: str | None
    jit_enabled: bool


class DiscordConfigUpdate(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    enabled: bool | None = None
    client_id: str | None = Field(default=None, min_length=1, max_length=64)
    client_secret: str | None = Field(default=None, min_length=1, max_length=256)
    guild_id: str | None = Field(default=None, max_length=32)
    jit_enabled: bool | None = None
