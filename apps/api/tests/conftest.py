from __future__ import annotations

import base64
import os
from collections.abc import Callable
from contextlib import suppress
from uuid import uuid4

import httpx
import pytest
from sqlalchemy.orm import Session

from wiki_api.models.enums import MembershipRole
from wiki_api.models.identity import User, Workspace


@pytest.fixture(scope="session", autouse=True)
def _test_database(tmp_path_factory: pytest.TempPathFactory) -> None:
    # Each run gets a throwaway SQLite file; the schema comes from the models.
    db_path = tmp_path_factory.mktemp("db") / "wiki_test.sqlite3"
    os.environ["DATABASE_URL"] = f"sqlite+pysqlite:///{db_path}"
    os.environ["APP_ENV"] = "test"
    os.environ["APP_URL"] = "http://localhost:8000"
    os.environ["FRONTEND_URL"] = "http://localhost:3000"
    os.environ["COOKIE_SECURE"] = "false"
    os.environ["JWT_SECRET"] = "test-jwt-secret"
    os.environ["ENCRYPTION_KEY_BASE64"] = base64.b64encode(os.urandom(32)).decode("ascii")
    os.environ["STATE_ENCRYPTION_KEY"] = os.urandom(32).hex()
    os.environ["RATE_LIMIT_REQUESTS_PER_MINUTE"] = "0"
    os.environ["AUTH_RATE_LIMIT_REQUESTS_PER_MINUTE"] = "0"
    # Cheap argon2 parameters; the defaults make every signup test take ~100ms.
    os.environ["ARGON2_TIME_COST"] = "1"
    os.environ["ARGON2_MEMORY_COST"] = "8192"
    os.environ["ARGON2_PARALLELISM"] = "1"

    # Clear cached settings/engines so imports inside the test session use the test DB.
    from wiki_api.core.config import get_settings
    from wiki_api.core.crypto import get_state_codec
    from wiki_api.core.security import get_password_hasher
    from wiki_api.db.session import get_engine, get_sessionmaker
    from wiki_api.models import Base

    get_settings.cache_clear()
    get_state_codec.cache_clear()
    get_password_hasher.cache_clear()
    get_engine.cache_clear()
    get_sessionmaker.cache_clear()

    Base.metadata.create_all(get_engine())

    yield

    with suppress(Exception):
        get_engine().dispose()
    get_engine.cache_clear()
    get_sessionmaker.cache_clear()
    get_state_codec.cache_clear()
    get_settings.cache_clear()


@pytest.fixture()
def db_session() -> Session:
    from wiki_api.db.session import get_sessionmaker

    SessionLocal = get_sessionmaker()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def make_workspace(db_session: Session) -> Callable[..., Workspace]:
    from wiki_api.services.discord.config import set_client_secret

    def _make(
        *,
        name: str = "Test Wiki",
        enabled: bool = True,
        client_id: str | None = "discord-client-1",
        client_secret: str | None = "discord-secret-1",
        guild_id: str | None = None,
        jit_enabled: bool = True,
        default_locale: str | None = None,
    ) -> Workspace:
        # The id is part of the secret's AAD, so it must exist before encrypting.
        workspace = Workspace(
            id=uuid4(),
            name=name,
            default_locale=default_locale,
            discord_enabled=enabled,
            discord_client_id=client_id,
            discord_guild_id=guild_id,
            discord_jit_enabled=jit_enabled,
        )
        if client_secret:
            set_client_secret(workspace, client_secret)
        db_session.add(workspace)
        db_session.commit()
        return workspace

    return _make


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., User]:
    from wiki_api.core.security import hash_password
    from wiki_api.services.workspaces import add_user_to_workspace

    def _make(
        workspace: Workspace,
        *,
        email: str,
        discord_id: str | None = None,
        password: str | None = None,
        role: MembershipRole = MembershipRole.member,
        avatar_url: str | None = None,
    ) -> User:
        user = User(
            workspace_id=workspace.id,
            email=email,
            name=email.split("@", 1)[0],
            discord_id=discord_id,
            avatar_url=avatar_url,
            password_hash=hash_password(password) if password else None,
        )
        db_session.add(user)
        db_session.flush()
        add_user_to_workspace(session=db_session, user=user, role=role)
        db_session.commit()
        return user

    return _make


class FakeDiscord:
    """Canned Discord API for `httpx.MockTransport`.

    Tests tweak the attributes before driving a login; every request is kept
    in `calls` for assertions.
    """

    def __init__(self) -> None:
        self.token_status = 200
        self.me_status = 200
        self.me: dict = {"id": "U1", "email": "a@b.com", "username": "bob", "avatar": None}
        self.guild_status = 200
        self.guild_member: dict = {"avatar": None, "nick": None}
        self.calls: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        path = request.url.path
        if request.method == "POST" and path.endswith("/oauth2/token"):
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_grant"})
            return httpx.Response(
                200,
                json={
                    "access_token": "discord-access-token",
                    "token_type": "Bearer",
                    "expires_in": 604800,
                    "refresh_token": "discord-refresh-token",
                    "scope": "identify email guilds guilds.members.read",
                },
            )
        if path.endswith("/users/@me"):
            if self.me_status != 200:
                return httpx.Response(self.me_status, json={"message": "nope"})
            return httpx.Response(200, json=self.me)
        if "/users/@me/guilds/" in path and path.endswith("/member"):
            if self.guild_status != 200:
                return httpx.Response(self.guild_status, json={"message": "Unknown Guild"})
            return httpx.Response(200, json=self.guild_member)
        return httpx.Response(404, json={"message": "unexpected request"})

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self))


@pytest.fixture()
def fake_discord() -> FakeDiscord:
    return FakeDiscord()
