from __future__ import annotations

from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from wiki_api.core.errors import NotConfigured
from wiki_api.models import Base
from wiki_api.models.identity import Workspace
from wiki_api.services.discord.config import decrypt_client_secret, set_client_secret
from wiki_api.services.discord.resolver import resolve_discord_client


def test_resolves_decrypted_credentials(db_session: Session, make_workspace) -> None:
    ws = make_workspace(client_id="cid-1", client_secret="s3cret", guild_id="G", jit_enabled=False)

    config = resolve_discord_client(db_session, workspace_id=ws.id)

    assert config.workspace_id == ws.id
    assert config.client_id == "cid-1"
    assert config.client_secret == "s3cret"
    assert config.guild_id == "G"
    assert config.jit_enabled is False
    assert config.redirect_uri == "http://localhost:8000/auth/discord/callback"
    assert "s3cret" not in repr(config)


def test_secret_is_encrypted_at_rest(db_session: Session, make_workspace) -> None:
    ws = make_workspace(client_secret="s3cret")
    assert ws.discord_client_secret_encrypted is not None
    assert b"s3cret" not in ws.discord_client_secret_encrypted
    assert decrypt_client_secret(ws) == "s3cret"


@pytest.mark.parametrize(
    "overrides",
    [
        {"enabled": False},
        {"client_id": None},
        {"client_id": ""},
        {"client_secret": None},
    ],
)
def test_incomplete_config_is_not_configured(
    db_session: Session, make_workspace, overrides: dict
) -> None:
    ws = make_workspace(**overrides)
    with pytest.raises(NotConfigured) as exc:
        resolve_discord_client(db_session, workspace_id=ws.id)
    assert exc.value.status_code == 401
    assert exc.value.detail == "Discord not configured"


def test_unknown_workspace_is_not_configured(db_session: Session) -> None:
    with pytest.raises(NotConfigured):
        resolve_discord_client(db_session, workspace_id=uuid4())


def test_workspace_hint_is_optional_only_for_single_workspace() -> None:
    engine = create_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        with pytest.raises(NotConfigured):
            resolve_discord_client(session, workspace_id=None)

        first = Workspace(
            id=uuid4(), name="Only", discord_enabled=True, discord_client_id="cid-only"
        )
        set_client_secret(first, "only-secret")
        session.add(first)
        session.flush()

        config = resolve_discord_client(session, workspace_id=None)
        assert config.workspace_id == first.id
        assert config.client_secret == "only-secret"

        second = Workspace(id=uuid4(), name="Second", discord_enabled=True, discord_client_id="x")
        set_client_secret(second, "y")
        session.add(second)
        session.flush()

        with pytest.raises(NotConfigured):
            resolve_discord_client(session, workspace_id=None)

    engine.dispose()


def test_undecryptable_secret_is_not_configured(db_session: Session, make_workspace) -> None:
    ws = make_workspace(client_secret="s3cret")
    ws.discord_client_secret_encrypted = b"\x00" * 40
    db_session.commit()

    assert decrypt_client_secret(ws) is None
    with pytest.raises(NotConfigured):
        resolve_discord_client(db_session, workspace_id=ws.id)


def test_secret_sealed_for_another_workspace_is_rejected(
    db_session: Session, make_workspace
) -> None:
    ws = make_workspace(client_secret="mine")
    other = make_workspace(name="Other", client_secret="theirs")
    ws.discord_client_secret_encrypted = other.discord_client_secret_encrypted
    db_session.commit()

    with pytest.raises(NotConfigured):
        resolve_discord_client(db_session, workspace_id=ws.id)
