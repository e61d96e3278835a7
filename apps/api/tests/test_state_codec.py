from __future__ import annotations

import base64
import os
from datetime import timedelta
from uuid import uuid4

import pytest

from wiki_api.core.crypto import (
    EncryptionKeyError,
    StateCodec,
    StateCodecConfig,
    StateToken,
    now_ms,
)
from wiki_api.core.errors import InvalidState


def _codec(key: bytes | None = None) -> StateCodec:
    return StateCodec(StateCodecConfig(key=key or os.urandom(32)))


def _flip_byte(encoded: str, index: int) -> str:
    blob = bytearray(base64.urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4)))
    blob[index] ^= 0x01
    return base64.urlsafe_b64encode(bytes(blob)).decode("ascii").rstrip("=")


def test_round_trip_preserves_workspace_and_nonce() -> None:
    codec = _codec()
    token = StateToken.issue(uuid4())

    encoded = codec.encode(token)
    assert "=" not in encoded
    assert "+" not in encoded and "/" not in encoded

    decoded = codec.decode(encoded)
    assert decoded == token


def test_each_encoding_is_unique() -> None:
    codec = _codec()
    token = StateToken.issue(uuid4())
    assert codec.encode(token) != codec.encode(token)


def test_expired_state_is_rejected() -> None:
    codec = _codec()
    issued = now_ms() - 31 * 60 * 1000
    encoded = codec.encode(StateToken.issue(uuid4(), issued_at_ms=issued))

    with pytest.raises(InvalidState) as exc:
        codec.decode(encoded)
    assert exc.value.status_code == 401
    assert exc.value.detail == "Authentication state expired"


def test_state_inside_window_is_accepted() -> None:
    codec = _codec()
    issued = now_ms() - 29 * 60 * 1000
    state = StateToken.issue(uuid4(), issued_at_ms=issued)
    assert codec.decode(codec.encode(state)).issued_at_ms == issued


def test_custom_max_age_is_honoured() -> None:
    codec = StateCodec(StateCodecConfig(key=os.urandom(32), max_age=timedelta(seconds=10)))
    issued = 1_000_000
    encoded = codec.encode(StateToken.issue(uuid4(), issued_at_ms=issued))

    assert codec.decode(encoded, now=issued + 9_000).issued_at_ms == issued
    with pytest.raises(InvalidState):
        codec.decode(encoded, now=issued + 11_000)


def test_state_from_the_future_is_rejected() -> None:
    codec = _codec()
    issued = now_ms() + 5 * 60 * 1000
    encoded = codec.encode(StateToken.issue(uuid4(), issued_at_ms=issued))
    with pytest.raises(InvalidState):
        codec.decode(encoded)


@pytest.mark.parametrize("index", [0, 20, -1])
def test_tampered_state_is_rejected(index: int) -> None:
    codec = _codec()
    encoded = codec.encode(StateToken.issue(uuid4()))
    with pytest.raises(InvalidState):
        codec.decode(_flip_byte(encoded, index))


@pytest.mark.parametrize("raw", ["", "abc", "not base64!!", "été", "A" * 8])
def test_malformed_state_is_rejected(raw: str) -> None:
    with pytest.raises(InvalidState):
        _codec().decode(raw)


def test_state_from_another_key_is_rejected() -> None:
    encoded = _codec().encode(StateToken.issue(uuid4()))
    with pytest.raises(InvalidState):
        _codec().decode(encoded)


def test_key_must_be_32_bytes() -> None:
    with pytest.raises(EncryptionKeyError):
        StateCodecConfig(key=b"short")
    with pytest.raises(EncryptionKeyError):
        StateCodecConfig.from_hex("zz" * 32)
    with pytest.raises(EncryptionKeyError):
        StateCodecConfig.from_hex("ab" * 16)

    config = StateCodecConfig.from_hex("ab" * 32, max_age=timedelta(minutes=5))
    assert config.max_age == timedelta(minutes=5)
    assert "key=" not in repr(config)
