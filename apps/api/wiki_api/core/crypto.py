from __future__ import annotations

import base64
import binascii
import os
import time
from dataclasses import dataclass, field
from datetime import timedelta
from functools import lru_cache
from uuid import UUID

import orjson
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from wiki_api.core.config import get_settings
from wiki_api.core.errors import InvalidState

NONCE_SIZE = 12
STATE_AAD = b"discord_oauth_state"


class EncryptionKeyError(RuntimeError):
    pass


def _load_key() -> bytes:
    settings = get_settings()
    raw = settings.ENCRYPTION_KEY_BASE64
    try:
        key = base64.b64decode(raw, validate=True)
    except Exception as e:  # noqa: BLE001
        raise EncryptionKeyError("ENCRYPTION_KEY_BASE64 must be valid base64") from e

    if len(key) != 32:
        raise EncryptionKeyError("ENCRYPTION_KEY_BASE64 must decode to 32 bytes (AES-256)")

    return key


def encrypt_bytes(*, plaintext: bytes, aad: bytes) -> bytes:
    key = _load_key()
    nonce = os.urandom(NONCE_SIZE)
    aesgcm = AESGCM(key)
    ciphertext = aesgcm.encrypt(nonce, plaintext, aad)
    return nonce + ciphertext


def decrypt_bytes(*, blob: bytes, aad: bytes) -> bytes:
    if len(blob) < NONCE_SIZE + 1:
        raise ValueError("Encrypted blob is too short")

    key = _load_key()
    nonce = blob[:NONCE_SIZE]
    ciphertext = blob[NONCE_SIZE:]
    aesgcm = AESGCM(key)
    return aesgcm.decrypt(nonce, ciphertext, aad)


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class StateToken:
    workspace_id: UUID
    nonce: bytes
    issued_at_ms: int

    @classmethod
    def issue(cls, workspace_id: UUID, *, issued_at_ms: int | None = None) -> StateToken:
        return cls(
            workspace_id=workspace_id,
            nonce=os.urandom(16),
            issued_at_ms=now_ms() if issued_at_ms is None else issued_at_ms,
        )


@dataclass(frozen=True)
class StateCodecConfig:
    key: bytes = field(repr=False)
    max_age: timedelta = timedelta(minutes=30)

    def __post_init__(self) -> None:
        if len(self.key) != 32:
            raise EncryptionKeyError("State encryption key must be 32 bytes (AES-256)")

    @classmethod
    def from_hex(cls, raw: str, *, max_age: timedelta | None = None) -> StateCodecConfig:
        try:
            key = bytes.fromhex(raw)
        except ValueError as e:
            raise EncryptionKeyError("STATE_ENCRYPTION_KEY must be hex encoded") from e
        if max_age is None:
            return cls(key=key)
        return cls(key=key, max_age=max_age)


class StateCodec:
    """Encrypts the anti-CSRF `state` parameter round-tripped through Discord.

    Tokens are AES-256-GCM sealed (fresh nonce per token) and base64url
    encoded without padding. Decoding fails closed: anything that does not
    authenticate, parse, or fall inside the freshness window raises
    `InvalidState`.
    """

    def __init__(self, config: StateCodecConfig) -> None:
        self._config = config
        self._aesgcm = AESGCM(config.key)

    @property
    def max_age(self) -> timedelta:
        return self._config.max_age

    def encode(self, state: StateToken) -> str:
        payload = orjson.dumps(
            {
                "workspaceId": str(state.workspace_id),
                "nonce": state.nonce.hex(),
                "timestamp": state.issued_at_ms,
            },
            option=orjson.OPT_SORT_KEYS,
        )
        nonce = os.urandom(NONCE_SIZE)
        blob = nonce + self._aesgcm.encrypt(nonce, payload, STATE_AAD)
        return base64.urlsafe_b64encode(blob).decode("ascii").rstrip("=")

    def decode(self, encoded: str, *, now: int | None = None) -> StateToken:
        if not encoded:
            raise InvalidState()
        try:
            padded = encoded + "=" * (-len(encoded) % 4)
            blob = base64.urlsafe_b64decode(padded.encode("ascii"))
        except (binascii.Error, UnicodeEncodeError, ValueError):
            raise InvalidState() from None
        if len(blob) <= NONCE_SIZE:
            raise InvalidState()

        try:
            plaintext = self._aesgcm.decrypt(blob[:NONCE_SIZE], blob[NONCE_SIZE:], STATE_AAD)
            data = orjson.loads(plaintext)
            state = StateToken(
                workspace_id=UUID(data["workspaceId"]),
                nonce=bytes.fromhex(data["nonce"]),
                issued_at_ms=int(data["timestamp"]),
            )
        except (InvalidTag, KeyError, TypeError, ValueError):
            raise InvalidState() from None

        current = now_ms() if now is None else now
        age_ms = current - state.issued_at_ms
        if age_ms > self.max_age.total_seconds() * 1000:
            raise InvalidState("Authentication state expired")
        # Allow a little clock skew between app instances.
        if age_ms < -60_000:
            raise InvalidState()
        return state


@lru_cache(maxsize=1)
def get_state_codec() -> StateCodec:
    settings = get_settings()
    config = StateCodecConfig.from_hex(
        settings.STATE_ENCRYPTION_KEY,
        max_age=timedelta(seconds=settings.STATE_TTL_SECONDS),
    )
    return StateCodec(config)
