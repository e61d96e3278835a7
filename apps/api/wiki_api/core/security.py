from __future__ import annotations

import base64
import hashlib
import hmac
import os
from functools import lru_cache
from typing import Any

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from fastapi import Response

from wiki_api.core.config import Settings, get_settings

SESSION_TOKEN_PURPOSE = "session"


def new_random_token(*, nbytes: int = 32) -> str:
    raw = os.urandom(nbytes)
    # URL-safe base64 without padding to keep cookie/header compact.
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def hash_token(token: str, *, purpose: str) -> bytes:
    """HMAC a bearer token for storage.

    `purpose` is mixed into the MAC so a session token can never match a
    pending-signup hash and vice versa.
    """
    pepper = get_settings().JWT_SECRET.encode("utf-8")
    return hmac.new(pepper, f"{purpose}:{token}".encode(), hashlib.sha256).digest()


@lru_cache(maxsize=1)
def get_password_hasher() -> PasswordHasher:
    settings = get_settings()
    return PasswordHasher(
        time_cost=settings.ARGON2_TIME_COST,
        memory_cost=settings.ARGON2_MEMORY_COST,
        parallelism=settings.ARGON2_PARALLELISM,
    )


def hash_password(password: str) -> str:
    return get_password_hasher().hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    try:
        return get_password_hasher().verify(password_hash, password)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


def password_needs_rehash(password_hash: str) -> bool:
    return get_password_hasher().check_needs_rehash(password_hash)


def _cookie_options(settings: Settings) -> dict[str, Any]:
    return {
        "secure": settings.cookie_secure,
        "samesite": settings.COOKIE_SAMESITE,
        "domain": settings.COOKIE_DOMAIN,
        "path": "/",
        "max_age": settings.SESSION_TTL_SECONDS,
    }


def set_session_cookie(response: Response, token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        **_cookie_options(settings),
    )


def set_csrf_cookie(response: Response, token: str) -> None:
    # Readable by the SPA, which echoes it back in the CSRF header.
    settings = get_settings()
    response.set_cookie(
        key=settings.CSRF_COOKIE_NAME,
        value=token,
        httponly=False,
        **_cookie_options(settings),
    )


def clear_auth_cookies(response: Response) -> None:
    settings = get_settings()
    for name in (settings.SESSION_COOKIE_NAME, settings.CSRF_COOKIE_NAME):
        response.delete_cookie(key=name, domain=settings.COOKIE_DOMAIN, path="/")
