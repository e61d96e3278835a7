from __future__ import annotations

from fastapi import HTTPException, status


class DiscordAuthError(HTTPException):
    """Base for Discord login failures.

    Each subclass carries a fixed status and a generic detail so that raw
    provider responses never reach the client.
    """

    status_code_default: int = status.HTTP_401_UNAUTHORIZED
    detail_default: str = "Discord authentication failed"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(
            status_code=self.status_code_default,
            detail=detail or self.detail_default,
        )


class InvalidState(DiscordAuthError):
    detail_default = "Invalid authentication state"


class NotConfigured(DiscordAuthError):
    detail_default = "Discord not configured"


class ProvisioningDisabled(DiscordAuthError):
    detail_default = "Discord JIT not enabled"


class NotAMember(DiscordAuthError):
    detail_default = "User is not a member of the required Discord server"


class ProviderRejected(DiscordAuthError):
    detail_default = "Discord rejected the authorization"


class ProviderUnavailable(DiscordAuthError):
    status_code_default = status.HTTP_502_BAD_GATEWAY
    detail_default = "Discord is unavailable"


class AccountConflict(DiscordAuthError):
    status_code_default = status.HTTP_409_CONFLICT
    detail_default = "An account with this email already exists"


class InvalidOrExpiredToken(DiscordAuthError):
    status_code_default = status.HTTP_400_BAD_REQUEST
    detail_default = "Invalid or expired token"


class InvalidArgument(ValueError):
    pass
