from __future__ import annotations

from wiki_api.core.config import get_settings
from wiki_api.core.errors import InvalidArgument

MIN_AVATAR_SIZE = 16
MAX_AVATAR_SIZE = 4096
DEFAULT_AVATAR_COUNT = 6
ANIMATED_HASH_PREFIX = "a_"


def default_avatar_index(user_id: str) -> int:
    # Snowflake ids carry the creation timestamp above bit 22.
    if not (str(user_id).isascii() and str(user_id).isdigit()):
        return 0
    snowflake = int(user_id)
    return (snowflake >> 22) % DEFAULT_AVATAR_COUNT


def compute_avatar_url(
    user_id: str,
    avatar_hash: str | None,
    guild_avatar_hash: str | None = None,
    *,
    guild_id: str | None = None,
    size: int = 256,
    fmt: str = "png",
    dynamic: bool = True,
) -> str:
    """Derive the CDN URL Discord would show for this user.

    Guild-specific avatars win over the user's global avatar; users without
    any avatar get one of the built-in defaults. Animated hashes (`a_...`)
    are served as gif unless `dynamic` is off.
    """
    if isinstance(size, bool) or not isinstance(size, int):
        raise InvalidArgument("Size must be an integer between 16 and 4096")
    if size < MIN_AVATAR_SIZE or size > MAX_AVATAR_SIZE:
        raise InvalidArgument("Size must be an integer between 16 and 4096")

    base_url = get_settings().DISCORD_CDN_URL.rstrip("/")

    def _file_format(asset_hash: str) -> str:
        if dynamic and asset_hash.startswith(ANIMATED_HASH_PREFIX):
            return "gif"
        return fmt

    if guild_id and guild_avatar_hash:
        return (
            f"{base_url}/guilds/{guild_id}/users/{user_id}/avatars/"
            f"{guild_avatar_hash}.{_file_format(guild_avatar_hash)}?size={size}"
        )

    if not avatar_hash:
        return f"{base_url}/embed/avatars/{default_avatar_index(user_id)}.png?size={size}"

    return f"{base_url}/avatars/{user_id}/{avatar_hash}.{_file_format(avatar_hash)}?size={size}"
