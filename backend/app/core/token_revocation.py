"""
Token Revocation System using Redis.

Single tokens are blacklisted by their ``jti`` on logout; deactivating a user
sets a per-user flag that rejects every token issued to them.
"""

import logging
import time
from typing import Optional

import backend.app.core.redis_client as redis_store
from backend.app.core.config import settings

logger = logging.getLogger(__name__)

# Redis key prefix for blacklisted tokens
TOKEN_BLACKLIST_PREFIX = "blacklist:jti:"
USER_TOKENS_PREFIX = "user:tokens:"


def _token_ttl_seconds(expires_at: Optional[int] = None) -> int:
    # Tokens expire on their own after this, so the blacklist entry can too
    if expires_at is None:
        return settings.access_token_expire_minutes * 60
    return max(int(expires_at - time.time()), 1)


async def revoke_token(jti: str, user_id: int, expires_at: Optional[int] = None) -> bool:
    """
    Revoke a specific token by adding its jti to the blacklist.

    Args:
        jti: The token's unique id claim
        user_id: User ID who owns the token
        expires_at: The token's ``exp`` claim; the entry lives until then

    Returns:
        True if successfully revoked, False otherwise
    """
    try:
        key = f"{TOKEN_BLACKLIST_PREFIX}{jti}"
        await redis_store.redis_client.setex(key, _token_ttl_seconds(expires_at), str(user_id))
        return True
    except Exception as e:
        logger.error("Error revoking token for user %s: %s", user_id, e)
        return False


async def is_token_revoked(jti: str) -> bool:
    """
    Check if a token has been revoked.

    If Redis is unreachable the token is treated as valid.
    """
    try:
        key = f"{TOKEN_BLACKLIST_PREFIX}{jti}"
        return await redis_store.redis_client.exists(key) > 0
    except Exception as e:
        logger.warning("Error checking token revocation: %s", e)
        return False


async def revoke_all_user_tokens(user_id: int) -> bool:
    """
    Revoke all active tokens for a user.

    Called when a user is deactivated; every token check consults this flag.
    """
    try:
        key = f"{USER_TOKENS_PREFIX}{user_id}:revoked"
        await redis_store.redis_client.setex(key, _token_ttl_seconds(), "1")
        return True
    except Exception as e:
        logger.error("Error revoking all tokens for user %s: %s", user_id, e)
        return False


async def are_user_tokens_revoked(user_id: int) -> bool:
    """Check if all tokens for a user have been revoked."""
    try:
        key = f"{USER_TOKENS_PREFIX}{user_id}:revoked"
        return await redis_store.redis_client.exists(key) > 0
    except Exception as e:
        logger.warning("Error checking user token revocation: %s", e)
        return False


async def clear_user_token_revocation(user_id: int) -> bool:
    """Clear the revocation flag when a user is reactivated."""
    try:
        key = f"{USER_TOKENS_PREFIX}{user_id}:revoked"
        await redis_store.redis_client.delete(key)
        return True
    except Exception as e:
        logger.error("Error clearing token revocation for user %s: %s", user_id, e)
        return False
