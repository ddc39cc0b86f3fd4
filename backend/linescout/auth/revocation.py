"""JWT revocation using a Redis blacklist.

Tokens are revoked on sign-out and kept in the blacklist until their
natural expiry.  Blocking an agent revokes every token they hold.
"""

import logging
import time

from linescout.utils.cache import get_redis

logger = logging.getLogger(__name__)


class TokenRevocation:
    """Manage JWT token revocation with Redis."""

    @staticmethod
    async def revoke_token(token: str, expires_at: float) -> bool:
        """Blacklist a token until `expires_at` (unix timestamp)."""
        redis_client = await get_redis()

        ttl = int(expires_at - time.time())
        if ttl <= 0:
            return True

        try:
            await redis_client.setex(f"revoked:{token}", ttl, str(int(time.time())))
            return True
        except Exception as e:
            logger.error(f"Failed to revoke token: {e}")
            return False

    @staticmethod
    async def is_revoked(token: str) -> bool:
        redis_client = await get_redis()

        try:
            return await redis_client.exists(f"revoked:{token}") > 0
        except Exception as e:
            logger.error(f"Failed to check token revocation: {e}")
            # Fail closed for security
            return True

    @staticmethod
    async def revoke_all_user_tokens(user_id: str, duration: int = 86400) -> bool:
        """Revoke every token issued to `user_id` for `duration` seconds."""
        redis_client = await get_redis()

        try:
            await redis_client.setex(
                f"revoked:user:{user_id}", duration, str(int(time.time()))
            )
            return True
        except Exception as e:
            logger.error(f"Failed to revoke user tokens: {e}")
            return False

    @staticmethod
    async def is_user_revoked(user_id: str, issued_after: float | None = None) -> bool:
        """Check whether all tokens for a user were revoked.

        A token issued after the revocation timestamp is still valid, so a
        blocked agent who is later re-approved can sign in again.
        """
        redis_client = await get_redis()

        try:
            revoked_at = await redis_client.get(f"revoked:user:{user_id}")
        except Exception as e:
            logger.error(f"Failed to check user revocation: {e}")
            return True

        if revoked_at is None:
            return False
        if issued_after is not None and issued_after > float(revoked_at):
            return False
        return True
