"""
Account directory backed by Redis: maps an account to the wallet that owns it
"""
import logging
from typing import Iterable, Optional
import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

class AccountDirectory:
    """Async Redis wrapper for account -> wallet lookups"""

    KEY_PREFIX = "account:"

    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "AccountDirectory":
        return cls(redis.Redis.from_url(url, decode_responses=True))

    def _key(self, account: str) -> str:
        return f"{self.KEY_PREFIX}{account}"

    async def get_wallet(self, account: str) -> Optional[str]:
        """Return the owning wallet id, or None when no wallet owns the account.

        Store failures raise ``RedisError``; callers decide what to do.
        """
        value = await self.client.get(self._key(account))
        if value is None:
            return None
        return str(value)

    async def register_accounts(self, wallet: str, accounts: Iterable[str]) -> int:
        """Point every account at ``wallet``; returns how many keys were written"""
        keys = [self._key(acc) for acc in accounts]
        if not keys:
            return 0
        async with self.client.pipeline(transaction=True) as pipe:
            for key in keys:
                pipe.set(key, wallet)
            await pipe.execute()
        logger.info(f"Registered {len(keys)} accounts for wallet {wallet}")
        return len(keys)

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError:
            return False

    async def close(self):
        await self.client.aclose()
