import logging
import ssl
from abc import ABC, abstractmethod
from typing import Dict

import redis.asyncio as redis
from redis.exceptions import RedisError

from config import Settings
from errors import StoreError

logger = logging.getLogger(__name__)


class UserStore(ABC):
    """Hash-map operations the request handlers need from a key-value store.

    One instance is shared by all requests, so implementations must be safe
    for concurrent use.
    """

    @abstractmethod
    async def write_hash(self, key: str, fields: Dict[str, str]) -> None:
        """Replace whatever is stored under key with fields."""

    @abstractmethod
    async def read_hash(self, key: str) -> Dict[str, str]:
        """Return every field under key, or an empty dict if there are none."""

    @abstractmethod
    async def ping(self) -> None:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...


class RedisUserStore(UserStore):
    def __init__(self, client: redis.Redis):
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisUserStore":
        host, port = settings.redis_address()
        tls = {}
        if settings.redis_tls:
            tls = {"ssl": True, "ssl_min_version": ssl.TLSVersion.TLSv1_2}
        client = redis.Redis(
            host=host,
            port=port,
            password=settings.redis_password,
            socket_timeout=settings.redis_timeout_s,
            socket_connect_timeout=settings.redis_timeout_s,
            decode_responses=True,
            encoding_errors="replace",
            **tls,
        )
        return cls(client)

    async def write_hash(self, key: str, fields: Dict[str, str]) -> None:
        # DEL + HSET in one MULTI/EXEC so a rewrite never merges old fields
        pipe = self._client.pipeline(transaction=True)
        try:
            await pipe.delete(key).hset(key, mapping=fields).execute()
        except RedisError as e:
            raise StoreError(str(e)) from e

    async def read_hash(self, key: str) -> Dict[str, str]:
        try:
            return await self._client.hgetall(key)
        except (RedisError, UnicodeDecodeError) as e:
            raise StoreError(str(e)) from e

    async def ping(self) -> None:
        try:
            await self._client.ping()
        except RedisError as e:
            raise StoreError(str(e)) from e

    async def close(self) -> None:
        try:
            await self._client.aclose()
        except (RedisError, OSError) as e:
            raise StoreError(str(e)) from e


class InMemoryUserStore(UserStore):
    """Process-local store with the same semantics as RedisUserStore.

    No operation awaits, so concurrent requests on the event loop never
    observe a half-written hash.
    """

    def __init__(self) -> None:
        self._hashes: Dict[str, Dict[str, str]] = {}
        self.closed = False

    async def write_hash(self, key: str, fields: Dict[str, str]) -> None:
        self._hashes[key] = dict(fields)

    async def read_hash(self, key: str) -> Dict[str, str]:
        return dict(self._hashes.get(key, {}))

    async def ping(self) -> None:
        if self.closed:
            raise StoreError("store is closed")

    async def close(self) -> None:
        self.closed = True


def create_store(settings: Settings) -> UserStore:
    """Build the store selected by USER_STORE."""
    if settings.user_store == "inmemory":
        logger.info("using in-memory user store")
        return InMemoryUserStore()
    return RedisUserStore.from_settings(settings)
