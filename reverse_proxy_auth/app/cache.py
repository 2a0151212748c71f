"""
Authority cache for header-based authentication.

Remembers the authorities resolved for each identity so that repeat requests
do not go back to the LDAP server.  Two backends:

- memory: a per-process dict (default)
- redis: shared by all workers, selected with ``CACHE_BACKEND=redis``

Entries never expire; a later resolution for the same identity overwrites the
earlier one.  Every write replaces the whole tuple for a key in one step, so
a concurrent reader sees either the old or the new authorities, never a mix.
No lock is held around reads or writes.  A Redis failure, or a value this
module did not write, raises :class:`CacheUnavailable`.
"""

import json
from collections.abc import Iterable
from typing import Protocol

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from reverse_proxy_auth.exc import CacheUnavailable
from reverse_proxy_auth.logging import logger
from reverse_proxy_auth.settings import Settings

Authorities = tuple[str, ...]


def merge_authorities(*groups: Iterable[str]) -> Authorities:
    """Concatenate authority lists, dropping duplicates but keeping order."""
    return tuple(dict.fromkeys(authority for group in groups for authority in group))


class AuthorityCache(Protocol):
    async def get(self, username: str) -> Authorities | None: ...

    async def put(self, username: str, authorities: Iterable[str]) -> None: ...


# --- In-memory implementation ---


class MemoryAuthorityCache:
    """Per-process cache: identity -> immutable authorities tuple."""

    backend = "memory"

    def __init__(self) -> None:
        self._entries: dict[str, Authorities] = {}

    async def get(self, username: str) -> Authorities | None:
        authorities = self._entries.get(username)
        if authorities is None:
            logger.debug("cache.miss", username=username, backend=self.backend)
        else:
            logger.debug(
                "cache.hit",
                username=username,
                authorities=len(authorities),
                backend=self.backend,
            )
        return authorities

    async def put(self, username: str, authorities: Iterable[str]) -> None:
        entry = merge_authorities(authorities)
        self._entries[username] = entry
        logger.debug(
            "cache.set", username=username, authorities=len(entry), backend=self.backend
        )

    def __len__(self) -> int:
        return len(self._entries)

    def reset(self) -> None:
        """Drop every entry (for testing)."""
        self._entries = {}


# --- Redis implementation ---


class RedisAuthorityCache:
    """
    Cache shared across worker processes.

    Each identity is one Redis string holding a JSON list of authorities.
    """

    backend = "redis"

    def __init__(self, connection: aioredis.Redis, prefix: str = "") -> None:
        self._connection = connection
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = "") -> "RedisAuthorityCache":
        return cls(aioredis.from_url(url), prefix=prefix)

    def _make_key(self, username: str) -> str:
        return f"{self._prefix}authorities:{username}"

    async def get(self, username: str) -> Authorities | None:
        key = self._make_key(username)
        try:
            value = await self._connection.get(key)
            if value is None:
                logger.debug("cache.miss", key=key, backend=self.backend)
                return None
            authorities = tuple(json.loads(value))
        except (RedisError, TypeError, ValueError) as exc:
            # ValueError: a value not written by us (JSONDecodeError, bad utf-8)
            logger.error("cache.get.failed", key=key, error=str(exc))
            raise CacheUnavailable(str(exc)) from exc
        logger.debug(
            "cache.hit", key=key, authorities=len(authorities), backend=self.backend
        )
        return authorities

    async def put(self, username: str, authorities: Iterable[str]) -> None:
        key = self._make_key(username)
        entry = merge_authorities(authorities)
        try:
            await self._connection.set(key, json.dumps(list(entry)))
        except RedisError as exc:
            logger.error("cache.set.failed", key=key, error=str(exc))
            raise CacheUnavailable(str(exc)) from exc
        logger.debug("cache.set", key=key, authorities=len(entry), backend=self.backend)

    async def close(self) -> None:
        await self._connection.aclose()


def make_authority_cache(settings: Settings) -> AuthorityCache:
    """Build the cache backend named by ``settings.cache_backend``."""
    if settings.cache_backend == "redis" and settings.redis_url is not None:
        return RedisAuthorityCache.from_url(
            settings.redis_url, prefix=settings.redis_prefix
        )
    if settings.cache_backend == "redis":
        logger.warning("cache.redis.no_url", fallback="memory")
    return MemoryAuthorityCache()
