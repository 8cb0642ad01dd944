"""Centralized cache utilities (in-memory session store settings & key builders)."""
from __future__ import annotations

import os
from typing import List, Optional

from cachetools import TTLCache

from lib.meditation.controller import MeditationSession

# Session store settings
SESSION_CACHE_VERSION = int(os.getenv("SESSION_CACHE_VERSION", "1"))
SESSION_CACHE_MAXSIZE = int(os.getenv("SESSION_CACHE_MAXSIZE", "256"))
SESSION_TTL_S = int(os.getenv("SESSION_TTL_S", "3600"))
SESSION_SWEEP_INTERVAL_S = float(os.getenv("SESSION_SWEEP_INTERVAL_S", "60"))


class SessionCache(TTLCache):
    """
    TTLCache that remembers sessions it dropped (full cache or TTL expiry) so
    the caller can close() them on the event loop.
    """

    def __init__(self, maxsize, ttl, **kwargs):
        super().__init__(maxsize, ttl, **kwargs)
        self.evicted: List[MeditationSession] = []

    def popitem(self):
        key, session = super().popitem()
        self.evicted.append(session)
        return key, session

    def expire(self, time=None):
        expired = super().expire(time)
        self.evicted.extend(session for _, session in expired)
        return expired

    def take_evicted(self) -> List[MeditationSession]:
        evicted, self.evicted = self.evicted, []
        return evicted


# Lazy-initialized caches
_session_cache: SessionCache | None = None


def get_session_cache() -> SessionCache:
    global _session_cache
    if _session_cache is None:
        _session_cache = SessionCache(maxsize=SESSION_CACHE_MAXSIZE, ttl=SESSION_TTL_S)
    return _session_cache


def reset_session_cache() -> None:
    global _session_cache
    _session_cache = None


def build_session_cache_key(session_id: str) -> str:
    return f"ms:{SESSION_CACHE_VERSION}:{session_id}"


def get_session(session_id: str | None) -> Optional[MeditationSession]:
    if not session_id:
        return None
    return get_session_cache().get(build_session_cache_key(session_id))


def put_session(session_id: str, session: MeditationSession) -> None:
    get_session_cache()[build_session_cache_key(session_id)] = session


def pop_session(session_id: str | None) -> Optional[MeditationSession]:
    if not session_id:
        return None
    return get_session_cache().pop(build_session_cache_key(session_id), None)


async def close_evicted_sessions() -> int:
    """Expire stale entries, then close every session the cache has dropped."""
    cache = get_session_cache()
    cache.expire()
    evicted = cache.take_evicted()
    for session in evicted:
        await session.close()
    return len(evicted)


def drain_sessions() -> List[MeditationSession]:
    cache = get_session_cache()
    sessions = list(cache.values())
    cache.clear()
    return sessions + cache.take_evicted()
