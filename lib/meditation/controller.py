"""
Session & Search Controller.

One MeditationSession per browser session. It owns the access token, the
spotipy client built from it, the periodic token validation task and at most
one in-flight search. Spotipy is synchronous, so every API call runs in a
worker thread via asyncio.to_thread.
"""
from __future__ import annotations

import asyncio
import logging
import os
import random
from typing import Any, Callable, Optional

from lib.meditation.filters import (
    BATCH_LIMIT,
    NAME_PREFIX,
    filter_by_duration,
    filter_by_name_prefix,
    pick_episode,
    random_offset,
)
from lib.meditation.models import (
    Credential,
    ErrorKind,
    SearchQuery,
    SearchResult,
    SessionPhase,
    SessionState,
)
from lib.meditation.search import (
    SEARCH_QUERY,
    error_detail,
    http_status_of,
    is_auth_error,
    count_matching_episodes,
    search_episode_batch,
)

logger = logging.getLogger(__name__)

MEDITATION_MAX_ATTEMPTS = int(os.getenv("MEDITATION_MAX_ATTEMPTS", "10"))
TOKEN_VALIDATION_INTERVAL_S = float(os.getenv("TOKEN_VALIDATION_INTERVAL_S", "1800"))

ClientFactory = Callable[[str], Any]


class SearchInProgress(RuntimeError):
    """Raised when a second search is requested while one is still running."""


class SessionClosed(RuntimeError):
    """Raised to a waiting caller when the session is torn down mid-search."""


class MeditationSession:
    def __init__(
        self,
        credential: Optional[Credential],
        client_factory: ClientFactory,
        rng: Optional[random.Random] = None,
        max_attempts: int = MEDITATION_MAX_ATTEMPTS,
        validation_interval_s: float = TOKEN_VALIDATION_INTERVAL_S,
        market: Optional[str] = None,
        query: str = SEARCH_QUERY,
        name_prefix: str = NAME_PREFIX,
    ):
        self._client_factory = client_factory
        self._rng = rng or random.Random()
        self.max_attempts = max(1, int(max_attempts))
        self.validation_interval_s = validation_interval_s
        self.market = market
        self.query = query
        self.name_prefix = name_prefix

        self.credential: Optional[Credential] = None
        self._client: Any = None
        self.is_loading = False
        self.error: Optional[str] = None
        self.current_episode = None
        self.has_found = False

        self._validation_task: Optional[asyncio.Task] = None
        self._search_task: Optional[asyncio.Task] = None
        self._closed = False

        self.set_credential(credential)

    # =========================
    # Credential
    # =========================

    def set_credential(self, credential: Optional[Credential]) -> None:
        """Swap the token; the client is rebuilt from it, never mutated in place."""
        self.credential = credential
        self._client = self._client_factory(credential.value) if credential is not None else None

    def clear_credential(self) -> None:
        if self.credential is not None:
            logger.info("[Session] credential cleared")
        self.set_credential(None)

    @property
    def authenticated(self) -> bool:
        return self.credential is not None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def phase(self) -> SessionPhase:
        if not self.authenticated:
            return SessionPhase.ANONYMOUS
        return SessionPhase.SEARCHING if self.is_loading else SessionPhase.IDLE

    def state(self) -> SessionState:
        return SessionState(
            phase=self.phase,
            is_loading=self.is_loading,
            error=self.error,
            current_episode=self.current_episode,
            has_found=self.has_found,
        )

    async def validate_credential(self) -> bool:
        """
        Call the "who am I" endpoint with the current token.
        Any failure drops the token and returns False.
        """
        client = self._client
        if self.credential is None or client is None:
            return False
        try:
            await asyncio.to_thread(client.current_user)
            return True
        except Exception as e:
            logger.info(f"[Auth] token expired or invalid (status={http_status_of(e)}): {error_detail(e)}")
            # a newer token may have been installed while the call was out
            if self._client is client:
                self.clear_credential()
            return False

    # =========================
    # Lifecycle
    # =========================

    def start(self) -> None:
        """Start periodic validation. Must be called from a running event loop."""
        if self._closed:
            raise SessionClosed("session is closed")
        if self._validation_task is None or self._validation_task.done():
            self._validation_task = asyncio.create_task(self._validate_periodically())

    async def _validate_periodically(self) -> None:
        while await self.validate_credential():
            await asyncio.sleep(self.validation_interval_s)
        logger.info("[Session] validation loop stopped: no valid credential")

    async def close(self) -> None:
        """Cancel background validation and any in-flight search, then drop the token."""
        self._closed = True
        tasks = [t for t in (self._validation_task, self._search_task) if t is not None and not t.done()]
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._validation_task = None
        self._search_task = None
        self.clear_credential()

    # =========================
    # Search
    # =========================

    async def run_search(self, target_minutes: int) -> SessionState:
        """
        find_meditation() as a task bound to this session, so close() can abort it.
        Only one search may run at a time.
        """
        if self._closed:
            raise SessionClosed("session is closed")
        if self._search_task is not None and not self._search_task.done():
            raise SearchInProgress("a meditation search is already running")
        task = asyncio.create_task(self.find_meditation(target_minutes))
        self._search_task = task
        try:
            return await task
        except asyncio.CancelledError:
            if self._closed:
                raise SessionClosed("session closed while searching") from None
            raise
        finally:
            if self._search_task is task:
                self._search_task = None

    async def find_meditation(self, target_minutes: int) -> SessionState:
        """
        Pick a random "Meditation:" episode whose length is within two minutes of
        target_minutes. Failures end up in self.error; only cancellation and an
        out-of-range target_minutes escape.
        """
        query = SearchQuery.from_minutes(target_minutes, self.name_prefix)
        self.is_loading = True
        try:
            await self._find(query, target_minutes)
        except Exception as e:
            logger.error(f"[Search] error: {error_detail(e)}")
            self.error = ErrorKind.TRANSPORT_FAILURE.message(detail=error_detail(e))
            if is_auth_error(e):
                self.clear_credential()
        finally:
            self.is_loading = False
        return self.state()

    async def _find(self, query: SearchQuery, target_minutes: int) -> None:
        if not await self.validate_credential():
            self.error = ErrorKind.AUTH_EXPIRED.message()
            return
        client = self._client
        if client is None:
            # the periodic validator dropped the token while this check was out
            self.error = ErrorKind.AUTH_EXPIRED.message()
            return
        self.error = None

        logger.info(f"[Search] start minutes={target_minutes} max_attempts={self.max_attempts}")
        total = await asyncio.to_thread(count_matching_episodes, client, self.query, self.market)
        if total == 0:
            self.error = ErrorKind.NO_CATALOG_ACCESS.message()
            return

        for attempt in range(1, self.max_attempts + 1):
            result = await self._search_batch(client, total, query)
            chosen = pick_episode(result.candidates, self._rng)
            if chosen is not None:
                logger.info(
                    f"[Search] selected id={chosen.id} name={chosen.name!r} "
                    f"minutes={chosen.duration_minutes} attempt={attempt}"
                )
                self.current_episode = chosen
                self.has_found = True
                return
            logger.info(f"[Search] attempt {attempt}/{self.max_attempts}: no match at offset={result.offset}")

        self.error = ErrorKind.NO_MATCH_FOUND.message(minutes=target_minutes)
        self.current_episode = None

    async def _search_batch(self, client: Any, total: int, query: SearchQuery) -> SearchResult:
        offset = random_offset(total, BATCH_LIMIT, self._rng)
        episodes = await asyncio.to_thread(
            search_episode_batch, client, offset, self.query, BATCH_LIMIT, self.market
        )
        named = filter_by_name_prefix(episodes, query.name_prefix)
        candidates = filter_by_duration(named, query.target_duration_ms)
        for ep in candidates:
            logger.debug(f"[Search] matching meditation: {ep.name} - Duration: {ep.duration_minutes} minutes")
        logger.info(
            f"[Search] offset={offset} fetched={len(episodes)} named={len(named)} matching={len(candidates)}"
        )
        return SearchResult(offset=offset, candidates=candidates)
