"""
Episode search calls against a spotipy-shaped client.

The client is passed in explicitly; nothing here holds a module-level client.
"""
from __future__ import annotations

import logging
from typing import Any, List, Optional

from lib.meditation.filters import BATCH_LIMIT
from lib.meditation.models import Episode

logger = logging.getLogger(__name__)

SEARCH_QUERY = "Tara Brach Meditation:"
AUTH_ERROR_STATUSES = (401, 403)


def http_status_of(exc: BaseException) -> Optional[int]:
    """HTTP status carried by a spotipy / requests error, if any."""
    status = getattr(exc, "http_status", None) or getattr(exc, "status", None)
    if status is None:
        response = getattr(exc, "response", None)
        status = getattr(response, "status_code", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def is_auth_error(exc: BaseException) -> bool:
    return http_status_of(exc) in AUTH_ERROR_STATUSES


def error_detail(exc: BaseException) -> str:
    return getattr(exc, "msg", None) or str(exc) or exc.__class__.__name__


def _episodes_page(result: Any) -> dict:
    if not isinstance(result, dict):
        return {}
    return result.get("episodes") or {}


def count_matching_episodes(client: Any, query: str = SEARCH_QUERY, market: Optional[str] = None) -> int:
    """Limit-1 search, only used to learn how many episodes match the query."""
    result = client.search(query, limit=1, offset=0, type="episode", market=market)
    total = _episodes_page(result).get("total") or 0
    logger.info(f"[Search] count query={query!r} total={total}")
    return int(total)


def search_episode_batch(
    client: Any,
    offset: int,
    query: str = SEARCH_QUERY,
    limit: int = BATCH_LIMIT,
    market: Optional[str] = None,
) -> List[Episode]:
    result = client.search(query, limit=limit, offset=offset, type="episode", market=market)
    items = _episodes_page(result).get("items") or []
    episodes = [ep for ep in (Episode.from_api(it) for it in items) if ep is not None]
    logger.info(f"[Search] batch offset={offset} limit={limit} items={len(items)} episodes={len(episodes)}")
    return episodes
