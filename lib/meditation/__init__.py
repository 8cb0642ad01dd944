"""
Meditation episode search.

Public API:
  - MeditationSession(credential, client_factory) -> session controller
  - filter_by_name_prefix / filter_by_duration / random_offset / pick_episode
"""
from lib.meditation.controller import MeditationSession, SearchInProgress, SessionClosed
from lib.meditation.filters import (
    filter_by_duration,
    filter_by_name_prefix,
    pick_episode,
    random_offset,
)
from lib.meditation.models import (
    Credential,
    Episode,
    ErrorKind,
    SearchQuery,
    SearchResult,
    SessionPhase,
    SessionState,
    minutes_to_ms,
)

__all__ = [
    "MeditationSession",
    "SearchInProgress",
    "SessionClosed",
    "filter_by_duration",
    "filter_by_name_prefix",
    "minutes_to_ms",
    "pick_episode",
    "random_offset",
    "Credential",
    "Episode",
    "ErrorKind",
    "SearchQuery",
    "SearchResult",
    "SessionPhase",
    "SessionState",
]
