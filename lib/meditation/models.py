"""
Meditation search data models.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

EMBED_BASE_URL = "https://open.spotify.com/embed/episode"

MIN_MINUTES = 5
MAX_MINUTES = 30
DEFAULT_MINUTES = 15


def minutes_to_ms(minutes: int) -> int:
    return int(minutes) * 60000


class ErrorKind(str, Enum):
    """
    User-facing failure categories of a meditation search.
    Each value doubles as the message template shown on the page.
    """
    AUTH_EXPIRED = "Your session has expired. Please log in again."
    NO_CATALOG_ACCESS = (
        "Unable to access Spotify podcast content. "
        "Please make sure you have a valid Spotify account with podcast access."
    )
    NO_MATCH_FOUND = (
        "No meditations found close to {minutes} minutes. "
        "This might be due to Spotify access restrictions. "
        "Please try again or try a different duration."
    )
    TRANSPORT_FAILURE = "Error finding meditation: {detail}. Please try logging in again."

    def message(self, **kwargs: Any) -> str:
        return self.value.format(**kwargs)


class SessionPhase(str, Enum):
    ANONYMOUS = "anonymous"
    IDLE = "idle"
    SEARCHING = "searching"


@dataclass(frozen=True)
class Credential:
    """Bearer token taken from the implicit-flow redirect fragment."""
    value: str
    token_type: str = "Bearer"
    expires_in: Optional[int] = None

    def __repr__(self) -> str:
        # keep tokens out of logs and tracebacks
        return f"Credential(token_type={self.token_type!r}, expires_in={self.expires_in!r})"


@dataclass(frozen=True)
class SearchQuery:
    name_prefix: str
    target_duration_ms: int

    @classmethod
    def from_minutes(cls, minutes: int, name_prefix: str) -> "SearchQuery":
        if not MIN_MINUTES <= int(minutes) <= MAX_MINUTES:
            raise ValueError(f"minutes must be between {MIN_MINUTES} and {MAX_MINUTES}, got {minutes}")
        return cls(name_prefix=name_prefix, target_duration_ms=minutes_to_ms(minutes))


@dataclass(frozen=True)
class Episode:
    """Podcast episode as returned by the Spotify search endpoint (read-only)."""
    id: str
    name: str
    duration_ms: int
    release_date: Optional[str] = None
    spotify_url: Optional[str] = None

    @property
    def embed_url(self) -> str:
        return f"{EMBED_BASE_URL}/{self.id}"

    @property
    def duration_minutes(self) -> int:
        return self.duration_ms // 60000

    @classmethod
    def from_api(cls, item: Dict[str, Any] | None) -> Optional["Episode"]:
        # search results occasionally contain null or partial entries
        if not isinstance(item, dict):
            return None
        ep_id = item.get("id")
        name = item.get("name")
        duration = item.get("duration_ms")
        if not ep_id or name is None or duration is None:
            return None
        return cls(
            id=str(ep_id),
            name=str(name),
            duration_ms=int(duration),
            release_date=item.get("release_date"),
            spotify_url=(item.get("external_urls") or {}).get("spotify"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "duration_ms": self.duration_ms,
            "release_date": self.release_date,
            "spotify_url": self.spotify_url,
            "embed_url": self.embed_url,
        }


@dataclass
class SearchResult:
    """Candidates that survived filtering for one batch fetch."""
    offset: int
    candidates: List[Episode] = field(default_factory=list)


@dataclass(frozen=True)
class SessionState:
    phase: SessionPhase
    is_loading: bool
    error: Optional[str]
    current_episode: Optional[Episode]
    has_found: bool

    @property
    def authenticated(self) -> bool:
        return self.phase is not SessionPhase.ANONYMOUS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "authenticated": self.authenticated,
            "phase": self.phase.value,
            "is_loading": self.is_loading,
            "error": self.error,
            "current_episode": self.current_episode.to_dict() if self.current_episode else None,
            "has_found": self.has_found,
        }
