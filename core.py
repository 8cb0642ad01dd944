#!/usr/bin/env python3
"""
Spotify integration for the meditation player:
- authorize URL for the implicit grant (response_type=token)
- redirect fragment parsing
- a spotipy client bound to one access token
"""

from __future__ import annotations

import logging
import os
from typing import List, Optional, Tuple
from urllib.parse import quote, urlencode, urlsplit, urlunsplit

import spotipy

from lib.meditation.models import Credential

# Configure logger for this module
logger = logging.getLogger(__name__)

SPOTIFY_AUTHORIZE_URL = "https://accounts.spotify.com/authorize"

DEFAULT_SCOPES = [
    "streaming",
    "user-read-email",
    "user-read-private",
    "user-library-read",
    "user-read-playback-state",
    "user-modify-playback-state",
    "playlist-read-private",
    "playlist-read-collaborative",
]

DEPLOY_HOSTNAME = os.getenv("DEPLOY_HOSTNAME", "github.io")
HOSTED_REDIRECT_URI = os.getenv("HOSTED_REDIRECT_URI", "https://seanstews.github.io/Tara-Brach-Meditation-App")
LOCAL_REDIRECT_URI = os.getenv("LOCAL_REDIRECT_URI", "http://localhost:8000/")
SPOTIFY_SHOW_DIALOG = os.getenv("SPOTIFY_SHOW_DIALOG", "1") == "1"
SPOTIFY_REQUESTS_TIMEOUT_S = float(os.getenv("SPOTIFY_REQUESTS_TIMEOUT_S", "10"))
SPOTIFY_RETRIES = int(os.getenv("SPOTIFY_RETRIES", "3"))


def get_spotify_client_id() -> str:
    client_id = os.getenv("SPOTIFY_CLIENT_ID")
    if not client_id:
        raise RuntimeError(
            "Spotify client id is not set. "
            "Please set SPOTIFY_CLIENT_ID."
        )
    return client_id


def get_spotify_scopes() -> List[str]:
    scope_env = os.getenv("SPOTIFY_SCOPES", "").strip()
    return [s.strip() for s in scope_env.split(",") if s.strip()] or list(DEFAULT_SCOPES)


def get_spotify_market() -> Optional[str]:
    market = os.getenv("SPOTIFY_MARKET", "").strip().upper()
    return market or None


# =========================
# Login (implicit grant)
# =========================


def select_redirect_uri(current_url: str) -> str:
    """Hosted redirect when running on the deployment host, local dev redirect otherwise."""
    if DEPLOY_HOSTNAME and DEPLOY_HOSTNAME in (current_url or ""):
        return HOSTED_REDIRECT_URI
    return LOCAL_REDIRECT_URI


def build_authorize_url(
    current_url: str,
    client_id: str | None = None,
    scopes: List[str] | None = None,
    show_dialog: bool | None = None,
) -> str:
    """
    Build the accounts.spotify.com authorize URL the browser is sent to.
    Scopes are space-joined and percent-encoded (%20).
    """
    params = {
        "client_id": client_id or get_spotify_client_id(),
        "redirect_uri": select_redirect_uri(current_url),
        "scope": " ".join(scopes if scopes is not None else get_spotify_scopes()),
        "response_type": "token",
    }
    if show_dialog is None:
        show_dialog = SPOTIFY_SHOW_DIALOG
    if show_dialog:
        params["show_dialog"] = "true"
    url = f"{SPOTIFY_AUTHORIZE_URL}?{urlencode(params, quote_via=quote)}"
    logger.info(f"[Auth] login redirect_uri={params['redirect_uri']} scopes={len(params['scope'].split())}")
    return url


# =========================
# Redirect callback
# =========================


def _parse_fragment(fragment: str) -> dict:
    pairs = {}
    for part in fragment.split("&"):
        if not part:
            continue
        key, _, value = part.partition("=")
        pairs[key] = value
    return pairs


def consume_redirect_fragment(url_or_fragment: str) -> Tuple[Optional[Credential], str]:
    """
    Read the access token Spotify appended to the redirect URI as
    #access_token=...&token_type=Bearer&expires_in=3600.

    Accepts a full URL or a bare fragment (with or without '#').
    Returns (credential or None, url without the fragment).
    """
    s = (url_or_fragment or "").strip()
    if "://" in s:
        parts = urlsplit(s)
        fragment = parts.fragment
        clean_url = urlunsplit((parts.scheme, parts.netloc, parts.path, parts.query, ""))
    else:
        fragment = s[1:] if s.startswith("#") else s
        clean_url = ""

    if not fragment:
        return None, clean_url

    pairs = _parse_fragment(fragment)
    if "error" in pairs:
        logger.warning(f"[Auth] authorization failed: {pairs.get('error')}")
        return None, clean_url

    token = pairs.get("access_token")
    if not token:
        return None, clean_url

    expires_in: Optional[int]
    try:
        expires_in = int(pairs["expires_in"]) if pairs.get("expires_in") else None
    except ValueError:
        expires_in = None

    logger.info(f"[Auth] token received from redirect (expires_in={expires_in})")
    return Credential(value=token, token_type=pairs.get("token_type") or "Bearer", expires_in=expires_in), clean_url


# =========================
# Spotify client
# =========================


def get_spotify_client(access_token: str) -> spotipy.Spotify:
    """
    Spotipy client for one user access token. A new token means a new client.
    """
    if not access_token:
        raise RuntimeError("Spotify access token is empty")
    return spotipy.Spotify(
        auth=access_token,
        requests_timeout=SPOTIFY_REQUESTS_TIMEOUT_S,
        retries=SPOTIFY_RETRIES,
    )
