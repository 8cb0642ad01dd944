# html_renderer.py
from __future__ import annotations
from typing import Dict, Optional
import html

from lib.meditation.models import DEFAULT_MINUTES, MAX_MINUTES, MIN_MINUTES

BACKGROUND_IMAGE = (
    "https://images.unsplash.com/photo-1464822759023-fed622ff2c3b"
    "?ixlib=rb-4.0.3&auto=format&fit=crop&w=2070&q=80"
)

# Hands the implicit-grant fragment to the server, then drops it from the address bar.
FRAGMENT_HANDOFF_SCRIPT = """
<script>
  if (window.location.hash) {
    fetch("/api/session", {
      method: "POST",
      headers: {"Content-Type": "application/json"},
      body: JSON.stringify({url: window.location.href}),
    })
      .then((r) => r.json())
      .then((d) => {
        window.history.replaceState(null, "", d.location || window.location.pathname);
        window.location.reload();
      });
  }
</script>
"""


def _button_label(state: Dict) -> str:
    if state.get("is_loading"):
        return "Searching..."
    if state.get("has_found"):
        return "Find Another Meditation"
    return "Start Meditation"


def render_player(episode: Optional[Dict]) -> str:
    if not episode:
        return ""
    embed_url = html.escape(episode.get("embed_url") or "")
    name = html.escape(str(episode.get("name") or ""))
    return f"""
      <div class="player">
        <iframe
          src="{embed_url}"
          title="{name}"
          width="300"
          height="380"
          frameborder="0"
          allowtransparency="true"
          allow="encrypted-media"
        ></iframe>
      </div>
    """


def render_page(state: Optional[Dict] = None, minutes: int = DEFAULT_MINUTES) -> str:
    state = state or {}
    authenticated = bool(state.get("authenticated"))

    if not authenticated:
        subtitle = "Welcome! Click the button below to login to your Spotify account."
        body = '<a class="button" href="/login">Login to Spotify</a>'
    else:
        subtitle = "Select how long you have to meditate, then click the button to start your meditation."
        disabled = " disabled" if state.get("is_loading") else ""
        error = state.get("error")
        error_html = f'<p class="error">{html.escape(error)}</p>' if error else ""
        body = f"""
      <form method="post" action="/meditation">
        <input
          type="range"
          name="minutes"
          min="{MIN_MINUTES}"
          max="{MAX_MINUTES}"
          value="{int(minutes)}"
          oninput="this.form.querySelector('output').value = this.value"
        />
        <p>Duration: <output>{int(minutes)}</output> minutes</p>
        <button type="submit"{disabled}>{_button_label(state)}</button>
      </form>
      {error_html}
      {render_player(state.get("current_episode"))}
    """

    page = f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <title>Tara Brach Meditation Player</title>
  <style>
    body {{
      font-family: system-ui, -apple-system, BlinkMacSystemFont, "Segoe UI", sans-serif;
      margin: 0;
      min-height: 100vh;
      color: #fff;
      background: linear-gradient(rgba(0, 0, 0, 0.6), rgba(0, 0, 0, 0.6)), url('{BACKGROUND_IMAGE}');
      background-size: cover;
    }}
    .content {{
      max-width: 480px;
      margin: 0 auto;
      padding: 48px 24px;
      text-align: center;
    }}
    .error {{
      color: red;
    }}
    .player {{
      margin-top: 20px;
    }}
    a.button, button {{
      display: inline-block;
      padding: 10px 20px;
      border: none;
      border-radius: 24px;
      background: #1db954;
      color: #fff;
      text-decoration: none;
      cursor: pointer;
    }}
  </style>
</head>
<body>
  <div class="content">
    <h1>Tara Brach Meditation Player</h1>
    <p>{subtitle}</p>
    {body}
  </div>
  {FRAGMENT_HANDOFF_SCRIPT}
</body>
</html>
"""
    return page
