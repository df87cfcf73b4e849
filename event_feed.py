"""
event_feed.py
-------------
Live "upcoming events" data for chatbot replies about events.

Events are owned by the platform's event service.  When EVENTS_API_URL is
set they are fetched over HTTP; otherwise they are read from
data/events.json.  Either way, failures are logged and produce an empty
list, so an events reply never breaks the chatbot.

Event record fields used here:
    event_name, description, event_date (ISO date/datetime), location, status
"""

import json
import logging
import os
from datetime import datetime
from typing import Optional

import requests

logger = logging.getLogger(__name__)

EVENTS_API_URL: Optional[str] = os.environ.get("EVENTS_API_URL")
_EVENTS_FILE = os.path.join(
    os.environ.get("CHATBOT_DATA_DIR") or os.path.join(os.path.dirname(__file__), "data"),
    "events.json",
)

_REQUEST_TIMEOUT = 5
_DESCRIPTION_CHARS = 100
_ONGOING = "ongoing"


# --------------------------------------------------------------------------- #
#  Sources                                                                     #
# --------------------------------------------------------------------------- #

def _fetch_remote(url: str) -> list:
    """GET *url*; accepts a JSON array or {"events": [...]}. [] on failure."""
    try:
        response = requests.get(url, headers={"Accept": "application/json"}, timeout=_REQUEST_TIMEOUT)
        if response.status_code != 200:
            logger.warning("Events API %s → %s", url, response.status_code)
            return []
        data = response.json()
    except requests.RequestException as exc:
        logger.warning("Events request failed: %s", exc)
        return []
    except ValueError as exc:
        logger.warning("Events API returned invalid JSON: %s", exc)
        return []

    if isinstance(data, dict):
        data = data.get("events", [])
    return data if isinstance(data, list) else []


def _read_local(path: str) -> list:
    if not os.path.exists(path):
        return []
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, ValueError) as exc:
        logger.warning("Could not load %s: %s", path, exc)
        return []
    return data if isinstance(data, list) else []


def _parse_date(value) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


# --------------------------------------------------------------------------- #
#  Public API                                                                  #
# --------------------------------------------------------------------------- #

def get_upcoming_events(limit: int = 5) -> list:
    """
    Return up to *limit* ongoing events, soonest first.
    Events without a parseable date sort last.  Never raises.
    """
    raw = _fetch_remote(EVENTS_API_URL) if EVENTS_API_URL else _read_local(_EVENTS_FILE)

    events = [
        e for e in raw
        if isinstance(e, dict)
        and e.get("event_name")
        and str(e.get("status", _ONGOING)).lower() == _ONGOING
    ]

    def _key(event):
        parsed = _parse_date(event.get("event_date"))
        # Compare naive timestamps so mixed tz-aware / naive inputs still sort
        return (parsed is None, parsed.replace(tzinfo=None) if parsed else datetime.max)

    return sorted(events, key=_key)[:limit]


def format_events(events: list) -> str:
    """Render *events* as the chatbot's "Upcoming Events" reply."""
    lines = ["📅 **Upcoming Events:**", ""]
    for index, event in enumerate(events, start=1):
        parsed = _parse_date(event.get("event_date"))
        date = parsed.strftime("%d %b %Y") if parsed else "TBA"
        lines.append(f"{index}. **{event['event_name']}**")
        description = (event.get("description") or "").strip()
        if description:
            lines.append(f"   {description[:_DESCRIPTION_CHARS]}...")
        lines.append(f"   📍 {event.get('location') or 'TBA'}")
        lines.append(f"   📆 {date}")
        lines.append("")
    lines.append("Visit your dashboard to see all events and apply for roles!")
    return "\n".join(lines)
