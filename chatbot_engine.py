"""
chatbot_engine.py  –  GPSphere Assistant
=========================================
Turns a user message into a chatbot reply.

Reply pipeline:
  1. Load the active knowledge snapshot (knowledge_engine)
  2. Pick the best entry (knowledge_selector)
  3. Event questions: splice in live events when the "events" entry won,
     or when nothing matched
  4. No match: rule-based fallback replies
  5. Knowledge store down: same fallback replies

Scores and internal errors never reach the reply text.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Optional

from event_feed import format_events, get_upcoming_events
from knowledge_engine import DataSourceUnavailable, fetch_active_knowledge
from knowledge_selector import InvalidInput, match_message

logger = logging.getLogger(__name__)

EVENTS_CATEGORY = "events"

_EVENT_QUERY = re.compile(r"\b(event|events|activities|upcoming|what events|event schedule)\b", re.IGNORECASE)

EVENT_SUGGESTIONS = ["How do I join an event?", "What roles are available?", "How to apply?"]
DEFAULT_SUGGESTIONS = ["What is GPS UTM?", "How do I register?", "Tell me about events", "Contact information"]

NO_EVENTS_RESPONSE = (
    "📅 Currently, there are no upcoming events scheduled.\n\n"
    "Check back later or visit your dashboard to see when new events are posted!\n\n"
    "Events typically include:\n"
    "• Workshops and training sessions\n"
    "• Consumer awareness campaigns\n"
    "• Community service activities\n"
    "• Networking events"
)

ERROR_RESPONSE = "❌ I'm having trouble processing that. Could you try rephrasing your question?"

# ═══════════════════════════════════════════════════════════════════════════
#  FALLBACK RULES  (used when no knowledge entry matches)
# ═══════════════════════════════════════════════════════════════════════════
# (pattern, response, suggestions); first hit wins
_FALLBACK_RULES = [

    # ── Greetings ────────────────────────────────────────────────────────────
    (
        re.compile(r"^(hi|hello|hey|greetings|good morning|good afternoon|good evening)", re.IGNORECASE),
        "👋 Hello! I'm the GPS UTM Assistant. How can I help you today?",
        ["What is GPS UTM?", "How do I register?", "Tell me about events"],
    ),

    # ── Organization info ────────────────────────────────────────────────────
    (
        re.compile(r"\b(gps|gps utm|gerakan pengguna siswa|what is gps)\b", re.IGNORECASE),
        (
            "🌍 **GPS UTM** (Gerakan Pengguna Siswa) is the Student Consumer Movement "
            "at Universiti Teknologi Malaysia.\n\n"
            "We empower students to become smart, ethical, and responsible consumers through:\n"
            "• Educational workshops\n"
            "• Consumer rights awareness\n"
            "• Community events\n"
            "• Student advocacy\n\n"
            "GPSphere is our digital platform for managing members, events, and activities!"
        ),
        ["How do I join?", "What events are available?", "How do I register?"],
    ),

    # ── Registration ─────────────────────────────────────────────────────────
    (
        re.compile(r"\b(register|sign up|create account|how to register|registration)\b", re.IGNORECASE),
        (
            "📝 **Registration Process:**\n\n"
            "1. Click on \"Register\" or go to the registration page\n"
            "2. Fill in your details (name, email, password)\n"
            "3. Make sure your password is strong (8+ characters, uppercase, lowercase, number, symbol)\n"
            "4. Submit your registration\n"
            "5. Wait for admin approval (usually 1-2 business days)\n"
            "6. You'll receive an email notification once approved!\n\n"
            "Once approved, you'll become a GPS member and can participate in events!"
        ),
        ["What is TAC?", "How do I login?", "What happens after registration?"],
    ),

    # ── Login & TAC ──────────────────────────────────────────────────────────
    (
        re.compile(r"\b(login|sign in|tac|authentication code|time authentication code)\b", re.IGNORECASE),
        (
            "🔐 **Login & TAC System:**\n\n"
            "**TAC** stands for \"Time Authentication Code\" - a 6-digit security code sent to your email.\n\n"
            "**Login Steps:**\n"
            "1. Enter your email and password\n"
            "2. Click \"Login\"\n"
            "3. Check your email for the TAC code\n"
            "4. Enter the TAC code (expires in 15 minutes)\n"
            "5. You're in! 🎉"
        ),
        ["I didn't receive TAC", "Forgot password", "How to change password?"],
    ),

    # ── Thank you ────────────────────────────────────────────────────────────
    (
        re.compile(r"^(thanks|thank you|ty|appreciate|grateful)", re.IGNORECASE),
        "😊 You're welcome! Is there anything else I can help you with?",
        ["Tell me about events", "How to register?", "Contact information"],
    ),

    # ── Bye ──────────────────────────────────────────────────────────────────
    (
        re.compile(r"^(bye|goodbye|see you|farewell|exit|quit)", re.IGNORECASE),
        "👋 Goodbye! Feel free to come back if you have any questions. Have a great day!",
        [],
    ),
]

_QUESTION_WORDS = re.compile(r"\b(how|what|when|where|why|who)\b", re.IGNORECASE)

QUESTION_RESPONSE = (
    "🤔 I understand you're asking about something. Let me help you!\n\n"
    "I can assist you with:\n"
    "• GPS UTM information\n"
    "• Registration process\n"
    "• Login and TAC\n"
    "• Events and activities\n"
    "• Joining events\n"
    "• Contact information\n\n"
    "Could you rephrase your question or try one of the suggestions below?"
)

# Fallback response
DEFAULT_RESPONSE = (
    "🤖 I'm the GPS UTM Assistant! I can help you with:\n\n"
    "📌 **Information:**\n"
    "• What is GPS UTM?\n"
    "• How to register\n"
    "• Login and TAC system\n\n"
    "📅 **Events:**\n"
    "• Available events\n"
    "• How to join events\n"
    "• Event roles\n\n"
    "💬 **Support:**\n"
    "• Contact information\n"
    "• Account status\n"
    "• Password help\n\n"
    "What would you like to know?"
)


def get_fallback_response(lower_message: str) -> tuple:
    """Static (reply, suggestions) for messages no knowledge entry matched."""
    for pattern, response, suggestions in _FALLBACK_RULES:
        if pattern.search(lower_message):
            return response, list(suggestions)
    if _QUESTION_WORDS.search(lower_message):
        return QUESTION_RESPONSE, list(DEFAULT_SUGGESTIONS)
    return DEFAULT_RESPONSE, list(DEFAULT_SUGGESTIONS)


def _event_reply(entry: Optional[dict]) -> tuple:
    """
    Reply for an event question.  A winning entry from another category is
    kept as-is; live events only replace the "events" entry or a non-match.
    """
    if entry is not None and entry.get("category") != EVENTS_CATEGORY:
        response, suggestions = entry["response"], list(entry.get("suggestions") or [])
    else:
        events = get_upcoming_events()
        if events:
            response = format_events(events)
            suggestions = list(entry.get("suggestions") or []) if entry else []
        elif entry is not None:
            response, suggestions = entry["response"], list(entry.get("suggestions") or [])
        else:
            response, suggestions = NO_EVENTS_RESPONSE, []

    return response, suggestions or list(EVENT_SUGGESTIONS)


def get_bot_response(user_message: str, knowledge: Optional[list] = None) -> dict:
    """
    Build the reply payload for *user_message*.

    Parameters
    ----------
    user_message : str
    knowledge : list[dict], optional
        Pre-loaded active snapshot; fetched from knowledge_engine when omitted.

    Returns
    -------
    dict – {"reply", "suggestions", "timestamp", "matched", "category"}

    Raises
    ------
    InvalidInput
        If *user_message* is empty or whitespace-only.
    """
    if not user_message or not user_message.strip():
        raise InvalidInput("Message required")

    lower = user_message.strip().lower()

    if knowledge is None:
        try:
            knowledge = fetch_active_knowledge()
        except DataSourceUnavailable as exc:
            logger.warning("Knowledge store unavailable, using fallback replies: %s", exc)
            knowledge = []

    result = match_message(user_message, knowledge)
    entry  = result.get("entry")

    if _EVENT_QUERY.search(lower):
        reply, suggestions = _event_reply(entry)
    elif entry is not None:
        reply, suggestions = entry["response"], list(entry.get("suggestions") or [])
    else:
        reply, suggestions = get_fallback_response(lower)

    if entry is not None:
        logger.info("chatbot: matched category=%s score=%.1f", entry.get("category"), result["score"])
    else:
        logger.info("chatbot: no knowledge match, fallback reply")

    return {
        "reply":       reply,
        "suggestions": suggestions,
        "timestamp":   datetime.now(timezone.utc).isoformat(),
        "matched":     result["matched"],
        "category":    entry.get("category") if entry else None,
    }


def get_error_response(user_message: str) -> dict:
    """Last-resort payload when building a reply failed unexpectedly."""
    try:
        reply, suggestions = get_fallback_response((user_message or "").strip().lower())
    except Exception as exc:
        logger.exception("Fallback reply failed: %s", exc)
        reply, suggestions = ERROR_RESPONSE, []
    return {
        "reply":       reply,
        "suggestions": suggestions or ["What is GPS UTM?", "How do I register?", "Tell me about events"],
    }
