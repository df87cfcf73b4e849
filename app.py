"""
app.py
------
Flask entry point for the GPSphere chatbot service.

Routes
------
POST   /api/chatbot                        → Chatbot reply for {"message": ...}
GET    /api/admin/chatbot                  → All knowledge entries        [requires admin]
POST   /api/admin/chatbot                  → Create knowledge entry       [requires admin]
POST   /api/admin/chatbot/populate         → Upsert predefined entries    [requires admin]
GET    /api/admin/chatbot/<id>             → Single knowledge entry       [requires admin]
PUT    /api/admin/chatbot/<id>             → Update knowledge entry       [requires admin]
DELETE /api/admin/chatbot/<id>             → Delete knowledge entry       [requires admin]
PATCH  /api/admin/chatbot/<id>/toggle      → Toggle active status         [requires admin]
GET    /health                             → Simple health-check endpoint

Admin sessions are issued by the platform's auth service, which signs the
session cookie with the same FLASK_SECRET.
"""

import os
import logging
from functools import wraps

from flask import Flask, request, jsonify, session

from chatbot_engine import get_bot_response, get_error_response
from knowledge_engine import (
    DataSourceUnavailable,
    create_knowledge,
    delete_knowledge,
    get_all_knowledge,
    get_knowledge,
    populate_knowledge,
    toggle_knowledge,
    update_knowledge,
)
from knowledge_selector import InvalidInput

# --------------------------------------------------------------------------- #
#  App configuration                                                           #
# --------------------------------------------------------------------------- #

logging.basicConfig(
    level  = logging.INFO,
    format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.secret_key = os.environ.get("FLASK_SECRET", "dev-secret-change-in-prod")
app.json.ensure_ascii = False

_KNOWLEDGE_FIELDS = ("category", "keywords", "response", "suggestions", "priority", "is_active")


# --------------------------------------------------------------------------- #
#  Auth                                                                        #
# --------------------------------------------------------------------------- #

def require_role(role_name: str):
    """
    Decorator that enforces a specific session role.
    Responds 401 without a session and 403 for any other role.

    Usage::
        @app.route("/api/some-endpoint")
        @require_role("admin")
        def some_endpoint(): ...
    """
    def decorator(f):
        @wraps(f)
        def wrapped(*args, **kwargs):
            role = session.get("role")
            if not role:
                return jsonify({"error": "Authentication required."}), 401
            if role != role_name:
                return jsonify({"error": "You don’t have permission to do that."}), 403
            return f(*args, **kwargs)
        return wrapped
    return decorator


# --------------------------------------------------------------------------- #
#  Helpers                                                                     #
# --------------------------------------------------------------------------- #

def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _not_found():
    return jsonify({"error": "Knowledge entry not found"}), 404


def _store_unavailable(exc: Exception):
    logger.error("Knowledge store unavailable: %s", exc)
    return jsonify({"error": "Knowledge store is unavailable. Please try again later."}), 503


# --------------------------------------------------------------------------- #
#  Routes – Chatbot                                                            #
# --------------------------------------------------------------------------- #

@app.route("/api/chatbot", methods=["POST"])
def chatbot():
    """Reply to a chat message with text plus suggestion chips."""
    message = _json_body().get("message")
    if not isinstance(message, str):
        message = ""

    try:
        result = get_bot_response(message)
    except InvalidInput:
        return jsonify({"error": "Message required"}), 400
    except Exception as exc:
        logger.exception("Chatbot error: %s", exc)
        return jsonify({
            "error": "Sorry, I encountered an error. Please try again or contact support.",
            **get_error_response(message),
        }), 500

    return jsonify({
        "reply":       result["reply"],
        "suggestions": result["suggestions"],
        "timestamp":   result["timestamp"],
    })


# --------------------------------------------------------------------------- #
#  Routes – Admin knowledge management                                         #
# --------------------------------------------------------------------------- #

@app.route("/api/admin/chatbot", methods=["GET"])
@require_role("admin")
def knowledge_list():
    """All knowledge entries, priority DESC then category ASC."""
    return jsonify(get_all_knowledge())


@app.route("/api/admin/chatbot", methods=["POST"])
@require_role("admin")
def knowledge_create():
    data = _json_body()
    try:
        entry = create_knowledge(
            category    = data.get("category"),
            keywords    = data.get("keywords"),
            response    = data.get("response"),
            suggestions = data.get("suggestions") or "",
            priority    = data.get("priority") or 0,
            is_active   = data.get("is_active", True),
        )
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    except DataSourceUnavailable as exc:
        return _store_unavailable(exc)

    return jsonify({"message": "Knowledge entry created successfully", "data": entry}), 201


# Must be registered before the /<entry_id> routes
@app.route("/api/admin/chatbot/populate", methods=["POST"])
@require_role("admin")
def knowledge_populate():
    """Insert or refresh the predefined knowledge entries."""
    logger.info("Starting chatbot knowledge population via API")
    try:
        result = populate_knowledge()
    except DataSourceUnavailable as exc:
        return _store_unavailable(exc)

    if result["total"] == 0:
        return jsonify({"error": "No knowledge entries found"}), 500

    return jsonify({
        "success": True,
        "message": "Chatbot knowledge populated successfully",
        **result,
    })


@app.route("/api/admin/chatbot/<entry_id>", methods=["GET"])
@require_role("admin")
def knowledge_detail(entry_id: str):
    entry = get_knowledge(entry_id)
    if entry is None:
        return _not_found()
    return jsonify(entry)


@app.route("/api/admin/chatbot/<entry_id>", methods=["PUT"])
@require_role("admin")
def knowledge_update(entry_id: str):
    data   = _json_body()
    fields = {k: data[k] for k in _KNOWLEDGE_FIELDS if k in data}
    try:
        entry = update_knowledge(entry_id, **fields)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    except DataSourceUnavailable as exc:
        return _store_unavailable(exc)

    if entry is None:
        return _not_found()
    return jsonify({"message": "Knowledge entry updated successfully", "data": entry})


@app.route("/api/admin/chatbot/<entry_id>", methods=["DELETE"])
@require_role("admin")
def knowledge_delete(entry_id: str):
    try:
        deleted = delete_knowledge(entry_id)
    except DataSourceUnavailable as exc:
        return _store_unavailable(exc)

    if not deleted:
        return _not_found()
    return jsonify({"message": "Knowledge entry deleted successfully"})


@app.route("/api/admin/chatbot/<entry_id>/toggle", methods=["PATCH"])
@require_role("admin")
def knowledge_toggle(entry_id: str):
    try:
        new_status = toggle_knowledge(entry_id)
    except DataSourceUnavailable as exc:
        return _store_unavailable(exc)

    if new_status is None:
        return _not_found()
    return jsonify({
        "message":   f"Knowledge entry {'activated' if new_status else 'deactivated'} successfully",
        "is_active": new_status,
    })


@app.route("/health", methods=["GET"])
def health():
    return jsonify({"status": "ok", "service": "gpsphere-chatbot"})


# --------------------------------------------------------------------------- #
#  Error handlers                                                              #
# --------------------------------------------------------------------------- #

@app.errorhandler(404)
def not_found(e):
    return jsonify({"error": "Endpoint not found."}), 404


@app.errorhandler(405)
def method_not_allowed(e):
    return jsonify({"error": "Method not allowed."}), 405


@app.errorhandler(500)
def server_error(e):
    return jsonify({"error": "Internal server error."}), 500


# --------------------------------------------------------------------------- #
#  Entry point                                                                 #
# --------------------------------------------------------------------------- #

if __name__ == "__main__":
    port  = int(os.environ.get("PORT", 5000))
    debug = os.environ.get("FLASK_DEBUG", "false").lower() == "true"
    app.run(host="0.0.0.0", port=port, debug=debug)
