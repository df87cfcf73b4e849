"""
knowledge_engine.py
===================
Admin-managed chatbot knowledge stored in data/chatbot_knowledge.json.

Storage format, one record per entry:
{
    "id":          <uuid4 string>,
    "category":    <string, unique>,
    "keywords":    [<trigger string>, ...],
    "response":    <string>,
    "suggestions": [<string>, ...],
    "priority":    <int>,
    "is_active":   <bool>,
    "created_at":  <ISO-8601 string>,
    "updated_at":  <ISO-8601 string>
}

Keywords may be given as a list or a comma-separated string, suggestions as
a list or a "|"-separated string; both are stored as lists.

Public API
----------
get_all_knowledge()                              -> list[dict]
get_knowledge(entry_id)                          -> dict | None
create_knowledge(category, keywords, response, suggestions, priority, is_active) -> dict
update_knowledge(entry_id, **fields)             -> dict | None
delete_knowledge(entry_id)                       -> bool
toggle_knowledge(entry_id)                       -> bool | None
populate_knowledge(entries=None)                 -> dict
fetch_active_knowledge()                         -> list[dict]
"""

from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime, timezone
from functools import wraps
from typing import Any
from uuid import uuid4

logger = logging.getLogger(__name__)

# ── Storage paths ─────────────────────────────────────────────────────────────
_DATA_DIR       = os.environ.get("CHATBOT_DATA_DIR") or os.path.join(os.path.dirname(__file__), "data")
_KNOWLEDGE_FILE = os.path.join(_DATA_DIR, "chatbot_knowledge.json")
_SEED_FILE      = os.path.join(os.path.dirname(__file__), "data", "knowledge_seed.json")

_UPDATABLE_FIELDS = ("category", "keywords", "response", "suggestions", "priority", "is_active")

# Active snapshot handed to the matcher; dropped on every write through this module
_snapshot_lock = threading.Lock()

# Held for the whole read-modify-write of every mutating call
_write_lock = threading.Lock()
_snapshot: dict = {"path": None, "mtime": None, "entries": None}


class DataSourceUnavailable(RuntimeError):
    """The knowledge file exists but cannot be read, parsed or written."""


# ── Low-level I/O helpers ─────────────────────────────────────────────────────

def _load_records(path: str) -> list[dict]:
    """
    Read a JSON array from *path*.
    Missing or empty file -> []. Unreadable or corrupt -> DataSourceUnavailable.
    """
    if not os.path.exists(path):
        return []
    try:
        with open(path, "r", encoding="utf-8") as fh:
            content = fh.read().strip()
        if not content:
            return []
        data = json.loads(content)
    except (OSError, ValueError) as exc:
        raise DataSourceUnavailable(f"cannot read {path}: {exc}") from exc
    if not isinstance(data, list):
        raise DataSourceUnavailable(f"{path} does not contain a JSON array")
    return [r for r in data if isinstance(r, dict)]


def _read_json(path: str) -> list[dict]:
    """
    Read a JSON array from *path*.
    Returns [] if file is missing, empty, or corrupt; never raises.
    """
    try:
        return _load_records(path)
    except DataSourceUnavailable as exc:
        logger.error("_read_json(%s) failed: %s", path, exc)
        return []


def _write_json(path: str, records: list[dict]) -> bool:
    """
    Atomically write *records* as a JSON array to *path*.
    Returns True on success, False on failure.
    """
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    tmp_path = path + ".tmp"
    try:
        with open(tmp_path, "w", encoding="utf-8") as fh:
            json.dump(records, fh, indent=2, ensure_ascii=False)
        os.replace(tmp_path, path)
        return True
    except OSError as exc:
        logger.error("_write_json(%s) failed: %s", path, exc)
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        return False


def _persist(records: list[dict]) -> None:
    _invalidate_snapshot()
    if not _write_json(_KNOWLEDGE_FILE, records):
        raise DataSourceUnavailable(f"could not write {_KNOWLEDGE_FILE}")


def _invalidate_snapshot() -> None:
    with _snapshot_lock:
        _snapshot["entries"] = None


def _serialized(func):
    """Run *func* while holding ``_write_lock``."""
    @wraps(func)
    def wrapped(*args, **kwargs):
        with _write_lock:
            return func(*args, **kwargs)
    return wrapped


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ── Normalisation helpers ─────────────────────────────────────────────────────

def _split(value: Any, delimiter: str) -> list[str]:
    """List or delimited string -> stripped, non-blank list (order kept)."""
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(delimiter)
    return [str(v).strip() for v in value if str(v).strip()]


def _safe_int(value: Any, default: int = 0) -> int:
    """Coerce *value* to int, returning *default* on failure."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _same_category(a: Any, b: Any) -> bool:
    return str(a or "").strip().lower() == str(b or "").strip().lower()


def _sort_key(entry: dict) -> tuple:
    return (-_safe_int(entry.get("priority")), str(entry.get("category", "")))


def _snapshot_entry(record: dict) -> dict:
    """Flatten a stored record into the shape the matcher consumes."""
    return {
        "id":          record.get("id"),
        "category":    str(record.get("category", "")),
        "keywords":    _split(record.get("keywords"), ","),
        "response":    str(record.get("response", "")),
        "suggestions": _split(record.get("suggestions"), "|"),
        "priority":    _safe_int(record.get("priority")),
        "is_active":   _coerce_bool(record.get("is_active", True)),
    }


# ── Public API ────────────────────────────────────────────────────────────────

def get_all_knowledge() -> list[dict]:
    """Every entry (active or not), priority DESC then category ASC."""
    return sorted(_read_json(_KNOWLEDGE_FILE), key=_sort_key)


def get_knowledge(entry_id: str) -> dict | None:
    """Return the entry with *entry_id*, or None if not found."""
    if not entry_id:
        return None
    for record in _read_json(_KNOWLEDGE_FILE):
        if record.get("id") == entry_id:
            return record
    return None


@_serialized
def create_knowledge(
    category:    str,
    keywords:    list[str] | str,
    response:    str,
    suggestions: list[str] | str = "",
    priority:    Any = 0,
    is_active:   Any = True,
) -> dict:
    """
    Persist a new knowledge entry and return its full record.

    Raises
    ------
    ValueError
        If category, keywords or response are blank, or the category exists.
    DataSourceUnavailable
        If the store cannot be read or written.
    """
    category = str(category or "").strip()
    response = str(response or "").strip()
    keyword_list = _split(keywords, ",")

    if not category or not keyword_list or not response:
        raise ValueError("Category, keywords, and response are required")

    records = _load_records(_KNOWLEDGE_FILE)
    if any(_same_category(r.get("category"), category) for r in records):
        raise ValueError("Category already exists. Use update instead.")

    now = _now()
    entry: dict = {
        "id":          str(uuid4()),
        "category":    category,
        "keywords":    keyword_list,
        "response":    response,
        "suggestions": _split(suggestions, "|"),
        "priority":    _safe_int(priority),
        "is_active":   _coerce_bool(is_active),
        "created_at":  now,
        "updated_at":  now,
    }
    records.append(entry)
    _persist(records)

    logger.info("create_knowledge: created '%s' (%s)", category, entry["id"])
    return entry


@_serialized
def update_knowledge(entry_id: str, **fields: Any) -> dict | None:
    """
    Apply a partial update. Returns the updated record, or None if
    *entry_id* is unknown.

    Raises ValueError if no updatable field is given, a required field is
    blanked, or the new category belongs to another entry.
    """
    changes = {k: v for k, v in fields.items() if k in _UPDATABLE_FIELDS and v is not None}
    if not changes:
        raise ValueError("No fields to update")

    records = _load_records(_KNOWLEDGE_FILE)
    target = next((r for r in records if r.get("id") == entry_id), None)
    if target is None:
        return None

    if "category" in changes:
        category = str(changes["category"]).strip()
        if not category:
            raise ValueError("Category cannot be empty")
        if any(_same_category(r.get("category"), category) and r.get("id") != entry_id for r in records):
            raise ValueError("Category already exists")
        target["category"] = category
    if "keywords" in changes:
        keyword_list = _split(changes["keywords"], ",")
        if not keyword_list:
            raise ValueError("Keywords cannot be empty")
        target["keywords"] = keyword_list
    if "response" in changes:
        response = str(changes["response"]).strip()
        if not response:
            raise ValueError("Response cannot be empty")
        target["response"] = response
    if "suggestions" in changes:
        target["suggestions"] = _split(changes["suggestions"], "|")
    if "priority" in changes:
        target["priority"] = _safe_int(changes["priority"])
    if "is_active" in changes:
        target["is_active"] = _coerce_bool(changes["is_active"])

    target["updated_at"] = _now()
    _persist(records)

    logger.info("update_knowledge: updated %s (%s)", entry_id, ", ".join(sorted(changes)))
    return target


@_serialized
def delete_knowledge(entry_id: str) -> bool:
    """Remove the entry. Returns False if it did not exist."""
    records = _load_records(_KNOWLEDGE_FILE)
    remaining = [r for r in records if r.get("id") != entry_id]
    if len(remaining) == len(records):
        return False
    _persist(remaining)
    logger.info("delete_knowledge: deleted %s", entry_id)
    return True


@_serialized
def toggle_knowledge(entry_id: str) -> bool | None:
    """Flip ``is_active``. Returns the new value, or None if not found."""
    records = _load_records(_KNOWLEDGE_FILE)
    for record in records:
        if record.get("id") == entry_id:
            record["is_active"] = not _coerce_bool(record.get("is_active", True))
            record["updated_at"] = _now()
            _persist(records)
            logger.info("toggle_knowledge: %s is_active=%s", entry_id, record["is_active"])
            return record["is_active"]
    return None


def load_seed_entries() -> list[dict]:
    """Predefined entries shipped in data/knowledge_seed.json."""
    return _read_json(_SEED_FILE)


@_serialized
def populate_knowledge(entries: list[dict] | None = None) -> dict:
    """
    Upsert *entries* (default: the seed file) by category.

    Existing categories get their keywords, response, suggestions and
    priority overwritten; ``is_active`` is left alone.  Rows missing a
    category, keywords or response are skipped.

    Returns {"inserted", "updated", "skipped", "total"}.
    """
    if entries is None:
        entries = load_seed_entries()

    records  = _load_records(_KNOWLEDGE_FILE)
    inserted = updated = skipped = 0
    now = _now()

    for item in entries:
        category = str(item.get("category") or "").strip()
        keyword_list = _split(item.get("keywords"), ",")
        response = str(item.get("response") or "").strip()
        if not category or not keyword_list or not response:
            logger.warning("populate_knowledge: skipping invalid entry %r", category or "unknown")
            skipped += 1
            continue

        fields = {
            "keywords":    keyword_list,
            "response":    response,
            "suggestions": _split(item.get("suggestions"), "|"),
            "priority":    _safe_int(item.get("priority")),
            "updated_at":  now,
        }
        existing = next((r for r in records if _same_category(r.get("category"), category)), None)
        if existing is not None:
            existing.update(fields)
            updated += 1
        else:
            records.append({
                "id":         str(uuid4()),
                "category":   category,
                "is_active":  True,
                "created_at": now,
                **fields,
            })
            inserted += 1

    _persist(records)
    logger.info("populate_knowledge: inserted=%d updated=%d skipped=%d", inserted, updated, skipped)
    return {"inserted": inserted, "updated": updated, "skipped": skipped, "total": len(entries)}


def fetch_active_knowledge() -> list[dict]:
    """
    Snapshot of active entries for the matcher, priority DESC then category
    ASC, with keywords and suggestions already split.

    The snapshot is cached until a write goes through this module or the
    file's modification time changes.

    Raises DataSourceUnavailable if the store cannot be read.
    """
    path = _KNOWLEDGE_FILE
    try:
        mtime = os.path.getmtime(path) if os.path.exists(path) else None
    except OSError as exc:
        raise DataSourceUnavailable(f"cannot stat {path}: {exc}") from exc

    with _snapshot_lock:
        if (
            _snapshot["entries"] is not None
            and _snapshot["path"] == path
            and _snapshot["mtime"] == mtime
        ):
            return list(_snapshot["entries"])

    entries = [_snapshot_entry(r) for r in _load_records(path)]
    entries = sorted((e for e in entries if e["is_active"]), key=_sort_key)

    with _snapshot_lock:
        _snapshot.update({"path": path, "mtime": mtime, "entries": entries})
    logger.debug("fetch_active_knowledge: loaded %d active entries", len(entries))
    return list(entries)


# ── Script entry point ────────────────────────────────────────────────────────

if __name__ == "__main__":
    import sys

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    try:
        result = populate_knowledge()
    except DataSourceUnavailable as exc:
        logger.error("Population failed: %s", exc)
        sys.exit(1)

    print("Chatbot knowledge population complete!")
    print(f"   Inserted: {result['inserted']} entries")
    print(f"   Updated:  {result['updated']} entries")
    print(f"   Skipped:  {result['skipped']} entries")
    print(f"   Total:    {result['total']} entries")
