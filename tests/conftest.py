"""Shared fixtures: every test gets its own throwaway knowledge store and event file."""

import json

import pytest

import event_feed
import knowledge_engine


@pytest.fixture(autouse=True)
def isolated_store(tmp_path, monkeypatch):
    """Point the knowledge store and local event feed at *tmp_path*."""
    monkeypatch.setattr(knowledge_engine, "_KNOWLEDGE_FILE", str(tmp_path / "chatbot_knowledge.json"))
    monkeypatch.setattr(event_feed, "EVENTS_API_URL", None)
    monkeypatch.setattr(event_feed, "_EVENTS_FILE", str(tmp_path / "events.json"))
    knowledge_engine._invalidate_snapshot()
    yield tmp_path
    knowledge_engine._invalidate_snapshot()


@pytest.fixture
def write_events(isolated_store):
    """Write a list of event records to the local events file."""
    def _write(events):
        (isolated_store / "events.json").write_text(json.dumps(events), encoding="utf-8")
    return _write


def make_entry(category, keywords, priority=0, response=None, suggestions=None, is_active=True):
    """Knowledge entry in the shape fetch_active_knowledge() produces."""
    return {
        "id":          f"id-{category}",
        "category":    category,
        "keywords":    list(keywords),
        "response":    response or f"{category} response",
        "suggestions": list(suggestions or []),
        "priority":    priority,
        "is_active":   is_active,
    }
