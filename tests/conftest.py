"""
Pytest configuration and fixtures
"""
import json
import sys
from pathlib import Path

import pytest

# Flat layout: modules live at the project root
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import db as db_module  # noqa: E402


class FakeLLM:
    """Stands in for call_llm(user, system). Replies are consumed in order; the last one repeats."""

    def __init__(self, *replies):
        self.replies = list(replies) or [""]
        self.calls = []

    def __call__(self, user, system=""):
        self.calls.append({"user": user, "system": system})
        reply = self.replies[min(len(self.calls), len(self.replies)) - 1]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, (dict, list)):
            return json.dumps(reply)
        return reply


@pytest.fixture
def fake_llm():
    return FakeLLM


@pytest.fixture
def tmp_db(tmp_path, monkeypatch):
    """Fresh SQLite file per test."""
    path = str(tmp_path / "test.db")
    monkeypatch.setattr(db_module, "DB_PATH", path)
    db_module.init_db()
    return path
