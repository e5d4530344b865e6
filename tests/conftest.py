"""Shared pytest fixtures and fake collaborators (no network)."""

from __future__ import annotations

import hashlib
import json
import re
import threading

import pytest

from archfix.db.connection import Database
from archfix.db.migrations import run_migrations

_DIM = 16


class FakeTransformer:
    """Replays scripted replies; ``None`` entries simulate an unavailable model.

    When the script runs out, the last reply repeats. A callable reply is
    invoked with the message list.
    """

    def __init__(self, replies=None) -> None:
        self.replies = list(replies or [])
        self.calls: list[list[dict]] = []
        self._lock = threading.Lock()

    def generate(self, messages):
        with self._lock:
            self.calls.append([dict(m) for m in messages])
            if not self.replies:
                return None
            idx = min(len(self.calls) - 1, len(self.replies) - 1)
            reply = self.replies[idx]
        return reply(messages) if callable(reply) else reply


class FakeEmbedder:
    """Deterministic bag-of-words hashing embedder."""

    def __init__(self, available: bool = True) -> None:
        self._available = available
        self.calls = 0

    @property
    def dimension(self):
        return _DIM

    def available(self) -> bool:
        return self._available

    def embed(self, text: str) -> list[float]:
        self.calls += 1
        vec = [0.0] * _DIM
        for word in re.findall(r"\w+", text.lower()):
            vec[int(hashlib.sha256(word.encode()).hexdigest(), 16) % _DIM] += 1.0
        return vec

    def embed_batch(self, texts):
        return [self.embed(t) for t in texts]


def verdict_json(violation: bool, reason: str = "", fix: str = "") -> str:
    return json.dumps({"violation": violation, "reason": reason, "fix": fix})


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def tmp_db(tmp_path):
    """File-based cache DB in tmp_path with migrations applied, closed after test."""
    db = Database(tmp_path / "cache.db")
    conn = db.connect()
    run_migrations(conn)
    yield conn
    conn.close()


@pytest.fixture(autouse=True)
def _no_global_config(tmp_path, monkeypatch):
    """Keep the developer's ~/.archfix/config.yaml out of every test."""
    monkeypatch.setattr("archfix.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
