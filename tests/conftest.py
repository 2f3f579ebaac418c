"""
Shared test fixtures.

Tests never download the real embedding model. They inject a small
hashing "model" instead: every word lands in one of 384 buckets, so texts
sharing words get similar vectors and identical texts get identical ones.

Tests that need real semantics are marked `model` and only run with
ECLIPSE_TEST_REAL_MODEL=1.
"""

import hashlib
import os
import shutil
import tempfile
from datetime import timedelta
from pathlib import Path

import numpy as np
import pytest

from eclipse_core.config import ENV_VARS, load_settings
from eclipse_core.context import CoreContext
from eclipse_core.keywords import tokenize
from eclipse_core.models import to_timestamp, utc_now

DIMENSIONS = 384


def pytest_configure(config):
    """Register markers."""
    config.addinivalue_line(
        "markers", "model: tests that need the real sentence-transformers model"
    )


def pytest_collection_modifyitems(config, items):
    """Skip real-model tests unless explicitly enabled."""
    if os.environ.get("ECLIPSE_TEST_REAL_MODEL") == "1":
        return

    skip_model = pytest.mark.skip(reason="set ECLIPSE_TEST_REAL_MODEL=1 to run")
    for item in items:
        if "model" in item.keywords:
            item.add_marker(skip_model)


# =============================================================================
# FAKE EMBEDDING MODEL
# =============================================================================

class HashingModel:
    """Deterministic bag-of-words encoder with the sentence-transformers API."""

    def __init__(self):
        self.calls = []

    def encode(self, text, normalize_embeddings=True):
        self.calls.append(text)
        vector = np.zeros(DIMENSIONS, dtype=np.float32)
        for word in tokenize(text):
            bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % DIMENSIONS
            vector[bucket] += 1.0
        norm = np.linalg.norm(vector)
        if normalize_embeddings and norm > 0:
            vector = vector / norm
        return vector


class FakeLoader:
    """Model loader that can fail a number of times before succeeding."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.calls = 0
        self.model = HashingModel()

    def __call__(self, model_name, cache_dir):
        self.calls += 1
        if self.calls <= self.failures:
            raise OSError(f"simulated download failure #{self.calls}")
        return self.model


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def temp_data_dir():
    """Create a temporary directory for test data."""
    temp_dir = Path(tempfile.mkdtemp())
    yield temp_dir
    # Cleanup after test
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def project_dir(temp_data_dir):
    """A working directory that looks like a project called 'my-project'."""
    path = temp_data_dir / "my-project"
    path.mkdir()
    (path / "pyproject.toml").write_text("[project]\nname = 'my-project'\n")
    return path


@pytest.fixture
def clean_env(monkeypatch):
    """No ECLIPSE_* variables leaking in from the developer's shell."""
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


@pytest.fixture
def settings(temp_data_dir, project_dir, clean_env):
    return load_settings(
        data_dir=temp_data_dir / "data",
        working_dir=project_dir,
        embedding_retry_delay=0.0,
    )


@pytest.fixture
def loader():
    return FakeLoader()


@pytest.fixture
def ctx(settings, loader):
    """Context for the 'my-project' profile with the hashing model."""
    context = CoreContext.create(settings, loader=loader)
    yield context
    context.close()


@pytest.fixture
def degraded_ctx(settings):
    """Context whose embedding model never loads."""
    context = CoreContext.create(settings, loader=FakeLoader(failures=99))
    yield context
    context.close()


@pytest.fixture
def dispatcher(ctx):
    from eclipse_core.dispatcher import ToolDispatcher
    return ToolDispatcher(ctx)


@pytest.fixture
def sample_memories():
    """A few memories from a typical web project."""
    return [
        {
            "kind": "semantic",
            "category": "api",
            "title": "API convention",
            "content": "Routes use /api/v1/{resource}, plural nouns",
        },
        {
            "kind": "procedural",
            "category": "deploy",
            "title": "Deploy checklist",
            "content": "Run database migrations, then restart the web workers",
        },
        {
            "kind": "episodic",
            "category": "testing",
            "title": "Flaky integration tests",
            "content": "Integration tests failed because the test database was shared between workers",
        },
        {
            "kind": "skill",
            "category": "debugging",
            "title": "Bisect a regression",
            "content": "Trigger: a test started failing. Steps: git bisect with the failing test. Related: CI logs",
        },
    ]


@pytest.fixture
def backdate(ctx):
    """Move a memory's timestamp into the past with raw SQL.

    Raw SQL skips the storage write path, so the cache is cleared by hand.
    """
    def _backdate(memory, days: int, column: str = "created_at"):
        store = ctx.stores_for(memory.scope)[0]
        store.db.execute(
            f"UPDATE memories SET {column} = ? WHERE id = ?",
            (to_timestamp(utc_now() - timedelta(days=days)), memory.id),
        )
        store.db.commit()
        ctx.cache.clear()
    return _backdate
