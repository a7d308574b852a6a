"""Shared fixtures: an in-memory Redis, a store on top of it, and the Flask app."""

from __future__ import annotations

import sys
from pathlib import Path

import fakeredis
import pytest

_repo_root = str(Path(__file__).resolve().parents[1])
if _repo_root not in sys.path:
    sys.path.insert(0, _repo_root)

from app import create_app  # noqa: E402
from repos import RecordStore  # noqa: E402


@pytest.fixture
def redis_client():
    return fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def store(redis_client):
    return RecordStore(redis_client, prefix="test")


@pytest.fixture
def app(redis_client):
    app = create_app(client=redis_client)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def http(app):
    return app.test_client()


@pytest.fixture
def equator_square():
    """A 1 km x 1 km square ring with its south-west corner at (0, 0)."""
    d = 1000.0 / 111319.49079327357
    return [[0.0, 0.0], [d, 0.0], [d, d], [0.0, d]]
