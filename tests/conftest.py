"""Shared test fixtures for skdocs."""

from __future__ import annotations

from pathlib import Path

import pytest

from skdocs.keys import EphemeralKeyPair
from skdocs.models import Actor
from skdocs.service import DocumentService
from skdocs.store import MemoryStore


@pytest.fixture
def docs_home(tmp_path: Path) -> Path:
    """Provide a temporary SKDocs home directory."""
    home = tmp_path / ".skdocs"
    home.mkdir()
    return home


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


def _publish(store: MemoryStore, user_id: str) -> Actor:
    pair = EphemeralKeyPair.generate()
    store.directory[user_id] = pair.public
    return Actor(user_id=user_id, key_pair=pair)


@pytest.fixture
def owner(store: MemoryStore) -> Actor:
    """Document owner with a published ephemeral key."""
    return _publish(store, "alice")


@pytest.fixture
def collaborator(store: MemoryStore) -> Actor:
    """Second user with a published ephemeral key."""
    return _publish(store, "carol")


@pytest.fixture
def outsider(store: MemoryStore) -> Actor:
    """User with a published key but no access to anything."""
    return _publish(store, "mallory")


@pytest.fixture
def service(store: MemoryStore, docs_home: Path) -> DocumentService:
    """DocumentService over an in-memory store, auditing into docs_home."""
    return DocumentService(store, home=docs_home)
