"""
Document stores -- where encrypted records live.

Memory: dicts in the current process. For tests and one-shot tools.
File: one JSON file per record. Point it at a Syncthing folder and
the peers replicate it for you.
"""

from __future__ import annotations

from pathlib import Path

from ..config import DocsConfig, StoreBackendType
from .base import DocumentStore
from .file import FileStore
from .memory import MemoryStore


def create_store(config: DocsConfig, home: Path) -> DocumentStore:
    """Factory function to create the configured store.

    Args:
        config: SKDocs configuration.
        home: SKDocs home directory.

    Returns:
        Instantiated DocumentStore.

    Raises:
        ValueError: If the backend type is not supported.
    """
    if config.store_backend == StoreBackendType.MEMORY:
        return MemoryStore()
    if config.store_backend == StoreBackendType.FILE:
        store = FileStore(config.store_path or home / "store")
        store.ensure_dirs()
        return store
    raise ValueError(f"Unsupported store backend: {config.store_backend}")


__all__ = ["DocumentStore", "FileStore", "MemoryStore", "create_store"]
