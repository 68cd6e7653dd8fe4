"""Snapshot export and import for HierarchyStore.

A snapshot is JSON: the index as a list of flat records plus the root's
children. Relationships are uid lists, so no reference rewriting is needed
on either side. Imports are validated with the ``mixdb.models.Snapshot``
model before the store is rebuilt.

Security:
    Paths are resolved to absolute paths; null bytes are rejected.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from mixdb.models import SNAPSHOT_VERSION, Snapshot

from .core import HierarchyStore

logger = logging.getLogger("mixdb.engine")


def _validate_path(path: str | Path) -> Path:
    """Validate and resolve a file path.

    Raises:
        ValueError: If the path contains null bytes
    """
    # Check for null bytes before any path operations
    if "\x00" in str(path):
        raise ValueError(f"Invalid path (contains null bytes): {str(path)!r}")
    return Path(path).resolve()


def to_snapshot(store: HierarchyStore) -> dict[str, Any]:
    """Export a store as a versioned snapshot dict."""
    return {"version": SNAPSHOT_VERSION, **store.to_dict()}


def from_snapshot(data: Any) -> HierarchyStore:
    """Build a store from a snapshot dict.

    Raises:
        pydantic.ValidationError: If the data is not a valid snapshot
    """
    snapshot = Snapshot.model_validate(data)
    return HierarchyStore.from_dict(snapshot.model_dump())


def dumps(store: HierarchyStore) -> str:
    """Serialize a store to a JSON string."""
    return json.dumps(to_snapshot(store), indent=2, ensure_ascii=False)


def loads(text: str | bytes) -> HierarchyStore:
    """Deserialize a store from a JSON string."""
    return from_snapshot(json.loads(text))


def save_store(store: HierarchyStore, path: str | Path) -> None:
    """Write a store snapshot to a JSON file.

    Raises:
        ValueError: If path is invalid
    """
    validated_path = _validate_path(path)

    # Ensure parent directory exists
    validated_path.parent.mkdir(parents=True, exist_ok=True)

    with open(validated_path, "w", encoding="utf-8") as f:
        json.dump(to_snapshot(store), f, indent=2, ensure_ascii=False)
    logger.debug("saved %d record(s) to %s", len(store), validated_path)


def load_store(path: str | Path) -> HierarchyStore:
    """Read a store snapshot from a JSON file.

    Raises:
        ValueError: If path is invalid
        FileNotFoundError: If file does not exist
        pydantic.ValidationError: If the file is not a valid snapshot
    """
    validated_path = _validate_path(path)

    with open(validated_path, encoding="utf-8") as f:
        data = json.load(f)

    store = from_snapshot(data)
    logger.debug("loaded %d record(s) from %s", len(store), validated_path)
    return store
