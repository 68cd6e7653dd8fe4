"""Shared fixtures for mixdb tests."""

import pytest

from mixdb import ROOT_UID, HierarchyStore


def assert_invariants(store: HierarchyStore) -> None:
    """Assert the relationship invariants of a store."""
    assert store.get(ROOT_UID) is None, "root sentinel must never be indexed"
    assert not store.root.parents

    for record in store.all():
        assert store.get(record.uid) is record
        for parent_uid in record.parents:
            assert isinstance(parent_uid, str)
            parent = store.resolve(parent_uid)
            assert parent is not None, f"{record.uid} has dangling parent {parent_uid}"
            assert record.uid in parent.children, f"{parent_uid} does not list {record.uid}"
        for child_uid in record.children:
            assert isinstance(child_uid, str)
            child = store.get(child_uid)
            assert child is not None, f"{record.uid} has dangling child {child_uid}"
            assert record.uid in child.parents, f"{child_uid} does not list {record.uid}"

    for child_uid in store.root.children:
        child = store.get(child_uid)
        assert child is not None, f"root has dangling child {child_uid}"
        assert ROOT_UID in child.parents


@pytest.fixture()
def store():
    """Fresh empty store."""
    return HierarchyStore()


@pytest.fixture()
def populated_store():
    """Store with a small taxonomy where one record has two parents.

    Hierarchy:
        root
        └── animals
            ├── mammals
            │   └── bat
            └── birds
                ├── bat      (same record as above)
                └── sparrow
    """
    s = HierarchyStore()
    s.add({"name": "animals", "kind": "kingdom"})
    s.add([{"name": "mammals", "kind": "class"}, {"name": "birds", "kind": "class"}], parent="animals")
    s.add({"name": "bat", "kind": "species", "nocturnal": True}, parent="mammals")
    s.add_parent("bat", "birds")
    s.add({"name": "sparrow", "kind": "species", "nocturnal": False}, parent="birds")
    return s


@pytest.fixture()
def check_invariants():
    """The relationship invariant checker, for use inside tests."""
    return assert_invariants
