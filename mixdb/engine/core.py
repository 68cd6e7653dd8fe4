"""Core hierarchy data structures and operations.

An in-memory, indexed, multi-parent record store. Every record lives once
in the index, keyed by its uid; parent/child relationships are stored on
both sides as uid sets, so a record can sit under several parents without
being copied (structural sharing) and the whole store dumps to plain data.

Relationship bookkeeping goes through ``_link`` and ``_unlink`` only, which
keep the children-of and parents-of views symmetric.

Thread Safety:
    Not thread-safe. The store is a plain single-writer structure; callers
    must not mutate one instance from several threads at once.

Error policy:
    ``add`` raises ``ValidationError`` for a record without a name. Linking,
    unlinking and removing records that cannot be resolved are silent
    no-ops. Batches are processed item by item with no rollback: records
    added before a failing item stay in the store.
"""

import logging
from collections import deque
from collections.abc import Callable, Iterable, Iterator, Mapping, MutableSet
from dataclasses import dataclass, field
from typing import Any

from .uid import generate_uid

logger = logging.getLogger("mixdb.engine")

ROOT_UID = "root"
RESERVED_FIELDS = ("name", "uid", "children", "parents")


class ValidationError(ValueError):
    """A record handed to the store is missing required data."""


class Relations(MutableSet[str]):
    """Insertion-ordered set of uids.

    Used for both sides of a parent/child relationship. Adding a uid that is
    already present is a no-op, as is discarding one that is absent.
    """

    def __init__(self, uids: Iterable[str] = ()) -> None:
        self._uids: dict[str, None] = dict.fromkeys(uids)

    def __contains__(self, uid: object) -> bool:
        return uid in self._uids

    def __iter__(self) -> Iterator[str]:
        return iter(self._uids)

    def __len__(self) -> int:
        return len(self._uids)

    def __repr__(self) -> str:
        return f"Relations({list(self._uids)!r})"

    def add(self, uid: str) -> None:
        self._uids[uid] = None

    def discard(self, uid: str) -> None:
        self._uids.pop(uid, None)

    def update(self, uids: Iterable[str]) -> None:
        """Union in place."""
        for uid in uids:
            self._uids[uid] = None

    def clear(self) -> None:
        self._uids.clear()

    def to_list(self) -> list[str]:
        return list(self._uids)


def _relations(value: Any) -> Relations:
    if value is None:
        return Relations()
    if isinstance(value, str):
        return Relations([value])
    return Relations(value)


@dataclass(eq=False)
class Record:
    """A named payload stored in the hierarchy.

    Records compare by identity: the store hands out live references, and
    the same record reached through two parents is the same object.

    Attributes:
        name: Display name, required and non-empty, not necessarily unique
        uid: Unique key in the store; assigned on add when missing
        children: uids of child records
        parents: uids of parent records (may include the root sentinel)
        fields: Caller-defined payload, opaque to the store

    Raises:
        TypeError: If name is not a string or uid is neither None nor a string
    """

    name: str
    uid: str | None = None
    children: Relations = field(default_factory=Relations)
    parents: Relations = field(default_factory=Relations)
    fields: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.name, str):
            raise TypeError(f"Record name must be a string, got: {type(self.name).__name__}")
        if self.uid is not None and not isinstance(self.uid, str):
            raise TypeError(f"Record uid must be a string, got: {type(self.uid).__name__}")
        self.children = _relations(self.children)
        self.parents = _relations(self.parents)

    def __repr__(self) -> str:
        parts = [f"Record({self.name!r}, uid={self.uid!r}"]
        if self.fields:
            parts.append(f", fields={self.fields!r}")
        parts.append(")")
        return "".join(parts)

    def __getitem__(self, key: str) -> Any:
        return self.fields[key]

    def get(self, key: str, default: Any = None) -> Any:
        """Payload lookup, like ``dict.get``."""
        return self.fields.get(key, default)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Record":
        """Build a record from a flat mapping.

        The reserved keys (name, uid, children, parents) fill the fixed
        fields; every other key becomes payload.
        """
        payload = {k: v for k, v in data.items() if k not in RESERVED_FIELDS}
        name = data.get("name")
        return cls(
            name=name if name is not None else "",
            uid=data.get("uid"),
            children=_relations(data.get("children")),
            parents=_relations(data.get("parents")),
            fields=payload,
        )

    def to_dict(self) -> dict[str, Any]:
        """Flatten to a plain dict, payload keys alongside the fixed ones."""
        return {
            **self.fields,
            "name": self.name,
            "uid": self.uid,
            "children": self.children.to_list(),
            "parents": self.parents.to_list(),
        }


class _UidsInUse:
    """Membership view over an index that also reserves the root sentinel."""

    def __init__(self, index: Mapping[str, Record]) -> None:
        self._index = index

    def __contains__(self, uid: object) -> bool:
        return uid == ROOT_UID or uid in self._index


class HierarchyStore:
    """Indexed multi-parent record hierarchy.

    Every record is reachable in O(1) by uid and navigable through its
    ``children`` and ``parents`` uid sets. A synthetic root record (uid
    ``"root"``) is the universal ancestor; it is never stored in the index.

    Cycles are not prevented: a record may become its own descendant through
    another parent path. Traversal helpers visit each record once.

    Example:
        >>> store = HierarchyStore()
        >>> shelf = store.add("shelf")
        >>> book = store.add({"name": "book", "type": "item"}, parent=shelf)
        >>> [r.uid for r in store.children_of("shelf")]
        ['book']
    """

    def __init__(self, disambiguate_by: Iterable[str] = ("type",)) -> None:
        """Initialize an empty store.

        Args:
            disambiguate_by: Payload field names whose values extend a
                colliding uid, tried in order
        """
        self.disambiguate_by: tuple[str, ...] = tuple(disambiguate_by)
        self.root = Record(name=ROOT_UID, uid=ROOT_UID)
        self._index: dict[str, Record] = {}

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, item: object) -> bool:
        if isinstance(item, Record):
            return item.uid is not None and self._index.get(item.uid) is item
        return isinstance(item, str) and item in self._index

    def __iter__(self) -> Iterator[Record]:
        return iter(list(self._index.values()))

    # ========== Identifier Generation ==========

    def generate_uid(self, name: str, values: Iterable[Any] = ()) -> str:
        """Generate a uid for ``name`` that is free in this store.

        Reads the index only; calling it does not reserve the result.
        """
        return generate_uid(name, values, taken=_UidsInUse(self._index))

    def _disambiguators(self, record: Record) -> list[Any]:
        return [
            record.fields[key]
            for key in self.disambiguate_by
            if record.fields.get(key) is not None
        ]

    # ========== Record Operations ==========

    def add(
        self,
        records: "str | Mapping[str, Any] | Record | list | tuple | None",
        parent: "str | Record | None" = None,
    ) -> "Record | list[Record] | None":
        """Add one or more records under ``parent``.

        Args:
            records: A name string (wrapped into a new record), a mapping with
                a ``name`` key, a Record, or a list/tuple of those. Mappings
                are copied into new Records; Record instances are stored as-is.
            parent: uid or record to link the new records under. Empty or None
                means the root. If it does not resolve to a single record, the
                records are indexed unlinked.

        Returns:
            The stored record, a list of them when given a list/tuple, or None
            for empty input.

        Raises:
            ValidationError: If an item has no name. Items earlier in the same
                batch remain added.
        """
        if records is None or (isinstance(records, str) and not records):
            return None
        if isinstance(records, (list, tuple)):
            return [self._add_one(self._coerce(item), parent) for item in records]
        return self._add_one(self._coerce(records), parent)

    @staticmethod
    def _coerce(item: Any) -> Record:
        if isinstance(item, Record):
            return item
        if isinstance(item, str):
            return Record(name=item)
        if isinstance(item, Mapping):
            name = item.get("name")
            if not isinstance(name, str) or not name:
                raise ValidationError(
                    f"This record needs a name (a non-empty string): {dict(item)!r}"
                )
            return Record.from_mapping(item)
        raise TypeError(
            f"Cannot add {type(item).__name__}; expected a name, mapping or Record"
        )

    def _add_one(self, record: Record, parent: "str | Record | None") -> Record:
        if not record.name:
            raise ValidationError(f"This record needs a name: {record!r}")

        already_stored = record.uid is not None and self._index.get(record.uid) is record
        if not already_stored:
            if not record.uid or record.uid in _UidsInUse(self._index):
                requested = record.uid
                record.uid = self.generate_uid(record.name, self._disambiguators(record))
                if requested:
                    logger.debug("uid %r in use, assigned %r", requested, record.uid)
            # Own relationship sets; a copied record must not share them
            record.children = Relations(record.children)
            record.parents = Relations(record.parents)
            self._index[record.uid] = record

        self.add_parent(record, parent if parent else ROOT_UID)
        return record

    def remove(
        self,
        records: "str | Record | Iterable[str | Record] | None",
        promote_orphans: bool = False,
    ) -> int:
        """Remove one or more records from the store.

        Each removed record is unlinked from all of its parents. Its children
        are either removed as well, recursively (the default), or, with
        ``promote_orphans``, re-linked under each of the removed record's
        former parents while keeping their other parents.

        Unresolvable records and the root are skipped silently.

        Returns:
            Number of records deleted from the index, cascades included.
        """
        if records is None:
            return 0
        if isinstance(records, (str, Record, Mapping)):
            records = [records]

        removed = 0
        # Snapshot first: the input may be a live relationship set
        records = list(records)
        for item in records:
            target = self._resolve_one(item)
            if target is None or target is self.root:
                continue
            removed += self._remove_one(target, promote_orphans)
        return removed

    def _remove_one(self, target: Record, promote_orphans: bool) -> int:
        removed = 0
        pending: deque[Record] = deque([target])
        promote = promote_orphans
        while pending:
            record = pending.popleft()
            if self._index.get(record.uid) is not record:
                continue
            former_parents = self.parents_of(record)
            for parent in former_parents:
                parent.children.discard(record.uid)
            record.parents.clear()
            former_parents = [p for p in former_parents if p is not record]

            for child in self.children_of(record):
                child.parents.discard(record.uid)
                if child is record:
                    continue
                if promote:
                    for parent in former_parents:
                        self._link(child, parent)
                else:
                    pending.append(child)
            record.children.clear()

            del self._index[record.uid]
            removed += 1
            # Cascaded descendants are never promoted
            promote = False

        logger.debug("removed %r (%d record(s))", target.uid, removed)
        return removed

    def clear(self) -> None:
        """Remove every record; the root stays, with no children."""
        self._index.clear()
        self.root.children.clear()

    # ========== Relationship Operations ==========

    def add_parent(
        self,
        child: "str | Record",
        parent: "str | Record",
        clear_existing: bool = False,
    ) -> None:
        """Link ``child`` under ``parent``.

        Does nothing if either side does not resolve, or if ``child`` is the
        root. Linking an existing pair again is a no-op.

        Args:
            child: The record to re-parent (uid or record)
            parent: The new parent (uid, record, or the root)
            clear_existing: Unlink the child from all current parents first
        """
        o_child = self._resolve_one(child)
        o_parent = self._resolve_one(parent)
        if o_child is None or o_parent is None or o_child is self.root:
            return

        if clear_existing:
            for ex_parent in self.parents_of(o_child):
                ex_parent.children.discard(o_child.uid)
            o_child.parents.clear()

        self._link(o_child, o_parent)

    def remove_parent(self, child: "str | Record", parent: "str | Record") -> None:
        """Unlink ``child`` from ``parent``; missing records or links are ignored."""
        o_child = self._resolve_one(child)
        o_parent = self._resolve_one(parent)
        if o_child is None or o_parent is None:
            return
        self._unlink(o_child, o_parent)

    @staticmethod
    def _link(child: Record, parent: Record) -> None:
        parent.children.add(child.uid)
        child.parents.add(parent.uid)

    @staticmethod
    def _unlink(child: Record, parent: Record) -> None:
        parent.children.discard(child.uid)
        child.parents.discard(parent.uid)

    # ========== Resolution & Traversal ==========

    def resolve(self, records: Any) -> Any:
        """Look up stored records.

        Accepts a uid, a Record, a mapping with a ``uid`` key, the root
        sentinel or root record, or a list/tuple of those. Records are looked
        up by uid, so the live stored instance is always returned.

        Returns:
            For a single input, the stored record or None. For a list/tuple,
            the records that resolve, in input order.
        """
        if isinstance(records, (list, tuple, Relations)):
            found = (self._resolve_one(item) for item in records)
            return [record for record in found if record is not None]
        return self._resolve_one(records)

    def _resolve_one(self, item: Any) -> Record | None:
        if item is self.root:
            return self.root
        if isinstance(item, Record):
            uid = item.uid
        elif isinstance(item, Mapping):
            uid = item.get("uid")
        elif isinstance(item, str):
            uid = item
        else:
            return None
        if uid == ROOT_UID:
            return self.root
        if uid is None:
            return None
        return self._index.get(uid)

    def get(self, uid: str) -> Record | None:
        """Get a record by uid, or None if not found. Does not return the root."""
        return self._index.get(uid)

    def children_of(self, record: "str | Record") -> list[Record]:
        """Stored children of ``record``; missing uids are dropped."""
        o_record = self._resolve_one(record)
        if o_record is None:
            return []
        return self.resolve(o_record.children)

    def parents_of(self, record: "str | Record") -> list[Record]:
        """Stored parents of ``record`` (may include the root); missing uids are dropped."""
        o_record = self._resolve_one(record)
        if o_record is None:
            return []
        return self.resolve(o_record.parents)

    def descendants_of(self, record: "str | Record") -> list[Record]:
        """All records below ``record``, breadth-first, each listed once."""
        return self._walk(record, self.children_of)

    def ancestors_of(self, record: "str | Record") -> list[Record]:
        """All records above ``record``, breadth-first, each listed once.

        Includes the root when the record is reachable from it.
        """
        return self._walk(record, self.parents_of)

    def _walk(
        self, record: "str | Record", step: Callable[[Record], list[Record]]
    ) -> list[Record]:
        start = self._resolve_one(record)
        if start is None:
            return []
        seen: set[str | None] = {start.uid}
        result: list[Record] = []
        queue: deque[Record] = deque([start])
        while queue:
            current = queue.popleft()
            for nxt in step(current):
                if nxt.uid in seen:
                    continue
                seen.add(nxt.uid)
                result.append(nxt)
                queue.append(nxt)
        return result

    # ========== Queries ==========

    def all(self) -> list[Record]:
        """All indexed records (the root excluded)."""
        return list(self._index.values())

    def filter(self, predicate: Callable[[Record], bool]) -> list[Record]:
        """All indexed records for which ``predicate`` is true."""
        return [record for record in self._index.values() if predicate(record)]

    def find(self, predicate: Callable[[Record], bool]) -> Record | None:
        """The first indexed record for which ``predicate`` is true."""
        for record in self._index.values():
            if predicate(record):
                return record
        return None

    def find_records(self, **fields: Any) -> list[Record]:
        """Records whose payload matches all the given field values."""
        return self.filter(
            lambda record: all(record.fields.get(k) == v for k, v in fields.items())
        )

    # ========== Statistics & Validation ==========

    def stats(self) -> dict[str, int]:
        """Summary counts for the hierarchy."""
        records = self._index.values()
        return {
            "num_records": len(self._index),
            "num_links": sum(len(r.children) for r in records) + len(self.root.children),
            "num_top_level": len(self.root.children),
            "num_multi_parent": sum(1 for r in records if len(r.parents) > 1),
            "num_parentless": sum(1 for r in records if not r.parents),
        }

    def validate(self) -> dict[str, Any]:
        """Check relationship integrity.

        Checks for:
        - Parent or child uids that do not exist (dangling references)
        - Links recorded on one side only
        - The root sentinel used as an index key, or index keys that do not
          match the record's uid

        Returns:
            Dict with 'valid' (bool), 'errors' (list of descriptions) and
            'dangling' (uids of records holding dangling references)
        """
        errors: list[str] = []
        dangling: list[str] = []

        if ROOT_UID in self._index:
            errors.append(f"Root sentinel '{ROOT_UID}' is used as an index key")

        for uid, record in self._index.items():
            if record.uid != uid:
                errors.append(f"Index key '{uid}' holds record with uid '{record.uid}'")

        for record in [self.root, *self._index.values()]:
            missing: list[str] = []
            for parent_uid in record.parents:
                parent = self._resolve_one(parent_uid)
                if parent is None:
                    missing.append(parent_uid)
                elif record.uid not in parent.children:
                    errors.append(
                        f"Record '{record.uid}' lists parent '{parent_uid}' "
                        f"which does not list it as a child"
                    )
            for child_uid in record.children:
                child = self._index.get(child_uid)
                if child is None:
                    missing.append(child_uid)
                elif record.uid not in child.parents:
                    errors.append(
                        f"Record '{record.uid}' lists child '{child_uid}' "
                        f"which does not list it as a parent"
                    )
            if missing:
                dangling.append(record.uid)
                errors.append(f"Record '{record.uid}' references non-existent records: {missing}")

        return {"valid": not errors, "errors": errors, "dangling": dangling}

    # ========== Serialization ==========

    def to_dict(self) -> dict[str, Any]:
        """Export to plain data: the index plus the root's children."""
        return {
            "disambiguate_by": list(self.disambiguate_by),
            "root": {"children": self.root.children.to_list()},
            "records": [record.to_dict() for record in self._index.values()],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HierarchyStore":
        """Import from plain data produced by ``to_dict``.

        The index is populated by uid before any relationship is touched, and
        uids and relationship lists are taken as given.

        Raises:
            ValidationError: If a record has no name or uid, uses the root
                sentinel, or repeats a uid
        """
        store = cls(disambiguate_by=data.get("disambiguate_by", ("type",)))
        for item in data.get("records", []):
            record = Record.from_mapping(item)
            if not record.name or not record.uid:
                raise ValidationError(f"Stored record needs a name and uid: {item!r}")
            if record.uid in _UidsInUse(store._index):
                raise ValidationError(f"Duplicate or reserved uid in stored data: {record.uid!r}")
            store._index[record.uid] = record
        store.root.children.update(data.get("root", {}).get("children", []))
        return store
