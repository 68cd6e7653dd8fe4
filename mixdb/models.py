"""Pydantic models for mixdb snapshots and reports.

The engine (engine.core) works on plain dataclasses and dicts; these models
validate data crossing the serialization boundary and give the reports
returned by ``stats()`` and ``validate()`` a typed shape.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

from mixdb.engine.core import ROOT_UID

SNAPSHOT_VERSION = "1.0"


class RecordData(BaseModel):
    """One stored record in a snapshot.

    Payload fields sit next to the fixed ones and are kept as extras.
    """

    model_config = ConfigDict(extra="allow")

    name: str = Field(min_length=1)
    uid: str = Field(min_length=1)
    children: list[str] = Field(default_factory=list)
    parents: list[str] = Field(default_factory=list)


class RootData(BaseModel):
    """The synthetic root: only its children are stored."""

    children: list[str] = Field(default_factory=list)


class Snapshot(BaseModel):
    """A full store export: the index plus the root's children.

    Reloading re-populates the index by uid before any relationship is
    followed, so the reloaded store is isomorphic to the exported one.
    """

    version: str = SNAPSHOT_VERSION
    disambiguate_by: list[str] = Field(default_factory=lambda: ["type"])
    root: RootData = Field(default_factory=RootData)
    records: list[RecordData] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_uids(self) -> Snapshot:
        seen: set[str] = set()
        for record in self.records:
            if record.uid == ROOT_UID:
                raise ValueError(f"Record uid cannot be the root sentinel {ROOT_UID!r}")
            if record.uid in seen:
                raise ValueError(f"Duplicate record uid: {record.uid!r}")
            seen.add(record.uid)
        return self


class ValidationResult(BaseModel):
    """Result of a hierarchy integrity check.

    Contains a pass/fail flag, the errors found, and the uids of records
    holding references to records that do not exist.
    """

    valid: bool
    errors: list[str] = Field(default_factory=list)
    dangling: list[str] = Field(default_factory=list)


class HierarchyStats(BaseModel):
    """Summary counts for a hierarchy."""

    num_records: int
    num_links: int
    num_top_level: int
    num_multi_parent: int
    num_parentless: int
