"""mixdb: an in-memory, indexed, multi-parent record hierarchy."""

__version__ = "0.1.0"

from mixdb.engine import (
    ROOT_UID,
    HierarchyStore,
    Record,
    Relations,
    ValidationError,
    dumps,
    generate_uid,
    load_store,
    loads,
    save_store,
)
from mixdb.models import HierarchyStats, Snapshot, ValidationResult

__all__ = [
    "HierarchyStats",
    "HierarchyStore",
    "ROOT_UID",
    "Record",
    "Relations",
    "Snapshot",
    "ValidationError",
    "ValidationResult",
    "__version__",
    "dumps",
    "generate_uid",
    "load_store",
    "loads",
    "save_store",
]
