from mixdb.engine.core import (
    RESERVED_FIELDS,
    ROOT_UID,
    HierarchyStore,
    Record,
    Relations,
    ValidationError,
)
from mixdb.engine.persistence import dumps, load_store, loads, save_store
from mixdb.engine.uid import generate_uid, normalize

__all__ = [
    "ROOT_UID",
    "RESERVED_FIELDS",
    "Record",
    "Relations",
    "HierarchyStore",
    "ValidationError",
    "generate_uid",
    "normalize",
    "dumps",
    "loads",
    "save_store",
    "load_store",
]
