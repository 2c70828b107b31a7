"""
zipzap — jump to frequently and recently used directories.

One SQLite table maps each visited directory to a rank and a last-access
time. Queries are ordered, case-insensitive fragments resolved by frecency.

Author: zipzap contributors
"""

__version__ = "0.1.0"

from zipzap.types import Entry, LegacyRecord, MalformedRecord
from zipzap.config import ZipzapConfig, ScoringConfig, StoreConfig, load_config
from zipzap.store import PathStore, StorageError, SCHEMA_VERSION
from zipzap.matcher import resolve
from zipzap.legacy_import import ImportResult, import_legacy
from zipzap.ops import find_path, record_visit

__all__ = [
    "__version__",
    "Entry",
    "LegacyRecord",
    "MalformedRecord",
    "ZipzapConfig",
    "ScoringConfig",
    "StoreConfig",
    "load_config",
    "PathStore",
    "StorageError",
    "SCHEMA_VERSION",
    "resolve",
    "ImportResult",
    "import_legacy",
    "find_path",
    "record_visit",
]
