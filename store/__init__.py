"""Record storage for incidents and reports."""

from store.memory import MemoryStore, RecordTable, StoreUnavailable, utc_now

__all__ = ["MemoryStore", "RecordTable", "StoreUnavailable", "utc_now"]
