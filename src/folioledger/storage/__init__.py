"""Storage package.

Public API:
- StorageClient: protocol with `load()` / `save(snapshot)`.
- MemoryStorage, SQLiteStorage, SupabaseStorage: concrete backends.
- write_parquet: pandas export of a ledger snapshot.
"""

from .base import MemoryStorage, StorageClient  # re-export
from .parquet import write_parquet
from .sqlite_store import SQLiteStorage
from .supabase import SupabaseStorage
