"""Remote table store layer -- pluggable backends behind one CRUD contract.

Provides the abstract TableStore interface with concrete implementations:
- RestTableStore: Supabase/PostgREST over httpx (production default)
- SqlTableStore: SQLAlchemy async engine against the same schema
- MemoryTableStore: in-process tables for offline runs and tests

Every backend raises StoreError for any error indicator; the sync cache
is the only caller and turns those into logged, falsy results.
"""

from src.dealdesk.store.adapter import TableStore
from src.dealdesk.store.memory import MemoryTableStore
from src.dealdesk.store.rest import RestTableStore
from src.dealdesk.store.sql import SqlTableStore

__all__ = [
    "TableStore",
    "MemoryTableStore",
    "RestTableStore",
    "SqlTableStore",
]
