"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Supabase is the production backend; the in-memory backend serves tests
and demo mode.
"""

from financeflow.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)
from financeflow.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
)
from financeflow.services.storage.supabase_store import (
    SupabaseAuditStorage,
    SupabaseClient,
    SupabaseLedgerStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    # Supabase implementation
    "SupabaseAuditStorage",
    "SupabaseClient",
    "SupabaseLedgerStorage",
]
