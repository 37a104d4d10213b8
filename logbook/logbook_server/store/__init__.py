"""
Store module for the logbook backup core.

This module provides the persistence seams the core depends on:
- EntityStore protocol (live invoices, orders, notes)
- SnapshotBackend protocol (snapshot rows)
- In-memory implementations for tests and local development
- Supabase/PostgREST implementations for production

Invariants:
    - The core never talks to a backend except through these protocols
    - All implementations raise the typed errors from ``errors``

How to change safely:
    - Add a backend by implementing both protocols and wiring it in main
"""

from .base import EntityStore, SnapshotBackend
from .memory import InMemoryEntityStore, InMemorySnapshotBackend
from .supabase import PostgrestClient, SupabaseEntityStore, SupabaseSnapshotBackend

__all__ = [
    "EntityStore",
    "SnapshotBackend",
    "InMemoryEntityStore",
    "InMemorySnapshotBackend",
    "PostgrestClient",
    "SupabaseEntityStore",
    "SupabaseSnapshotBackend",
]
