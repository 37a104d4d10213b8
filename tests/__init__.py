"""
Logbook Backup Test Suite.

This package contains:
- unit/: Unit tests (in-memory stores, no network)
- integration/: Integration tests (aiohttp test server, fake PostgREST)
"""
