"""
Logbook backup server - snapshot backup and restore for a logistics logbook.

The logbook tracks three collections (invoices, production orders and
dated notes) in a hosted backend. This package keeps point-in-time
snapshots of those collections and derives the alert views from them:

    ┌─────────────┐     ┌──────────────┐     ┌────────────────┐
    │  CLI / HTTP │────▶│BackupService │────▶│ SnapshotStore  │──▶ backups table
    └─────────────┘     └──────┬───────┘     └────────────────┘
                               │                     ▲
                               ▼                     │
                        ┌──────────────┐     ┌────────────────┐
                        │RestoreEngine │     │BackupScheduler │ daily 17:45
                        └──────┬───────┘     └────────────────┘
                               ▼
                        ┌──────────────┐
                        │ EntityStore  │──▶ notas / ordens / comentarios
                        └──────────────┘

Invariants:
    - At most ``retention`` snapshots are kept (7 by default)
    - At most one automatic snapshot per calendar day
    - Restore is destructive and not atomic; failures say so
    - Alert derivations are pure functions of state and date

How to change safely:
    - Add store backends behind the store protocols
    - Keep snapshot payload keys (notas, ordens, comentarios) stable
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
