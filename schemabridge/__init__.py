"""
Schema Migration & Compatibility Engine

Moves a live point-of-sale / inventory dataset from its legacy, inconsistently
named field layout to the normalized schema while the application keeps
running against both layouts.

Supports:
- Deterministic legacy -> canonical field mapping per entity
- Query/result rewriting middleware for entities not yet migrated
- Batched, concurrency-bounded migration runs with progress tracking
- Checksummed backups, restore points and emergency rollback
- Integrity audits with a per-entity health score
"""

__version__ = "0.1.0"
