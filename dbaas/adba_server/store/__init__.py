"""
Store module for ADBA - catalog and tenant SQLite files.

This module handles:
- The catalog of tenant databases (catalog.db)
- Per-tenant SQLite files and raw statement execution
- Coercion of untyped result cells into JSON values
- Startup reconciliation of catalog rows against files

Invariants:
    - The catalog is authoritative for which databases exist
    - Tenant files are derived from sanitized names
    - Blocking SQLite calls stay off the event loop

How to change safely:
    - Keep CatalogStore synchronous; TenantEngine does the off-loading
    - Test concurrent creates after touching locking or catalog writes
"""

from .catalog import CatalogStore, TenantDatabaseRecord
from .coercion import CellKind, CellValue, coerce_cell, coerce_row
from .engine import (
    DatabaseStatus,
    ReconcileReport,
    TenantDatabaseInfo,
    TenantEngine,
    sanitize_name,
)

__all__ = [
    "CatalogStore",
    "TenantDatabaseRecord",
    "CellKind",
    "CellValue",
    "coerce_cell",
    "coerce_row",
    "DatabaseStatus",
    "ReconcileReport",
    "TenantDatabaseInfo",
    "TenantEngine",
    "sanitize_name",
]
