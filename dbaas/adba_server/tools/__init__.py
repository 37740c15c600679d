"""
CLI tools for ADBA administration.

This module provides command-line tools for:
- reconcile: Repair drift between catalog.db and tenant files

Invariants:
    - Tools work offline (no running server required)
    - Operations are idempotent
"""

from .reconcile import run_reconcile

__all__ = ["run_reconcile"]
