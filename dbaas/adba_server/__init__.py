"""
ADBA Server - embedded multi-tenant SQLite host for the local network.

This package serves independent per-client SQLite databases over a small
REST API. Access to query execution is gated by a short rotating pairing
code that is shown to the device owner and typed into client apps.

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌─────────────────┐
    │ Client app  │────▶│  HTTP API   │────▶│  Request Gate   │
    │   (SDK)     │     │  (aiohttp)  │     │ (pairing code)  │
    └─────────────┘     └──────┬──────┘     └────────┬────────┘
                               │                     │
                               ▼                     ▼
                        ┌─────────────┐     ┌─────────────────┐
                        │  AppState   │     │  TenantEngine   │
                        │ code, port, │     │  (thread pool)  │
                        │  sessions   │     └────────┬────────┘
                        └─────────────┘              │
                                          ┌──────────┴──────────┐
                                          ▼                     ▼
                                    ┌───────────┐        ┌─────────────┐
                                    │catalog.db │        │tenant_*.db  │
                                    └───────────┘        └─────────────┘

Invariants:
    - One SQLite file per tenant database, named after the sanitized name
    - catalog.db is the authoritative list of tenant databases
    - The pairing code lives only in memory and is swapped atomically
    - Blocking SQLite work never runs on the event loop

How to change safely:
    - Keep the response envelope {success, data, error} stable for clients
    - New endpoints that touch tenant data should go through the RequestGate
    - Catalog schema changes must stay readable by older catalog files

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
