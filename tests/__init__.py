"""
ADBA Test Suite.

This package contains:
- unit/: Unit tests (pure components, catalog file, SDK with mock transport)
- integration/: Integration tests (tenant engine, HTTP API, server lifecycle)
"""
