"""Store adapters for inspection batches, products and mints.

Implementations:
- SQLite (zero-config, single-file)
"""
