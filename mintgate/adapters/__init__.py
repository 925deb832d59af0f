"""External adapters for the mintgate traceability service.

This package contains all external dependencies (SQLite, HTTP catalog,
command line) and provides implementations of the core port interfaces.

Adapter Organization:

- store/: Persistence of batches, products, model variations and mints (SQLite)
- catalog/: Model number lookup over HTTP
- cli/: Command handlers for inspection and mint requests
"""
