"""Model catalog adapters for display model numbers.

Implementations:
- HTTP (product catalog REST API)

The SQLite store also implements ModelVariationLookupPort for
single-file deployments.
"""
