"""Command-line interface adapters.

Provides CLI commands for operating on inspections and mints:
- batch / update / complete / resync: inspection batch handling
- candidates / request-mint: mint requests over a company scope
- mint / mark-minted / reset-minted: mint lifecycle
"""
