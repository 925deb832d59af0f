"""Test suite for the mintgate traceability service.

Organized into three categories:

1. core/: Unit tests for core domain logic
   - Minimal dependencies, fast execution
   - Uses in-memory fakes for ports

2. adapters/: Integration tests for adapter implementations
   - Real SQLite in a temporary directory, stubbed HTTP transport
   - Validates adapter behavior and error handling

3. fakes/: Port implementations for testing
   - In-memory implementations of BatchStorePort, MintStorePort, etc.
   - Used by core unit tests
"""
