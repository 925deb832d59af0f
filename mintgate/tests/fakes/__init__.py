"""Fake/mock implementations of core ports for testing.

These in-memory implementations allow core domain logic to be tested
without external dependencies:

- FakeBatchStore: Batches, passed listing and the requested flag
- FakeProductSync: Captured product result writes, optional failures
- FakeModelCatalog: Canned model numbers with lookup counting
- FakeMintStore: In-memory mint persistence
"""

from .catalog import FakeModelCatalog
from .mint_store import FakeMintStore
from .products import FakeProductSync
from .store import FakeBatchStore

__all__ = [
    "FakeBatchStore",
    "FakeMintStore",
    "FakeModelCatalog",
    "FakeProductSync",
]
