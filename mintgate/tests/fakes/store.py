"""Fake batch store implementation for testing."""

import copy

from mintgate.core.errors import (
    BatchAlreadyRequested,
    BatchNotFound,
    ConcurrentModificationError,
)
from mintgate.core.models import InspectionBatch
from mintgate.core.ports import (
    BatchStorePort,
    PassedProductListerPort,
    RequestedFlagStorePort,
)


class FakeBatchStore(BatchStorePort, PassedProductListerPort, RequestedFlagStorePort):
    """In-memory batch store for testing.

    Stores detached copies and enforces the same optimistic version check
    as the real store. Tracks all operations for test assertions.
    """

    def __init__(self):
        """Initialize with empty batch store."""
        self.batches: dict[str, InspectionBatch] = {}
        self.saved_batches: list[InspectionBatch] = []
        self.get_calls: list[str] = []
        self.list_passed_calls: list[str] = []
        self.set_requested_calls: list[tuple[str, bool]] = []
        self.should_fail_set_requested: bool = False
        self.fail_message: str = "Store write failed"

    def add(self, batch: InspectionBatch) -> InspectionBatch:
        """Seed a batch as if it had been saved once."""
        stored = copy.deepcopy(batch)
        stored.version = max(stored.version, 1)
        self.batches[stored.production_id] = stored
        return copy.deepcopy(stored)

    async def get_by_production_id(self, production_id: str) -> InspectionBatch:
        self.get_calls.append(production_id)
        batch = self.batches.get(production_id)
        if batch is None:
            raise BatchNotFound(production_id)
        return copy.deepcopy(batch)

    async def save(self, batch: InspectionBatch) -> InspectionBatch:
        """Save a batch if its version matches the stored one."""
        current = self.batches.get(batch.production_id)
        actual = current.version if current else 0
        if batch.version != actual:
            raise ConcurrentModificationError(batch.production_id, batch.version, actual)

        stored = copy.deepcopy(batch)
        stored.version = actual + 1
        self.batches[stored.production_id] = stored
        self.saved_batches.append(copy.deepcopy(stored))
        return copy.deepcopy(stored)

    async def list_passed_product_ids(self, production_id: str) -> list[str]:
        self.list_passed_calls.append(production_id)
        batch = self.batches.get(production_id)
        if batch is None:
            raise BatchNotFound(production_id)
        return batch.passed_product_ids()

    async def set_requested(
        self, production_id: str, requested: bool
    ) -> InspectionBatch:
        self.set_requested_calls.append((production_id, requested))
        if self.should_fail_set_requested:
            raise RuntimeError(self.fail_message)

        batch = self.batches.get(production_id)
        if batch is None:
            raise BatchNotFound(production_id)
        if requested and batch.requested:
            raise BatchAlreadyRequested(production_id)
        batch.requested = requested
        batch.version += 1
        return copy.deepcopy(batch)

    @property
    def save_count(self) -> int:
        return len(self.saved_batches)

    def reset(self) -> None:
        """Reset all stored batches and recorded calls."""
        self.batches.clear()
        self.saved_batches.clear()
        self.get_calls.clear()
        self.list_passed_calls.clear()
        self.set_requested_calls.clear()
        self.should_fail_set_requested = False
