"""Unit tests for InspectionService.

Covers item updates, batch completion and the product sync that follows
both, using in-memory fakes for every port.
"""

import asyncio
import copy
from datetime import UTC, datetime, timedelta, timezone

import pytest

from mintgate.core.errors import (
    BatchNotFound,
    ConcurrentModificationError,
    InvalidInspectedAt,
    InvalidInspectedBy,
    InvalidInspectionResult,
    InvalidInspectionStatus,
    InvalidProductIDs,
    InvalidProductionID,
    InvalidTimestamp,
    ProductSyncError,
)
from mintgate.core.inspection_service import InspectionService
from mintgate.core.models import (
    InspectionBatch,
    InspectionItem,
    InspectionResult,
    InspectionStatus,
    ItemPatch,
    Provided,
)
from mintgate.tests.fakes import FakeBatchStore, FakeModelCatalog, FakeProductSync

NOW = datetime(2024, 3, 1, 9, 30, 0, tzinfo=UTC)
# Aware, but earlier than datetime.min once converted to UTC.
OUT_OF_RANGE = datetime(1, 1, 1, 0, 30, tzinfo=timezone(timedelta(hours=9)))

# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def store() -> FakeBatchStore:
    store = FakeBatchStore()
    store.add(
        InspectionBatch(
            production_id="prod-1",
            inspections=[
                InspectionItem(product_id="a", model_id="m-1"),
                InspectionItem(product_id="b", model_id="m-1"),
                InspectionItem(product_id="c", model_id="m-2"),
            ],
        )
    )
    return store


@pytest.fixture
def products() -> FakeProductSync:
    return FakeProductSync()


@pytest.fixture
def catalog() -> FakeModelCatalog:
    return FakeModelCatalog({"m-1": "MN-001", "m-2": "MN-002"})


@pytest.fixture
def service(
    store: FakeBatchStore, products: FakeProductSync, catalog: FakeModelCatalog
) -> InspectionService:
    return InspectionService(batch_store=store, product_sync=products, model_lookup=catalog)


def result_patch(value) -> ItemPatch:
    return ItemPatch(result=Provided(value))


class BlockingProductSync(FakeProductSync):
    """Product sync that never returns for the product named by ``block_on``."""

    def __init__(self, block_on: str | None = None):
        super().__init__()
        self.block_on = block_on
        self.reached = asyncio.Event()

    async def update_inspection_result(
        self, product_id: str, result: InspectionResult
    ) -> None:
        if product_id == self.block_on:
            self.reached.set()
            await asyncio.Event().wait()
        await super().update_inspection_result(product_id, result)


# ============================================================================
# get_batch
# ============================================================================


class TestGetBatch:
    async def test_returns_enriched_batch(
        self, service: InspectionService, store: FakeBatchStore
    ) -> None:
        batch = await service.get_batch(" prod-1 ")

        assert [i.model_number for i in batch.inspections] == ["MN-001", "MN-001", "MN-002"]
        # enrichment is not persisted
        assert store.batches["prod-1"].inspections[0].model_number is None

    async def test_blank_production_id(self, service: InspectionService) -> None:
        with pytest.raises(InvalidProductionID):
            await service.get_batch("  ")

    async def test_missing_batch(self, service: InspectionService) -> None:
        with pytest.raises(BatchNotFound):
            await service.get_batch("prod-404")

    async def test_works_without_catalog(
        self, store: FakeBatchStore, products: FakeProductSync
    ) -> None:
        service = InspectionService(batch_store=store, product_sync=products)
        batch = await service.get_batch("prod-1")
        assert all(i.model_number is None for i in batch.inspections)

    async def test_catalog_failure_tolerated(
        self, service: InspectionService, catalog: FakeModelCatalog
    ) -> None:
        catalog.failing_ids.add("m-1")
        batch = await service.get_batch("prod-1")
        assert [i.model_number for i in batch.inspections] == [None, None, "MN-002"]
        assert catalog.lookup_calls.count("m-1") == 1


# ============================================================================
# update_item
# ============================================================================


class TestUpdateItem:
    async def test_update_result_syncs_product(
        self,
        service: InspectionService,
        store: FakeBatchStore,
        products: FakeProductSync,
    ) -> None:
        batch = await service.update_item("prod-1", "b", result_patch("passed"))

        assert batch.find_item("b").inspection_result is InspectionResult.PASSED
        assert batch.total_passed == 1
        assert batch.find_item("b").model_number == "MN-001"
        assert store.batches["prod-1"].total_passed == 1
        assert store.batches["prod-1"].find_item("b").model_number is None
        assert products.calls == [("b", InspectionResult.PASSED)]

    async def test_total_passed_tracks_every_update(
        self, service: InspectionService, store: FakeBatchStore
    ) -> None:
        await service.update_item("prod-1", "a", result_patch("passed"))
        await service.update_item("prod-1", "b", result_patch("passed"))
        batch = await service.update_item("prod-1", "a", result_patch("failed"))

        assert batch.total_passed == 1
        for saved in store.saved_batches:
            assert saved.total_passed == len(saved.passed_product_ids())

    async def test_update_without_result_does_not_sync(
        self,
        service: InspectionService,
        store: FakeBatchStore,
        products: FakeProductSync,
    ) -> None:
        patch = ItemPatch(
            inspected_by=Provided(" inspector-1 "),
            inspected_at=Provided(datetime(2024, 3, 1, 9, 30)),
        )

        batch = await service.update_item("prod-1", "a", patch)

        item = batch.find_item("a")
        assert item.inspected_by == "inspector-1"
        assert item.inspected_at == NOW
        assert item.inspection_result is None
        assert products.calls == []
        assert store.save_count == 1

    async def test_inspected_at_accepts_iso_string(
        self, service: InspectionService, store: FakeBatchStore
    ) -> None:
        patch = ItemPatch(inspected_at=Provided("2024-03-01T18:30:00+09:00"))

        batch = await service.update_item("prod-1", "a", patch)

        assert batch.find_item("a").inspected_at == NOW
        assert store.batches["prod-1"].find_item("a").inspected_at == NOW

    async def test_status_patch(self, service: InspectionService) -> None:
        patch = ItemPatch(status=Provided("completed"))
        batch = await service.update_item("prod-1", "a", patch)
        assert batch.status is InspectionStatus.COMPLETED

    async def test_reopen_rejected(
        self, service: InspectionService, store: FakeBatchStore
    ) -> None:
        await service.complete_batch("prod-1", "inspector-1", NOW)
        saves = store.save_count

        with pytest.raises(InvalidInspectionStatus):
            await service.update_item("prod-1", "a", ItemPatch(status=Provided("pending")))

        assert store.save_count == saves
        assert store.batches["prod-1"].status is InspectionStatus.COMPLETED

    async def test_unknown_product_leaves_batch_untouched(
        self,
        service: InspectionService,
        store: FakeBatchStore,
        products: FakeProductSync,
    ) -> None:
        await service.update_item("prod-1", "a", result_patch("passed"))
        before = copy.deepcopy(store.batches["prod-1"])

        with pytest.raises(InvalidProductIDs):
            await service.update_item("prod-1", "zzz", result_patch("passed"))

        assert store.batches["prod-1"] == before
        assert store.batches["prod-1"].total_passed == 1
        assert products.synced_ids == ["a"]

    async def test_blank_product_id(self, service: InspectionService) -> None:
        with pytest.raises(InvalidProductIDs):
            await service.update_item("prod-1", "  ", result_patch("passed"))

    async def test_missing_batch_checked_first(self, service: InspectionService) -> None:
        with pytest.raises(BatchNotFound):
            await service.update_item("prod-404", "a", result_patch("passed"))

    @pytest.mark.parametrize(
        "patch,error",
        [
            (ItemPatch(result=Provided("notYet")), InvalidInspectionResult),
            (ItemPatch(inspected_by=Provided("   ")), InvalidInspectedBy),
            (ItemPatch(inspected_at=Provided(None)), InvalidInspectedAt),
            (ItemPatch(inspected_at=Provided(datetime.min)), InvalidInspectedAt),
            (ItemPatch(inspected_at=Provided("yesterday")), InvalidInspectedAt),
            (ItemPatch(inspected_at=Provided(1709285400)), InvalidInspectedAt),
            (ItemPatch(inspected_at=Provided(OUT_OF_RANGE)), InvalidInspectedAt),
            (ItemPatch(status=Provided("reopened")), InvalidInspectionStatus),
        ],
    )
    async def test_invalid_patch_persists_nothing(
        self,
        service: InspectionService,
        store: FakeBatchStore,
        products: FakeProductSync,
        patch: ItemPatch,
        error: type[Exception],
    ) -> None:
        with pytest.raises(error):
            await service.update_item("prod-1", "a", patch)
        assert store.save_count == 0
        assert products.calls == []

    async def test_partially_valid_patch_persists_nothing(
        self, service: InspectionService, store: FakeBatchStore
    ) -> None:
        patch = ItemPatch(result=Provided("passed"), inspected_by=Provided(""))
        with pytest.raises(InvalidInspectedBy):
            await service.update_item("prod-1", "a", patch)
        assert store.batches["prod-1"].find_item("a").inspection_result is None

    async def test_sync_failure_after_save(
        self,
        service: InspectionService,
        store: FakeBatchStore,
        products: FakeProductSync,
    ) -> None:
        products.set_should_fail(True)

        with pytest.raises(ProductSyncError) as exc_info:
            await service.update_item("prod-1", "a", result_patch("failed"))

        assert exc_info.value.remaining == ("a",)
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert store.batches["prod-1"].find_item("a").inspection_result is InspectionResult.FAILED

    async def test_stale_write_rejected(
        self, service: InspectionService, store: FakeBatchStore
    ) -> None:
        original = store.batches["prod-1"]

        class RacingStore(FakeBatchStore):
            async def get_by_production_id(self, production_id):
                batch = await super().get_by_production_id(production_id)
                # another writer commits between load and save
                self.batches[production_id].version += 1
                return batch

        racing = RacingStore()
        racing.add(original)
        service.batch_store = racing

        with pytest.raises(ConcurrentModificationError):
            await service.update_item("prod-1", "a", result_patch("passed"))


# ============================================================================
# complete_batch
# ============================================================================


class TestCompleteBatch:
    async def test_complete_scenario(
        self,
        service: InspectionService,
        store: FakeBatchStore,
        products: FakeProductSync,
    ) -> None:
        await service.update_item("prod-1", "a", result_patch("passed"))
        await service.update_item("prod-1", "b", result_patch("failed"))
        products.reset()

        batch = await service.complete_batch("prod-1", "inspector-1", NOW)

        assert batch.status is InspectionStatus.COMPLETED
        assert batch.total_passed == 1
        assert batch.find_item("c").inspection_result is InspectionResult.NOT_MANUFACTURED
        assert batch.find_item("c").inspected_by == "inspector-1"
        assert batch.find_item("c").inspected_at == NOW
        assert products.calls == [
            ("a", InspectionResult.PASSED),
            ("b", InspectionResult.FAILED),
        ]

    async def test_idempotent(
        self,
        service: InspectionService,
        store: FakeBatchStore,
        products: FakeProductSync,
    ) -> None:
        await service.update_item("prod-1", "a", result_patch("passed"))
        first = await service.complete_batch("prod-1", "inspector-1", NOW)
        saves = store.save_count

        second = await service.complete_batch("prod-1", "inspector-2", datetime(2025, 1, 1, tzinfo=UTC))

        assert second == first
        assert second.version == first.version
        assert store.save_count == saves
        assert second.find_item("b").inspected_by == "inspector-1"

    async def test_does_not_touch_requested(
        self, service: InspectionService, store: FakeBatchStore
    ) -> None:
        store.batches["prod-1"].requested = True
        batch = await service.complete_batch("prod-1", "inspector-1", NOW)
        assert batch.requested is True

    async def test_zero_time_rejected(
        self, service: InspectionService, store: FakeBatchStore
    ) -> None:
        with pytest.raises(InvalidTimestamp):
            await service.complete_batch("prod-1", "inspector-1", datetime.min)
        assert store.save_count == 0

    async def test_blank_inspector_rejected(self, service: InspectionService) -> None:
        with pytest.raises(InvalidInspectedBy):
            await service.complete_batch("prod-1", "", NOW)

    async def test_sync_fail_fast(
        self,
        service: InspectionService,
        store: FakeBatchStore,
        products: FakeProductSync,
    ) -> None:
        for pid in ("a", "b", "c"):
            await service.update_item("prod-1", pid, result_patch("passed"))
        products.reset()
        products.fail_on.add("b")

        with pytest.raises(ProductSyncError) as exc_info:
            await service.complete_batch("prod-1", "inspector-1", NOW)

        error = exc_info.value
        assert error.product_id == "b"
        assert error.synced == ("a",)
        assert error.remaining == ("b", "c")
        assert products.synced_ids == ["a", "b"]
        assert store.batches["prod-1"].status is InspectionStatus.COMPLETED

    async def test_retry_after_sync_failure(
        self,
        service: InspectionService,
        store: FakeBatchStore,
        products: FakeProductSync,
    ) -> None:
        await service.update_item("prod-1", "a", result_patch("passed"))
        products.set_should_fail(True)
        with pytest.raises(ProductSyncError):
            await service.complete_batch("prod-1", "inspector-1", NOW)
        saves = store.save_count

        products.reset()
        batch = await service.complete_batch("prod-1", "inspector-1", NOW)

        assert store.save_count == saves
        assert batch.status is InspectionStatus.COMPLETED
        assert products.results == {"a": InspectionResult.PASSED}

    async def test_cancelled_during_sync_then_retried(
        self, store: FakeBatchStore, catalog: FakeModelCatalog
    ) -> None:
        products = BlockingProductSync(block_on="b")
        service = InspectionService(batch_store=store, product_sync=products, model_lookup=catalog)
        for pid in ("a", "b", "c"):
            await service.update_item("prod-1", pid, result_patch("passed"))
        products.reset()
        saves = store.save_count

        task = asyncio.create_task(service.complete_batch("prod-1", "inspector-1", NOW))
        await products.reached.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert products.synced_ids == ["a"]
        assert "c" not in products.results
        assert store.save_count == saves + 1
        assert store.batches["prod-1"].status is InspectionStatus.COMPLETED

        products.block_on = None
        batch = await service.complete_batch("prod-1", "inspector-1", NOW)

        assert batch.status is InspectionStatus.COMPLETED
        assert store.save_count == saves + 1
        assert products.results == {
            "a": InspectionResult.PASSED,
            "b": InspectionResult.PASSED,
            "c": InspectionResult.PASSED,
        }


# ============================================================================
# resync_products
# ============================================================================


class TestResyncProducts:
    async def test_skips_uninspected_and_not_manufactured(
        self,
        service: InspectionService,
        store: FakeBatchStore,
        products: FakeProductSync,
    ) -> None:
        await service.update_item("prod-1", "a", result_patch("passed"))
        await service.update_item("prod-1", "b", result_patch("notManufactured"))
        products.reset()
        saves = store.save_count

        batch = await service.resync_products("prod-1")

        assert products.calls == [("a", InspectionResult.PASSED)]
        assert store.save_count == saves
        assert batch.find_item("a").model_number == "MN-001"

    async def test_missing_batch(self, service: InspectionService) -> None:
        with pytest.raises(BatchNotFound):
            await service.resync_products("prod-404")
