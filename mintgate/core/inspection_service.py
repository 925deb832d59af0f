"""Inspection service: implements InspectionPort.

Mutates inspection batches (single-item updates, bulk completion) and
keeps the denormalized per-unit product store in sync with them.

There is no transaction spanning the batch write and the product
writes. The batch is always persisted first; a product sync failure is
raised as ProductSyncError afterwards, and the caller should retry the
sync (resync_products, or re-running complete_batch), not roll back.
"""

import copy
import logging
from datetime import datetime

from .errors import (
    InvalidInspectedAt,
    InvalidInspectedBy,
    InvalidProductIDs,
    InvalidProductionID,
    ProductSyncError,
)
from .model_number import ModelNumberResolver
from .models import (
    InspectionBatch,
    InspectionItem,
    InspectionResult,
    InspectionStatus,
    ItemPatch,
    coerce_timestamp,
    is_zero_time,
    to_utc,
)
from .ports import (
    BatchStorePort,
    InspectionPort,
    ModelVariationLookupPort,
    ProductSyncPort,
)

logger = logging.getLogger(__name__)


class InspectionService(InspectionPort):
    """Core implementation of InspectionPort.

    Not safe for concurrent calls on the same production by itself; the
    batch store's optimistic version check rejects the losing writer.
    """

    def __init__(
        self,
        batch_store: BatchStorePort,
        product_sync: ProductSyncPort,
        model_lookup: ModelVariationLookupPort | None = None,
    ):
        """Initialize the inspection service.

        Args:
            batch_store: BatchStorePort implementation for persistence.
            product_sync: ProductSyncPort implementation for the product store.
            model_lookup: Optional ModelVariationLookupPort for display
                model numbers. Without it, model numbers stay empty.
        """
        self.batch_store = batch_store
        self.product_sync = product_sync
        self.model_lookup = model_lookup

    def _resolver(self) -> ModelNumberResolver:
        return ModelNumberResolver(self.model_lookup)

    async def _load(self, production_id: str) -> InspectionBatch:
        pid = (production_id or "").strip()
        if not pid:
            raise InvalidProductionID(production_id)
        return await self.batch_store.get_by_production_id(pid)

    async def get_batch(self, production_id: str) -> InspectionBatch:
        """Return the batch of a production, enriched with model numbers.

        Raises:
            InvalidProductionID: If production_id is blank.
            BatchNotFound: If the production has no batch.
        """
        batch = await self._load(production_id)

        logger.debug(
            f"Loaded inspection batch {batch.production_id}",
            extra={"production_id": batch.production_id, "quantity": batch.quantity},
        )

        return await self._resolver().enrich(batch)

    async def update_item(
        self, production_id: str, product_id: str, patch: ItemPatch
    ) -> InspectionBatch:
        """Apply a partial update to one item of a batch.

        Validation runs against a working copy, so any validation error
        leaves the loaded batch untouched and nothing is persisted. When
        ``patch.result`` is provided, the new result is pushed to the
        product store after the batch is saved.

        Raises:
            InvalidProductionID: If production_id is blank.
            BatchNotFound: If the production has no batch.
            InvalidProductIDs: If product_id is blank or not in the batch.
            InvalidInspectionResult: If the result is not a known value.
            InvalidInspectedBy: If inspected_by is blank after trimming.
            InvalidInspectedAt: If inspected_at is zero.
            InvalidInspectionStatus: If the status is unknown or would
                reopen a completed batch.
            ConcurrentModificationError: If the batch changed meanwhile.
            ProductSyncError: If the product store write failed. The
                batch update is already persisted.
        """
        product_id = (product_id or "").strip()
        batch = await self._load(production_id)
        if not product_id:
            raise InvalidProductIDs("inspection: blank productId")

        working = copy.deepcopy(batch)
        item = working.find_item(product_id)
        if item is None:
            raise InvalidProductIDs(
                f"inspection: productId {product_id!r} not in batch {batch.production_id!r}"
            )

        result = self._apply_patch(working, item, patch)
        working.recompute_total_passed()

        saved = await self.batch_store.save(working)
        enriched = await self._resolver().enrich(saved)

        logger.info(
            f"Inspection item {product_id} updated in batch {saved.production_id}",
            extra={
                "production_id": saved.production_id,
                "product_id": product_id,
                "result": result.value if result else None,
                "total_passed": saved.total_passed,
            },
        )

        if result is not None:
            try:
                await self.product_sync.update_inspection_result(product_id, result)
            except Exception as e:
                logger.error(
                    f"Failed to sync inspection result of product {product_id}: {e}",
                    exc_info=True,
                )
                raise ProductSyncError(
                    saved.production_id, product_id, remaining=(product_id,)
                ) from e

        return enriched

    @staticmethod
    def _apply_patch(
        batch: InspectionBatch, item: InspectionItem, patch: ItemPatch
    ) -> InspectionResult | None:
        """Validate and apply provided patch fields. Returns the new result, if any."""
        result: InspectionResult | None = None
        if patch.result is not None:
            result = InspectionResult.parse(patch.result.value)
            item.inspection_result = result

        if patch.inspected_by is not None:
            inspector = (patch.inspected_by.value or "").strip()
            if not inspector:
                raise InvalidInspectedBy()
            item.inspected_by = inspector

        if patch.inspected_at is not None:
            at = coerce_timestamp(patch.inspected_at.value, InvalidInspectedAt)
            if is_zero_time(at):
                raise InvalidInspectedAt()
            item.inspected_at = to_utc(at, InvalidInspectedAt)

        if patch.status is not None:
            batch.apply_status(InspectionStatus.parse(patch.status.value))

        return result

    async def complete_batch(
        self, production_id: str, by: str, at: datetime
    ) -> InspectionBatch:
        """Complete inspection of a batch.

        Uninspected items become NOT_MANUFACTURED, the batch becomes
        COMPLETED and is persisted. Then every item's result is pushed to
        the product store, except NOT_MANUFACTURED items (no physical unit)
        and items without a product ID.

        Re-running on a completed batch changes nothing and skips the
        write, but still re-pushes results, so it doubles as a retry.

        Raises:
            InvalidProductionID: If production_id is blank.
            BatchNotFound: If the production has no batch.
            InvalidInspectedBy: If ``by`` is blank.
            InvalidTimestamp: If ``at`` is zero.
            ConcurrentModificationError: If the batch changed meanwhile.
            ProductSyncError: On the first failed product write. Remaining
                products are not attempted; the batch stays completed.
        """
        batch = await self._load(production_id)

        working = copy.deepcopy(batch)
        working.complete(by, at)
        working.recompute_total_passed()

        if working == batch:
            saved = batch
            logger.debug(
                f"Inspection batch {batch.production_id} already completed",
                extra={"production_id": batch.production_id},
            )
        else:
            saved = await self.batch_store.save(working)
            logger.info(
                f"Inspection batch {saved.production_id} completed",
                extra={
                    "production_id": saved.production_id,
                    "completed_by": by,
                    "total_passed": saved.total_passed,
                    "quantity": saved.quantity,
                },
            )

        enriched = await self._resolver().enrich(saved)
        await self._sync_products(saved)
        return enriched

    async def resync_products(self, production_id: str) -> InspectionBatch:
        """Push every inspected item's result to the product store again.

        Recovery path after a ProductSyncError. Items without a result,
        NOT_MANUFACTURED items and blank product IDs are skipped.

        Raises:
            InvalidProductionID: If production_id is blank.
            BatchNotFound: If the production has no batch.
            ProductSyncError: On the first failed product write.
        """
        batch = await self._load(production_id)
        await self._sync_products(batch)
        return await self._resolver().enrich(batch)

    async def _sync_products(self, batch: InspectionBatch) -> None:
        """Fail-fast push of item results to the product store."""
        targets = [
            item
            for item in batch.inspections
            if item.inspection_result is not None
            and item.inspection_result is not InspectionResult.NOT_MANUFACTURED
            and item.product_id.strip()
        ]

        synced: list[str] = []
        for index, item in enumerate(targets):
            assert item.inspection_result is not None
            try:
                await self.product_sync.update_inspection_result(
                    item.product_id, item.inspection_result
                )
            except Exception as e:
                remaining = [t.product_id for t in targets[index:]]
                logger.error(
                    f"Product sync aborted for batch {batch.production_id} at "
                    f"product {item.product_id}: {e}",
                    extra={
                        "production_id": batch.production_id,
                        "synced": len(synced),
                        "remaining": len(remaining),
                    },
                    exc_info=True,
                )
                raise ProductSyncError(
                    batch.production_id, item.product_id, synced, remaining
                ) from e
            synced.append(item.product_id)

        logger.debug(
            f"Synced {len(synced)} product results for batch {batch.production_id}",
            extra={"production_id": batch.production_id, "synced": len(synced)},
        )
