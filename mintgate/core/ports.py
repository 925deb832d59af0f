"""Port interfaces for the mintgate core.

These abstract base classes define the boundaries between core
domain logic and external adapters. Implementations live in the
adapters/ package.

Port Interface Categories:

1. **Driven Ports** (core calls out to adapters)
   - BatchStorePort: Load and persist inspection batches
   - ModelVariationLookupPort: Resolve display model numbers
   - ProductSyncPort: Keep the denormalized per-unit product store in sync
   - PassedProductListerPort: List passed units of a production
   - RequestedFlagStorePort: Claim a batch for a mint request
   - MintStorePort: Persist and query mints

2. **Driving Ports** (adapters/external systems call into core)
   - InspectionPort: Inspection batch reads and mutations
   - MintRequestPort: Mint eligibility, requests and lifecycle
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime

from .models import (
    CompanyScope,
    InspectionBatch,
    InspectionResult,
    ItemPatch,
    Mint,
    MintCandidates,
    MintRequestResult,
)


# ============================================================================
# DRIVEN PORTS (Core calls out to adapters)
# ============================================================================


class BatchStorePort(ABC):
    """Port for loading and saving inspection batches.

    Implementations must provide single-document atomic read-modify-write:
    ``save`` compares the batch's ``version`` against the stored one and
    rejects stale writes. No cross-document transactions are assumed.
    """

    @abstractmethod
    async def get_by_production_id(self, production_id: str) -> InspectionBatch:
        """Load the batch of a production.

        Args:
            production_id: Production key (1:1 with a batch).

        Returns:
            The stored InspectionBatch, detached from the store.

        Raises:
            BatchNotFound: If no batch exists for the production.
        """

    @abstractmethod
    async def save(self, batch: InspectionBatch) -> InspectionBatch:
        """Persist a batch, creating it if absent.

        Args:
            batch: Batch whose ``version`` is the version it was loaded at
                (0 for a new batch).

        Returns:
            The stored batch with its new version.

        Raises:
            ConcurrentModificationError: If the stored version differs.
        """


class ModelVariationLookupPort(ABC):
    """Port for resolving a model ID to its display model number.

    Failures are tolerated by the core and treated as "no model number".
    """

    @abstractmethod
    async def get_model_number(self, model_id: str) -> str | None:
        """Return the model number for a model ID, or None if unknown.

        Raises:
            Exception: If the catalog is unreachable.
        """


class ProductSyncPort(ABC):
    """Port for writing inspection results into the per-unit product store.

    This core never creates or deletes products; it only updates the
    denormalized ``inspection_result`` field. Writes must be idempotent.
    """

    @abstractmethod
    async def update_inspection_result(
        self, product_id: str, result: InspectionResult
    ) -> None:
        """Overwrite the inspection result of one product.

        Raises:
            Exception: If the product store rejects the write.
        """


class PassedProductListerPort(ABC):
    """Port for listing the passed units of a production (read-only)."""

    @abstractmethod
    async def list_passed_product_ids(self, production_id: str) -> list[str]:
        """Return passed product IDs of the production's batch, in batch order.

        An empty list is a valid answer (nothing passed yet).

        Raises:
            BatchNotFound: If the production has no batch yet.
        """


class RequestedFlagStorePort(ABC):
    """Port for the per-batch ``requested`` flag.

    The flag marks a batch whose passed units were claimed by a mint
    request. Setting it must be an atomic check-then-set.
    """

    @abstractmethod
    async def set_requested(
        self, production_id: str, requested: bool
    ) -> InspectionBatch:
        """Set the flag and return the updated batch.

        Raises:
            BatchNotFound: If the production has no batch.
            BatchAlreadyRequested: If ``requested`` is True and the batch
                is already requested.
        """


class MintStorePort(ABC):
    """Port for persisting mints."""

    @abstractmethod
    async def create(self, mint: Mint) -> Mint:
        """Persist a new mint, assigning an ID when ``mint.id`` is empty.

        Returns:
            The stored mint with its ID.
        """

    @abstractmethod
    async def get_by_id(self, mint_id: str) -> Mint | None:
        """Retrieve a mint by ID, or None if not found."""

    @abstractmethod
    async def get_by_inspection_id(self, inspection_id: str) -> Mint | None:
        """Retrieve the mint created for a production, or None."""

    @abstractmethod
    async def update(self, mint: Mint) -> Mint:
        """Overwrite an existing mint.

        Raises:
            MintNotFound: If the mint does not exist.
        """


# ============================================================================
# DRIVING PORTS (Adapters/external systems call into core)
# ============================================================================


class InspectionPort(ABC):
    """Port for inspection batch operations.

    Driving port: the CLI (or an HTTP layer) invokes these methods.
    Implementations live in the core (inspection_service.py).
    """

    @abstractmethod
    async def get_batch(self, production_id: str) -> InspectionBatch:
        """Return the batch of a production with model numbers filled in."""

    @abstractmethod
    async def update_item(
        self, production_id: str, product_id: str, patch: ItemPatch
    ) -> InspectionBatch:
        """Apply a partial update to one item and sync its product."""

    @abstractmethod
    async def complete_batch(
        self, production_id: str, by: str, at: datetime
    ) -> InspectionBatch:
        """Complete inspection of a batch and sync every affected product."""

    @abstractmethod
    async def resync_products(self, production_id: str) -> InspectionBatch:
        """Push every item's result to the product store again."""


class MintRequestPort(ABC):
    """Port for mint eligibility and mint lifecycle operations.

    Implementations live in the core (mint_service.py).
    """

    @abstractmethod
    async def list_candidates(self, scope: CompanyScope) -> MintCandidates:
        """Gather passed products across a company scope."""

    @abstractmethod
    async def list_batches(self, scope: CompanyScope) -> list[InspectionBatch]:
        """Return the enriched batches of the productions in scope."""

    @abstractmethod
    async def list_mints(self, production_ids: Iterable[str]) -> dict[str, Mint]:
        """Return the latest mint per production ID."""

    @abstractmethod
    async def request_mint(
        self,
        scope: CompanyScope,
        production_id: str,
        token_blueprint_id: str,
        brand_id: str,
        created_by: str,
        created_at: datetime,
        scheduled_burn_date: datetime | None = None,
    ) -> MintRequestResult:
        """Create a mint for a production's passed units and claim the batch."""

    @abstractmethod
    async def mark_minted(self, mint_id: str, at: datetime) -> Mint:
        """Record that the mint was executed."""

    @abstractmethod
    async def reset_minted(self, mint_id: str) -> Mint:
        """Return a mint to unminted."""

    @abstractmethod
    async def get_mint_for_production(self, production_id: str) -> Mint:
        """Return the mint created for a production."""
