"""Mint request service: implements MintRequestPort.

Turns the passed units of a production into a Mint and claims the
production's batch with the ``requested`` flag.

Mint creation and the flag write are two separate documents with no
transaction around them. They are treated as a compensating-action
pair: the Mint is created first and is authoritative; if the flag write
fails afterwards, the failure is logged and reported in the result for
an external reconciliation job, never rolled back. A request that loses
the race for the flag raises DuplicateMintRequest naming its orphaned
Mint.
"""

import logging
from collections.abc import Iterable
from datetime import datetime

from .eligibility import MintEligibilityCollector
from .errors import (
    BatchAlreadyRequested,
    BatchNotFound,
    DuplicateMintRequest,
    InvalidProductionID,
    MintConsistencyError,
    MintNotFound,
    MissingCompanyScope,
    ProductionOutOfScope,
)
from .model_number import ModelNumberResolver
from .models import (
    CompanyScope,
    InspectionBatch,
    Mint,
    MintCandidates,
    MintRequestResult,
    normalize_ids,
)
from .ports import (
    BatchStorePort,
    MintRequestPort,
    MintStorePort,
    ModelVariationLookupPort,
    RequestedFlagStorePort,
)

logger = logging.getLogger(__name__)


class MintRequestService(MintRequestPort):
    """Core implementation of MintRequestPort."""

    def __init__(
        self,
        batch_store: BatchStorePort,
        collector: MintEligibilityCollector,
        mint_store: MintStorePort,
        requested_flags: RequestedFlagStorePort,
        model_lookup: ModelVariationLookupPort | None = None,
    ):
        """Initialize the mint request service.

        Args:
            batch_store: BatchStorePort used to check the requested flag.
            collector: MintEligibilityCollector for passed product IDs.
            mint_store: MintStorePort implementation for persistence.
            requested_flags: RequestedFlagStorePort to claim batches.
            model_lookup: Optional lookup used to enrich listed batches.
        """
        self.batch_store = batch_store
        self.collector = collector
        self.mint_store = mint_store
        self.requested_flags = requested_flags
        self.model_lookup = model_lookup

    async def list_candidates(self, scope: CompanyScope) -> MintCandidates:
        """Gather passed product IDs across a company scope."""
        return await self.collector.collect(scope)

    async def list_batches(self, scope: CompanyScope) -> list[InspectionBatch]:
        """Return the enriched batches of every production in scope.

        Productions without a batch are skipped. Batches come back in
        scope order, one per production.

        Raises:
            MissingCompanyScope: If the scope has no company ID.
        """
        if scope is None or not scope.company_id:
            raise MissingCompanyScope()

        resolver = ModelNumberResolver(self.model_lookup)
        batches: list[InspectionBatch] = []
        skipped: list[str] = []
        for pid in scope.production_ids:
            try:
                batch = await self.batch_store.get_by_production_id(pid)
            except BatchNotFound:
                skipped.append(pid)
                continue
            batches.append(await resolver.enrich(batch))

        logger.debug(
            f"Listed {len(batches)} batches for company {scope.company_id}",
            extra={
                "company_id": scope.company_id,
                "batches": len(batches),
                "skipped_production_ids": skipped,
            },
        )
        return batches

    async def list_mints(self, production_ids: Iterable[str]) -> dict[str, Mint]:
        """Return the latest mint of each production, keyed by production ID.

        IDs are trimmed and de-duplicated; productions without a mint are
        left out. A stored mint that fails its own invariant is logged and
        skipped rather than failing the whole listing.
        """
        mints: dict[str, Mint] = {}
        for pid in normalize_ids(production_ids or ()):
            try:
                mint = await self.mint_store.get_by_inspection_id(pid)
            except MintConsistencyError as e:
                logger.warning(
                    f"Skipping inconsistent mint for production {pid}: {e}",
                    extra={"production_id": pid},
                )
                continue
            if mint is not None:
                mints[pid] = mint
        return mints

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
        """Create a Mint for a production's passed units and claim its batch.

        Args:
            scope: Company scope the production must belong to.
            production_id: Production whose passed units are minted.
            token_blueprint_id: Token blueprint to mint under.
            brand_id: Brand the token blueprint belongs to.
            created_by: Member requesting the mint.
            created_at: Request time.
            scheduled_burn_date: Optional, stored as given.

        Returns:
            MintRequestResult with the stored Mint. ``requested_flag_set``
            is False if the batch could not be flagged afterwards.

        Raises:
            InvalidProductionID: If production_id is blank.
            MissingCompanyScope: If the scope has no company ID.
            ProductionOutOfScope: If the production is not in scope.
            BatchNotFound: If the production has no batch.
            BatchAlreadyRequested: If the batch was already claimed.
            DuplicateMintRequest: If a concurrent request claimed the batch
                after this Mint was written. Carries the orphaned mint ID.
            ValidationError: From Mint construction (e.g. InvalidProducts
                when nothing passed).
        """
        pid = (production_id or "").strip()
        if not pid:
            raise InvalidProductionID(production_id)
        if scope is None or not scope.company_id:
            raise MissingCompanyScope()
        if not scope.contains(pid):
            raise ProductionOutOfScope(pid, scope.company_id)

        batch = await self.batch_store.get_by_production_id(pid)
        if batch.requested:
            raise BatchAlreadyRequested(pid)

        candidates = await self.collector.collect(
            CompanyScope(company_id=scope.company_id, production_ids=(pid,))
        )
        candidates.raise_for_missing()

        mint = Mint(
            brand_id=brand_id,
            token_blueprint_id=token_blueprint_id,
            products=candidates.by_production.get(pid, ()),
            created_by=created_by,
            created_at=created_at,
            inspection_id=pid,
            scheduled_burn_date=scheduled_burn_date,
        )
        created = await self.mint_store.create(mint)

        logger.info(
            f"Mint {created.id} requested for production {pid}",
            extra={
                "mint_id": created.id,
                "production_id": pid,
                "company_id": scope.company_id,
                "products": len(created.products),
                "created_by": created.created_by,
            },
        )

        try:
            await self.requested_flags.set_requested(pid, True)
        except BatchAlreadyRequested as e:
            # Another request claimed the batch between the check and the write.
            logger.error(
                f"Mint {created.id} created but batch {pid} was claimed by a "
                f"concurrent request; mint is orphaned",
                extra={"mint_id": created.id, "production_id": pid},
            )
            raise DuplicateMintRequest(pid, created.id) from e
        except Exception as e:
            # The mint stays authoritative; reconciliation fixes the flag.
            logger.error(
                f"Mint {created.id} created but batch {pid} could not be flagged "
                f"as requested: {e}",
                extra={"mint_id": created.id, "production_id": pid},
                exc_info=True,
            )
            return MintRequestResult(mint=created, requested_flag_set=False)

        return MintRequestResult(mint=created, requested_flag_set=True)

    async def _get_mint(self, mint_id: str) -> Mint:
        mint_id = (mint_id or "").strip()
        mint = await self.mint_store.get_by_id(mint_id) if mint_id else None
        if mint is None:
            raise MintNotFound(mint_id)
        return mint

    async def mark_minted(self, mint_id: str, at: datetime) -> Mint:
        """Record that the mint was executed on chain.

        An already minted Mint is returned as is, so a repeated call
        never overwrites the original mint time.

        Raises:
            MintNotFound: If the mint does not exist.
            InvalidMintedAt: If ``at`` is zero.
        """
        mint = await self._get_mint(mint_id)
        if mint.minted:
            logger.info(
                f"Mint {mint.id} already minted, skipping",
                extra={"mint_id": mint.id, "minted_at": mint.minted_at},
            )
            return mint

        mint.mark_minted(at)
        updated = await self.mint_store.update(mint)

        logger.info(
            f"Mint {updated.id} marked minted",
            extra={"mint_id": updated.id, "minted_at": updated.minted_at},
        )
        return updated

    async def reset_minted(self, mint_id: str) -> Mint:
        """Return a mint to unminted so it can be minted again.

        Raises:
            MintNotFound: If the mint does not exist.
        """
        mint = await self._get_mint(mint_id)
        mint.reset_minted()
        updated = await self.mint_store.update(mint)

        logger.info(
            f"Mint {updated.id} reset to unminted",
            extra={"mint_id": updated.id},
        )
        return updated

    async def get_mint_for_production(self, production_id: str) -> Mint:
        """Return the mint created for a production.

        Raises:
            InvalidProductionID: If production_id is blank.
            MintNotFound: If no mint references the production.
        """
        pid = (production_id or "").strip()
        if not pid:
            raise InvalidProductionID(production_id)
        mint = await self.mint_store.get_by_inspection_id(pid)
        if mint is None:
            raise MintNotFound(pid)
        return mint
