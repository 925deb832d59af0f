"""Mint eligibility collection.

Gathers passed unit IDs across the productions of one company to build
the candidate set for a mint request.
"""

import logging

from .errors import BatchNotFound, MissingCompanyScope
from .models import CompanyScope, MintCandidates, normalize_ids
from .ports import PassedProductListerPort

logger = logging.getLogger(__name__)


class MintEligibilityCollector:
    """Unions passed product IDs over a company-scoped set of productions.

    Scoping is a security invariant: the collector only ever lists the
    productions named by a CompanyScope, and refuses to run without a
    company ID. It never performs an unscoped listing.
    """

    def __init__(self, lister: PassedProductListerPort):
        self.lister = lister

    async def collect(self, scope: CompanyScope) -> MintCandidates:
        """Collect passed product IDs for every production in scope.

        Productions without a batch are not an error here: they are
        reported in ``missing_production_ids`` so the caller can skip or
        propagate them (see MintCandidates.raise_for_missing).

        Raises:
            MissingCompanyScope: If the scope carries no company ID.
        """
        if scope is None or not scope.company_id:
            raise MissingCompanyScope()

        by_production: dict[str, tuple[str, ...]] = {}
        missing: list[str] = []
        union: list[str] = []

        for production_id in scope.production_ids:
            try:
                passed = await self.lister.list_passed_product_ids(production_id)
            except BatchNotFound:
                missing.append(production_id)
                continue
            ids = normalize_ids(passed)
            by_production[production_id] = ids
            union.extend(ids)

        candidates = MintCandidates(
            company_id=scope.company_id,
            product_ids=normalize_ids(union),
            by_production=by_production,
            missing_production_ids=tuple(missing),
        )

        logger.debug(
            f"Collected {len(candidates.product_ids)} mint candidates "
            f"for company {scope.company_id}",
            extra={
                "company_id": scope.company_id,
                "productions": len(scope.production_ids),
                "missing": len(missing),
            },
        )
        return candidates
