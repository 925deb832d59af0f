"""Error hierarchy for the mintgate core.

Every error raised by the core derives from MintgateError and falls into
one of five kinds:

- ValidationError: bad enum value or blank/zero required field. Caller
  correctable, never retried automatically.
- NotFoundError: nothing to operate on (no batch, no item, no mint).
- ConflictError: a concurrent writer got there first (stale version,
  batch already claimed by a mint request).
- ConsistencyError: an aggregate was found in a state its own mutators
  can never produce.
- SyncError: the denormalized product store rejected a write after the
  batch had already been persisted.
"""

from collections.abc import Sequence


class MintgateError(Exception):
    """Base class for all core errors."""


# ============================================================================
# Error kinds
# ============================================================================


class ValidationError(MintgateError, ValueError):
    """Input failed validation. The aggregate was not mutated."""


class NotFoundError(MintgateError, LookupError):
    """The addressed entity does not exist."""


class ConflictError(MintgateError):
    """A concurrent write invalidated this operation."""


class ConsistencyError(MintgateError):
    """An aggregate invariant does not hold."""


class SyncError(MintgateError):
    """A write to a denormalized store failed after the primary write."""


# ============================================================================
# Inspection errors
# ============================================================================


class InvalidProductionID(ValidationError):
    def __init__(self, production_id: str | None = None):
        super().__init__(f"inspection: invalid productionId {production_id!r}")
        self.production_id = production_id


class InvalidProductIDs(NotFoundError, ValidationError):
    """Product ID is blank, duplicated, or not part of the batch."""

    def __init__(self, message: str = "inspection: invalid productIds"):
        super().__init__(message)


class InvalidInspectionResult(ValidationError):
    def __init__(self, value: object = None):
        super().__init__(f"inspection: invalid inspectionResult {value!r}")
        self.value = value


class InvalidInspectionStatus(ValidationError):
    def __init__(self, message: str = "inspection: invalid status"):
        super().__init__(message)


class InvalidInspectedBy(ValidationError):
    def __init__(self, message: str = "inspection: invalid inspectedBy"):
        super().__init__(message)


class InvalidTimestamp(ValidationError):
    """A required timestamp was missing or zero."""

    def __init__(self, message: str = "invalid timestamp"):
        super().__init__(message)


class InvalidInspectedAt(InvalidTimestamp):
    def __init__(self, message: str = "inspection: invalid inspectedAt"):
        super().__init__(message)


class BatchNotFound(NotFoundError):
    def __init__(self, production_id: str):
        super().__init__(f"inspection: not found for productionId {production_id!r}")
        self.production_id = production_id


class ConcurrentModificationError(ConflictError):
    """The stored batch version moved on since it was loaded."""

    def __init__(self, production_id: str, expected_version: int, actual_version: int):
        super().__init__(
            f"inspection: batch {production_id!r} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )
        self.production_id = production_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class BatchAlreadyRequested(ConflictError):
    def __init__(self, production_id: str):
        super().__init__(
            f"inspection: passed products of {production_id!r} are already requested"
        )
        self.production_id = production_id


class DuplicateMintRequest(BatchAlreadyRequested):
    """Another request claimed the batch after this request's Mint was written.

    ``mint_id`` names the Mint left without a claimed batch; it has to be
    reconciled (discarded or merged) by an operator.
    """

    def __init__(self, production_id: str, mint_id: str):
        ConflictError.__init__(
            self,
            f"inspection: passed products of {production_id!r} were requested "
            f"concurrently; mint {mint_id!r} is orphaned",
        )
        self.production_id = production_id
        self.mint_id = mint_id


class ProductSyncError(SyncError):
    """Pushing inspection results to the product store stopped partway.

    The batch write already succeeded. Retry the sync for ``remaining``,
    not the whole operation.
    """

    def __init__(
        self,
        production_id: str,
        product_id: str,
        synced: Sequence[str] = (),
        remaining: Sequence[str] = (),
    ):
        super().__init__(
            f"product sync failed for product {product_id!r} of production "
            f"{production_id!r} ({len(synced)} synced, {len(remaining)} remaining)"
        )
        self.production_id = production_id
        self.product_id = product_id
        self.synced = tuple(synced)
        self.remaining = tuple(remaining)


# ============================================================================
# Mint errors
# ============================================================================


class InvalidBrandID(ValidationError):
    def __init__(self, message: str = "mint: invalid brandId"):
        super().__init__(message)


class InvalidTokenBlueprintID(ValidationError):
    def __init__(self, message: str = "mint: invalid tokenBlueprintId"):
        super().__init__(message)


class InvalidProducts(ValidationError):
    def __init__(self, message: str = "mint: invalid products"):
        super().__init__(message)


class InvalidCreatedBy(ValidationError):
    def __init__(self, message: str = "mint: invalid createdBy"):
        super().__init__(message)


class InvalidCreatedAt(InvalidTimestamp):
    def __init__(self, message: str = "mint: invalid createdAt"):
        super().__init__(message)


class InvalidMintedAt(InvalidTimestamp):
    def __init__(self, message: str = "mint: invalid mintedAt"):
        super().__init__(message)


class MintConsistencyError(ConsistencyError):
    def __init__(self, message: str = "mint: minted and mintedAt disagree"):
        super().__init__(message)


class MintNotFound(NotFoundError):
    def __init__(self, key: str):
        super().__init__(f"mint: not found {key!r}")
        self.key = key


# ============================================================================
# Eligibility errors
# ============================================================================


class MissingCompanyScope(ValidationError):
    """Listing was attempted without a company-derived scope."""

    def __init__(self, message: str = "companyId not found in scope"):
        super().__init__(message)


class ProductionOutOfScope(ValidationError):
    def __init__(self, production_id: str, company_id: str):
        super().__init__(
            f"production {production_id!r} is not in scope of company {company_id!r}"
        )
        self.production_id = production_id
        self.company_id = company_id


__all__ = [
    "BatchAlreadyRequested",
    "BatchNotFound",
    "ConcurrentModificationError",
    "ConflictError",
    "ConsistencyError",
    "DuplicateMintRequest",
    "InvalidBrandID",
    "InvalidCreatedAt",
    "InvalidCreatedBy",
    "InvalidInspectedAt",
    "InvalidInspectedBy",
    "InvalidInspectionResult",
    "InvalidInspectionStatus",
    "InvalidMintedAt",
    "InvalidProductIDs",
    "InvalidProductionID",
    "InvalidProducts",
    "InvalidTimestamp",
    "InvalidTokenBlueprintID",
    "MintConsistencyError",
    "MintNotFound",
    "MintgateError",
    "MissingCompanyScope",
    "NotFoundError",
    "ProductSyncError",
    "ProductionOutOfScope",
    "SyncError",
    "ValidationError",
]
