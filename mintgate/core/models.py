"""Domain models for the mintgate core.

All models in this module use only Python standard library types,
ensuring zero external dependencies in the core domain.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Generic, TypeVar

from .errors import (
    BatchNotFound,
    InvalidBrandID,
    InvalidCreatedAt,
    InvalidCreatedBy,
    InvalidInspectedBy,
    InvalidInspectionResult,
    InvalidInspectionStatus,
    InvalidMintedAt,
    InvalidProductIDs,
    InvalidProductionID,
    InvalidProducts,
    InvalidTimestamp,
    InvalidTokenBlueprintID,
    MintConsistencyError,
)

T = TypeVar("T")


# ============================================================================
# Helpers
# ============================================================================


def is_zero_time(value: datetime | None) -> bool:
    """Return True for a missing timestamp or one equal to ``datetime.min``."""
    if value is None:
        return True
    return value.replace(tzinfo=None) == datetime.min


def to_utc(
    value: datetime, error: type[InvalidTimestamp] = InvalidTimestamp
) -> datetime:
    """Normalize a datetime to UTC. Naive values are taken as UTC.

    Raises:
        error: If the UTC equivalent falls outside the datetime range.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    try:
        return value.astimezone(timezone.utc)
    except OverflowError as e:
        raise error() from e


def coerce_timestamp(
    value: object, error: type[InvalidTimestamp] = InvalidTimestamp
) -> datetime | None:
    """Accept a datetime, an ISO 8601 string (``Z`` allowed) or None."""
    if value is None or isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise error()
    text = value.strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError as e:
        raise error() from e


def normalize_ids(raw: Iterable[str]) -> tuple[str, ...]:
    """Trim IDs, drop blanks and duplicates. First occurrence wins."""
    seen: set[str] = set()
    out: list[str] = []
    for value in raw:
        value = (value or "").strip()
        if not value or value in seen:
            continue
        seen.add(value)
        out.append(value)
    return tuple(out)


@dataclass(frozen=True)
class Provided(Generic[T]):
    """A field value that the caller explicitly supplied.

    Used in partial updates: a field typed ``Provided[X] | None`` is left
    unchanged when None and set to ``.value`` otherwise.
    """

    value: T


# ============================================================================
# Inspection
# ============================================================================


class InspectionResult(Enum):
    """Terminal per-unit inspection outcomes.

    An item without a result (None) has not been inspected yet.
    """

    PASSED = "passed"
    FAILED = "failed"
    NOT_MANUFACTURED = "notManufactured"

    @classmethod
    def parse(cls, value: "InspectionResult | str") -> "InspectionResult":
        """Coerce a wire value into a result, raising InvalidInspectionResult."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip())
            except ValueError:
                pass
        raise InvalidInspectionResult(value)


class InspectionStatus(Enum):
    """Batch-level status. Only ever moves PENDING -> COMPLETED."""

    PENDING = "pending"
    COMPLETED = "completed"

    @classmethod
    def parse(cls, value: "InspectionStatus | str") -> "InspectionStatus":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip())
            except ValueError:
                pass
        raise InvalidInspectionStatus(f"inspection: invalid status {value!r}")


@dataclass
class InspectionItem:
    """Inspection state of a single physical unit within a batch."""

    product_id: str
    model_id: str = ""
    model_number: str | None = None  # display enrichment, not authoritative
    inspection_result: InspectionResult | None = None
    inspected_by: str | None = None
    inspected_at: datetime | None = None

    @property
    def is_passed(self) -> bool:
        return self.inspection_result is InspectionResult.PASSED


@dataclass
class ItemPatch:
    """Partial update of one inspection item (and optionally the batch status).

    Each field is None when not provided. Values are validated when the
    patch is applied, not when it is built: ``result`` and ``status`` may be
    wire strings, ``inspected_at`` may be an ISO 8601 string.
    """

    result: Provided[InspectionResult | str] | None = None
    inspected_by: Provided[str] | None = None
    inspected_at: Provided[datetime | str | None] | None = None
    status: Provided[InspectionStatus | str] | None = None


@dataclass
class InspectionBatch:
    """Per-unit inspection results for one production run.

    Invariants:
        - production_id is non-blank
        - product IDs are non-blank and unique within the batch
        - total_passed equals the number of PASSED items after every
          mutating operation (recomputed, never incremented)
        - status only moves PENDING -> COMPLETED

    ``version`` is the optimistic-concurrency token maintained by stores.
    """

    production_id: str
    inspections: list[InspectionItem] = field(default_factory=list)
    status: InspectionStatus = InspectionStatus.PENDING
    total_passed: int = 0
    requested: bool = False
    version: int = 0

    def __post_init__(self) -> None:
        """Validate batch invariants on creation or deserialization."""
        if not self.production_id or not self.production_id.strip():
            raise InvalidProductionID(self.production_id)
        seen: set[str] = set()
        for item in self.inspections:
            if not item.product_id or not item.product_id.strip():
                raise InvalidProductIDs("inspection: blank productId in batch")
            if item.product_id in seen:
                raise InvalidProductIDs(
                    f"inspection: duplicate productId {item.product_id!r} in batch"
                )
            seen.add(item.product_id)
        self.recompute_total_passed()

    @classmethod
    def new(
        cls,
        production_id: str,
        product_ids: Iterable[str],
        model_ids: Mapping[str, str] | None = None,
    ) -> "InspectionBatch":
        """Create a pending batch with one uninspected item per product ID."""
        production_id = (production_id or "").strip()
        if not production_id:
            raise InvalidProductionID(production_id)
        ids = normalize_ids(product_ids)
        if not ids:
            raise InvalidProductIDs("inspection: no productIds")
        model_ids = model_ids or {}
        return cls(
            production_id=production_id,
            inspections=[
                InspectionItem(product_id=pid, model_id=model_ids.get(pid, ""))
                for pid in ids
            ],
        )

    @property
    def quantity(self) -> int:
        return len(self.inspections)

    def recompute_total_passed(self) -> int:
        """Recount PASSED items. Call after any item mutation."""
        self.total_passed = sum(1 for item in self.inspections if item.is_passed)
        return self.total_passed

    def find_item(self, product_id: str) -> InspectionItem | None:
        """Linear scan by product ID. A batch is one bounded production run."""
        for item in self.inspections:
            if item.product_id == product_id:
                return item
        return None

    def passed_product_ids(self) -> list[str]:
        """Product IDs of PASSED items, in batch order."""
        return list(
            normalize_ids(item.product_id for item in self.inspections if item.is_passed)
        )

    def apply_status(self, status: InspectionStatus) -> None:
        """Set the batch status, rejecting a reopen of a completed batch."""
        if self.status is InspectionStatus.COMPLETED and status is not InspectionStatus.COMPLETED:
            raise InvalidInspectionStatus(
                f"inspection: cannot move batch {self.production_id!r} "
                f"from {self.status.value} to {status.value}"
            )
        self.status = status

    def complete(self, by: str, at: datetime | None) -> None:
        """Finish inspection of the batch.

        Every item without a result becomes NOT_MANUFACTURED, stamped with
        ``by`` and ``at``. Items that already carry a result are untouched.
        Does not touch ``requested`` or the product store.

        Raises:
            InvalidInspectedBy: If ``by`` is blank.
            InvalidTimestamp: If ``at`` is zero.
        """
        inspector = (by or "").strip()
        if not inspector:
            raise InvalidInspectedBy()
        if is_zero_time(at):
            raise InvalidTimestamp("inspection: invalid completion time")
        at_utc = to_utc(at, InvalidTimestamp)

        for item in self.inspections:
            if item.inspection_result is None:
                item.inspection_result = InspectionResult.NOT_MANUFACTURED
                item.inspected_by = inspector
                item.inspected_at = at_utc

        self.status = InspectionStatus.COMPLETED
        self.recompute_total_passed()


# ============================================================================
# Mint
# ============================================================================


@dataclass
class Mint:
    """An authorization record asking for passed units to be tokenized.

    Constructing a Mint validates it; ``products`` is cleaned in place
    (trimmed, blanks dropped, de-duplicated with order preserved).

    Lifecycle:
        - created unminted (minted=False, minted_at=None)
        - mark_minted(at): unminted or minted -> minted
        - reset_minted(): any -> unminted (re-mint support)

    Invariant: minted is True iff minted_at is present and non-zero.
    """

    brand_id: str
    token_blueprint_id: str
    products: tuple[str, ...]
    created_by: str
    created_at: datetime
    inspection_id: str = ""  # productionId whose batch supplied the products
    id: str = ""  # assigned by the store when empty
    minted: bool = False
    minted_at: datetime | None = None
    scheduled_burn_date: datetime | None = None

    def __post_init__(self) -> None:
        """Validate in order: brand, token blueprint, products, creator, time."""
        self.brand_id = (self.brand_id or "").strip()
        if not self.brand_id:
            raise InvalidBrandID()
        self.token_blueprint_id = (self.token_blueprint_id or "").strip()
        if not self.token_blueprint_id:
            raise InvalidTokenBlueprintID()
        self.products = normalize_ids(self.products or ())
        if not self.products:
            raise InvalidProducts()
        self.created_by = (self.created_by or "").strip()
        if not self.created_by:
            raise InvalidCreatedBy()
        if is_zero_time(self.created_at):
            raise InvalidCreatedAt()
        self.created_at = to_utc(self.created_at, InvalidCreatedAt)
        self.inspection_id = (self.inspection_id or "").strip()
        if self.minted_at is not None and not is_zero_time(self.minted_at):
            self.minted_at = to_utc(self.minted_at, InvalidMintedAt)
        self.validate()

    def validate(self) -> None:
        """Check the minted/minted_at invariant."""
        if self.minted and is_zero_time(self.minted_at):
            raise MintConsistencyError("mint: minted without mintedAt")
        if not self.minted and self.minted_at is not None:
            raise MintConsistencyError("mint: mintedAt set on unminted mint")

    def mark_minted(self, at: datetime | None) -> None:
        """Record the mint as executed at ``at``.

        Raises:
            InvalidMintedAt: If ``at`` is zero or out of range. The mint is
                left unchanged.
        """
        if is_zero_time(at):
            raise InvalidMintedAt()
        minted_at = to_utc(at, InvalidMintedAt)
        self.minted = True
        self.minted_at = minted_at
        self.validate()

    def reset_minted(self) -> None:
        """Return the mint to unminted, e.g. before a re-mint."""
        self.minted = False
        self.minted_at = None


# ============================================================================
# Eligibility
# ============================================================================


@dataclass(frozen=True)
class CompanyScope:
    """Production IDs resolved from one company's product blueprints.

    Built by an external resolver; the collector never lists anything
    outside of it.
    """

    company_id: str
    production_ids: tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "company_id", (self.company_id or "").strip())
        object.__setattr__(self, "production_ids", normalize_ids(self.production_ids))

    def contains(self, production_id: str) -> bool:
        return production_id.strip() in self.production_ids


@dataclass(frozen=True)
class MintCandidates:
    """Passed product IDs gathered across a company scope."""

    company_id: str
    product_ids: tuple[str, ...]
    by_production: Mapping[str, tuple[str, ...]]  # production_id -> passed IDs
    missing_production_ids: tuple[str, ...] = ()  # productions without a batch

    def __post_init__(self) -> None:
        """Convert mutable dict to read-only proxy."""
        if isinstance(self.by_production, dict):
            object.__setattr__(
                self, "by_production", MappingProxyType(self.by_production)
            )

    def raise_for_missing(self) -> None:
        """Propagate the first missing production as BatchNotFound."""
        if self.missing_production_ids:
            raise BatchNotFound(self.missing_production_ids[0])


@dataclass(frozen=True)
class MintRequestResult:
    """Outcome of a mint request.

    ``requested_flag_set`` is False when the Mint was created but the
    batch could not be flagged; the Mint stays authoritative and the
    flag must be reconciled.
    """

    mint: Mint
    requested_flag_set: bool
