"""Core domain logic for the mintgate traceability system.

This package contains zero external dependencies and represents
the pure business logic of the application. All adapters and
external integrations are handled by the adapters package.
"""

from .models import (
    CompanyScope,
    InspectionBatch,
    InspectionItem,
    InspectionResult,
    InspectionStatus,
    ItemPatch,
    Mint,
    MintCandidates,
    MintRequestResult,
    Provided,
)

__all__ = [
    "CompanyScope",
    "InspectionBatch",
    "InspectionItem",
    "InspectionResult",
    "InspectionStatus",
    "ItemPatch",
    "Mint",
    "MintCandidates",
    "MintRequestResult",
    "Provided",
]
