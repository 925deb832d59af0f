"""Fake ProductSyncPort implementation for testing."""

from mintgate.core.models import InspectionResult
from mintgate.core.ports import ProductSyncPort


class FakeProductSync(ProductSyncPort):
    """In-memory product store for testing.

    Records every sync call in order. Can be told to fail on specific
    product IDs, or on every call.
    """

    def __init__(self):
        """Initialize with empty product results."""
        self.results: dict[str, InspectionResult] = {}
        self.calls: list[tuple[str, InspectionResult]] = []
        self.should_fail: bool = False
        self.fail_on: set[str] = set()
        self.fail_message: str = "Product write failed"

    async def update_inspection_result(
        self, product_id: str, result: InspectionResult
    ) -> None:
        self.calls.append((product_id, result))
        if self.should_fail or product_id in self.fail_on:
            raise RuntimeError(self.fail_message)
        self.results[product_id] = result

    @property
    def synced_ids(self) -> list[str]:
        return [product_id for product_id, _ in self.calls]

    def set_should_fail(self, should_fail: bool, message: str = "Product write failed") -> None:
        """Configure every subsequent write to fail."""
        self.should_fail = should_fail
        self.fail_message = message

    def reset(self) -> None:
        """Reset recorded calls and failure configuration."""
        self.results.clear()
        self.calls.clear()
        self.should_fail = False
        self.fail_on.clear()
