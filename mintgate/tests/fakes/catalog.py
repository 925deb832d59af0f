"""Fake ModelVariationLookupPort implementation for testing."""

from mintgate.core.ports import ModelVariationLookupPort


class FakeModelCatalog(ModelVariationLookupPort):
    """In-memory model catalog that counts lookups."""

    def __init__(self, model_numbers: dict[str, str] | None = None):
        self.model_numbers: dict[str, str] = dict(model_numbers or {})
        self.lookup_calls: list[str] = []
        self.failing_ids: set[str] = set()

    async def get_model_number(self, model_id: str) -> str | None:
        self.lookup_calls.append(model_id)
        if model_id in self.failing_ids:
            raise ConnectionError(f"catalog unavailable for {model_id}")
        return self.model_numbers.get(model_id)

    def reset(self) -> None:
        self.lookup_calls.clear()
        self.failing_ids.clear()
