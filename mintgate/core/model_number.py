"""Per-call model number resolution.

A batch typically holds many units of few models, so lookups are
memoized by model ID. The cache lives on the resolver instance, and
services create one resolver per call: model catalogs may change
between calls.
"""

import copy
import logging

from .models import InspectionBatch
from .ports import ModelVariationLookupPort

logger = logging.getLogger(__name__)


class ModelNumberResolver:
    """Memoized model ID -> model number lookup scoped to one call.

    Lookup failures are non-fatal: the model number is treated as absent
    and processing continues.
    """

    def __init__(self, lookup: ModelVariationLookupPort | None):
        self.lookup = lookup
        self._cache: dict[str, str | None] = {}

    async def resolve(self, model_id: str) -> str | None:
        """Return the model number for ``model_id``, or None."""
        model_id = (model_id or "").strip()
        if not model_id or self.lookup is None:
            return None
        if model_id in self._cache:
            return self._cache[model_id]

        model_number: str | None = None
        try:
            value = await self.lookup.get_model_number(model_id)
            if value and value.strip():
                model_number = value.strip()
        except Exception as e:
            logger.warning(
                f"Model number lookup failed for model {model_id}: {e}",
                extra={"model_id": model_id},
            )

        self._cache[model_id] = model_number
        return model_number

    async def enrich(self, batch: InspectionBatch) -> InspectionBatch:
        """Return a copy of ``batch`` with missing model numbers filled in.

        The input batch is not modified, so enrichment never leaks into
        a persisted aggregate.
        """
        enriched = copy.deepcopy(batch)
        for item in enriched.inspections:
            if item.model_number:
                continue
            item.model_number = await self.resolve(item.model_id)
        return enriched
