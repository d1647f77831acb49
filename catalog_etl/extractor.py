"""Turn raw search-page items into validated product models."""
from __future__ import annotations

import logging
from typing import Any, Type
from uuid import UUID

from pydantic import ValidationError

from .models import ExtractionResult, P, TaggedProduct

LOGGER = logging.getLogger(__name__)


def extract_products(
    raw_items: Any,
    model: Type[P],
    snapshot_id: UUID,
    item_key: str,
) -> ExtractionResult[P]:
    """Validate each ``item[item_key]`` against ``model``.

    Items that fail validation are dropped one by one and counted; the rest
    of the page is kept. Anything other than a list yields no items.
    """
    result: ExtractionResult[P] = ExtractionResult()
    if not isinstance(raw_items, list):
        return result

    for item in raw_items:
        payload = item.get(item_key) if isinstance(item, dict) else None
        try:
            product = model.model_validate(payload)
        except ValidationError as exc:
            result.dropped += 1
            LOGGER.debug("Dropping malformed %s item: %s", model.__name__, exc)
            continue
        result.products.append(TaggedProduct(product=product, snapshot_id=snapshot_id))

    if result.dropped:
        LOGGER.warning(
            "Dropped %d of %d %s items from snapshot %s",
            result.dropped,
            len(raw_items),
            model.__name__,
            snapshot_id,
        )
    return result
