"""
Catalog service: list and single-property reads.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import structlog

from catalog.exceptions import PropertyNotFoundError
from catalog.filters import FilterSet, SortMode, encode_cursor
from catalog.projector import ResultProjector
from catalog.query import QueryComposer
from catalog.store import PropertyStore

logger = structlog.get_logger(__name__)


@dataclass
class PageResult:
    """One page of projected properties."""

    data: List[Dict[str, Any]] = field(default_factory=list)
    next_cursor: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"data": self.data, "next_cursor": self.next_cursor}


class CatalogService:
    """Runs catalog reads against a PropertyStore."""

    def __init__(self, store: PropertyStore, composer: Optional[QueryComposer] = None):
        """
        Initialize the service.

        Args:
            store: Property store handle shared across requests
            composer: Query composer, defaults to a fresh QueryComposer
        """
        self.store = store
        self.composer = composer or QueryComposer()

    async def list_properties(self, filters: FilterSet) -> PageResult:
        """
        Fetch one page of active properties.

        Over-fetches by one row: next_cursor is set only when the store
        returned more than filters.limit rows, and encodes the id of the
        last row kept on this page.

        Args:
            filters: Normalized filters

        Returns:
            PageResult with at most filters.limit properties
        """
        spec = self.composer.compose(filters)
        rows = await self.store.fetch(spec)

        has_more = len(rows) > filters.limit
        page = rows[:filters.limit]

        next_cursor = None
        if has_more:
            seed = spec.sort.seed if spec.sort.mode == SortMode.RANDOM else None
            next_cursor = encode_cursor(page[-1].id, seed)

        projector = ResultProjector(filters.address_masking, filters.mask_precision)
        result = PageResult(data=[projector.project(row) for row in page], next_cursor=next_cursor)

        logger.info(
            "Listed properties",
            returned=len(result.data),
            has_more=has_more,
            sort=spec.sort.mode.value,
        )
        return result

    async def get_property(
        self,
        property_id: str,
        address_masking: bool = False,
        mask_precision: int = 2,
    ) -> Dict[str, Any]:
        """
        Fetch a single active property.

        Raises:
            PropertyNotFoundError: If no active property has this id
        """
        record = await self.store.get(property_id)
        if record is None:
            raise PropertyNotFoundError("Property not found")
        return ResultProjector(address_masking, mask_precision).project(record)
