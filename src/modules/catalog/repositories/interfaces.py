"""Product repository interface.

The order service reserves and releases stock and freezes products into
snapshots exclusively through this contract.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Dict, Iterable, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.catalog.models import Product, ProductSnapshot


class IProductRepository(IRepository["Product"]):
    """Repository contract for products and their snapshots."""

    @abstractmethod
    def lock_for_sale(self, product_ids: Iterable[UUID]) -> Dict[UUID, Product]:
        """Lock product rows (``SELECT FOR UPDATE``) in primary-key order."""

    @abstractmethod
    def adjust_stock(self, product: Product, delta: int) -> Product:
        """Add ``delta`` (negative to reserve) to a locked product's stock."""

    @abstractmethod
    def release_stock(self, product_id: Optional[UUID], quantity: int) -> bool:
        """Return ``quantity`` units to stock; ``False`` if the product is gone."""

    @abstractmethod
    def snapshot(self, product: Product) -> ProductSnapshot:
        """Return the immutable snapshot for the product's current state."""
