"""Catalog exceptions.

Raised while an order reserves stock and snapshots its products.
"""

from __future__ import annotations

from modules.core.errors import InvalidState, NotFound, ValidationFailed


class ProductNotFound(NotFound):
    """A product referenced by an order item does not exist."""


class InactiveProduct(ValidationFailed):
    """A product referenced by an order item is inactive."""


class InsufficientStock(InvalidState):
    """Not enough stock to fulfil the order."""


class InvalidShareDistribution(ValidationFailed):
    """Co-producer shares of a product do not sum to 100%."""
