"""Catalog constants."""

from decimal import Decimal

# Co-producer shares of one product must sum to 100 within this tolerance.
SHARE_TOTAL = Decimal("100")
SHARE_TOLERANCE = Decimal("0.01")
