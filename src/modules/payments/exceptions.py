"""Payment exceptions."""

from __future__ import annotations

from modules.core.errors import InvalidState


class OrderNotPayable(InvalidState):
    """The order's payment already left PENDING, or the order was cancelled."""
