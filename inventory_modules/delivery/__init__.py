"""
Delivery Module (``inventory_modules.delivery``).

Responsibility
--------------
Delivery orders and POS sales as draft documents that issue finished goods
(``sales_out``) at the weighted-average cost when posted.

Failure modes
-------------
* ``InsufficientStockError`` -- a line would drive finished goods negative.
* ``InvalidDocumentStateError`` -- posting or editing a non-draft.
"""

from inventory_modules.delivery.models import (
    DeliveryChannel,
    DeliveryDraft,
    DeliveryLineInfo,
    PostedDelivery,
)
from inventory_modules.delivery.service import DeliveryService

__all__ = [
    "DeliveryChannel",
    "DeliveryLineInfo",
    "DeliveryDraft",
    "PostedDelivery",
    "DeliveryService",
]
