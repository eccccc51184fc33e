"""
Receiving Module (``inventory_modules.receiving``).

Responsibility
--------------
Purchase orders as reference documents and goods receipts posted against
them as raw-material ``receipt`` entries.

Invariants enforced
-------------------
* Every receipt line references a PO line of the receipt's purchase order
  and the same material.
* Cumulative received <= ordered x (1 + over-receipt tolerance %).
* Unit cost within the price tolerance of the PO price, unless the line is
  flagged ``variance_approved``.
* Posted receipts and their lines are immutable.

Failure modes
-------------
* ``OverReceiptError`` -- receipt above the over-receipt tolerance.
* ``PriceVarianceExceededError`` -- unapproved unit cost outside tolerance.
* ``InvalidDocumentStateError`` -- posting a non-draft or receiving against
  a closed purchase order.
"""

from inventory_modules.receiving.models import (
    GoodsReceiptDraft,
    GoodsReceiptLineInfo,
    PostedGoodsReceipt,
    PurchaseOrderInfo,
    PurchaseOrderLineInfo,
    PurchaseOrderLineInput,
    PurchaseOrderStatus,
)
from inventory_modules.receiving.service import ReceivingService

__all__ = [
    "PurchaseOrderStatus",
    "PurchaseOrderLineInput",
    "PurchaseOrderLineInfo",
    "PurchaseOrderInfo",
    "GoodsReceiptLineInfo",
    "GoodsReceiptDraft",
    "PostedGoodsReceipt",
    "ReceivingService",
]
