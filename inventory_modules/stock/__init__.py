"""
Stock Module (``inventory_modules.stock``).

Responsibility
--------------
Direct receipts and issues of raw materials and finished goods that are
not driven by a posting document of their own.  The caller supplies a
reference id that becomes the source document of the ledger entry.

Invariants enforced
-------------------
* Receipts take an explicit unit cost; issues always use the current
  weighted-average cost read under the balance-key lock.
* Each call appends exactly one ledger entry and commits once.
"""

from inventory_modules.stock.models import PostedMovement
from inventory_modules.stock.service import StockService

__all__ = [
    "PostedMovement",
    "StockService",
]
