"""
Transfer Module (``inventory_modules.transfer``).

Responsibility
--------------
Draft transfer documents moving raw materials or finished goods between two
locations, posted as matched ``transfer_out`` / ``transfer_in`` pairs at
the source's weighted-average cost.

Invariants enforced
-------------------
* Source and destination differ; WIP is never transferred.
* One OUT and one IN entry per line, at the same unit cost.
* Posted documents and their lines are immutable.
"""

from inventory_modules.transfer.models import PostedTransfer, TransferDraft, TransferLineInfo
from inventory_modules.transfer.service import TransferService

__all__ = [
    "TransferLineInfo",
    "TransferDraft",
    "PostedTransfer",
    "TransferService",
]
