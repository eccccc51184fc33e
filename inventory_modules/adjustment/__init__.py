"""
Adjustment Module (``inventory_modules.adjustment``).

Responsibility
--------------
Stock adjustment documents: signed variances per balance key with a reason
code, physical-count drafts (counted minus system quantity), approval of
large adjustments, posting as ``adjustment_in`` / ``adjustment_out``
ledger entries, and cancellation of drafts.

Invariants enforced
-------------------
* draft -> posted and draft -> cancelled are one-way.
* Posted documents and their lines are immutable.
* Negative variances always post at the current weighted-average cost.
* Value above ``AdjustmentPolicy.approval_threshold`` needs an approval.

Failure modes
-------------
* ``ApprovalRequiredError`` -- posting a large unapproved adjustment.
* ``InvalidDocumentStateError`` -- posting or editing a non-draft.
* ``EmptyDocumentError`` -- posting a document without lines.
"""

from inventory_modules.adjustment.models import (
    AdjustmentDraft,
    AdjustmentLineInfo,
    AdjustmentReason,
    CountedItem,
    PostedAdjustment,
)
from inventory_modules.adjustment.service import AdjustmentService

__all__ = [
    "AdjustmentReason",
    "AdjustmentLineInfo",
    "AdjustmentDraft",
    "PostedAdjustment",
    "CountedItem",
    "AdjustmentService",
]
