"""
Typed Exception Hierarchy for the Inventory Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every rejection in the ledger core is a business-rule outcome the caller must
be able to act on: a closed period means "pick another date", insufficient
stock means "receive first", a material shortage means "purchase".  Callers
therefore catch by TYPE and read structured ATTRIBUTES; they never parse
messages.

  1. Every error has a typed exception class.
  2. Every exception has a ``code`` class attribute (machine-readable).
  3. Exceptions carry their context as attributes.

Example:
    try:
        stock.issue_material(...)
    except InsufficientStockError as e:
        api_response(code=e.code, required=e.required, available=e.available)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    InventoryKernelError (base)
    |
    +-- PeriodError
    |   +-- PeriodClosedError
    |   |   +-- PeriodNotFoundError
    |   +-- PeriodAlreadyClosedError
    |   +-- PeriodOverlapError
    |
    +-- LedgerError
    |   +-- InsufficientStockError
    |   +-- InvalidMovementError
    |
    +-- ConcurrencyError
    |   +-- StockLockTimeoutError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- BomError
    |   +-- CircularBomError
    |   +-- BomNotFoundError
    |   +-- BomDepthExceededError
    |   +-- InvalidBomLineError
    |
    +-- ProductionError
    |   +-- MaterialShortageError
    |   +-- ProductionOrderNotFoundError
    |   +-- InvalidOrderStateError
    |   +-- InvalidStageOutputError
    |
    +-- DocumentError
        +-- DocumentNotFoundError
        +-- InvalidDocumentStateError
        +-- EmptyDocumentError
        +-- ApprovalRequiredError
        +-- PriceVarianceExceededError
        +-- OverReceiptError
        +-- ReceiptLineMismatchError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                        | When Raised
-------------|-----------------------------|--------------------------------------
Period       | PERIOD_CLOSED               | Date inside a closed period
             | PERIOD_NOT_FOUND            | No period covers the date
             | PERIOD_ALREADY_CLOSED       | Redundant close
             | PERIOD_OVERLAP              | New period overlaps an existing one
-------------|-----------------------------|--------------------------------------
Ledger       | INSUFFICIENT_STOCK          | Issue would drive balance negative
             | INVALID_MOVEMENT            | qty_in/qty_out shape or cost invalid
-------------|-----------------------------|--------------------------------------
Concurrency  | STOCK_LOCK_TIMEOUT          | Balance key lock not acquired in time
-------------|-----------------------------|--------------------------------------
Immutability | IMMUTABILITY_VIOLATION      | UPDATE/DELETE of a ledger entry or
             |                             | posted document
-------------|-----------------------------|--------------------------------------
BOM          | CIRCULAR_BOM                | Component graph would gain a cycle
             | BOM_NOT_FOUND               | No active BOM for product/date
             | BOM_DEPTH_EXCEEDED          | Explosion deeper than max depth
             | INVALID_BOM_LINE            | Line violates quantity/scrap rules
-------------|-----------------------------|--------------------------------------
Production   | MATERIAL_SHORTAGE           | Release blocked by MRP
             | PRODUCTION_ORDER_NOT_FOUND  | Unknown production order
             | INVALID_ORDER_STATE         | Transition not allowed
             | INVALID_STAGE_OUTPUT        | Stage output quantities invalid
-------------|-----------------------------|--------------------------------------
Document     | DOCUMENT_NOT_FOUND          | Unknown document id
             | INVALID_DOCUMENT_STATE      | Document not draft
             | EMPTY_DOCUMENT              | Posting a document with no lines
             | APPROVAL_REQUIRED           | Large adjustment not yet approved
             | PRICE_VARIANCE_EXCEEDED     | Receipt price outside PO tolerance
             | OVER_RECEIPT                | Receipt beyond ordered + tolerance
             | RECEIPT_LINE_MISMATCH       | Receipt line not on its PO / material

===============================================================================
DESIGN DECISIONS
===============================================================================

1. None of these are retried automatically.  They reflect business rules,
   not transient faults.  StockLockTimeoutError is the one transient error;
   the caller retries it with the same document/reference id.

2. PeriodNotFoundError subclasses PeriodClosedError: a date outside every
   open period is rejected the same way as a date inside a closed one, so
   ``except PeriodClosedError`` covers both.

===============================================================================
"""

from decimal import Decimal


class InventoryKernelError(Exception):
    """
    Base exception for all inventory kernel errors.

    All subclasses must have a ``code`` class attribute.
    """

    code: str = "INVENTORY_KERNEL_ERROR"


# Period-related exceptions


class PeriodError(InventoryKernelError):
    """Base exception for period-related errors."""

    code: str = "PERIOD_ERROR"


class PeriodClosedError(PeriodError):
    """Attempted to post with a date outside an open period."""

    code: str = "PERIOD_CLOSED"

    def __init__(self, period_code: str | None, effective_date: str):
        self.period_code = period_code
        self.effective_date = effective_date
        super().__init__(
            f"Cannot post to closed period {period_code} "
            f"(transaction_date: {effective_date})"
        )


class PeriodNotFoundError(PeriodClosedError):
    """No period covers the given date."""

    code: str = "PERIOD_NOT_FOUND"

    def __init__(self, effective_date: str):
        self.period_code = None
        self.effective_date = effective_date
        Exception.__init__(self, f"No accounting period found for date: {effective_date}")


class PeriodAlreadyClosedError(PeriodError):
    """Period is already closed."""

    code: str = "PERIOD_ALREADY_CLOSED"

    def __init__(self, period_code: str):
        self.period_code = period_code
        super().__init__(f"Period {period_code} is already closed")


class PeriodOverlapError(PeriodError):
    """New period date range overlaps with an existing period of the tenant."""

    code: str = "PERIOD_OVERLAP"

    def __init__(
        self,
        new_period_code: str,
        existing_period_code: str,
        overlap_start: str,
        overlap_end: str,
    ):
        self.new_period_code = new_period_code
        self.existing_period_code = existing_period_code
        self.overlap_start = overlap_start
        self.overlap_end = overlap_end
        super().__init__(
            f"Period {new_period_code} overlaps with {existing_period_code} "
            f"({overlap_start} to {overlap_end})"
        )


# Ledger-related exceptions


class LedgerError(InventoryKernelError):
    """Base exception for ledger posting errors."""

    code: str = "LEDGER_ERROR"


class InsufficientStockError(LedgerError):
    """Issue would drive the balance of a key below zero."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        item_id: str,
        location_id: str,
        required: Decimal,
        available: Decimal,
        stage: str | None = None,
    ):
        self.item_id = item_id
        self.location_id = location_id
        self.required = required
        self.available = available
        self.stage = stage
        where = f"{location_id}/{stage}" if stage else location_id
        super().__init__(
            f"Insufficient stock for item {item_id} at {where}: "
            f"required={required}, available={available}"
        )


class InvalidMovementError(LedgerError):
    """Ledger entry draft violates the movement shape rules."""

    code: str = "INVALID_MOVEMENT"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid movement: {reason}")


# Concurrency-related exceptions


class ConcurrencyError(InventoryKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class StockLockTimeoutError(ConcurrencyError):
    """A balance key lock could not be acquired in time."""

    code: str = "STOCK_LOCK_TIMEOUT"

    def __init__(self, lock_key: str, timeout_seconds: float):
        self.lock_key = lock_key
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Timed out after {timeout_seconds}s waiting for stock lock {lock_key}"
        )


# Immutability-related exceptions


class ImmutabilityError(InventoryKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Ledger entries are immutable from creation; documents once posted;
    periods once closed.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# BOM-related exceptions


class BomError(InventoryKernelError):
    """Base exception for bill-of-materials errors."""

    code: str = "BOM_ERROR"


class CircularBomError(BomError):
    """Adding or exploding a component would introduce a cycle."""

    code: str = "CIRCULAR_BOM"

    def __init__(self, product_id: str, path: list[str]):
        self.product_id = product_id
        self.path = path
        path_str = " -> ".join(path)
        super().__init__(f"Circular BOM for product {product_id}: {path_str}")


class BomNotFoundError(BomError):
    """No active BOM version covers the product and date."""

    code: str = "BOM_NOT_FOUND"

    def __init__(self, product_id: str, as_of: str):
        self.product_id = product_id
        self.as_of = as_of
        super().__init__(f"No active BOM for product {product_id} as of {as_of}")


class BomDepthExceededError(BomError):
    """Explosion descended deeper than the allowed maximum."""

    code: str = "BOM_DEPTH_EXCEEDED"

    def __init__(self, product_id: str, max_depth: int):
        self.product_id = product_id
        self.max_depth = max_depth
        super().__init__(
            f"BOM explosion of product {product_id} exceeds max depth {max_depth}"
        )


class InvalidBomLineError(BomError):
    """BOM line violates quantity, scrap or component rules."""

    code: str = "INVALID_BOM_LINE"

    def __init__(self, bom_id: str, reason: str):
        self.bom_id = bom_id
        self.reason = reason
        super().__init__(f"Invalid line for BOM {bom_id}: {reason}")


# Production-related exceptions


class ProductionError(InventoryKernelError):
    """Base exception for production errors."""

    code: str = "PRODUCTION_ERROR"


class MaterialShortageError(ProductionError):
    """MRP found materials that are not available at release time."""

    code: str = "MATERIAL_SHORTAGE"

    def __init__(self, order_id: str, shortages: list[dict]):
        self.order_id = order_id
        self.shortages = shortages
        materials = ", ".join(str(s["material_id"]) for s in shortages)
        super().__init__(
            f"Cannot release production order {order_id}: "
            f"{len(shortages)} material(s) short ({materials})"
        )


class ProductionOrderNotFoundError(ProductionError):
    """Production order with given ID was not found."""

    code: str = "PRODUCTION_ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Production order not found: {order_id}")


class InvalidOrderStateError(ProductionError):
    """Operation is not allowed in the order's current status."""

    code: str = "INVALID_ORDER_STATE"

    def __init__(self, order_id: str, current_status: str, operation: str):
        self.order_id = order_id
        self.current_status = current_status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} production order {order_id} "
            f"in status '{current_status}'"
        )


class InvalidStageOutputError(ProductionError):
    """Reported stage output is not acceptable."""

    code: str = "INVALID_STAGE_OUTPUT"

    def __init__(self, order_id: str, stage: str, reason: str):
        self.order_id = order_id
        self.stage = stage
        self.reason = reason
        super().__init__(
            f"Invalid output for order {order_id} stage {stage}: {reason}"
        )


# Document-related exceptions


class DocumentError(InventoryKernelError):
    """Base exception for posting-document errors."""

    code: str = "DOCUMENT_ERROR"


class DocumentNotFoundError(DocumentError):
    """Document with given ID was not found."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_type: str, document_id: str):
        self.document_type = document_type
        self.document_id = document_id
        super().__init__(f"{document_type} not found: {document_id}")


class InvalidDocumentStateError(DocumentError):
    """Document is not in a state that allows the operation."""

    code: str = "INVALID_DOCUMENT_STATE"

    def __init__(
        self,
        document_type: str,
        document_id: str,
        status: str,
        operation: str,
    ):
        self.document_type = document_type
        self.document_id = document_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} {document_type} {document_id} in status '{status}'"
        )


class EmptyDocumentError(DocumentError):
    """Document has no lines to post."""

    code: str = "EMPTY_DOCUMENT"

    def __init__(self, document_type: str, document_id: str):
        self.document_type = document_type
        self.document_id = document_id
        super().__init__(f"{document_type} {document_id} has no lines")


class ApprovalRequiredError(DocumentError):
    """Large-value document posted without a prior approval."""

    code: str = "APPROVAL_REQUIRED"

    def __init__(self, document_id: str, total_value: Decimal, threshold: Decimal):
        self.document_id = document_id
        self.total_value = total_value
        self.threshold = threshold
        super().__init__(
            f"Document {document_id} value {total_value} exceeds approval "
            f"threshold {threshold}; approval required before posting"
        )


class PriceVarianceExceededError(DocumentError):
    """Receipt unit cost deviates from the PO price beyond tolerance."""

    code: str = "PRICE_VARIANCE_EXCEEDED"

    def __init__(
        self,
        po_line_id: str,
        po_price: Decimal,
        unit_cost: Decimal,
        variance_percent: Decimal,
        tolerance_percent: Decimal,
    ):
        self.po_line_id = po_line_id
        self.po_price = po_price
        self.unit_cost = unit_cost
        self.variance_percent = variance_percent
        self.tolerance_percent = tolerance_percent
        super().__init__(
            f"Price variance {variance_percent:.2f}% on PO line {po_line_id} "
            f"exceeds tolerance {tolerance_percent}%; approval required"
        )


class OverReceiptError(DocumentError):
    """Receipt would exceed ordered quantity plus tolerance."""

    code: str = "OVER_RECEIPT"

    def __init__(
        self,
        po_line_id: str,
        qty_ordered: Decimal,
        qty_received: Decimal,
        qty_attempted: Decimal,
    ):
        self.po_line_id = po_line_id
        self.qty_ordered = qty_ordered
        self.qty_received = qty_received
        self.qty_attempted = qty_attempted
        super().__init__(
            f"Receiving {qty_attempted} on PO line {po_line_id} exceeds "
            f"ordered {qty_ordered} (already received {qty_received})"
        )


class ReceiptLineMismatchError(DocumentError):
    """Goods receipt line does not belong to a line of its purchase order."""

    code: str = "RECEIPT_LINE_MISMATCH"

    def __init__(
        self,
        po_line_id: str,
        material_id: str | None,
        reason: str,
    ):
        self.po_line_id = po_line_id
        self.material_id = material_id
        self.reason = reason
        super().__init__(f"Receipt line for PO line {po_line_id}: {reason}")
