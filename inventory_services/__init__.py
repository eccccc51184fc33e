"""
inventory_services -- Package init and public API.

Responsibility:
    The exposed operation surface of the ledger core.  Composes kernel
    services and every posting module around one SQLAlchemy Session and
    one validated configuration.

Architecture position:
    Services -- top layer.

    Dependency direction:
        inventory_services/ -> inventory_modules/  (allowed)
        inventory_services/ -> inventory_kernel/   (allowed)
        inventory_modules/  -> inventory_services/ (FORBIDDEN)
        inventory_kernel/   -> inventory_services/ (FORBIDDEN)

Audit relevance:
    - This package is the canonical import surface for external consumers.
      Changes to __all__ must be reviewed for backwards-compatibility.
"""

from inventory_kernel.logging_config import get_logger

logger = get_logger("services")

from inventory_services.ledger_core import InventoryLedgerCore

__all__ = [
    "InventoryLedgerCore",
]
