"""
Module ORM Registry (``inventory_modules._orm_registry``).

Responsibility
--------------
Ensure every module-level SQLAlchemy ORM model is imported so that
``Base.metadata`` holds its table definitions (and its immutability
registration) before ``create_tables()`` runs.

Architecture position
---------------------
**Modules layer** -- utility.  Imported lazily by
``inventory_kernel.db.engine.create_tables`` and by ``tests/conftest.py``.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``inventory_modules.*.orm`` module.

    Idempotent -- repeated calls are harmless.
    """
    # Kernel tables first (fiscal_periods, ledgers, balances)
    import inventory_kernel.models  # noqa: F401
    # fmt: off
    import inventory_modules.adjustment.orm  # noqa: F401
    import inventory_modules.bom.orm  # noqa: F401
    import inventory_modules.delivery.orm  # noqa: F401
    import inventory_modules.production.orm  # noqa: F401
    import inventory_modules.receiving.orm  # noqa: F401
    import inventory_modules.transfer.orm  # noqa: F401
    # fmt: on
