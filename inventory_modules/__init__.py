"""
Inventory modules -- documents, production and posting protocols.

Each sub-package owns its ORM tables, frozen DTOs and a service facade
that owns the transaction boundary of its public operations.  All ledger
writes go through ``inventory_kernel.services.LedgerService``.

Sub-packages
------------
bom          -- bills of materials, cycle detection, explosion
production   -- production orders, MRP planner, stage execution
stock        -- direct raw-material and finished-goods movements
adjustment   -- stock adjustments and physical counts
transfer     -- location-to-location transfers
receiving    -- purchase orders and goods receipts
delivery     -- finished-goods delivery and POS issues
"""
