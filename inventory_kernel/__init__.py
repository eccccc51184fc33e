"""
Inventory Kernel

An append-only inventory ledger core with:
- Three movement ledgers (raw material, WIP, finished goods)
- Weighted-average balances maintained in the posting transaction
- A single posting gate (period lock, non-negative stock, shape, immutability)
- Per-key stock locking for concurrent issues
"""

__version__ = "0.1.0"
