"""
Bill of Materials Module (``inventory_modules.bom``).

Responsibility
--------------
Versioned bills of materials: authoring with insertion-time cycle
detection, active-version resolution by effective date, and iterative
multi-level explosion into raw-material requirements per production stage.

Architecture position
---------------------
**Modules layer** -- ORM tables, frozen DTOs and ``BomService``.  Never
writes to the ledgers.

Invariants enforced
-------------------
* The active component graph is acyclic (checked when a line is added).
* Each line consumes exactly one of a raw material or a sub-assembly.
* Explosion depth is bounded by ``BomPolicy.max_depth``.

Failure modes
-------------
* ``CircularBomError`` -- a line would close a cycle, or one is met while
  exploding.
* ``BomNotFoundError`` -- no active version covers the product and date.
* ``BomDepthExceededError`` -- nesting deeper than the configured maximum.
* ``InvalidBomLineError`` -- bad quantity, scrap, stage or component shape.
"""

from inventory_modules.bom.models import BomInfo, BomLineInfo, ExplodedRequirement
from inventory_modules.bom.service import BomService

__all__ = [
    "BomInfo",
    "BomLineInfo",
    "ExplodedRequirement",
    "BomService",
]
