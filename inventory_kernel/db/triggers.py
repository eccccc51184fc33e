"""
Module: inventory_kernel.db.triggers
Responsibility: Loading, installing, and verifying database-level ledger
    immutability triggers.  This is the database complement to the ORM
    listeners in db/immutability.py.
Architecture position: Kernel > DB.  May import from db/ and logging_config only
    (pathlib for SQL file loading, sqlalchemy for execution).  MUST NOT import from
    models/, services/, selectors/, domain/, or outer layers.

Invariants enforced (six triggers per dialect):
    raw_material_ledger, wip_ledger and finished_goods_ledger rows accept
    INSERT only: any UPDATE or DELETE is aborted by the database.

Failure modes:
    - PostgreSQL RAISE EXCEPTION / SQLite RAISE(ABORT) on a violating
      statement, surfaced by SQLAlchemy as a DBAPIError subclass
      (IntegrityError on SQLite, InternalError/IntegrityError on PostgreSQL).
    - FileNotFoundError if SQL files are missing from the sql/ directory.
    - ValueError for a dialect with no trigger files.

Audit relevance:
    The ORM listeners do not see Core ``update()``/``delete()`` statements
    or raw SQL.  These triggers reject those too, so both layers must be
    bypassed to rewrite a posted movement.
"""

from pathlib import Path

from sqlalchemy import text
from sqlalchemy.engine import Engine

from inventory_kernel.logging_config import get_logger

logger = get_logger("db.triggers")


# =============================================================================
# SQL File Loading
# =============================================================================

# One sub-directory per supported dialect
SQL_DIR = Path(__file__).parent / "sql"

TRIGGER_FILES = [
    "01_ledger_immutability.sql",
]

DROP_FILE = "99_drop_all.sql"

# Statements inside a file are separated by a line holding only this marker.
# Trigger bodies contain semicolons, so ';' cannot be the separator.
STATEMENT_SEPARATOR = "-- go"

ALL_TRIGGER_NAMES = [
    "trg_raw_material_ledger_immutability_update",
    "trg_raw_material_ledger_immutability_delete",
    "trg_wip_ledger_immutability_update",
    "trg_wip_ledger_immutability_delete",
    "trg_finished_goods_ledger_immutability_update",
    "trg_finished_goods_ledger_immutability_delete",
]


def _dialect_dir(engine: Engine) -> Path:
    directory = SQL_DIR / engine.dialect.name
    if not directory.is_dir():
        raise ValueError(f"No immutability triggers for dialect {engine.dialect.name!r}")
    return directory


def _load_sql_file(engine: Engine, filename: str) -> str:
    """
    Load SQL content for the engine's dialect.

    Raises:
        FileNotFoundError: If the file doesn't exist.
    """
    return (_dialect_dir(engine) / filename).read_text(encoding="utf-8")


def _split_statements(sql_content: str) -> list[str]:
    """Split a trigger file into individually executable statements.

    The SQLite driver executes one statement per call.
    """
    statements = []
    chunk: list[str] = []
    for line in sql_content.splitlines():
        if line.strip() == STATEMENT_SEPARATOR:
            statements.append("\n".join(chunk))
            chunk = []
        else:
            chunk.append(line)
    statements.append("\n".join(chunk))
    return [s for s in statements if _has_code(s)]


def _has_code(statement: str) -> bool:
    return any(
        line.strip() and not line.strip().startswith("--")
        for line in statement.splitlines()
    )


def _execute_file(engine: Engine, filename: str) -> None:
    statements = _split_statements(_load_sql_file(engine, filename))
    with engine.connect() as conn:
        for statement in statements:
            conn.execute(text(statement))
        conn.commit()


# =============================================================================
# Public API
# =============================================================================


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install database-level ledger immutability triggers.

    Preconditions: Ledger tables exist (call after metadata.create_all()).
    Postconditions: Every trigger in ALL_TRIGGER_NAMES is installed.
        Installation is idempotent.
    """
    for filename in TRIGGER_FILES:
        _execute_file(engine, filename)
    logger.info(
        "immutability_triggers_installed",
        extra={"trigger_count": len(ALL_TRIGGER_NAMES)},
    )


def uninstall_immutability_triggers(engine: Engine) -> None:
    """
    Remove database-level ledger immutability triggers.

    WARNING: Only for maintenance that must rewrite or purge ledger rows
    (test teardown, data migrations).  Re-install immediately afterwards.
    """
    _execute_file(engine, DROP_FILE)
    logger.warning("immutability_triggers_uninstalled")


def get_installed_triggers(engine: Engine) -> list[str]:
    """List the immutability triggers currently present in the database."""
    if engine.dialect.name == "postgresql":
        query = "SELECT tgname FROM pg_trigger WHERE tgname = ANY(:names) ORDER BY tgname"
        params = {"names": ALL_TRIGGER_NAMES}
    else:
        placeholders = ", ".join(f":n{i}" for i in range(len(ALL_TRIGGER_NAMES)))
        query = (
            "SELECT name FROM sqlite_master WHERE type = 'trigger' "
            f"AND name IN ({placeholders}) ORDER BY name"
        )
        params = {f"n{i}": name for i, name in enumerate(ALL_TRIGGER_NAMES)}

    with engine.connect() as conn:
        return [row[0] for row in conn.execute(text(query), params)]


def triggers_installed(engine: Engine) -> bool:
    """True iff every trigger in ALL_TRIGGER_NAMES is installed."""
    return len(get_installed_triggers(engine)) == len(ALL_TRIGGER_NAMES)


def get_missing_triggers(engine: Engine) -> list[str]:
    installed = set(get_installed_triggers(engine))
    return sorted(set(ALL_TRIGGER_NAMES) - installed)
