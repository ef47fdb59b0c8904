"""
Module: stock_kernel.db.triggers
Responsibility: Installing and verifying PostgreSQL triggers that protect the
    movement ledger (layer 2 of 2).  This is the database-level complement to
    the ORM listeners in db/immutability.py.
Architecture position: Kernel > DB.  MUST NOT import from models/, services/,
    selectors/, domain/, or outer layers.

Invariants enforced:
    - stock_movements rows: no UPDATE, no DELETE, ever.
    - inventory_items rows: no DELETE while reserved_quantity > 0.

Failure modes:
    - PostgreSQL RAISE EXCEPTION on violation (surfaces as a DBAPIError
      subclass through SQLAlchemy).

The ORM layer catches application bugs; these triggers catch raw SQL, bulk
statements and direct database access.
"""

from sqlalchemy import text
from sqlalchemy.engine import Engine

from stock_kernel.logging_config import get_logger

logger = get_logger("db.triggers")

ALL_TRIGGER_NAMES: tuple[str, ...] = (
    "trg_stock_movement_no_update",
    "trg_stock_movement_no_delete",
    "trg_inventory_item_reserved_delete",
)

_INSTALL_SQL = """
CREATE OR REPLACE FUNCTION stock_movement_immutable() RETURNS trigger AS $$
BEGIN
    RAISE EXCEPTION 'IMMUTABILITY_VIOLATION: stock movement % is append-only (%)',
        OLD.id, TG_OP;
END;
$$ LANGUAGE plpgsql;

DROP TRIGGER IF EXISTS trg_stock_movement_no_update ON stock_movements;
CREATE TRIGGER trg_stock_movement_no_update
    BEFORE UPDATE ON stock_movements
    FOR EACH ROW EXECUTE FUNCTION stock_movement_immutable();

DROP TRIGGER IF EXISTS trg_stock_movement_no_delete ON stock_movements;
CREATE TRIGGER trg_stock_movement_no_delete
    BEFORE DELETE ON stock_movements
    FOR EACH ROW EXECUTE FUNCTION stock_movement_immutable();

CREATE OR REPLACE FUNCTION inventory_item_reserved_delete() RETURNS trigger AS $$
BEGIN
    IF OLD.reserved_quantity > 0 THEN
        RAISE EXCEPTION 'CONFLICT: inventory item % has % reserved',
            OLD.id, OLD.reserved_quantity;
    END IF;
    RETURN OLD;
END;
$$ LANGUAGE plpgsql;

DROP TRIGGER IF EXISTS trg_inventory_item_reserved_delete ON inventory_items;
CREATE TRIGGER trg_inventory_item_reserved_delete
    BEFORE DELETE ON inventory_items
    FOR EACH ROW EXECUTE FUNCTION inventory_item_reserved_delete();
"""

_DROP_SQL = """
DROP TRIGGER IF EXISTS trg_stock_movement_no_update ON stock_movements;
DROP TRIGGER IF EXISTS trg_stock_movement_no_delete ON stock_movements;
DROP TRIGGER IF EXISTS trg_inventory_item_reserved_delete ON inventory_items;
DROP FUNCTION IF EXISTS stock_movement_immutable();
DROP FUNCTION IF EXISTS inventory_item_reserved_delete();
"""


def install_ledger_triggers(engine: Engine) -> None:
    """
    Install the ledger protection triggers (idempotent).

    Preconditions: Tables exist; engine is connected to PostgreSQL.
    Postconditions: Every trigger in ALL_TRIGGER_NAMES is installed.
    """
    with engine.connect() as conn:
        conn.execute(text(_INSTALL_SQL))
        conn.commit()
    logger.info("ledger_triggers_installed", extra={"triggers": list(ALL_TRIGGER_NAMES)})


def uninstall_ledger_triggers(engine: Engine) -> None:
    """Remove the ledger protection triggers.  Migrations and tests only."""
    with engine.connect() as conn:
        conn.execute(text(_DROP_SQL))
        conn.commit()
    logger.warning("ledger_triggers_uninstalled")


def get_installed_triggers(engine: Engine) -> list[str]:
    """Names of the ledger triggers currently present in pg_trigger."""
    with engine.connect() as conn:
        rows = conn.execute(
            text("SELECT tgname FROM pg_trigger WHERE tgname = ANY(:names)"),
            {"names": list(ALL_TRIGGER_NAMES)},
        ).scalars()
        return sorted(rows)


def triggers_installed(engine: Engine) -> bool:
    """True iff every ledger trigger is installed."""
    return len(get_installed_triggers(engine)) == len(ALL_TRIGGER_NAMES)
