"""Location Alias Database Operations.

This module handles all database operations for location aliases:
- Schema initialization
- CRUD operations for location aliases and service-charge patterns
- Loading the alias table used by the matcher
- Sample data seeding

The location_alias table holds confirmed ledger-spelling -> budget-location
mappings; it is consulted before any automatic matching strategy.
"""

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from core.observability.logging import get_logger
from location_resolver.models import SERVICE_CHARGE, LocationAlias, LocationAliasTable
from location_resolver.normalize import normalize_location_name


logger = get_logger(__name__)

DEFAULT_DB_PATH = Path(__file__).resolve().parents[1] / "location_sync.db"


def init_location_alias_db(db_path: Path = DEFAULT_DB_PATH) -> None:
    """Initialize location alias tables.

    Creates:
    - location_alias: Maps normalized ledger spellings to budget locations
    - service_charge_pattern: Ledger strings that denote service charges

    Args:
        db_path: Path to SQLite database file
    """
    conn = sqlite3.connect(db_path)
    try:
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS location_alias (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                production_id TEXT NOT NULL,
                ledger_normalized TEXT NOT NULL,
                ledger_location TEXT NOT NULL,
                budget_location TEXT NOT NULL,
                aliases TEXT NOT NULL DEFAULT '[]',
                created_by TEXT DEFAULT 'system',
                created_at TEXT NOT NULL,
                UNIQUE(production_id, ledger_normalized)
            )
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_location_alias_lookup
            ON location_alias(production_id, ledger_normalized)
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS service_charge_pattern (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                production_id TEXT NOT NULL,
                pattern TEXT NOT NULL,
                UNIQUE(production_id, pattern)
            )
        """)

        conn.commit()
        logger.info("Location alias tables initialized", extra_fields={"db_path": str(db_path)})
    finally:
        conn.close()


# =============================================================================
# CRUD Operations
# =============================================================================

def add_location_alias(
    alias: LocationAlias,
    db_path: Path = DEFAULT_DB_PATH,
) -> LocationAlias:
    """Add a location alias, replacing an existing entry for the same spelling.

    Args:
        alias: LocationAlias to add
        db_path: Path to database

    Returns:
        LocationAlias with id and created_at populated
    """
    now = datetime.utcnow().isoformat()
    normalized = normalize_location_name(alias.ledger_location)

    conn = sqlite3.connect(db_path)
    try:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT OR REPLACE INTO location_alias
            (production_id, ledger_normalized, ledger_location, budget_location,
             aliases, created_by, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            alias.production_id,
            normalized,
            alias.ledger_location,
            alias.budget_location,
            json.dumps(alias.aliases),
            alias.created_by,
            now,
        ))
        conn.commit()
        return alias.model_copy(update={"id": cursor.lastrowid, "created_at": datetime.fromisoformat(now)})
    finally:
        conn.close()


def get_location_alias(
    ledger_location: str,
    production_id: str = "default",
    db_path: Path = DEFAULT_DB_PATH,
) -> Optional[LocationAlias]:
    """Look up an alias by ledger spelling (normalized before lookup).

    Args:
        ledger_location: Ledger spelling to look up
        production_id: Production identifier
        db_path: Path to database

    Returns:
        LocationAlias if found, None otherwise
    """
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    try:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT * FROM location_alias
            WHERE production_id = ? AND ledger_normalized = ?
        """, (production_id, normalize_location_name(ledger_location)))
        row = cursor.fetchone()
        return _row_to_location_alias(row) if row else None
    finally:
        conn.close()


def list_location_aliases(
    production_id: str = "default",
    db_path: Path = DEFAULT_DB_PATH,
) -> List[LocationAlias]:
    """Get all aliases for a production, ordered by ledger spelling."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    try:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT * FROM location_alias
            WHERE production_id = ?
            ORDER BY ledger_normalized
        """, (production_id,))
        return [_row_to_location_alias(row) for row in cursor.fetchall()]
    finally:
        conn.close()


def delete_location_alias(
    ledger_location: str,
    production_id: str = "default",
    db_path: Path = DEFAULT_DB_PATH,
) -> bool:
    """Delete an alias by ledger spelling.

    Returns:
        True if deleted, False if not found
    """
    conn = sqlite3.connect(db_path)
    try:
        cursor = conn.cursor()
        cursor.execute("""
            DELETE FROM location_alias
            WHERE production_id = ? AND ledger_normalized = ?
        """, (production_id, normalize_location_name(ledger_location)))
        conn.commit()
        return cursor.rowcount > 0
    finally:
        conn.close()


def add_service_charge_pattern(
    pattern: str,
    production_id: str = "default",
    db_path: Path = DEFAULT_DB_PATH,
) -> None:
    conn = sqlite3.connect(db_path)
    try:
        conn.execute("""
            INSERT OR IGNORE INTO service_charge_pattern (production_id, pattern)
            VALUES (?, ?)
        """, (production_id, pattern.strip().upper()))
        conn.commit()
    finally:
        conn.close()


def list_service_charge_patterns(
    production_id: str = "default",
    db_path: Path = DEFAULT_DB_PATH,
) -> List[str]:
    conn = sqlite3.connect(db_path)
    try:
        cursor = conn.execute("""
            SELECT pattern FROM service_charge_pattern
            WHERE production_id = ?
            ORDER BY pattern
        """, (production_id,))
        return [row[0] for row in cursor.fetchall()]
    finally:
        conn.close()


def _row_to_location_alias(row: sqlite3.Row) -> LocationAlias:
    """Convert a database row to LocationAlias."""
    return LocationAlias(
        id=row["id"],
        production_id=row["production_id"],
        ledger_location=row["ledger_location"],
        budget_location=row["budget_location"],
        aliases=json.loads(row["aliases"] or "[]"),
        created_by=row["created_by"],
        created_at=datetime.fromisoformat(row["created_at"]) if row["created_at"] else None,
    )


# =============================================================================
# Alias Table Loading
# =============================================================================

def load_alias_table(
    production_id: str = "default",
    db_path: Path = DEFAULT_DB_PATH,
) -> LocationAliasTable:
    """Load the alias table for a production.

    A missing or unreadable database yields an empty table; matching then
    relies on the automatic strategies alone.
    """
    db_path = Path(db_path)
    if not db_path.exists():
        logger.warning(f"Alias database not found, continuing without aliases: {db_path}")
        return LocationAliasTable()
    try:
        entries = list_location_aliases(production_id, db_path)
        patterns = list_service_charge_patterns(production_id, db_path)
    except sqlite3.Error as e:
        logger.warning(f"Alias database unavailable, continuing without aliases: {e}")
        return LocationAliasTable()
    return LocationAliasTable(entries=entries, service_charge_patterns=patterns)


# =============================================================================
# Sample Data Seeding
# =============================================================================

def seed_sample_aliases(production_id: str = "default", db_path: Path = DEFAULT_DB_PATH) -> dict:
    """Seed the database with sample aliases and service-charge patterns.

    Returns:
        Dict with counts of created rows
    """
    init_location_alias_db(db_path)

    aliases = [
        LocationAlias(
            production_id=production_id,
            ledger_location="KELLNERS",
            budget_location="Keller Residence",
            aliases=["KELLNER HOUSE", "KELLER HOME"],
            created_by="seed",
        ),
        LocationAlias(
            production_id=production_id,
            ledger_location="MELROSE",
            budget_location="Melrose Ave",
            created_by="seed",
        ),
        LocationAlias(
            production_id=production_id,
            ledger_location="STAGE 5",
            budget_location=SERVICE_CHARGE,
            created_by="seed",
        ),
        LocationAlias(
            production_id=production_id,
            ledger_location="GRIFFITH OBSERVATORY",
            budget_location="PENDING:Griffith Observatory",
            created_by="seed",
        ),
    ]
    patterns = ["STAGE", "OFFICE", "WAREHOUSE"]

    created = {"aliases": 0, "patterns": 0}
    for alias in aliases:
        add_location_alias(alias, db_path)
        created["aliases"] += 1
    for pattern in patterns:
        add_service_charge_pattern(pattern, production_id, db_path)
        created["patterns"] += 1

    logger.info(f"Seeded {created['aliases']} location aliases", extra_fields=created)
    return created
