"""
============================================================================
Burn Bridge v1.0.0
Database Session - SQLAlchemy Engine Factories
============================================================================

Reliability Level: SOVEREIGN TIER (Mission-Critical)
Input Constraints: SQLite database URLs / file paths
Side Effects: Database connections, directory creation

SOVEREIGN MANDATE:
- Source store is opened READ-ONLY
- Destination store is the single source of truth for mint status
- WAL journal on the destination so readers never block the writer

============================================================================
"""

import logging
from pathlib import Path
from typing import Union

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url

logger = logging.getLogger(__name__)


# ============================================================================
# DESTINATION ENGINE
# ============================================================================

def create_destination_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create the engine for the destination (settlement) store.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: SQLAlchemy URL, e.g. sqlite:///database/bridge.db
    Side Effects: Creates the parent directory of a file-backed database

    Args:
        database_url: SQLAlchemy database URL
        echo: Echo SQL for debugging

    Returns:
        Engine: SQLAlchemy engine
    """
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
        Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(url, echo=echo)

    if url.get_backend_name() == "sqlite":
        @event.listens_for(engine, "connect")
        def set_sqlite_pragmas(dbapi_connection, connection_record):
            """
            Enable WAL journal and a busy timeout on new connections.

            Reliability Level: SOVEREIGN TIER
            Side Effects: Sets SQLite PRAGMAs
            """
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.close()

    logger.info(
        f"[BRG-DB] Destination engine created | "
        f"url={url.render_as_string(hide_password=True)}"
    )
    return engine


# ============================================================================
# SOURCE ENGINE
# ============================================================================

def source_database_url(path: Union[str, Path]) -> str:
    """Read-only SQLite URI for the source store."""
    resolved = Path(path).expanduser().resolve()
    return f"sqlite:///file:{resolved.as_posix()}?mode=ro&uri=true"


def create_source_engine(path: Union[str, Path]) -> Engine:
    """
    Create a READ-ONLY engine for the source (burn event) store.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: Path to an existing SQLite file
    Side Effects: None (mode=ro never creates or writes the file)

    Args:
        path: Filesystem path to the source database

    Returns:
        Engine: SQLAlchemy engine opened with mode=ro
    """
    engine = create_engine(source_database_url(path))
    logger.info(f"[BRG-DB] Source engine created (read-only) | path={path}")
    return engine


# ============================================================================
# END OF DATABASE SESSION MODULE
# ============================================================================
