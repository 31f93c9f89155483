# ============================================================================
# Burn Bridge v1.0.0
# Database Module - SQLAlchemy Engine Factories
# ============================================================================

from app.database.session import (
    create_destination_engine,
    create_source_engine,
    source_database_url
)

__all__ = [
    "create_destination_engine",
    "create_source_engine",
    "source_database_url",
]
