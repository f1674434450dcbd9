"""
Startup check for the database schema.
Creates the tables when they are missing.
"""
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from price_research.db.session import get_engine
from price_research.db.init_db import init_db
from price_research.logger import get_logger

logger = get_logger(__name__)

REQUIRED_TABLES = ("projects", "line_items", "sources", "catalog_entries", "audit_logs")


def check_tables_exist() -> bool:
    """Return True when every table of the engine exists."""
    try:
        inspector = inspect(get_engine())
        tables = set(inspector.get_table_names())
    except SQLAlchemyError as e:
        logger.warning("Failed to inspect database tables: %s", e)
        return False
    return all(name in tables for name in REQUIRED_TABLES)


def auto_init():
    logger.info("Checking database initialization state...")

    if check_tables_exist():
        logger.info("Database tables already exist")
        return

    logger.info("Database tables missing, creating...")
    try:
        init_db()
    except SQLAlchemyError:
        logger.exception("Failed to create database tables")
        raise
    logger.info("Database tables created")


if __name__ == "__main__":
    auto_init()
