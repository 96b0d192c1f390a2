"""
Identity-link composition root.

Builds the dependency graph via constructor injection and applies the
local SQLite schema.  The HTTP layer imports :func:`bootstrap` and hands
``services["identity_linker"].verify`` to its GitHub OAuth strategy.

Usage::

    python main.py    # apply the schema and report the store mode
"""

from __future__ import annotations

import sys
from typing import Optional

from identity_link.config import AppConfig, get_config
from identity_link.database import DatabaseManager
from identity_link.logger import StructuredLogger, get_logger
from identity_link.schema import initialize_schema
from identity_link.services import ServiceContainer, create_services


def bootstrap(config: Optional[AppConfig] = None) -> tuple[DatabaseManager, ServiceContainer]:
    """Wire the database, schema and services.  The caller owns ``db.close()``."""
    if config is None:
        config = get_config()

    db = DatabaseManager(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
        sqlite_path=config.SQLITE_PATH,
        logger=StructuredLogger(name="database"),
    )
    initialize_schema(db.sqlite, StructuredLogger(name="schema"))

    return db, create_services(db=db, config=config)


def main() -> None:
    logger: StructuredLogger = get_logger("main")
    db, _services = bootstrap()
    try:
        logger.info(
            "Identity link ready (user store: %s).",
            "supabase" if db.is_online else "sqlite",
        )
    finally:
        db.close()


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        pass
    except Exception as exc:
        sys.stderr.write(f"FATAL: {type(exc).__name__}: {exc}\n")
        sys.exit(1)
