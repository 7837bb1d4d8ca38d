"""
Datasource initialization and router management.

Builds one SQLAlchemy-backed ``QueryExecutor`` per configured
datasource and wires them into the process-wide router.  The
router is created once at startup and is read-only afterwards.
"""

import logging
from typing import Optional

from text2sql.config import Settings, settings
from text2sql.services.datasource_router import DataSourceRouter
from text2sql.services.db_connector import QueryExecutor, build_engine

logger = logging.getLogger(__name__)

_router: Optional[DataSourceRouter] = None


def build_router(config: Settings = settings) -> DataSourceRouter:
    """
    Create a router over every datasource in *config*.

    Parameters:
        config (Settings): Application settings.

    Returns:
        DataSourceRouter: Router with one handle per datasource.
    """
    handles = {
        name: QueryExecutor(
            name,
            build_engine(url),
            max_rows=config.max_result_rows,
        )
        for name, url in config.datasources.items()
    }
    logger.info(
        "[database] configured datasources: %s (default %s)",
        ", ".join(handles),
        config.default_datasource,
    )
    return DataSourceRouter(
        handles,
        default=config.default_datasource,
        aliases=config.datasource_aliases,
        read_pool=config.read_datasources,
    )


def get_router() -> DataSourceRouter:
    """
    Dependency that provides the process-wide datasource router.

    Returns:
        DataSourceRouter: The router built by ``init_db``.
    """
    if _router is None:
        init_db()
    return _router


def init_db() -> None:
    """
    Initialize the datasource router.

    This function should be called once at application startup.
    """
    global _router
    if _router is None:
        _router = build_router(settings)


def close_db() -> None:
    """Dispose every engine and forget the router."""
    global _router
    if _router is not None:
        _router.dispose()
        _router = None
