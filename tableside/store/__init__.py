"""
Persistent Store Factory

Provides a single entry point for obtaining the store instance. The rest
of the application depends on BaseStore only.

Usage:
    from tableside.store import get_store

    store = get_store()
    order = await store.get_order(42)

Author: Tableside Team
Version: 1.0.0
"""

import logging
from functools import lru_cache

from tableside.store.base import BaseStore, DraftLine, OrderDraft
from tableside.store.sql import SqlStore

logger = logging.getLogger(__name__)


@lru_cache()
def get_store() -> BaseStore:
    """
    Get the configured store instance.

    The instance is cached so every request shares the same session
    factory and connection pool.

    Returns:
        BaseStore: SqlStore bound to the application engine
    """
    from tableside.database import async_session_maker

    logger.info("Store: Using SqlStore")
    return SqlStore(async_session_maker)


def reset_store() -> None:
    """
    Clear the cached store instance.

    The next call to get_store() will create a new instance.
    """
    get_store.cache_clear()
    logger.debug("Store cache cleared")


__all__ = [
    "get_store",
    "reset_store",
    "BaseStore",
    "DraftLine",
    "OrderDraft",
    "SqlStore",
]
