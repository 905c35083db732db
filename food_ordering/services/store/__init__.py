"""
Order Store Factory

Single entry point for obtaining the order store. The rest of the
application only sees BaseOrderStore.

Usage:
    from food_ordering.services.store import get_order_store

    store = get_order_store()
    order = await store.get_order(42)
"""

import logging
from functools import lru_cache

from food_ordering.database import get_engine
from food_ordering.services.store.base import BaseOrderStore, BaseStoreTransaction
from food_ordering.services.store.sql import SqlOrderStore

logger = logging.getLogger(__name__)


@lru_cache()
def get_order_store() -> BaseOrderStore:
    """
    Get the configured order store instance.

    The instance is cached so every request shares one engine and
    connection pool.
    """
    store = SqlOrderStore(get_engine())
    logger.info(f"Order Store: Using {type(store).__name__}")
    return store


def reset_order_store() -> None:
    """Clear the cached store instance."""
    get_order_store.cache_clear()


__all__ = [
    "get_order_store",
    "reset_order_store",
    "BaseOrderStore",
    "BaseStoreTransaction",
    "SqlOrderStore",
]
