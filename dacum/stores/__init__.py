"""Storage backends. ``build_stores`` picks one from ``STORE_BACKEND``."""

from dacum.stores.base import CatalogStore, SessionStore, VersionStore


def build_stores(backend: str = "sql") -> tuple[SessionStore, VersionStore, CatalogStore]:
    if backend == "memory":
        from dacum.stores.memory import (
            InMemoryCatalogStore,
            InMemorySessionStore,
            InMemoryVersionStore,
        )
        return InMemorySessionStore(), InMemoryVersionStore(), InMemoryCatalogStore()
    if backend == "sql":
        from dacum.stores.sql import SqlCatalogStore, SqlSessionStore, SqlVersionStore
        return SqlSessionStore(), SqlVersionStore(), SqlCatalogStore()
    raise ValueError(f"Unknown STORE_BACKEND: {backend!r}")
