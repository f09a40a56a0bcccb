from __future__ import annotations

import threading
from typing import Optional

from nodestore.config import get_settings, reset_settings_cache
from nodestore.logging import get_logger, mask_url_password
from nodestore.service.indexer import MemoryIndex
from nodestore.service.nodes import NodeService
from nodestore.storage.memory import MemoryStore
from nodestore.storage.postgres import PostgresStore

logger = get_logger(__name__)


class Runtime:
    """Holds the process-wide store, index and node service.

    The backend is chosen once, from ``Settings.use_memory_store``, when the
    runtime is built.
    """

    def __init__(self):
        self.settings = get_settings()
        store_type = "memory" if self.settings.use_memory_store else "postgres"
        logger.info(
            "runtime_init_started",
            store_type=store_type,
            test_mode=self.settings.test_mode,
        )

        try:
            self.store = (
                MemoryStore(state_path=self.settings.memory_state_path)
                if self.settings.use_memory_store
                else PostgresStore(
                    self.settings.database_url,
                    min_size=self.settings.db_pool_min_size,
                    max_size=self.settings.db_pool_max_size,
                )
            )
        except Exception as exc:
            logger.error(
                "runtime_store_init_failed",
                store_type=store_type,
                database_url=mask_url_password(self.settings.database_url),
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise
        logger.info("node_store_initialized", store_type=store_type)

        self.index = MemoryIndex()
        self.nodes = NodeService(self.store, self.index)

    def close(self) -> None:
        if isinstance(self.store, PostgresStore):
            self.store.close()


runtime: Optional[Runtime] = None
_runtime_lock = threading.Lock()


def get_runtime() -> Runtime:
    global runtime
    if runtime is not None:
        return runtime
    with _runtime_lock:
        if runtime is None:
            runtime = Runtime()
        return runtime


def reset_runtime_for_tests() -> Runtime:
    """Reinitialize the runtime singleton for isolated test runs."""

    global runtime

    with _runtime_lock:
        if runtime is not None:
            runtime.close()
        reset_settings_cache()
        settings = get_settings()
        if not settings.test_mode:
            raise RuntimeError("runtime reset is only allowed in TEST_MODE")
        runtime = Runtime()
        return runtime


__all__ = ["Runtime", "get_runtime", "reset_runtime_for_tests"]
