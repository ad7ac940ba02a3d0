"""
Catalog -> Algolia index sync.

Index pushes are handed to the detached task runner one batch (or one
product) at a time; from the admin route they run as FastAPI background
tasks after the 202 is sent.
"""

import threading
from typing import Optional

from core.logging import get_logger
from search.algolia_config import product_to_index_record
from search.exceptions import SearchError

logger = get_logger(__name__)


SYNC_BATCH_SIZE = 100


class IndexSyncService:
    """
    Queues index writes for catalog products.

    Args:
        catalog: CatalogStore (source rows).
        index: AlgoliaClient, or None when the index is not configured.
        task_runner: Detached task runner.
    """

    def __init__(self, catalog, index, task_runner=None):
        self.catalog = catalog
        self.index = index
        self._task_runner = task_runner

    @property
    def task_runner(self):
        if self._task_runner is None:
            from core.tasks import get_task_runner
            self._task_runner = get_task_runner()
        return self._task_runner

    def _require_index(self):
        if self.index is None:
            raise SearchError("Fast index is not configured")
        return self.index

    def sync_all_products(self, batch_size: int = SYNC_BATCH_SIZE, tasks=None) -> int:
        """
        Page through every active product and queue one index write per
        batch. Returns the number of products queued.

        `tasks` is the admin route's request-bound runner; the CLI leaves it
        None and the writes run inline on self.task_runner.
        """
        index = self._require_index()
        tasks = tasks or self.task_runner
        queued = 0
        for rows in self.catalog.iter_active_products(batch_size):
            records = [product_to_index_record(row) for row in rows]
            tasks.submit("index.save_batch", index.save_objects, records)
            queued += len(records)
            logger.info("Queued products for index sync", queued=queued)

        logger.info("Index sync queued", total=queued)
        return queued

    def index_product(self, product: dict) -> None:
        """Queue an upsert for one product row."""
        index = self._require_index()
        record = product_to_index_record(product)
        self.task_runner.submit("index.save_product", index.save_objects, [record])

    def remove_product(self, product_id: str) -> None:
        """Queue removal of one product from the index."""
        index = self._require_index()
        self.task_runner.submit("index.remove_product", index.delete_object, str(product_id))


# =============================================================================
# Singleton
# =============================================================================

_sync_service: Optional[IndexSyncService] = None
_sync_lock = threading.Lock()


def get_index_sync_service() -> IndexSyncService:
    """Get or create the IndexSyncService singleton (thread-safe)."""
    global _sync_service
    if _sync_service is None:
        with _sync_lock:
            if _sync_service is None:
                from search.algolia_client import get_algolia_client_optional
                from search.catalog import get_catalog_store
                _sync_service = IndexSyncService(
                    catalog=get_catalog_store(),
                    index=get_algolia_client_optional(),
                )
    return _sync_service
