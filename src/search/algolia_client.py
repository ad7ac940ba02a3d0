"""
Fast full-text index (Algolia, algoliasearch v4 SearchClientSync).

The orchestrator only sees `search_products(query, request)`; the index's
own ranking is opaque. Write operations (records, settings, synonyms,
replicas) are used by IndexSyncService and the maintenance CLI.
SDK responses are pydantic models; `.to_dict()` turns them into dicts.
"""

import threading
from typing import Any, Dict, List, Optional, Tuple

from algoliasearch.search.client import SearchClientSync

from config.settings import get_settings
from core.logging import get_logger
from search.algolia_config import (
    ALGOLIA_INDEX_SETTINGS,
    ALGOLIA_SYNONYMS,
    REPLICA_SUFFIXES,
    build_index_filters,
    get_replica_index_name,
    get_replica_names,
)
from search.models import ScoredProduct, SearchRequest
from search.sources import IndexHit

logger = get_logger(__name__)


class AlgoliaClient:
    """
    Products index plus its sort replicas.

    Args:
        app_id, write_key, search_key, index_name: Default to settings.
        client: Pre-built SearchClientSync (tests inject a mock).

    Raises:
        ValueError: No client given and the app id or both keys are missing.
    """

    def __init__(
        self,
        app_id: Optional[str] = None,
        write_key: Optional[str] = None,
        search_key: Optional[str] = None,
        index_name: Optional[str] = None,
        client: Optional[SearchClientSync] = None,
    ):
        settings = get_settings()
        self.app_id = app_id or settings.algolia_app_id
        self.index_name = index_name or settings.algolia_index_name

        if client is None:
            # write key when present: the same client pushes sync batches
            api_key = write_key or settings.algolia_write_key or search_key or settings.algolia_search_key
            if not self.app_id:
                raise ValueError("ALGOLIA_APP_ID is required")
            if not api_key:
                raise ValueError("ALGOLIA_WRITE_KEY or ALGOLIA_SEARCH_KEY is required")
            client = SearchClientSync(self.app_id, api_key)
        self._client = client

    def close(self) -> None:
        self._client.close()

    # =========================================================================
    # Search
    # =========================================================================

    def search(
        self,
        query: str,
        filters: Optional[str] = None,
        hits_per_page: int = 20,
        page: int = 0,
        index_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        """One page (0-based) from the primary index or a replica."""
        params: Dict[str, Any] = {"query": query, "hitsPerPage": hits_per_page, "page": page}
        if filters:
            params["filters"] = filters
        return self._client.search_single_index(
            index_name=index_name or self.index_name,
            search_params=params,
        ).to_dict()

    def search_products(self, query: str, request: SearchRequest) -> Tuple[List[ScoredProduct], int]:
        """
        The request's page of index hits and the total hit count.

        Explicit sorts read from the matching virtual replica; relevance
        reads the primary index.
        """
        resp = self.search(
            query=query,
            filters=build_index_filters(request),
            hits_per_page=request.limit,
            page=request.page - 1,
            index_name=get_replica_index_name(self.index_name, request.sort),
        )
        products = [IndexHit(hit).to_product() for hit in resp.get("hits") or []]
        return products, int(resp.get("nbHits") or 0)

    # =========================================================================
    # Records
    # =========================================================================

    def save_objects(self, records: List[dict], wait: bool = False, batch_size: int = 1000) -> List:
        """Upsert records keyed by objectID."""
        return self._client.save_objects(
            index_name=self.index_name,
            objects=records,
            wait_for_tasks=wait,
            batch_size=batch_size,
        )

    def delete_object(self, object_id: str) -> dict:
        return self._client.delete_object(index_name=self.index_name, object_id=object_id).to_dict()

    # =========================================================================
    # Index configuration (maintenance CLI)
    # =========================================================================

    def configure_index(self) -> dict:
        """Searchable attributes, facets, ranking and typo rules."""
        return self._client.set_settings(
            index_name=self.index_name,
            index_settings=ALGOLIA_INDEX_SETTINGS,
        ).to_dict()

    def configure_synonyms(self) -> dict:
        """Replace the index's synonym set with ALGOLIA_SYNONYMS."""
        return self._client.save_synonyms(
            index_name=self.index_name,
            synonym_hit=ALGOLIA_SYNONYMS,
            replace_existing_synonyms=True,
        ).to_dict()

    def configure_replicas(self) -> List[dict]:
        """
        Declare the virtual sort replicas on the primary, wait for that
        task, then give each replica its ranking.
        """
        declarations = get_replica_names(self.index_name)
        task_id = self._client.set_settings(
            index_name=self.index_name,
            index_settings={"replicas": declarations},
        ).to_dict().get("taskID")
        if task_id:
            self._client.wait_for_task(index_name=self.index_name, task_id=task_id)
        logger.info("Sort replicas declared", index=self.index_name, replicas=declarations)

        responses = []
        for suffix, ranking in REPLICA_SUFFIXES.items():
            replica = f"{self.index_name}{suffix}"
            responses.append(
                self._client.set_settings(index_name=replica, index_settings=ranking).to_dict()
            )
            logger.info("Sort replica configured", replica=replica, ranking=ranking)
        return responses


# =============================================================================
# Singleton
# =============================================================================

_algolia_client: Optional[AlgoliaClient] = None
_algolia_lock = threading.Lock()


def get_algolia_client() -> AlgoliaClient:
    """Get or create the AlgoliaClient singleton (thread-safe)."""
    global _algolia_client
    if _algolia_client is None:
        with _algolia_lock:
            if _algolia_client is None:
                _algolia_client = AlgoliaClient()
    return _algolia_client


def get_algolia_client_optional() -> Optional[AlgoliaClient]:
    """The index client, or None when Algolia is not configured (store-only search)."""
    if not get_settings().algolia_enabled:
        return None
    try:
        return get_algolia_client()
    except ValueError as e:
        logger.warning("Fast index unavailable", error=str(e))
        return None
