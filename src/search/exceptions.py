"""Search domain exceptions."""


class SearchError(Exception):
    """Base class for search-engine errors."""
    pass


class MissNotFoundError(SearchError):
    """Raised when resolving a miss ID that is not in the ledger."""

    def __init__(self, miss_id: str):
        super().__init__(f"Search miss not found: {miss_id}")
        self.miss_id = miss_id


class CatalogStoreError(SearchError):
    """Raised when the durable catalog store cannot answer a query."""
    pass


class EmbeddingError(SearchError):
    """Raised by an embedding provider that cannot produce a vector."""
    pass
