"""
Search & Discovery Module.

Provides:
- SearchOrchestrator: index -> catalog store -> fallback pipeline search
- TrendingTracker: regional, windowed query popularity
- AutocompleteService: merged product / category / trending suggestions
- MissLedger: zero-result query log and admin analytics
- IntentClassifier, normalize_query, resolve_region: pure helpers
- AlgoliaClient, IndexSyncService: fast index access and catalog sync
"""

from search.algolia_client import AlgoliaClient, get_algolia_client
from search.autocomplete import AutocompleteService, get_autocomplete_service
from search.index_sync import IndexSyncService, get_index_sync_service
from search.intent import IntentClassifier, classify_intent, get_intent_classifier
from search.miss_ledger import MissLedger, get_miss_ledger
from search.normalizer import extract_keywords, normalize_query
from search.orchestrator import SearchOrchestrator, get_search_orchestrator
from search.region import resolve_region
from search.trending import TrendingTracker, get_trending_tracker

__all__ = [
    "AlgoliaClient",
    "get_algolia_client",
    "AutocompleteService",
    "get_autocomplete_service",
    "IndexSyncService",
    "get_index_sync_service",
    "IntentClassifier",
    "classify_intent",
    "get_intent_classifier",
    "MissLedger",
    "get_miss_ledger",
    "extract_keywords",
    "normalize_query",
    "SearchOrchestrator",
    "get_search_orchestrator",
    "resolve_region",
    "TrendingTracker",
    "get_trending_tracker",
]
