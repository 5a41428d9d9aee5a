"""Application settings constants."""

from __future__ import annotations

# Shortest query (after trimming) the search service accepts.
MIN_QUERY_LENGTH = 2

# Upper bound and default for the page size of a search response.
MAX_LIMIT = 50
DEFAULT_LIMIT = 20

# Searches slower than this are logged as slow queries.
PERFORMANCE_WARNING_MS = 200

# Maximum number of candidate ids requested from the full-text index.
CANDIDATE_LIMIT = 200

# Lifetime of a cached search response, in seconds.
SEARCH_CACHE_TTL_SECONDS = 30

# Local cache capacity and how many of the oldest entries to drop when full.
MEMORY_CACHE_MAX_ENTRIES = 500
MEMORY_CACHE_EVICT_BATCH = 100

# How long an unreachable collaborator is left alone before it is checked again.
COLLABORATOR_RETRY_SECONDS = 30

# Page size for rebuilding the in-memory catalog from the durable store.
REHYDRATE_PAGE_SIZE = 500

# Documents per request when pushing songs to the full-text index.
INDEX_BATCH_SIZE = 1000

# Prefix suggestions.
SUGGESTION_MIN_PREFIX = 2
SUGGESTION_DEFAULT_LIMIT = 5
