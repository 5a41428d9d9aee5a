"""Search orchestration: validation, response cache, candidate retrieval, ranking, pagination."""

from __future__ import annotations

import copy
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping

from config.settings import (
    CANDIDATE_LIMIT,
    DEFAULT_LIMIT,
    MAX_LIMIT,
    MIN_QUERY_LENGTH,
    PERFORMANCE_WARNING_MS,
    SEARCH_CACHE_TTL_SECONDS,
)
from engine.catalog import CatalogSnapshot, CatalogState
from engine.ranking import flatten_results, group_results_by_identity, rank_results
from engine.search_context import SearchContext, build_search_context
from metadata.normalize import normalize_text
from metadata.types import Song

logger = logging.getLogger(__name__)

CANDIDATE_SOURCE_INDEX = "index"
CANDIDATE_SOURCE_MEMORY = "memory"


@dataclass(frozen=True)
class QueryValidation:
    valid: bool
    error: str | None = None


@dataclass(frozen=True)
class SearchOptions:
    limit: int = DEFAULT_LIMIT
    offset: int = 0
    grouped: bool = True
    debug: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"limit": self.limit, "offset": self.offset, "grouped": self.grouped, "debug": self.debug}


def validate_query(query: Any) -> QueryValidation:
    if not query or not isinstance(query, str):
        return QueryValidation(False, "Query is required")
    if len(query.strip()) < MIN_QUERY_LENGTH:
        return QueryValidation(False, f"Query must be at least {MIN_QUERY_LENGTH} characters")
    return QueryValidation(True)


def _as_int(value: Any, default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def normalize_options(options: Mapping[str, Any] | SearchOptions | None = None) -> SearchOptions:
    if isinstance(options, SearchOptions):
        options = options.to_dict()
    options = options or {}
    limit = _as_int(options.get("limit"), DEFAULT_LIMIT) or DEFAULT_LIMIT
    return SearchOptions(
        limit=min(max(1, limit), MAX_LIMIT),
        offset=max(0, _as_int(options.get("offset"), 0)),
        grouped=options.get("grouped") is not False,
        debug=options.get("debug") is True,
    )


def generate_cache_key(query: str | None, options: SearchOptions) -> str:
    relevant = json.dumps(options.to_dict(), separators=(",", ":"))
    return f"{normalize_text(query or '')}:{relevant}"


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class SearchService:
    """Serves ``search`` against the current catalog snapshot.

    The retriever and cache are optional. Without a usable retriever every
    search scans the whole snapshot. Writes to the repository and catalog
    swaps invalidate the whole cache.
    """

    def __init__(self, catalog_state: CatalogState, repository: Any = None, retriever: Any = None, cache: Any = None):
        self.catalog_state = catalog_state
        self.repository = repository
        self.retriever = retriever
        self.cache = cache
        if cache is not None:
            catalog_state.add_swap_listener(lambda _snapshot: self.invalidate_cache())
            if repository is not None:
                repository.add_write_listener(self.invalidate_cache)

    def invalidate_cache(self) -> dict[str, int]:
        if self.cache is None:
            return {}
        return self.cache.invalidate_all()

    def cache_stats(self) -> dict[str, Any] | None:
        return self.cache.stats() if self.cache is not None else None

    def _retriever_available(self) -> bool:
        if self.retriever is None or self.repository is None:
            return False
        try:
            return bool(self.retriever.is_available())
        except Exception:
            logger.exception("[SEARCH] candidate retriever availability check failed")
            return False

    def get_candidate_songs(
        self,
        context: SearchContext,
        snapshot: CatalogSnapshot | None = None,
    ) -> tuple[list[Song], str]:
        if snapshot is None:
            snapshot = self.catalog_state.snapshot
        if self._retriever_available():
            try:
                candidate_ids = self.retriever.get_candidate_song_ids(context, CANDIDATE_LIMIT)
                if candidate_ids:
                    songs = self.repository.get_songs_by_ids(candidate_ids[:CANDIDATE_LIMIT])
                    if songs:
                        return songs, CANDIDATE_SOURCE_INDEX
            except Exception as exc:
                logger.warning("[SEARCH] candidate retrieval failed, falling back: %s", exc)
        logging.warning(
            '[DEGRADED MODE] query="%s" scanning all %d songs in memory; candidate index unavailable',
            context.raw_query,
            len(snapshot.songs),
        )
        return snapshot.all_songs(), CANDIDATE_SOURCE_MEMORY

    def search(self, query: Any, options: Mapping[str, Any] | SearchOptions | None = None) -> dict[str, Any]:
        started = time.monotonic()
        validation = validate_query(query)
        if not validation.valid:
            return {
                "query": query if isinstance(query, str) else "",
                "totalResults": 0,
                "results": [],
                "error": validation.error,
                "meta": {"cached": False, "executionTimeMs": _elapsed_ms(started)},
            }

        opts = normalize_options(options)
        cache_key = generate_cache_key(query, opts)
        if not opts.debug and self.cache is not None:
            cached, cache_source = self.cache.get(cache_key)
            if cached is not None:
                cached = copy.deepcopy(cached)
                return {
                    **cached,
                    "meta": {
                        **cached.get("meta", {}),
                        "cached": True,
                        "cacheSource": cache_source,
                        "executionTimeMs": _elapsed_ms(started),
                    },
                }

        context = build_search_context(query)
        # one snapshot for the whole request; a swap mid-search must not mix builds
        snapshot = self.catalog_state.snapshot
        candidates, candidate_source = self.get_candidate_songs(context, snapshot)
        ranked = rank_results(candidates, context, snapshot)
        window = slice(opts.offset, opts.offset + opts.limit)

        if opts.grouped:
            groups = group_results_by_identity(ranked, opts.debug)
            response: dict[str, Any] = {
                "query": query,
                "totalGroups": len(groups),
                "totalSongs": len(ranked),
                "results": groups[window],
            }
            applies_to = "groups"
        else:
            response = {
                "query": query,
                "totalResults": len(ranked),
                "results": flatten_results(ranked[window], opts.debug),
            }
            applies_to = "songs"
        execution_ms = _elapsed_ms(started)
        response["meta"] = {
            "cached": False,
            "executionTimeMs": execution_ms,
            "candidateSource": candidate_source,
            "pagination": {"limit": opts.limit, "offset": opts.offset, "appliesTo": applies_to},
        }

        if execution_ms > PERFORMANCE_WARNING_MS:
            logging.warning('[SEARCH] slow query "%s" took %dms', query, execution_ms)

        if opts.debug:
            response["debug"] = {
                "intent": context.intent.to_dict(),
                "tokens": list(context.tokens),
                "candidateCount": len(candidates),
                "cacheStats": self.cache_stats(),
            }
        elif self.cache is not None:
            self.cache.set(cache_key, copy.deepcopy(response), SEARCH_CACHE_TTL_SECONDS)
        return response


__all__ = [
    "QueryValidation",
    "SearchOptions",
    "SearchService",
    "generate_cache_key",
    "normalize_options",
    "validate_query",
]
