#!/usr/bin/env python3
import hmac
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal, Optional

import anyio
from fastapi import FastAPI, Header, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.search_cache import MemorySearchCache, RedisSearchCache, TieredSearchCache
from app.search_index import MeiliCandidateRetriever, MeiliClient, SongIndexer
from config.settings import DEFAULT_LIMIT, INDEX_BATCH_SIZE, SUGGESTION_DEFAULT_LIMIT
from db.song_repository import SongRepository
from engine.catalog import CatalogState
from engine.paths import DB_PATH, LOG_DIR, MEILI_HOST, REDIS_URL, build_engine_paths, ensure_dir
from engine.runtime import get_runtime_info
from engine.search_service import SearchService, validate_query
from engine.suggestions import get_artist_suggestions, get_search_suggestions
from metadata.errors import CollaboratorUnavailable

APP_NAME = "Tunecanon API"
STATUS_SCHEMA_VERSION = 1
ADMIN_TOKEN_ENV_KEY = "TUNECANON_ADMIN_TOKEN"
LOG_FILE_NAME = "tunecanon.log"


@dataclass
class Services:
    repository: SongRepository
    catalog_state: CatalogState
    search_service: SearchService
    cache: TieredSearchCache
    meili_client: Optional[MeiliClient] = None
    indexer: Optional[SongIndexer] = None


def build_services(db_path=None, redis_url=None, meili_host=None):
    redis_url = REDIS_URL if redis_url is None else redis_url
    meili_host = MEILI_HOST if meili_host is None else meili_host

    repository = SongRepository(db_path or str(DB_PATH))
    repository.ensure_schema()
    catalog_state = CatalogState()

    backends = []
    if redis_url:
        backends.append(RedisSearchCache(redis_url))
    backends.append(MemorySearchCache())
    cache = TieredSearchCache(backends)

    meili_client = None
    indexer = None
    retriever = None
    if meili_host:
        meili_client = MeiliClient(meili_host)
        retriever = MeiliCandidateRetriever(meili_client)
        indexer = SongIndexer(meili_client)
    else:
        logging.info("MEILI_HOST not set; searches scan the in-memory catalog")

    search_service = SearchService(catalog_state, repository=repository, retriever=retriever, cache=cache)
    return Services(
        repository=repository,
        catalog_state=catalog_state,
        search_service=search_service,
        cache=cache,
        meili_client=meili_client,
        indexer=indexer,
    )


def _setup_logging(log_dir):
    ensure_dir(log_dir)
    root = logging.getLogger("")
    log_path = os.path.join(log_dir, LOG_FILE_NAME)
    root.setLevel(logging.INFO)
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler):
            if os.path.abspath(getattr(handler, "baseFilename", "")) == os.path.abspath(log_path):
                return
    file_handler = logging.FileHandler(log_path)
    file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    file_handler.setLevel(logging.INFO)
    root.addHandler(file_handler)


class RebuildIndexRequest(BaseModel):
    mode: Literal["stats", "rehydrate", "reindex"] = "stats"
    batch_size: int = Field(default=INDEX_BATCH_SIZE, ge=1, le=INDEX_BATCH_SIZE)
    clear_first: bool = True


app = FastAPI(
    title=APP_NAME,
    description="Music identity, canonical selection and search ranking API.",
)


@app.on_event("startup")
async def startup():
    paths = build_engine_paths()
    _setup_logging(paths.log_dir)
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services(db_path=paths.db_path)
    services = app.state.services
    stats = await anyio.to_thread.run_sync(services.catalog_state.rehydrate, services.repository)
    logging.info("Catalog ready: %s", stats)


@app.on_event("shutdown")
async def shutdown():
    services = getattr(app.state, "services", None)
    if services is None:
        return
    for backend in services.cache.backends:
        if isinstance(backend, RedisSearchCache):
            backend.close()


def _services():
    services = getattr(app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Service is starting")
    return services


def _parse_bool(value, default):
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in {"true", "1"}:
        return True
    if lowered in {"false", "0"}:
        return False
    return default


def _parse_int(value, default):
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


@app.get("/api/search")
def api_search(
    q: str = Query(""),
    limit: Optional[str] = None,
    offset: Optional[str] = None,
    grouped: Optional[str] = None,
    debug: Optional[str] = None,
):
    validation = validate_query(q)
    if not validation.valid:
        return JSONResponse(status_code=400, content={"error": validation.error, "query": q})
    debug_flag = _parse_bool(debug, False)
    options = {
        "limit": _parse_int(limit, DEFAULT_LIMIT),
        "offset": _parse_int(offset, 0),
        "grouped": _parse_bool(grouped, True),
        "debug": debug_flag,
    }
    try:
        result = _services().search_service.search(q, options)
    except HTTPException:
        raise
    except Exception:
        logging.exception("Search failed for query %r", q)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})
    if result.get("error"):
        return JSONResponse(status_code=400, content=result)
    cache_control = "no-store" if debug_flag else "public, max-age=30"
    return JSONResponse(content=result, headers={"Cache-Control": cache_control})


@app.get("/api/suggestions")
def api_suggestions(
    q: str = Query(""),
    type: Literal["title", "artist"] = "title",
    limit: int = Query(SUGGESTION_DEFAULT_LIMIT, ge=1, le=20),
):
    songs = _services().catalog_state.snapshot.all_songs()
    if type == "artist":
        suggestions = get_artist_suggestions(songs, q, limit)
    else:
        suggestions = get_search_suggestions(songs, q, limit)
    return {"query": q, "type": type, "suggestions": suggestions}


@app.get("/api/canonical/{identity_key:path}")
def api_canonical(identity_key: str):
    selection = _services().catalog_state.get_canonical_selection(identity_key)
    if selection is None:
        raise HTTPException(status_code=404, detail=f"Unknown identity key: {identity_key}")
    return selection.to_dict()


@app.get("/api/status")
def api_status():
    services = _services()
    meili_client = services.meili_client
    return {
        "schema_version": STATUS_SCHEMA_VERSION,
        "server_time": datetime.now(timezone.utc).isoformat(),
        "runtime": get_runtime_info(),
        "catalog": services.catalog_state.snapshot.stats(),
        "cache": services.cache.stats(),
        "index": {
            "configured": meili_client is not None,
            "available": bool(meili_client and meili_client.is_available()),
        },
    }


def _check_admin_token(token):
    expected = os.environ.get(ADMIN_TOKEN_ENV_KEY, "")
    if not expected:
        raise HTTPException(status_code=503, detail=f"{ADMIN_TOKEN_ENV_KEY} is not set on the server")
    if not token or not hmac.compare_digest(token, expected):
        raise HTTPException(status_code=401, detail="Missing or invalid admin token")


def _index_stats(services) -> dict[str, Any]:
    indexer = services.indexer
    return {
        "enabled": indexer is not None,
        "stats": indexer.stats() if indexer is not None else None,
    }


@app.post("/api/admin/rebuild-index")
async def api_rebuild_index(
    payload: Optional[RebuildIndexRequest] = None,
    x_admin_token: Optional[str] = Header(default=None),
):
    _check_admin_token(x_admin_token)
    payload = payload or RebuildIndexRequest()
    services = _services()

    if payload.mode == "stats":
        db_songs = await anyio.to_thread.run_sync(services.repository.count_songs)
        return {
            "status": "ok",
            "index": _index_stats(services),
            "database": {"total_songs": db_songs},
            "catalog": services.catalog_state.snapshot.stats(),
        }

    if payload.mode == "rehydrate":
        stats = await anyio.to_thread.run_sync(services.catalog_state.rehydrate, services.repository)
        verification = await anyio.to_thread.run_sync(services.catalog_state.verify_rebuild, services.repository)
        return {"status": "success", "rehydrate": stats, "verification": verification}

    if services.indexer is None:
        raise HTTPException(status_code=503, detail="Full-text index is not configured")
    indexer = SongIndexer(services.indexer.client, batch_size=payload.batch_size)
    try:
        result = await anyio.to_thread.run_sync(
            lambda: indexer.reindex_repository(services.repository, clear_first=payload.clear_first)
        )
    except CollaboratorUnavailable as exc:
        logging.error("Reindex failed: %s", exc)
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    services.search_service.invalidate_cache()
    return {"status": "success", "reindex": result}
