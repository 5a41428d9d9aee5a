from __future__ import annotations

import logging

from app.search_index.client import MeiliClient
from config.settings import CANDIDATE_LIMIT
from engine.search_context import SearchContext, get_search_tokens
from metadata.errors import CollaboratorUnavailable

logger = logging.getLogger(__name__)


class CandidateRetriever:
    """Prefilter that narrows the catalog to a bounded list of candidate song ids.

    It never ranks. Callers check ``is_available()`` and fall back to a full
    scan when it is false or when retrieval raises.
    """

    name = "none"

    def is_available(self) -> bool:
        return False

    def get_candidate_song_ids(self, context: SearchContext, limit: int = CANDIDATE_LIMIT) -> list[str]:
        return []


def build_index_query(context: SearchContext) -> str:
    return " ".join(get_search_tokens(context)) or context.normalized_query


class MeiliCandidateRetriever(CandidateRetriever):
    name = "index"

    def __init__(self, client: MeiliClient) -> None:
        self.client = client

    def is_available(self) -> bool:
        return self.client.is_available()

    def get_candidate_song_ids(self, context: SearchContext, limit: int = CANDIDATE_LIMIT) -> list[str]:
        limit = max(1, min(int(limit), CANDIDATE_LIMIT))
        try:
            hits = self.client.search(build_index_query(context), limit=limit, attributes_to_retrieve=["songId"])
        except CollaboratorUnavailable:
            self.client.mark_unavailable()
            raise
        song_ids = []
        for hit in hits:
            song_id = hit.get("songId") if isinstance(hit, dict) else None
            if song_id:
                song_ids.append(str(song_id))
        return song_ids[:limit]
