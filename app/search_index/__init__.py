from app.search_index.client import MeiliClient
from app.search_index.indexer import SongIndexer, build_song_document
from app.search_index.retriever import CandidateRetriever, MeiliCandidateRetriever, build_index_query

__all__ = [
    "CandidateRetriever",
    "MeiliCandidateRetriever",
    "MeiliClient",
    "SongIndexer",
    "build_index_query",
    "build_song_document",
]
