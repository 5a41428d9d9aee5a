from .catalog import CatalogSnapshot, CatalogState, build_catalog_snapshot
from .paths import EnginePaths
from .runtime import get_runtime_info
from .search_service import SearchService

__all__ = [
    "CatalogSnapshot",
    "CatalogState",
    "EnginePaths",
    "SearchService",
    "build_catalog_snapshot",
    "get_runtime_info",
]
