import os
from dataclasses import dataclass
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parent.parent

def _is_container_runtime():
    if os.path.exists("/.dockerenv"):
        return True
    return os.path.isdir("/data")


def _default_root_paths():
    if _is_container_runtime():
        return {
            "data": Path("/data"),
            "logs": Path("/logs"),
        }
    base = PROJECT_ROOT / "data"
    return {
        "data": base,
        "logs": base / "logs",
    }


_DEFAULTS = _default_root_paths()

DATA_DIR = Path(os.environ.get("TUNECANON_DATA_DIR", _DEFAULTS["data"])).resolve()
LOG_DIR = Path(os.environ.get("TUNECANON_LOG_DIR", _DEFAULTS["logs"])).resolve()
DB_PATH = Path(os.environ.get("TUNECANON_DB_PATH", DATA_DIR / "database" / "catalog.sqlite")).resolve()

# Empty values disable the optional collaborators.
REDIS_URL = os.environ.get("TUNECANON_REDIS_URL", "").strip()
MEILI_HOST = os.environ.get("MEILI_HOST", "").strip()
MEILI_API_KEY = os.environ.get("MEILI_API_KEY", "").strip() or None
MEILI_INDEX = os.environ.get("MEILI_INDEX", "songs").strip() or "songs"


@dataclass(frozen=True)
class EnginePaths:
    log_dir: str
    db_path: str


def ensure_dir(path):
    if path:
        os.makedirs(path, exist_ok=True)


def build_engine_paths():
    for d in (DB_PATH.parent, LOG_DIR):
        ensure_dir(d)

    return EnginePaths(
        log_dir=str(LOG_DIR),
        db_path=str(DB_PATH),
    )
