import logging
import threading
import time
from typing import Any, Callable
from urllib.parse import urljoin

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from config.settings import COLLABORATOR_RETRY_SECONDS
from engine.paths import MEILI_API_KEY, MEILI_HOST, MEILI_INDEX
from metadata.errors import CollaboratorUnavailable

logger = logging.getLogger(__name__)

MEILI_TIMEOUT_SECONDS = 5.0
TASK_POLL_INTERVAL_SECONDS = 0.25
TASK_TIMEOUT_SECONDS = 30.0

SEARCHABLE_ATTRIBUTES = ["titleClean", "titleNormalized", "artistNormalized", "album"]
FILTERABLE_ATTRIBUTES = ["versionType", "durationBucket", "source", "identityKey"]


def _build_session() -> requests.Session:
    session = requests.Session()
    retry = Retry(
        total=3,
        backoff_factor=0.4,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset({"GET"}),
        respect_retry_after_header=True,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


class MeiliClient:
    """Minimal Meilisearch REST client for the songs index.

    Transport and HTTP errors surface as ``CollaboratorUnavailable``. The
    health check result is remembered for ``health_ttl_seconds`` so a dead
    server is not hit on every search.
    """

    def __init__(
        self,
        host: str | None = None,
        *,
        api_key: str | None = None,
        index_name: str | None = None,
        timeout_seconds: float = MEILI_TIMEOUT_SECONDS,
        health_ttl_seconds: float = COLLABORATOR_RETRY_SECONDS,
        session: Any = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        host = MEILI_HOST if host is None else host
        self.base_url = host.rstrip("/") + "/" if host else ""
        self.api_key = MEILI_API_KEY if api_key is None else api_key
        self.index_name = index_name or MEILI_INDEX
        self.timeout_seconds = timeout_seconds
        self.health_ttl_seconds = health_ttl_seconds
        self._session = session if session is not None else _build_session()
        self._clock = clock
        self._health_lock = threading.Lock()
        self._healthy: bool | None = None
        self._checked_at = 0.0

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: dict[str, Any] | None = None,
        payload: Any = None,
        allow_status: tuple[int, ...] = (),
    ) -> Any:
        if not self.configured:
            raise CollaboratorUnavailable("meilisearch host is not configured")
        url = urljoin(self.base_url, endpoint.lstrip("/"))
        try:
            resp = self._session.request(
                method,
                url,
                params=params or None,
                json=payload,
                headers=self._headers(),
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as exc:
            logger.info(f"[MEILI] request={method} {endpoint} status=error")
            raise CollaboratorUnavailable(f"meilisearch request failed: {exc}") from exc
        status = int(resp.status_code)
        if status >= 400 and status not in allow_status:
            logger.info(f"[MEILI] request={method} {endpoint} status={status}")
            raise CollaboratorUnavailable(f"meilisearch returned HTTP {status} for {endpoint}")
        if not resp.content:
            return {}
        return resp.json()

    def health(self) -> bool:
        try:
            payload = self._request("GET", "/health")
        except CollaboratorUnavailable:
            return False
        return isinstance(payload, dict) and payload.get("status") == "available"

    def is_available(self) -> bool:
        if not self.configured:
            return False
        with self._health_lock:
            now = self._clock()
            if self._healthy is not None and now - self._checked_at < self.health_ttl_seconds:
                return self._healthy
            healthy = self.health()
            if healthy != self._healthy:
                log = logger.info if healthy else logger.warning
                log("[MEILI] %s is %s", self.base_url, "available" if healthy else "unavailable")
            self._healthy = healthy
            self._checked_at = now
            return healthy

    def mark_unavailable(self) -> None:
        with self._health_lock:
            self._healthy = False
            self._checked_at = self._clock()

    def ensure_index(self) -> None:
        self._request(
            "POST",
            "/indexes",
            payload={"uid": self.index_name, "primaryKey": "songId"},
            allow_status=(409,),
        )
        self._request(
            "PATCH",
            f"/indexes/{self.index_name}/settings",
            payload={
                "searchableAttributes": SEARCHABLE_ATTRIBUTES,
                "filterableAttributes": FILTERABLE_ATTRIBUTES,
                "sortableAttributes": [],
                "typoTolerance": {"enabled": True, "minWordSizeForTypos": {"oneTypo": 5, "twoTypos": 9}},
            },
        )

    def search(self, query: str, *, limit: int, attributes_to_retrieve: list[str] | None = None) -> list[dict[str, Any]]:
        body: dict[str, Any] = {"q": query, "limit": limit}
        if attributes_to_retrieve:
            body["attributesToRetrieve"] = attributes_to_retrieve
        payload = self._request("POST", f"/indexes/{self.index_name}/search", payload=body)
        hits = payload.get("hits") if isinstance(payload, dict) else None
        return hits if isinstance(hits, list) else []

    def add_documents(self, documents: list[dict[str, Any]]) -> dict[str, Any]:
        return self._request(
            "POST",
            f"/indexes/{self.index_name}/documents",
            params={"primaryKey": "songId"},
            payload=documents,
        )

    def delete_document(self, song_id: str) -> dict[str, Any]:
        return self._request("DELETE", f"/indexes/{self.index_name}/documents/{song_id}")

    def delete_all_documents(self) -> dict[str, Any]:
        return self._request("DELETE", f"/indexes/{self.index_name}/documents")

    def wait_for_task(self, task: dict[str, Any], timeout_seconds: float = TASK_TIMEOUT_SECONDS) -> dict[str, Any]:
        task_uid = task.get("taskUid", task.get("uid")) if isinstance(task, dict) else None
        if task_uid is None:
            return task or {}
        deadline = self._clock() + timeout_seconds
        while True:
            status = self._request("GET", f"/tasks/{task_uid}")
            if status.get("status") in ("succeeded", "failed", "canceled"):
                if status.get("status") != "succeeded":
                    raise CollaboratorUnavailable(f"meilisearch task {task_uid} ended as {status.get('status')}")
                return status
            if self._clock() >= deadline:
                raise CollaboratorUnavailable(f"meilisearch task {task_uid} timed out")
            time.sleep(TASK_POLL_INTERVAL_SECONDS)

    def get_stats(self) -> dict[str, Any]:
        payload = self._request("GET", f"/indexes/{self.index_name}/stats")
        return {
            "numberOfDocuments": payload.get("numberOfDocuments", 0),
            "isIndexing": bool(payload.get("isIndexing", False)),
        }
