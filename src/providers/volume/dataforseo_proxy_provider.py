"""DataForSEO keyword-volume provider, routed through a forwarding proxy.

Implements IKeywordVolumeProvider on top of three DataForSEO v3 endpoints:

- ``keywords_data/google_ads/search_volume/live``      (primary volume)
- ``dataforseo_labs/amazon/bulk_search_volume/live``   (secondary volume)
- ``keywords_data/google_ads/keywords_for_keywords/live`` (related terms)

Credentials never leave the server side of the proxy in logs: each call is
a POST to ``{proxy_url}/dfs/proxy`` with body
``{"path": ..., "payload": ..., "creds": {...}, "method": "POST"}`` and the
proxy's own ``X-API-Key`` header.  The proxy may wrap the DataForSEO
envelope as ``{"data": {...}}``; both shapes are accepted.

Every failure is raised as a ProviderCallError carrying an ErrorClass so the
resilient runner can decide whether to retry.  This adapter never retries
by itself.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.config.settings import Settings
from src.interfaces.keyword_volume_provider import IKeywordVolumeProvider, KeywordVolume
from src.models.resilience import ErrorClass
from src.utils.errors import (
    ProviderCallError,
    ProviderUnavailableError,
    RateLimitError,
    ResponseParseError,
)

logger = structlog.get_logger(logger_name=__name__)

_SEARCH_VOLUME_PATH = "keywords_data/google_ads/search_volume/live"
_RELATED_KEYWORDS_PATH = "keywords_data/google_ads/keywords_for_keywords/live"
_AMAZON_VOLUME_PATH = "dataforseo_labs/amazon/bulk_search_volume/live"

_TASK_OK = 20000
_TASK_RATE_LIMITED = frozenset({40202, 40209})
# keywords_for_keywords accepts at most 20 seed keys per task.
_MAX_RELATED_SEEDS = 20


def _as_int(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def extract_items(envelope: dict[str, Any]) -> list[dict[str, Any]]:
    """Pull keyword items out of a DataForSEO response envelope.

    Three shapes occur in practice, tried in order:

    1. ``tasks[0].result`` is itself the item list (Google Ads endpoints).
    2. ``tasks[0].result[0].items`` (Labs endpoints).
    3. ``result[0].items`` (some proxy deployments flatten ``tasks``).
    """
    tasks = envelope.get("tasks") or []
    if tasks and isinstance(tasks[0], dict):
        result = tasks[0].get("result") or []
        if result and isinstance(result[0], dict):
            if "keyword" in result[0]:
                return [r for r in result if isinstance(r, dict)]
            items = result[0].get("items")
            if items:
                return [i for i in items if isinstance(i, dict)]
    result = envelope.get("result") or []
    if result and isinstance(result[0], dict):
        return [i for i in (result[0].get("items") or []) if isinstance(i, dict)]
    return []


def classify_task_status(status_code: int) -> ErrorClass:
    """Map a non-OK DataForSEO task status to an ErrorClass."""
    if status_code in _TASK_RATE_LIMITED:
        return ErrorClass.HTTP_429
    if 40000 <= status_code < 50000:
        return ErrorClass.HTTP_4XX
    return ErrorClass.HTTP_5XX


class DataForSeoProxyProvider(IKeywordVolumeProvider):
    """Keyword volume provider backed by DataForSEO through the proxy.

    Parameters
    ----------
    settings:
        Supplies proxy URL, proxy API key and DataForSEO login/password.
    client:
        Optional shared ``httpx.AsyncClient``; one is created (and owned)
        when omitted.
    """

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._base_url = settings.dfs_proxy_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.resilience_timeout_seconds)
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # -- Private helpers -------------------------------------------------------

    def _fail(
        self,
        message: str,
        error_class: ErrorClass,
        status_code: int | None = None,
    ) -> ProviderCallError:
        return ProviderCallError(
            message=message,
            provider_name=self.get_provider_name(),
            error_class=error_class,
            status_code=status_code,
        )

    async def _post(self, path: str, payload: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Send one task through the proxy and return its keyword items."""
        if not self.is_available():
            raise ProviderUnavailableError(
                message="DataForSEO proxy URL or credentials not configured",
                provider_name=self.get_provider_name(),
            )

        body = {
            "path": path,
            "payload": payload,
            "creds": {
                "login": self._settings.dfs_login,
                "password": self._settings.dfs_password,
            },
            "method": "POST",
        }
        headers = {"Content-Type": "application/json"}
        if self._settings.dfs_proxy_api_key:
            headers["X-API-Key"] = self._settings.dfs_proxy_api_key

        size = len(payload[0].get("keywords") or payload[0].get("keys") or []) if payload else 0
        try:
            response = await self._client.post(
                f"{self._base_url}/dfs/proxy",
                json=body,
                headers=headers,
            )
        except httpx.TimeoutException as exc:
            raise self._fail(f"Proxy timeout on {path}: {exc}", ErrorClass.TIMEOUT) from exc
        except httpx.TransportError as exc:
            raise self._fail(f"Proxy transport error on {path}: {exc}", ErrorClass.NETWORK) from exc

        status = response.status_code
        if status in (408, 504):
            raise self._fail("DFS_PROXY_TIMEOUT", ErrorClass.TIMEOUT, status)
        if status == 429:
            raise RateLimitError(
                message=f"Proxy HTTP 429 on {path}",
                provider_name=self.get_provider_name(),
            )
        if status >= 400:
            error_class = ErrorClass.HTTP_5XX if status >= 500 else ErrorClass.HTTP_4XX
            raise self._fail(f"Proxy HTTP {status}: {response.text[:200]}", error_class, status)

        try:
            wrapper = response.json()
        except ValueError as exc:
            raise ResponseParseError(
                message=f"Proxy returned non-JSON body for {path}",
                provider_name=self.get_provider_name(),
            ) from exc
        if not isinstance(wrapper, dict):
            raise ResponseParseError(
                message=f"Unexpected response type {type(wrapper).__name__} for {path}",
                provider_name=self.get_provider_name(),
            )

        envelope = wrapper.get("data") if isinstance(wrapper.get("data"), dict) else wrapper
        tasks = envelope.get("tasks") or []
        if tasks and isinstance(tasks[0], dict):
            task_status = _as_int(tasks[0].get("status_code"))
            if task_status is not None and task_status != _TASK_OK:
                error_class = classify_task_status(task_status)
                message = f"DFS task error {task_status}: {tasks[0].get('status_message', '')}"
                if error_class is ErrorClass.HTTP_429:
                    raise RateLimitError(
                        message=message,
                        provider_name=self.get_provider_name(),
                        status_code=task_status,
                    )
                raise self._fail(message, error_class, task_status)

        items = extract_items(envelope)
        logger.info("dfs_batch_ok", path=path, sent=size, received=len(items))
        return items

    @staticmethod
    def _payload(
        field: str,
        values: list[str],
        location_code: int,
        language_code: str,
    ) -> list[dict[str, Any]]:
        return [{field: values, "location_code": location_code, "language_code": language_code}]

    # -- IKeywordVolumeProvider implementation ---------------------------------

    async def fetch_search_volume(
        self,
        keywords: list[str],
        location_code: int,
        language_code: str,
    ) -> list[KeywordVolume]:
        items = await self._post(
            _SEARCH_VOLUME_PATH,
            self._payload("keywords", keywords, location_code, language_code),
        )
        return [
            KeywordVolume(
                keyword=str(item["keyword"]),
                volume=_as_int(item.get("search_volume")),
                cpc=_as_float(item.get("cpc")),
                competition_index=_as_float(item.get("competition_index")),
            )
            for item in items
            if item.get("keyword")
        ]

    async def fetch_secondary_volume(
        self,
        keywords: list[str],
        location_code: int,
        language_code: str,
    ) -> list[KeywordVolume]:
        payload = [{
            "se_type": "amazon",
            "location_code": location_code,
            "language_code": language_code,
            "keywords": keywords,
        }]
        items = await self._post(_AMAZON_VOLUME_PATH, payload)
        return [
            KeywordVolume(
                keyword=str(item["keyword"]),
                secondary_volume=_as_int(
                    item.get("search_volume", item.get("amazon_search_volume"))
                ),
            )
            for item in items
            if item.get("keyword")
        ]

    async def fetch_related_keywords(
        self,
        seeds: list[str],
        location_code: int,
        language_code: str,
    ) -> list[KeywordVolume]:
        items = await self._post(
            _RELATED_KEYWORDS_PATH,
            self._payload("keys", seeds[:_MAX_RELATED_SEEDS], location_code, language_code),
        )
        return [
            KeywordVolume(
                keyword=str(item["keyword"]),
                volume=_as_int(item.get("search_volume")),
                cpc=_as_float(item.get("cpc")),
                competition_index=_as_float(item.get("competition_index")),
            )
            for item in items
            if item.get("keyword")
        ]

    def get_provider_name(self) -> str:
        return "dataforseo"

    def is_available(self) -> bool:
        return bool(self._base_url) and self._settings.has_provider_credentials()
