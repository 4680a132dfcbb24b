"""
OData Client - secondary HTTP transport for extractors that read entity sets
"""

import asyncio
from typing import Any, Dict, List, Optional
import httpx
import structlog

from rfcbridge.core.config import settings
from rfcbridge.core.exceptions import ConfigError, ODataError

logger = structlog.get_logger(__name__)

RETRY_STATUS_CODES = (429, 502, 503, 504)


class ODataClient:
    """Read-only OData V2/V4 client with auto-pagination and retries"""

    def __init__(
        self,
        base_url: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
        retry_base_delay: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not base_url:
            raise ConfigError("OData client requires a base URL", details={"field": "base_url"})
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout if timeout is not None else settings.SAP_ODATA_TIMEOUT
        self.retries = retries if retries is not None else settings.SAP_ODATA_RETRIES
        self.retry_base_delay = retry_base_delay

        auth = httpx.BasicAuth(username, password or "") if username else None
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            auth=auth,
            timeout=self.timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    @classmethod
    def from_settings(cls) -> Optional["ODataClient"]:
        """Client built from SAP_ODATA_* settings, or None when not configured"""
        if not settings.SAP_ODATA_BASE_URL:
            return None
        return cls(
            settings.SAP_ODATA_BASE_URL,
            username=settings.SAP_ODATA_USERNAME,
            password=settings.SAP_ODATA_PASSWORD,
        )

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """GET request returning parsed JSON"""
        params = dict(params or {})
        params.setdefault("$format", "json")
        return await self._execute_with_retry(path, params)

    async def get_all(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        GET an entity set following server-driven paging

        Follows V2 '__next' and V4 '@odata.nextLink' links until exhausted.
        """
        results: List[Dict[str, Any]] = []
        data = await self.get(path, params)

        while True:
            results.extend(self.extract_results(data))
            next_link = data.get("@odata.nextLink") or (data.get("d") or {}).get("__next")
            if not next_link:
                break
            data = await self._execute_with_retry(next_link, None)

        return results

    @staticmethod
    def extract_results(data: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Entity list from a V2 ('d.results') or V4 ('value') payload"""
        if "value" in data:
            return list(data["value"] or [])
        body = data.get("d")
        if isinstance(body, dict):
            if "results" in body:
                return list(body["results"] or [])
            return [body]
        return []

    async def _execute_with_retry(self, url: str, params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        for attempt in range(self.retries + 1):
            try:
                response = await self.client.get(url, params=params)
                if response.status_code in RETRY_STATUS_CODES or response.status_code >= 500:
                    raise ODataError(
                        f"OData request failed with HTTP {response.status_code}",
                        status_code=response.status_code,
                        details={"url": str(response.request.url)}
                    )
                response.raise_for_status()

            except httpx.HTTPStatusError as e:
                # Client errors (4xx other than 429) are not retried
                raise ODataError(
                    f"OData request failed with HTTP {e.response.status_code}",
                    status_code=e.response.status_code,
                    details={"url": str(e.request.url)}
                ) from e

            except (httpx.TransportError, ODataError) as e:
                if attempt >= self.retries:
                    if isinstance(e, ODataError):
                        raise
                    raise ODataError(
                        f"OData transport error: {e}",
                        details={"url": url, "attempts": attempt + 1}
                    ) from e

                delay = self.retry_base_delay * (2 ** attempt)
                logger.warning("OData request failed, retrying",
                               url=url,
                               attempt=attempt + 1,
                               delay_seconds=delay,
                               error=str(e))
                await asyncio.sleep(delay)
                continue

            try:
                return response.json()
            except ValueError as e:
                # e.g. an HTML logon page served with 200
                raise ODataError(
                    "OData response is not valid JSON",
                    status_code=response.status_code,
                    details={
                        "url": str(response.request.url),
                        "content_type": response.headers.get("content-type", ""),
                    }
                ) from e

        raise ODataError(f"OData request to {url} failed", details={"url": url})

    async def close(self):
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
