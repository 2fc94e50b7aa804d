"""Client for the data.gov.in Open Government Data Platform API.

Reads the district-wise MGNREGA resource page by page.  The OGD API
accepts ``limit`` / ``offset`` pagination plus an ``api-key`` credential
and answers with a JSON envelope holding a ``records`` array and a
``total`` count.

API documentation: https://data.gov.in/apis
Free API key registration: https://data.gov.in/user/register

Records are treated as untrusted: any field may be missing, null, or a
string where a number is expected.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

logger = structlog.get_logger(__name__)


@dataclass
class DataGovPage:
    """One page of records plus the total the API claims is available."""

    records: list[dict[str, Any]] = field(default_factory=list)
    total: int | None = None


# ---------------------------------------------------------------------------
# DataGovClient
# ---------------------------------------------------------------------------


class DataGovClient:
    """Client for one data.gov.in resource.

    Parameters
    ----------
    resource_id:
        OGD resource identifier of the MGNREGA district dataset.
    api_key:
        OGD platform API key.  If ``None``, requests are sent without a
        key (the API then serves a heavily limited sample).
    timeout:
        Per-request timeout in seconds.
    transport:
        Optional httpx transport, used by tests to stub the network.
    """

    BASE_URL = "https://api.data.gov.in"

    def __init__(
        self,
        resource_id: str,
        api_key: str | None = None,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._resource_id = resource_id
        self._api_key = api_key
        self._client = httpx.AsyncClient(
            base_url=self.BASE_URL,
            timeout=timeout,
            headers={
                "User-Agent": "MGNREGA-Dashboard/1.0 (district statistics sync)",
                "Accept": "application/json",
            },
            follow_redirects=True,
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _build_params(self, **kwargs: Any) -> dict[str, str]:
        """Build query parameters, injecting the API key if available."""
        params: dict[str, str] = {}
        if self._api_key:
            params["api-key"] = self._api_key
        for key, value in kwargs.items():
            if value is not None:
                params[key] = str(value)
        return params

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch_page(self, offset: int, limit: int) -> DataGovPage | None:
        """Fetch ``limit`` records starting at ``offset``.

        Returns
        -------
        DataGovPage | None
            The page (possibly with zero records once the source is
            exhausted), or ``None`` if the request failed for any reason.
        """
        path = f"/resource/{self._resource_id}"
        try:
            response = await self._client.get(
                path,
                params=self._build_params(format="json", limit=limit, offset=offset),
            )

            if response.status_code == 403:
                logger.warning(
                    "datagov.api_key_invalid_or_missing",
                    status=response.status_code,
                )
                return None

            if response.status_code == 429:
                logger.warning("datagov.rate_limited")
                return None

            response.raise_for_status()
            data = response.json()

        except httpx.HTTPStatusError as exc:
            logger.warning(
                "datagov.http_error",
                status=exc.response.status_code,
                path=path,
                offset=offset,
            )
            return None
        except httpx.TimeoutException:
            logger.warning("datagov.timeout", path=path, offset=offset)
            return None
        except (httpx.HTTPError, ValueError):
            logger.warning("datagov.request_failed", path=path, offset=offset, exc_info=True)
            return None

        return _parse_page(data)


def _parse_page(data: Any) -> DataGovPage:
    """Extract records and the total count from an OGD response body."""
    if isinstance(data, list):
        return DataGovPage(records=[r for r in data if isinstance(r, dict)])

    if not isinstance(data, dict):
        return DataGovPage()

    records = data.get("records") or []
    if not isinstance(records, list):
        records = []

    total: int | None = None
    raw_total = data.get("total")
    if raw_total is not None:
        try:
            total = int(raw_total)
        except (TypeError, ValueError):
            total = None

    return DataGovPage(
        records=[r for r in records if isinstance(r, dict)],
        total=total,
    )
