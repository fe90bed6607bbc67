from __future__ import annotations

import logging
from typing import Optional

import httpx

from phigate.settings import Settings, get_settings

_log = logging.getLogger(__name__)

# HEAD refused by the origin: ask again with GET and read only the status.
_RETRY_WITH_GET = frozenset({403, 405})


class PubMedProbe:
    """
    Live existence check for a PMID.

    - HEAD ``<base>/<pmid>/``; a 2xx answer means the article exists.
    - 403/405 on HEAD -> one GET, judged by status alone (body not read).
    - Any other status, or any transport error, means "not verified".
    Never raises.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        s = settings or get_settings()
        url = base_url or s.pubmed_base_url
        self.base_url = url if url.endswith("/") else url + "/"
        self._timeout = s.probe_timeout_s
        self._client = client

    def url_for(self, pmid: str) -> str:
        return f"{self.base_url}{pmid}/"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, follow_redirects=True)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def check_exists(self, pmid: str) -> bool:
        url = self.url_for(pmid)
        client = self._get_client()
        try:
            head = await client.head(url)
            if head.is_success:
                return True
            if head.status_code in _RETRY_WITH_GET:
                async with client.stream("GET", url) as resp:
                    return resp.is_success
            return False
        except httpx.HTTPError as exc:
            _log.warning(
                "pmid probe failed",
                extra={"pmid": pmid, "error": exc.__class__.__name__},
            )
            return False
