import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx
from fake_useragent import UserAgent

from .errors import TransientNetworkError

logger = logging.getLogger(__name__)

DEFAULT_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
MAX_REDIRECTS = 5

_ua = UserAgent(fallback=DEFAULT_UA)


def random_user_agent() -> str:
    return _ua.chrome or DEFAULT_UA


def browser_headers(user_agent: Optional[str] = None) -> Dict[str, str]:
    return {
        "User-Agent": user_agent or random_user_agent(),
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
        "Accept-Language": "pt-BR,pt;q=0.9,en-US;q=0.8,en;q=0.7",
        "Cache-Control": "no-cache",
        "Upgrade-Insecure-Requests": "1",
    }


@dataclass
class FetchedPage:
    url: str                     # final URL after redirects
    status_code: int
    html: str
    cookies: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400 and bool(self.html)


class HttpClient:
    """
    Thin async wrapper over httpx with rotated browser-like headers.
    Transport errors and timeouts surface as TransientNetworkError.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = 12.0):
        self.timeout = timeout
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            max_redirects=MAX_REDIRECTS,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def aclose(self):
        if self._owns_client:
            await self.client.aclose()

    async def request(
        self,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        cookie_header: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        merged = browser_headers()
        if headers:
            merged.update(headers)
        if cookie_header:
            merged["Cookie"] = cookie_header
        try:
            return await self.client.get(
                url,
                headers=merged,
                params=params,
                timeout=timeout or self.timeout,
            )
        except httpx.TimeoutException as e:
            raise TransientNetworkError(f"timeout fetching {url}") from e
        except httpx.HTTPError as e:
            raise TransientNetworkError(f"{type(e).__name__} fetching {url}: {e}") from e

    async def get_html(self, url: str, **kwargs) -> FetchedPage:
        resp = await self.request(url, **kwargs)
        cookies = {c.name: c.value for c in resp.cookies.jar}
        for r in resp.history:
            cookies.update({c.name: c.value for c in r.cookies.jar})
        return FetchedPage(
            url=str(resp.url),
            status_code=resp.status_code,
            html=resp.text,
            cookies=cookies,
        )

    async def get_json(self, url: str, *, allow_error_status: bool = False, **kwargs) -> Any:
        """
        Decoded JSON body. With ``allow_error_status`` a 4xx body is still
        returned, for APIs that explain refusals in the payload.
        """
        resp = await self.request(url, **kwargs)
        if resp.status_code >= 500 or (resp.status_code >= 400 and not allow_error_status):
            raise TransientNetworkError(f"HTTP {resp.status_code} from {url}")
        try:
            return resp.json()
        except ValueError as e:
            raise TransientNetworkError(f"non-JSON response from {url}") from e


def cookie_header(cookies: Dict[str, str]) -> Optional[str]:
    if not cookies:
        return None
    return "; ".join(f"{k}={v}" for k, v in cookies.items())
