"""
Link-preview fallback: when scraping fails, build a record from the chat
client's link preview or from public preview APIs, reading the price off
the product image with OCR.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional
from urllib.parse import quote

from .errors import AntiBotBlock, NotFound, TransientNetworkError, ValidationFailure
from .fetcher import HttpClient
from .normalizer import ANTIBOT_TERMS, accept, is_generic_title, is_http_url
from .ocr import OcrSpaceClient, pick_price_from_ocr_text
from .resolver import Resolution, strip_tracking
from .schema import ExtractResult, Marketplace, ScrapeField

logger = logging.getLogger(__name__)

MICROLINK_URL = "https://api.microlink.io/"
MICROLINK_PRO_URL = "https://pro.microlink.io/"
IFRAMELY_URL = "https://iframe.ly/api/iframely"
OPENGRAPH_URL = "https://opengraph.io/api/1.1/site/"

MIN_PREVIEW_TITLE = 15
MAX_CLEAN_IMAGE_CHECKS = 3

# Preview titles come from third parties that happily render challenge
# pages, so this list is broader than the gate's.
PREVIEW_BLOCK_TERMS = ANTIBOT_TERMS + (
    "verify", "verification", "verificação", "robot", "robô", "human", "humano",
    "security", "segurança", "blocked", "bloqueado", "check", "wait", "aguarde",
    "loading", "carregando", "protection", "proteção",
)
PROMO_IMAGE_HINTS = ("promo", "banner", "price", "preco", "oferta", "desconto", "sale", "selo", "tag")

_QUERY_TITLE = re.compile(r"^(?:https?://|\S*[?&]\S*=)|^[\w.\-]+=[^\s]*$", re.I)


def is_query_string_title(title: Optional[str]) -> bool:
    t = (title or "").strip()
    return bool(t) and (bool(_QUERY_TITLE.search(t)) or (" " not in t and "=" in t))


def looks_like_block_preview(title: Optional[str], description: Optional[str] = None) -> bool:
    t = (title or "").strip().lower()
    if len(t) < MIN_PREVIEW_TITLE:
        return True
    text = f"{t} {description.lower() if isinstance(description, str) else ''}"
    return any(term in text for term in PREVIEW_BLOCK_TERMS)


def is_generic_preview(title: Optional[str], marketplace: Marketplace) -> bool:
    t = (title or "").strip().lower()
    return is_generic_title(t) or t == marketplace.display_name.lower()


@dataclass
class PreviewData:
    source: str
    title: Optional[str] = None
    description: Optional[str] = None
    images: List[str] = field(default_factory=list)

    @classmethod
    def from_native(cls, web_page: Mapping[str, Any]) -> "PreviewData":
        images = [web_page.get(k) for k in ("image_url", "photo_url", "thumbnail_url")]
        return cls(
            source="native",
            title=web_page.get("title") or web_page.get("site_name"),
            description=web_page.get("description"),
            images=[i for i in images if is_http_url(i)],
        )


def _first_href(links: Any) -> Optional[str]:
    if isinstance(links, list):
        for link in links:
            if isinstance(link, dict) and is_http_url(link.get("href")):
                return link["href"]
    return None


class PreviewBuilder:

    def __init__(self, http: HttpClient, ocr: OcrSpaceClient, *,
                 microlink_key: Optional[str] = None, iframely_key: Optional[str] = None,
                 opengraph_app_id: Optional[str] = None):
        self.http = http
        self.ocr = ocr
        self.microlink_key = microlink_key
        self.iframely_key = iframely_key
        self.opengraph_app_id = opengraph_app_id

    # ------------------------------------------------------------------ #
    # external preview providers
    # ------------------------------------------------------------------ #

    async def _microlink(self, url: str) -> Optional[PreviewData]:
        endpoint = MICROLINK_PRO_URL if self.microlink_key else MICROLINK_URL
        headers = {"x-api-key": self.microlink_key} if self.microlink_key else None
        payload = await self.http.get_json(endpoint, params={"url": url}, headers=headers)
        if not isinstance(payload, dict) or payload.get("status") != "success":
            return None
        data = payload.get("data")
        if not isinstance(data, dict):
            return None
        image = data.get("image")
        if isinstance(image, dict):
            image = image.get("url")
        return PreviewData("microlink", data.get("title"), data.get("description"),
                           [image] if is_http_url(image) else [])

    async def _iframely(self, url: str) -> Optional[PreviewData]:
        if not self.iframely_key:
            return None
        payload = await self.http.get_json(IFRAMELY_URL, params={"url": url, "api_key": self.iframely_key})
        if not isinstance(payload, dict):
            return None
        meta, links = payload.get("meta"), payload.get("links")
        if not isinstance(meta, dict):
            return None
        if not isinstance(links, dict):
            links = {}
        images = [i for i in (_first_href(links.get("image")), _first_href(links.get("thumbnail"))) if i]
        return PreviewData("iframely", meta.get("title"), meta.get("description"), images)

    async def _opengraph(self, url: str) -> Optional[PreviewData]:
        if not self.opengraph_app_id:
            return None
        payload = await self.http.get_json(OPENGRAPH_URL + quote(url, safe=""),
                                           params={"app_id": self.opengraph_app_id})
        if not isinstance(payload, dict):
            return None
        graph = payload.get("hybridGraph") or payload.get("openGraph")
        if not isinstance(graph, dict):
            return None
        image = graph.get("image")
        if isinstance(image, dict):
            image = image.get("url")
        return PreviewData("opengraph", graph.get("title"), graph.get("description"),
                           [image] if is_http_url(image) else [])

    @staticmethod
    def candidate_urls(url: str, resolution: Optional[Resolution]) -> List[str]:
        urls = []
        if resolution:
            if resolution.identity:
                urls.append(resolution.identity.canonical_url())
            urls += [resolution.resolved_url, strip_tracking(resolution.resolved_url)]
        urls += [strip_tracking(url), url]
        return list(dict.fromkeys(u for u in urls if u))

    async def _previews(self, url: str, web_page: Optional[Mapping[str, Any]],
                        resolution: Optional[Resolution]) -> AsyncIterator[PreviewData]:
        if web_page:
            yield PreviewData.from_native(web_page)
        for candidate in self.candidate_urls(url, resolution):
            for provider in (self._microlink, self._iframely, self._opengraph):
                try:
                    preview = await provider(candidate)
                except TransientNetworkError as e:
                    logger.info("[Preview] %s failed for %s: %s", provider.__name__, candidate, e)
                    continue
                if preview and isinstance(preview.title, str) and preview.title:
                    yield preview

    # ------------------------------------------------------------------ #
    # images
    # ------------------------------------------------------------------ #

    async def select_clean_image(self, images: List[str]) -> str:
        """Prefer an image without a price overlay (OCR check, then URL hints)."""
        primary = images[0]
        if self.ocr.enabled:
            for alt in images[1:1 + MAX_CLEAN_IMAGE_CHECKS]:
                if pick_price_from_ocr_text(await self.ocr.extract_text(alt)) is None:
                    return alt
        for alt in images:
            if not any(h in alt.lower() for h in PROMO_IMAGE_HINTS):
                return alt
        return primary

    # ------------------------------------------------------------------ #

    def usable(self, preview: PreviewData, marketplace: Marketplace) -> bool:
        if is_query_string_title(preview.title):
            logger.info("[Preview] %s title looks like a query string", preview.source)
            return False
        if looks_like_block_preview(preview.title, preview.description):
            logger.info("[Preview] %s preview looks like a challenge page", preview.source)
            return False
        if is_generic_preview(preview.title, marketplace):
            logger.info("[Preview] %s preview is a generic marketplace page", preview.source)
            return False
        return bool(preview.images)

    async def build(self, url: str, marketplace: Marketplace,
                    web_page: Optional[Mapping[str, Any]] = None,
                    resolution: Optional[Resolution] = None,
                    fields: Optional[List[ScrapeField]] = None) -> ExtractResult:
        async for preview in self._previews(url, web_page, resolution):
            if not self.usable(preview, marketplace):
                continue
            image = preview.images[0]
            price = None
            if self.ocr.enabled:
                price = pick_price_from_ocr_text(await self.ocr.extract_text(image))
                if price is not None and len(preview.images) > 1:
                    image = await self.select_clean_image(preview.images)
            candidate: Dict[str, Any] = {
                "title": preview.title,
                "description": preview.description,
                "price": price,
                "image_url": image,
            }
            try:
                record = accept(candidate, marketplace=marketplace, product_url=url, fields=fields)
            except (AntiBotBlock, ValidationFailure) as e:
                logger.info("[Preview] %s preview rejected: %s", preview.source, e)
                continue
            logger.info("[Preview] built record from %s preview", preview.source)
            return ExtractResult.ok(record)
        return ExtractResult.fail(NotFound.message)
