import argparse
import asyncio
import logging
import sys
from typing import Any, Dict, List, Mapping, Optional

import orjson

from .adapters import adapter_amazon, adapter_magalu, adapter_mercadolivre, adapter_shopee
from .adapters.adapter_generic import MarketplaceAdapter
from .browser import BrowserFetcher
from .cache import StateStore, TTLCache
from .chain import run_chain
from .config import Settings, get_settings
from .enrich import GoogleCseSearch, PriceEnricher, SerpApiSearch
from .errors import UNSUPPORTED_MARKETPLACE, AntiBotBlock, NotFound, ScrapeError
from .fetcher import HttpClient
from .normalizer import accept
from .ocr import OcrSpaceClient
from .preview import PreviewBuilder
from .proxy import ProxyFallback
from .resolver import Resolution, Resolver, detect_marketplace
from .schema import ExtractOptions, ExtractResult, Marketplace, ProductRecord, ScrapeField
from .strategies import BrowserStrategy, HtmlStrategy, ProxyStrategy, ShopeeApiStrategy, Strategy, StrategyContext

logger = logging.getLogger(__name__)

ADAPTERS: Dict[Marketplace, MarketplaceAdapter] = {
    Marketplace.SHOPEE: adapter_shopee.ADAPTER,
    Marketplace.MERCADO_LIVRE: adapter_mercadolivre.ADAPTER,
    Marketplace.AMAZON: adapter_amazon.ADAPTER,
    Marketplace.MAGALU: adapter_magalu.ADAPTER,
}

# cheapest first
CHAINS: Dict[Marketplace, List[Strategy]] = {
    Marketplace.SHOPEE: [ShopeeApiStrategy(), HtmlStrategy(), BrowserStrategy(), ProxyStrategy()],
    Marketplace.MERCADO_LIVRE: [HtmlStrategy(), BrowserStrategy(), ProxyStrategy()],
    Marketplace.AMAZON: [HtmlStrategy(), BrowserStrategy(), ProxyStrategy()],
    Marketplace.MAGALU: [HtmlStrategy(), BrowserStrategy(), ProxyStrategy()],
}


def pick_adapter(marketplace: Marketplace) -> MarketplaceAdapter:
    return ADAPTERS[marketplace]


def strategies_for(marketplace: Marketplace, options: ExtractOptions) -> List[Strategy]:
    chain = CHAINS[marketplace]
    if options.skip_browser_automation:
        return [s for s in chain if not isinstance(s, BrowserStrategy)]
    return list(chain)


class Extractor:
    """
    Entry point of the pipeline. Collaborators are built from settings
    unless passed in; tests inject an HttpClient over a mock transport and
    ``browser=None``.
    """

    _NO_BROWSER = object()

    def __init__(self, settings: Optional[Settings] = None, *, http: Optional[HttpClient] = None,
                 state_store: Optional[StateStore] = None, browser: Any = _NO_BROWSER,
                 proxy: Optional[ProxyFallback] = None, enricher: Optional[PriceEnricher] = None,
                 ocr: Optional[OcrSpaceClient] = None, gateway_delay: float = 1.5):
        s = self.settings = settings or get_settings()
        self.http = http or HttpClient(timeout=s.http_timeout)
        self._owns_http = http is None
        self.state_store = state_store or StateStore(s.state_dir)
        if browser is Extractor._NO_BROWSER:
            browser = BrowserFetcher(self.state_store, headless=s.browser_headless, timeout=s.browser_timeout)
        self.browser: Optional[BrowserFetcher] = browser
        self.proxy = proxy or ProxyFallback(
            self.http, s.scraper_api_key, TTLCache(), timeout=s.proxy_timeout,
            success_ttl=s.proxy_cache_success_ttl, failure_ttl=s.proxy_cache_failure_ttl,
        )
        self.enricher = enricher or PriceEnricher([
            GoogleCseSearch(self.http, s.google_cse_api_key, s.google_cse_id),
            SerpApiSearch(self.http, s.serpapi_api_key),
        ])
        self.ocr = ocr or OcrSpaceClient(self.http, s.ocr_space_api_key, timeout=s.ocr_timeout)
        self.previews = PreviewBuilder(
            self.http, self.ocr, microlink_key=s.microlink_api_key,
            iframely_key=s.iframely_api_key, opengraph_app_id=s.opengraph_app_id,
        )
        self.resolver = Resolver(self.http, self.state_store,
                                 browser_resolve=self._browser_resolve, gateway_delay=gateway_delay)
        self._inflight: Dict[str, asyncio.Future] = {}

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def aclose(self):
        if self._owns_http:
            await self.http.aclose()

    async def _browser_resolve(self, url: str, marketplace: Marketplace) -> Optional[str]:
        if self.browser is None:
            return None
        return await self.browser.resolve(url, pick_adapter(marketplace))

    async def _enrich_price(self, record: ProductRecord, candidate: Dict[str, Any],
                            options: ExtractOptions, product_url: str) -> ProductRecord:
        if record.price is not None or not self.enricher.enabled:
            return record
        price = await self.enricher.find_price(record.title, record.marketplace)
        if price is None:
            return record
        try:
            return accept({**candidate, "price": price}, marketplace=record.marketplace,
                          product_url=product_url, fields=options.fields)
        except ScrapeError as e:
            logger.warning("[Price] enriched price rejected for %r: %s", record.title, e)
            return record

    async def _run(self, marketplace: Marketplace, resolution: Resolution,
                   options: ExtractOptions) -> ExtractResult:
        ctx = StrategyContext(
            resolution=resolution,
            adapter=pick_adapter(marketplace),
            options=options,
            http=self.http,
            state_store=self.state_store,
            browser=None if options.skip_browser_automation else self.browser,
            proxy=self.proxy,
        )
        outcome = await run_chain(strategies_for(marketplace, options), resolution.canonical_url, ctx)
        if outcome.record is None:
            if outcome.blocked:
                return ExtractResult.fail(AntiBotBlock(marketplace.display_name).user_message())
            return ExtractResult.fail(NotFound.message)
        product_url = options.original_url or resolution.original_url
        record = outcome.record
        try:
            record = await self._enrich_price(record, outcome.candidate or {}, options, product_url)
        except Exception:
            # the record was already accepted; enrichment is best effort
            logger.exception("[Price] enrichment failed for %r", record.title)
        return ExtractResult.ok(record)

    async def extract(self, url: str, options: Optional[ExtractOptions] = None) -> ExtractResult:
        options = options or ExtractOptions()
        marketplace = detect_marketplace(url)
        if marketplace is None:
            return ExtractResult.fail(UNSUPPORTED_MARKETPLACE)

        try:
            allow_browser = self.browser is not None and not options.skip_browser_automation
            resolution = await self.resolver.resolve(url, marketplace, allow_browser=allow_browser)

            # concurrent requests for the same product share one run
            key = "|".join((resolution.canonical_url, options.fields_key(), options.original_url or url,
                            str(options.skip_browser_automation)))
            task = self._inflight.get(key)
            if task is None:
                task = asyncio.ensure_future(self._run(marketplace, resolution, options))
                self._inflight[key] = task
                task.add_done_callback(lambda _: self._inflight.pop(key, None))
            return await asyncio.shield(task)
        except Exception:
            logger.exception("[Extract] unexpected failure for %s", url)
            return ExtractResult.fail(NotFound.message)

    async def build_from_preview(self, url: str, web_page: Optional[Mapping[str, Any]] = None,
                                 fields: Optional[List[ScrapeField]] = None) -> ExtractResult:
        marketplace = detect_marketplace(url)
        if marketplace is None:
            return ExtractResult.fail(UNSUPPORTED_MARKETPLACE)
        resolution = await self.resolver.resolve(url, marketplace, allow_browser=False)
        return await self.previews.build(url, marketplace, web_page=web_page,
                                         resolution=resolution, fields=fields)


# Module-level entry points share one Extractor so the proxy cache and the
# in-flight map outlive a single call. Close it with aclose_shared().
_shared: Optional[Extractor] = None


def shared_extractor() -> Extractor:
    global _shared
    if _shared is None:
        _shared = Extractor()
    return _shared


async def aclose_shared():
    global _shared
    extractor, _shared = _shared, None
    if extractor is not None:
        await extractor.aclose()


async def extract(url: str, options: Optional[ExtractOptions] = None) -> ExtractResult:
    return await shared_extractor().extract(url, options)


async def build_from_preview(url: str, web_page: Optional[Mapping[str, Any]] = None) -> ExtractResult:
    return await shared_extractor().build_from_preview(url, web_page)


async def _run_cli(args) -> ExtractResult:
    try:
        if args.preview:
            return await build_from_preview(args.url)
        options = ExtractOptions(
            fields=[ScrapeField(f) for f in args.fields] if args.fields else None,
            skip_browser_automation=args.skip_browser,
        )
        return await extract(args.url, options)
    finally:
        await aclose_shared()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Extract product data from a marketplace URL.")
    parser.add_argument("url")
    parser.add_argument("--fields", nargs="*", choices=[f.value for f in ScrapeField],
                        help="only extract these optional fields")
    parser.add_argument("--skip-browser", action="store_true", help="never launch a headless browser")
    parser.add_argument("--preview", action="store_true", help="use the link-preview path instead")
    args = parser.parse_args(argv)

    logging.basicConfig(level=get_settings().log_level.upper(),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    result = asyncio.run(_run_cli(args))
    sys.stdout.write(orjson.dumps(result.to_dict(), option=orjson.OPT_INDENT_2).decode() + "\n")
    return 0 if result.success else 1


if __name__ == "__main__":
    #   python -m marketplace_scrape.scrape https://shopee.com.br/product/123/456
    #   python -m marketplace_scrape.scrape URL --fields title price --skip-browser
    sys.exit(main())
