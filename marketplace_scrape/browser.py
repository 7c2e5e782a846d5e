import asyncio
import logging
import random
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, List, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright
from playwright_stealth import Stealth

from .adapters.adapter_generic import MarketplaceAdapter
from .cache import StateStore
from .errors import TransientNetworkError
from .fetcher import random_user_agent
from .normalizer import html_looks_blocked, is_gateway_url
from .schema import Marketplace

logger = logging.getLogger(__name__)

# Runs before any page script.
MASK_AUTOMATION_JS = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
Object.defineProperty(navigator, 'languages', { get: () => ['pt-BR', 'pt', 'en-US', 'en'] });
window.chrome = window.chrome || { runtime: {} };
"""

READ_STATE_JS = """() => {
  const out = [];
  for (const k of ['__INITIAL_STATE__', '__PRELOADED_STATE__', '__APOLLO_STATE__']) {
    try { if (window[k]) out.push(JSON.parse(JSON.stringify(window[k]))); } catch (e) {}
  }
  const nd = document.getElementById('__NEXT_DATA__');
  if (nd) { try { out.push(JSON.parse(nd.textContent)); } catch (e) {} }
  return out;
}"""

LAUNCH_ARGS = ["--disable-blink-features=AutomationControlled", "--no-sandbox"]


@dataclass
class RenderedPage:
    url: str
    html: str = ""
    states: List[Any] = field(default_factory=list)
    api_payloads: List[Any] = field(default_factory=list)
    blocked: bool = False


class BrowserFetcher:
    """
    Headless Chromium behind playwright-stealth. One browser per call,
    always closed on the way out; storage state is reused per marketplace
    and written back only after reaching real content.
    """

    def __init__(self, state_store: StateStore, headless: bool = True,
                 timeout: float = 40.0, poll_seconds: float = 10.0):
        self.state_store = state_store
        self.headless = headless
        self.timeout_ms = int(timeout * 1000)
        self.poll_seconds = poll_seconds

    @asynccontextmanager
    async def session(self, marketplace: Marketplace):
        async with Stealth().use_async(async_playwright()) as p:
            browser = await p.chromium.launch(headless=self.headless, args=LAUNCH_ARGS)
            try:
                context = await browser.new_context(
                    user_agent=random_user_agent(),
                    locale="pt-BR",
                    viewport={"width": 1366, "height": 900},
                    storage_state=self.state_store.load(marketplace),
                )
                await context.add_init_script(MASK_AUTOMATION_JS)
                page = await context.new_page()
                page.set_default_navigation_timeout(self.timeout_ms)
                yield context, page
            finally:
                await browser.close()

    async def _gated(self, page) -> bool:
        if is_gateway_url(page.url):
            return True
        return html_looks_blocked(await page.content())

    async def _humanize(self, page):
        for _ in range(random.randint(3, 6)):
            await page.mouse.move(random.randint(50, 1200), random.randint(50, 800),
                                  steps=random.randint(5, 15))
            await page.wait_for_timeout(random.randint(150, 400))
        await page.mouse.wheel(0, random.randint(300, 900))
        await page.wait_for_timeout(random.randint(500, 1200))

    async def _warm_up(self, page, adapter: MarketplaceAdapter, url: str):
        logger.info("[Browser] gateway on %s, warming up on %s", url, adapter.home_url)
        await page.goto(adapter.home_url, wait_until="domcontentloaded")
        await self._humanize(page)
        await page.wait_for_timeout(random.randint(1500, 3000))
        await page.goto(url, wait_until="domcontentloaded")

    async def _wait_for_content(self, page) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.poll_seconds
        interacted = False
        while loop.time() < deadline:
            await page.wait_for_timeout(1000)
            if not await self._gated(page):
                return True
            if not interacted and loop.time() > deadline - self.poll_seconds / 2:
                await self._humanize(page)
                interacted = True
        return not await self._gated(page)

    async def _reach(self, page, adapter: MarketplaceAdapter, url: str) -> bool:
        await page.goto(url, wait_until="domcontentloaded")
        if not await self._gated(page):
            return True
        await self._warm_up(page, adapter, url)
        if not await self._gated(page):
            return True
        return await self._wait_for_content(page)

    async def render(self, url: str, adapter: MarketplaceAdapter) -> RenderedPage:
        marketplace = adapter.marketplace
        try:
            async with self.session(marketplace) as (context, page):
                captured: List[Any] = []

                async def on_response(resp):
                    if not any(p in resp.url for p in adapter.api_patterns):
                        return
                    try:
                        captured.append(await resp.json())
                    except (PlaywrightError, ValueError) as e:
                        logger.debug("[Browser] unreadable API response %s: %s", resp.url, e)

                if adapter.api_patterns:
                    page.on("response", on_response)

                if not await self._reach(page, adapter, url):
                    logger.warning("[Browser] still gated after warm-up: %s", url)
                    return RenderedPage(url=page.url, blocked=True)

                if adapter.ready_selector:
                    try:
                        await page.wait_for_selector(adapter.ready_selector, timeout=8000)
                    except PlaywrightTimeoutError:
                        logger.info("[Browser] %s not rendered on %s", adapter.ready_selector, url)
                await page.wait_for_timeout(1000)

                html = await page.content()
                states = await page.evaluate(READ_STATE_JS)
                self.state_store.save(marketplace, await context.storage_state())
                return RenderedPage(url=page.url, html=html, states=states or [],
                                    api_payloads=captured)
        except PlaywrightTimeoutError as e:
            raise TransientNetworkError(f"browser timeout on {url}") from e
        except PlaywrightError as e:
            raise TransientNetworkError(f"browser error on {url}: {e}") from e

    async def resolve(self, url: str, adapter: MarketplaceAdapter) -> Optional[str]:
        """Follow a gated short link in a real browser. Returns None on failure."""
        try:
            async with self.session(adapter.marketplace) as (context, page):
                if not await self._reach(page, adapter, url):
                    return None
                self.state_store.save(adapter.marketplace, await context.storage_state())
                logger.info("[Browser] resolved %s -> %s", url, page.url)
                return page.url
        except PlaywrightError as e:
            logger.warning("[Browser] could not resolve %s: %s", url, e)
            return None
