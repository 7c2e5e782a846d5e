import httpx
import pytest

from marketplace_scrape.adapters import adapter_amazon
from marketplace_scrape.cache import TTLCache
from marketplace_scrape.errors import ExternalServiceUnavailable, TransientNetworkError
from marketplace_scrape.proxy import ProxyFallback

from .conftest import make_http

URL = "https://www.amazon.com.br/dp/B09B8V1LZ3"
PAGE = """<html><body>
<span id="productTitle">Echo Dot 5ª geração</span>
<div id="corePrice_feature_div"><span class="a-offscreen">R$ 379,05</span></div>
<img id="landingImage" src="https://m.media-amazon.com/images/I/echo.jpg">
</body></html>"""


class FakeClock:

    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def proxy_for(handler, clock, api_key="sa-key"):
    return ProxyFallback(make_http(handler), api_key, TTLCache(clock=clock))


class TestProxyFallback:

    @pytest.mark.asyncio
    async def test_success_is_cached_for_ten_minutes(self):
        calls = []

        def handler(request):
            calls.append(request.url.params["url"])
            return httpx.Response(200, text=PAGE)

        clock = FakeClock()
        proxy = proxy_for(handler, clock)
        first = await proxy.scrape(URL, adapter_amazon.ADAPTER)
        clock.now += 599
        second = await proxy.scrape(URL, adapter_amazon.ADAPTER)
        assert first == second
        assert first["price"] == 379.05
        assert calls == [URL]

        clock.now += 2
        await proxy.scrape(URL, adapter_amazon.ADAPTER)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_failure_is_cached_for_two_minutes(self):
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(500, text="upstream error")

        clock = FakeClock()
        proxy = proxy_for(handler, clock)
        with pytest.raises(TransientNetworkError):
            await proxy.scrape(URL, adapter_amazon.ADAPTER)
        clock.now += 60
        assert await proxy.scrape(URL, adapter_amazon.ADAPTER) is None
        assert len(calls) == 1

        clock.now += 61
        with pytest.raises(TransientNetworkError):
            await proxy.scrape(URL, adapter_amazon.ADAPTER)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_retries_with_render_when_markers_missing(self):
        renders = []

        def handler(request):
            render = request.url.params.get("render")
            renders.append(render)
            assert request.url.params["country_code"] == "br"
            return httpx.Response(200, text=PAGE if render == "true" else "<html><body></body></html>")

        out = await proxy_for(handler, FakeClock()).scrape(URL, adapter_amazon.ADAPTER)
        assert out["title"] == "Echo Dot 5ª geração"
        assert renders == [None, "true"]

    @pytest.mark.asyncio
    async def test_requires_api_key(self):
        proxy = proxy_for(lambda r: httpx.Response(200, text=PAGE), FakeClock(), api_key=None)
        assert not proxy.enabled
        with pytest.raises(ExternalServiceUnavailable):
            await proxy.scrape(URL, adapter_amazon.ADAPTER)
