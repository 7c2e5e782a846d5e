import pytest

from marketplace_scrape.adapters import adapter_shopee
from marketplace_scrape.chain import run_chain
from marketplace_scrape.errors import AntiBotBlock, TransientNetworkError
from marketplace_scrape.resolver import Resolution
from marketplace_scrape.schema import ExtractOptions, Marketplace
from marketplace_scrape.strategies import BLOCKED, INVALID_IMAGE, NETWORK, REJECTED, Attempt, Strategy, StrategyContext

from .conftest import make_http

URL = "https://shopee.com.br/product/123/456"

GOOD = {"title": "Fone de Ouvido Bluetooth TWS", "price": 49.9,
        "image_url": "https://cf.shopee.com.br/file/abc"}


class Fixed(Strategy):

    def __init__(self, name, result=None, raises=None):
        self.name = name
        self.result = result
        self.raises = raises
        self.calls = 0

    async def attempt(self, url, ctx):
        self.calls += 1
        if self.raises is not None:
            raise self.raises
        if self.result is None:
            return Attempt.failed(self.name, "no_data")
        return Attempt.found(self.name, dict(self.result))


@pytest.fixture
def ctx(state_store):
    def refuse(request):
        raise AssertionError("strategies under test do not touch the network")

    resolution = Resolution(original_url=URL, resolved_url=URL, canonical_url=URL,
                            marketplace=Marketplace.SHOPEE)
    return StrategyContext(resolution=resolution, adapter=adapter_shopee.ADAPTER,
                           options=ExtractOptions(), http=make_http(refuse), state_store=state_store)


class TestRunChain:

    @pytest.mark.asyncio
    async def test_degraded_render_and_network_errors_fall_through(self, ctx):
        degraded = Fixed("api", {**GOOD, "image_url": "/file/abc"})
        flaky = Fixed("html", raises=TransientNetworkError("timeout"))
        good = Fixed("browser", GOOD)
        never = Fixed("proxy", GOOD)

        outcome = await run_chain([degraded, flaky, good, never], URL, ctx)
        assert outcome.record.title == GOOD["title"]
        assert outcome.record.product_url == URL
        assert [a.failure for a in outcome.attempts] == [INVALID_IMAGE, NETWORK, None]
        assert never.calls == 0
        assert not outcome.blocked

    @pytest.mark.asyncio
    async def test_rejected_candidate_moves_on(self, ctx):
        placeholder = Fixed("api", {**GOOD, "title": "Shopee Brasil | Ofertas incríveis"})
        outcome = await run_chain([placeholder, Fixed("html", GOOD)], URL, ctx)
        assert outcome.attempts[0].failure == REJECTED
        assert outcome.record is not None

    @pytest.mark.asyncio
    async def test_exhausted_chain_reports_block(self, ctx):
        challenge = Fixed("html", {**GOOD, "title": "Just a moment..."})
        captcha = Fixed("browser", raises=AntiBotBlock("Shopee", "captcha"))
        outcome = await run_chain([challenge, captcha, Fixed("proxy")], URL, ctx)
        assert outcome.record is None
        assert outcome.blocked
        assert [a.failure for a in outcome.attempts] == [BLOCKED, BLOCKED, "no_data"]

    @pytest.mark.asyncio
    async def test_unexpected_exception_never_propagates(self, ctx):
        outcome = await run_chain([Fixed("html", raises=RuntimeError("bug")), Fixed("proxy", GOOD)], URL, ctx)
        assert outcome.attempts[0].failure == "error"
        assert outcome.record is not None

    @pytest.mark.asyncio
    async def test_gated_resolution_counts_as_blocked(self, ctx):
        ctx.resolution.gated = True
        outcome = await run_chain([Fixed("html")], URL, ctx)
        assert outcome.record is None
        assert outcome.blocked
