import json

import httpx
import pytest

from marketplace_scrape.adapters import adapter_amazon, adapter_magalu, adapter_mercadolivre, adapter_shopee
from marketplace_scrape.errors import AntiBotBlock
from marketplace_scrape.schema import MarketplaceIdentity

from .conftest import CHALLENGE_HTML, make_http

IDENTITY = MarketplaceIdentity(shop_id="123", item_id="456")


class TestMercadoLivre:

    HTML = """
    <html><body>
    <h1 class="ui-pdp-title">Smartphone Galaxy A15 128GB</h1>
    <s class="andes-money-amount andes-money-amount--previous" aria-label="Antes: 1.299 reais"></s>
    <div class="ui-pdp-price__second-line">
      <span class="andes-money-amount" aria-label="1.099 reais com 90 centavos">
        <span class="andes-money-amount__fraction">1.099</span>
      </span>
    </div>
    <figure class="ui-pdp-gallery__figure"><img data-zoom="https://http2.mlstatic.com/D_NQ_NP_2X_abc.webp"></figure>
    <span class="ui-pdp-header__subtitle">Novo  |  +5 mil vendidos</span>
    <p class="ui-pdp-stock-information__title">Estoque disponível</p>
    </body></html>
    """

    def test_aria_label_prices(self):
        out = adapter_mercadolivre.ADAPTER.extract_html(self.HTML)
        assert out["title"] == "Smartphone Galaxy A15 128GB"
        assert out["price"] == pytest.approx(1099.90)
        assert out["original_price"] == 1299.0
        assert out["image_url"] == "https://http2.mlstatic.com/D_NQ_NP_2X_abc.webp"
        assert out["sales_quantity"] == 5000
        assert out["in_stock"] is True


class TestAmazon:

    def test_largest_dynamic_image_and_offscreen_price(self):
        images = {"https://m.media-amazon.com/images/I/small.jpg": [200, 200],
                  "https://m.media-amazon.com/images/I/large.jpg": [1500, 1500]}
        html = f"""
        <html><body>
        <span id="productTitle"> Echo Dot 5ª geração </span>
        <div id="corePrice_feature_div"><span class="a-offscreen">R$ 379,05</span></div>
        <img id="landingImage" src="https://m.media-amazon.com/images/I/small.jpg"
             data-a-dynamic-image='{json.dumps(images)}'>
        <div id="availability"><span>Em estoque</span></div>
        </body></html>
        """
        out = adapter_amazon.ADAPTER.extract_html(html)
        assert out["title"] == "Echo Dot 5ª geração"
        assert out["price"] == 379.05
        assert out["image_url"] == "https://m.media-amazon.com/images/I/large.jpg"
        assert out["in_stock"] is True

    def test_looks_complete(self):
        assert adapter_amazon.ADAPTER.looks_complete('<span id="productTitle">x</span>')
        assert not adapter_amazon.ADAPTER.looks_complete(CHALLENGE_HTML)


class TestMagalu:

    def test_next_data_with_sized_image(self):
        nd = {"props": {"pageProps": {"data": {"product": {
            "title": "Geladeira Frost Free 375L",
            "price": {"price": "4299.00", "bestPrice": "3599.00"},
            "image": "https://a-static.mlcdn.com.br/{w}x{h}/geladeira/abc.jpg",
        }}}}}
        html = f'<script id="__NEXT_DATA__" type="application/json">{json.dumps(nd)}</script>'
        out = adapter_magalu.ADAPTER.extract_html(html)
        assert out["title"] == "Geladeira Frost Free 375L"
        assert out["price"] == 3599.0
        assert out["image_url"] == "https://a-static.mlcdn.com.br/800x560/geladeira/abc.jpg"

    def test_unavailable_flag(self):
        html = """<html><body>
        <h1 data-testid="heading-product-title">Geladeira Frost Free 375L</h1>
        <p data-testid="unavailable-product">Produto indisponível</p>
        </body></html>"""
        out = adapter_magalu.ADAPTER.extract_html(html)
        assert out["title"] == "Geladeira Frost Free 375L"
        assert out["in_stock"] is False


class TestShopeePayload:

    def test_scaled_prices_and_image_hash(self):
        data = {"item": {"name": "Fone Bluetooth TWS i12", "price": 4990000,
                         "price_before_discount": 9990000, "image": "br-11134207-abc",
                         "item_rating": {"rating_star": 4.81}, "historical_sold": 15230, "stock": 10}}
        out = adapter_shopee.ADAPTER.extract_payload(data)
        assert out["price"] == 49.9
        assert out["original_price"] == 99.9
        assert out["image_url"] == "https://cf.shopee.com.br/file/br-11134207-abc"
        assert out["rating"] == 4.81
        assert out["sales_quantity"] == 15230
        assert out["in_stock"] is True


def shopee_handler(calls, v4_item, v4_pdp, v2_item=None):
    def handler(request):
        path = request.url.path
        calls.append(path)
        if path == "/api/v4/item/get":
            return httpx.Response(200, json=v4_item)
        if path == "/api/v4/pdp/get_pc":
            return httpx.Response(200, json=v4_pdp)
        if path == "/api/v2/item/get":
            return httpx.Response(200, json=v2_item or {"error": 90309999})
        return httpx.Response(200, text="<html></html>", headers={"Set-Cookie": "SPC_F=abc; Path=/"})
    return handler


PDP_OK = {"error": 0, "data": {"item": {"title": "Fone Bluetooth TWS i12", "price": 4990000,
                                        "image": "br-11134207-abc"}}}


class TestShopeeApi:

    @pytest.mark.asyncio
    async def test_refused_variant_falls_through_to_next(self):
        calls = []
        http = make_http(shopee_handler(calls, {"error": 90309999}, PDP_OK))
        out = await adapter_shopee.fetch_from_api(http, IDENTITY)
        assert out["title"] == "Fone Bluetooth TWS i12"
        assert out["price"] == 49.9
        assert calls == ["/product/123/456", "/api/v4/item/get", "/api/v4/pdp/get_pc"]

    @pytest.mark.asyncio
    async def test_sends_session_cookies_and_api_headers(self):
        seen = {}

        def handler(request):
            if request.url.path.startswith("/api/"):
                seen.update(request.headers)
                return httpx.Response(200, json=PDP_OK)
            return httpx.Response(200, text="", headers={"Set-Cookie": "SPC_F=abc; Path=/"})

        await adapter_shopee.fetch_from_api(make_http(handler), IDENTITY, {"SPC_EC": "stored"})
        assert "SPC_F=abc" in seen["cookie"]
        assert "SPC_EC=stored" in seen["cookie"]
        assert seen["x-api-source"] == "pc"
        assert seen["referer"] == "https://shopee.com.br/product/123/456"

    @pytest.mark.asyncio
    async def test_other_error_code_stops(self):
        calls = []
        http = make_http(shopee_handler(calls, {"error": 4}, PDP_OK))
        assert await adapter_shopee.fetch_from_api(http, IDENTITY) is None
        assert "/api/v4/pdp/get_pc" not in calls

    @pytest.mark.asyncio
    async def test_all_variants_refused_is_a_block(self):
        http = make_http(shopee_handler([], {"error": 90309999}, {"error": 90309999}))
        with pytest.raises(AntiBotBlock):
            await adapter_shopee.fetch_from_api(http, IDENTITY)

    @pytest.mark.asyncio
    async def test_forbidden_status_with_refusal_code_is_a_block(self):
        calls = []

        def handler(request):
            calls.append(request.url.path)
            if request.url.path.startswith("/api/"):
                return httpx.Response(403, json={"error": 90309999})
            return httpx.Response(200, text="<html></html>")

        with pytest.raises(AntiBotBlock):
            await adapter_shopee.fetch_from_api(make_http(handler), IDENTITY)
        assert calls[1:] == ["/api/v4/item/get", "/api/v4/pdp/get_pc", "/api/v2/item/get"]

    @pytest.mark.asyncio
    async def test_forbidden_html_is_not_a_refusal(self):
        def handler(request):
            if request.url.path.startswith("/api/"):
                return httpx.Response(403, text="<html>denied</html>")
            return httpx.Response(200, text="<html></html>")

        assert await adapter_shopee.fetch_from_api(make_http(handler), IDENTITY) is None
