import httpx
import pytest

from marketplace_scrape.ocr import OCR_SPACE_URL, OcrSpaceClient, pick_price_from_ocr_text

from .conftest import make_http


class TestPickPrice:

    def test_por_wins_over_de(self):
        assert pick_price_from_ocr_text("de R$ 199,90\npor R$ 149,90") == 149.9

    def test_installments_are_not_the_price(self):
        text = "R$ 149,90\nou 12x R$ 14,99 sem juros"
        assert pick_price_from_ocr_text(text) == 149.9

    def test_lowest_neutral_amount(self):
        assert pick_price_from_ocr_text("R$ 1.299,00  R$ 999,00") == 999.0

    def test_only_old_prices_left(self):
        assert pick_price_from_ocr_text("antes R$ 89,90") == 89.9

    @pytest.mark.parametrize("text", [None, "", "FRETE GRÁTIS", "R$ 999.999,00"])
    def test_nothing_usable(self, text):
        assert pick_price_from_ocr_text(text) is None


class TestOcrSpaceClient:

    @pytest.mark.asyncio
    async def test_reads_parsed_text(self):
        seen = {}

        def handler(request):
            seen["url"] = request.url
            return httpx.Response(200, json={
                "IsErroredOnProcessing": False,
                "ParsedResults": [{"ParsedText": "Fone TWS\nde R$ 99,90 por R$ 59,90"}],
            })

        client = OcrSpaceClient(make_http(handler), "k-123")
        assert await client.find_price("https://img.example.com/fone.jpg") == 59.9
        assert str(seen["url"]).startswith(OCR_SPACE_URL)
        assert seen["url"].params["language"] == "por"
        assert seen["url"].params["apikey"] == "k-123"

    @pytest.mark.asyncio
    async def test_processing_error_is_no_text(self):
        def handler(request):
            return httpx.Response(200, json={"IsErroredOnProcessing": True, "ErrorMessage": ["bad image"]})

        client = OcrSpaceClient(make_http(handler), "k-123")
        assert await client.extract_text("https://img.example.com/x.jpg") is None

    @pytest.mark.asyncio
    async def test_network_failure_is_no_text(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        client = OcrSpaceClient(make_http(handler), "k-123")
        assert await client.find_price("https://img.example.com/x.jpg") is None

    @pytest.mark.asyncio
    async def test_disabled_without_key(self):
        def handler(request):
            raise AssertionError("no request expected")

        client = OcrSpaceClient(make_http(handler), None)
        assert not client.enabled
        assert await client.extract_text("https://img.example.com/x.jpg") is None
