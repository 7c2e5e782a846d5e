import httpx
import pytest

from marketplace_scrape.cache import StateStore
from marketplace_scrape.config import Settings
from marketplace_scrape.fetcher import HttpClient


def make_http(handler) -> HttpClient:
    """HttpClient whose requests are answered by ``handler(request)``."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)
    return HttpClient(client=client, timeout=5.0)


@pytest.fixture
def state_store(tmp_path):
    return StateStore(tmp_path / "state")


@pytest.fixture
def settings(tmp_path):
    return Settings(state_dir=tmp_path / "state")


PRODUCT_HTML = """
<html><head>
<title>Fone de Ouvido Bluetooth TWS | Loja</title>
<meta property="og:title" content="Fone de Ouvido Bluetooth TWS">
<meta property="og:image" content="https://img.example.com/products/fone.jpg">
<script type="application/ld+json">
{"@context": "https://schema.org", "@type": "Product", "name": "Fone de Ouvido Bluetooth TWS",
 "image": ["https://img.example.com/products/fone.jpg"],
 "offers": {"@type": "Offer", "price": "149.90", "priceCurrency": "BRL",
            "availability": "https://schema.org/InStock"},
 "aggregateRating": {"ratingValue": "4.7", "reviewCount": "1234"}}
</script>
</head><body><h1>Fone de Ouvido Bluetooth TWS</h1></body></html>
"""

CHALLENGE_HTML = """
<html><head><title>Just a moment...</title></head>
<body><div class="g-recaptcha"></div></body></html>
"""
