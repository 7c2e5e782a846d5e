"""
Quality gate. Every candidate produced by any extraction strategy passes
through ``accept`` and this is the only place a ProductRecord is built.
"""
import re
from typing import Any, Dict, Iterable, Optional
from urllib.parse import urlparse

from pydantic import ValidationError

from .errors import AntiBotBlock, ValidationFailure
from .prices import PRICE_CEILING, discount_percentage, parse_count, parse_price, parse_rating
from .schema import OPTIONAL_FIELDS, Marketplace, ProductRecord, ScrapeField

MIN_TITLE_LENGTH = 5

ANTIBOT_TERMS = (
    "captcha", "just a moment", "um momento", "checking your browser",
    "verificando seu navegador", "verificação de segurança", "verificacao de seguranca",
    "security check", "access denied", "acesso negado", "attention required",
    "pardon our interruption", "unusual traffic", "tráfego incomum",
    "are you a robot", "você é um robô", "não sou um robô", "robot check",
    "verify you are human", "confirme que você é humano", "bot detection",
    "bot manager", "request blocked", "solicitação bloqueada", "ddos protection",
    "perfdrive", "shieldsquare", "radware", "cloudflare", "incapsula", "imperva",
    "datadome", "kasada", "akamai", "distil networks",
)

ANTIBOT_IMAGE_PATTERNS = (
    "captcha", "challenge", "perfdrive", "shieldsquare", "radware", "incapsula",
    "imperva", "datadome", "cloudflare", "akamai", "az-request-verify",
)
_NON_PRODUCT_IMAGE = re.compile(r"/[^/]*(logo|favicon|sprite|placeholder)[^/]*$", re.I)

GATEWAY_HOSTS = ("validate.perfdrive.com", "perfdrive.com", "shieldsquare", "captcha")
GATEWAY_PATHS = (
    "/errors/validatecaptcha", "/verify/traffic", "/verify/captcha",
    "/account-verification", "/buyer/login", "/cdn-cgi/challenge",
)
HTML_ANTIBOT_MARKERS = (
    "g-recaptcha", "h-captcha", "perfdrive", "shieldsquare", "cf-chl",
    "challenge-platform", "/errors/validatecaptcha", "captcha-delivery",
    "just a moment...", "verify/traffic",
)

GENERIC_TITLES = {
    "shopee brasil | ofertas incríveis. melhores preços do mercado",
    "shopee brasil | ofertas incríveis",
    "faça login e comece suas compras | shopee brasil",
    "shopee brasil", "shopee", "login", "entrar", "sign in", "amazon sign-in",
    "mercado livre", "mercado livre brasil", "mercado libre",
    "amazon.com.br", "amazon.com", "magazine luiza", "magalu",
    "magazine luiza | pra você é magalu!",
}
GENERIC_TITLE_FRAGMENTS = (
    "faça login", "faca login", "entre ou cadastre-se", "ofertas incríveis. melhores preços",
    "página não encontrada", "pagina nao encontrada", "page not found",
    "produto não encontrado", "sign-in",
)
_NUMERIC_TITLE = re.compile(r"^\d{6,}$")

RECOMMENDATION_PHRASES = (
    "produtos relacionados", "quem viu este produto também", "quem comprou este produto também",
    "você também pode gostar", "voce tambem pode gostar", "compre junto",
    "produtos patrocinados", "aproveite também", "recomendados para você",
    "customers who viewed", "customers who bought", "frequently bought together",
    "sponsored products", "related products", "you may also like",
)


def _lower(text: Optional[str]) -> str:
    return (text or "").strip().lower()


def _contains_any(text: str, terms: Iterable[str]) -> bool:
    return any(t in text for t in terms)


def is_http_url(url: Any) -> bool:
    if not isinstance(url, str):
        return False
    p = urlparse(url.strip())
    return p.scheme in ("http", "https") and bool(p.netloc)


def is_gateway_url(url: Optional[str]) -> bool:
    if not url:
        return False
    p = urlparse(url.lower())
    return _contains_any(p.netloc, GATEWAY_HOSTS) or _contains_any(p.path, GATEWAY_PATHS)


def html_looks_blocked(html: Optional[str]) -> bool:
    return _contains_any(_lower(html), HTML_ANTIBOT_MARKERS)


def is_antibot_text(text: Optional[str]) -> bool:
    return _contains_any(_lower(text), ANTIBOT_TERMS)


def is_antibot_image(url: Optional[str]) -> bool:
    return _contains_any(_lower(url), ANTIBOT_IMAGE_PATTERNS)


def is_generic_title(title: Optional[str]) -> bool:
    t = _lower(title)
    if t in GENERIC_TITLES or _NUMERIC_TITLE.match(t):
        return True
    return _contains_any(t, GENERIC_TITLE_FRAGMENTS)


def is_recommendation_title(title: Optional[str]) -> bool:
    return _contains_any(_lower(title), RECOMMENDATION_PHRASES)


def _clean_text(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    text = re.sub(r"\s+", " ", value).strip()
    return text or None


def accept(
    candidate: Dict[str, Any],
    *,
    marketplace: Marketplace,
    product_url: str,
    fields: Optional[Iterable[ScrapeField]] = None,
) -> ProductRecord:
    """
    Validate a raw candidate and build the ProductRecord.

    Raises AntiBotBlock when the candidate is a challenge page in disguise and
    ValidationFailure for any other implausible data.
    """
    title = _clean_text(candidate.get("title"))
    image_url = _clean_text(candidate.get("image_url"))

    if is_antibot_text(title) or is_antibot_image(image_url):
        raise AntiBotBlock(marketplace.display_name, f"challenge content in candidate: {title!r}")
    if not title or len(title) < MIN_TITLE_LENGTH:
        raise ValidationFailure(f"title missing or too short: {title!r}")
    if is_generic_title(title):
        raise ValidationFailure(f"generic placeholder title: {title!r}")
    if is_recommendation_title(title):
        raise ValidationFailure(f"recommendation widget title: {title!r}")
    if not is_http_url(image_url):
        raise ValidationFailure(f"image url is not http(s): {image_url!r}")
    if _NON_PRODUCT_IMAGE.search(urlparse(image_url).path):
        raise ValidationFailure(f"image looks like a logo or icon: {image_url}")

    price = parse_price(candidate.get("price"))
    if price is not None and not (0 < price <= PRICE_CEILING):
        raise ValidationFailure(f"price out of range: {price}")

    original = parse_price(candidate.get("original_price"))
    if original is not None and (price is None or original <= price or original > PRICE_CEILING):
        original = None

    data: Dict[str, Any] = {
        "title": title,
        "description": _clean_text(candidate.get("description")),
        "price": price,
        "original_price": original,
        "discount_percentage": discount_percentage(price, original),
        "image_url": image_url,
        "product_url": product_url,
        "marketplace": marketplace,
        "rating": parse_rating(candidate.get("rating")),
        "review_count": parse_count(candidate.get("review_count")),
        "sales_quantity": parse_count(candidate.get("sales_quantity")),
        "seller": _clean_text(candidate.get("seller")),
        "in_stock": candidate.get("in_stock") is not False,
    }

    wanted = set(fields or ())
    if wanted:
        for field, attr in OPTIONAL_FIELDS.items():
            if field not in wanted:
                data[attr] = None

    try:
        return ProductRecord(**data)
    except ValidationError as exc:
        raise ValidationFailure(f"record rejected: {exc.errors()[0]['msg']}") from exc
