import json
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from bs4 import BeautifulSoup

from .prices import parse_count, parse_price, parse_rating

CANDIDATE_FIELDS = (
    "title", "description", "price", "original_price", "image_url",
    "rating", "review_count", "sales_quantity", "seller", "in_stock",
)

STATE_GLOBALS = ("__INITIAL_STATE__", "__PRELOADED_STATE__", "__APOLLO_STATE__")
OUT_OF_STOCK_WORDS = ("indisponível", "indisponivel", "esgotado", "out of stock", "sem estoque")

_decoder = json.JSONDecoder()


def _safe_json_loads(text: Optional[str]):
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None


def _identity(value):
    return value


@dataclass(frozen=True)
class NodeProfile:
    """Key names that identify a product object inside a marketplace's JSON."""

    name_keys: Tuple[str, ...] = ("name", "title", "productName")
    price_keys: Tuple[str, ...] = ("price", "salePrice", "bestPrice", "priceValue", "currentPrice")
    image_keys: Tuple[str, ...] = ("image", "imageUrl", "image_url", "images", "thumbnail", "pictures")
    original_price_keys: Tuple[str, ...] = ("originalPrice", "original_price", "listPrice", "oldPrice", "price_before_discount")
    description_keys: Tuple[str, ...] = ("description", "shortDescription")
    rating_keys: Tuple[str, ...] = ("rating", "ratingValue", "rating_star", "averageRating")
    review_keys: Tuple[str, ...] = ("reviewCount", "ratingCount", "review_count", "totalReviews")
    sold_keys: Tuple[str, ...] = ("sold", "historical_sold", "soldQuantity", "sold_quantity")
    seller_keys: Tuple[str, ...] = ("seller", "sellerName", "shop_name", "brand")
    stock_keys: Tuple[str, ...] = ("stock", "available_quantity", "availableQuantity", "inStock", "available")
    price_parser: Callable[[Any], Optional[float]] = parse_price
    image_builder: Callable[[str], str] = _identity

    def _first(self, node: Mapping, keys: Iterable[str]):
        for k in keys:
            v = node.get(k)
            if v not in (None, "", [], {}):
                return v
        return None

    def score(self, node: Mapping) -> int:
        has_name = isinstance(self._first(node, self.name_keys), str)
        has_price = self._price(self._first(node, self.price_keys)) is not None
        has_image = self._image(self._first(node, self.image_keys)) is not None
        return int(has_name) + int(has_price) + int(has_image)

    def _price(self, value) -> Optional[float]:
        if isinstance(value, Mapping):
            value = self._first(value, ("bestPrice", "value", "amount", "price", "current"))
        if isinstance(value, (list, tuple)):
            value = value[0] if value else None
        return self.price_parser(value)

    def _image(self, value) -> Optional[str]:
        if isinstance(value, (list, tuple)):
            value = value[0] if value else None
        if isinstance(value, Mapping):
            value = self._first(value, ("url", "src", "secure_url", "contentUrl"))
        if not isinstance(value, str) or not value.strip():
            return None
        return self.image_builder(value.strip())

    def _text(self, value) -> Optional[str]:
        if isinstance(value, Mapping):
            value = value.get("name") or value.get("value")
        return value.strip() if isinstance(value, str) and value.strip() else None

    def to_candidate(self, node: Mapping) -> Dict[str, Any]:
        stock = self._first(node, self.stock_keys)
        in_stock = None
        if isinstance(stock, bool):
            in_stock = stock
        elif isinstance(stock, (int, float)):
            in_stock = stock > 0
        rating = self._first(node, self.rating_keys)
        if isinstance(rating, Mapping):
            rating = rating.get("rating_star") or rating.get("ratingValue") or rating.get("average")
        return {
            "title": self._text(self._first(node, self.name_keys)),
            "description": self._text(self._first(node, self.description_keys)),
            "price": self._price(self._first(node, self.price_keys)),
            "original_price": self._price(self._first(node, self.original_price_keys)),
            "image_url": self._image(self._first(node, self.image_keys)),
            "rating": parse_rating(rating),
            "review_count": parse_count(self._first(node, self.review_keys)),
            "sales_quantity": parse_count(self._first(node, self.sold_keys)),
            "seller": self._text(self._first(node, self.seller_keys)),
            "in_stock": in_stock,
        }


DEFAULT_PROFILE = NodeProfile()


def find_product_node(payload: Any, profile: NodeProfile = DEFAULT_PROFILE,
                      max_nodes: int = 50_000) -> Optional[Dict[str, Any]]:
    """
    Breadth-first walk over arbitrary JSON. An object carrying name, price
    and image is returned at once; otherwise the best-scoring object that
    has a name plus one other signal.
    """
    queue = deque([payload])
    seen = set()
    best, best_score = None, 1
    visited = 0
    while queue and visited < max_nodes:
        node = queue.popleft()
        if id(node) in seen:
            continue
        seen.add(id(node))
        visited += 1
        if isinstance(node, dict):
            score = profile.score(node)
            if score == 3:
                return node
            if score > best_score and isinstance(profile._first(node, profile.name_keys), str):
                best, best_score = node, score
            children = node.values()
        elif isinstance(node, list):
            children = node
        else:
            continue
        queue.extend(c for c in children if isinstance(c, (dict, list)))
    return best


def merge_missing(base: Dict[str, Any], extra: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    if extra:
        for k, v in extra.items():
            if base.get(k) in (None, "") and v not in (None, ""):
                base[k] = v
    return base


def empty_candidate() -> Dict[str, Any]:
    return {k: None for k in CANDIDATE_FIELDS}


# ---------------------------------------------------------------------- #
# Embedded page state
# ---------------------------------------------------------------------- #

def _json_after(text: str, marker: str):
    idx = text.find(marker)
    if idx < 0:
        return None
    start = text.find("{", idx + len(marker))
    if start < 0:
        return None
    try:
        value, _ = _decoder.raw_decode(text, start)
    except ValueError:
        return None
    return value


def embedded_states(soup: BeautifulSoup) -> List[Any]:
    """Full-page JSON states (__NEXT_DATA__ and window.__*_STATE__ globals)."""
    states = []
    nd = soup.select_one("script#__NEXT_DATA__")
    if nd:
        data = _safe_json_loads(nd.string)
        if data is not None:
            states.append(data)
    for script in soup.find_all("script"):
        text = script.string or ""
        for g in STATE_GLOBALS:
            if g in text:
                data = _json_after(text, g)
                if data is not None:
                    states.append(data)
    return states


def attribute_blobs(soup: BeautifulSoup, specs: Sequence[str]) -> List[Any]:
    """Compact JSON held in HTML attributes, given as 'selector@attribute'."""
    blobs = []
    for spec in specs:
        sel, _, attr = spec.rpartition("@")
        for el in soup.select(sel):
            data = _safe_json_loads(el.get(attr))
            if data is not None:
                blobs.append(data)
    return blobs


def from_payloads(payloads: Iterable[Any], profile: NodeProfile) -> Dict[str, Any]:
    out = empty_candidate()
    for payload in payloads:
        node = find_product_node(payload, profile)
        if node:
            merge_missing(out, profile.to_candidate(node))
        if out["title"] and out["price"] is not None and out["image_url"]:
            break
    return out


# ---------------------------------------------------------------------- #
# JSON-LD
# ---------------------------------------------------------------------- #

def _is_product(node: Any) -> bool:
    if not isinstance(node, dict):
        return False
    t = node.get("@type")
    return t == "Product" or (isinstance(t, list) and "Product" in t)


def _pick_product_node(data: Any) -> Optional[Dict[str, Any]]:
    """Find a schema.org Product in parsed JSON-LD (dict, list or @graph)."""
    if isinstance(data, dict):
        if _is_product(data):
            return data
        graph = data.get("@graph")
        if isinstance(graph, list):
            return next((n for n in graph if _is_product(n)), None)
    if isinstance(data, list):
        for node in data:
            found = _pick_product_node(node)
            if found:
                return found
    return None


def extract_ld_json(soup: BeautifulSoup) -> Dict[str, Any]:
    out = empty_candidate()
    for script in soup.find_all("script", type=lambda t: t and "ld+json" in t):
        prod = _pick_product_node(_safe_json_loads(script.string))
        if not prod:
            continue

        img = prod.get("image")
        if isinstance(img, list) and img:
            img = img[0]
        if isinstance(img, dict):
            img = img.get("url") or img.get("contentUrl")

        offers = prod.get("offers") or {}
        if isinstance(offers, list) and offers:
            offers = offers[0]
        price, availability = None, None
        if isinstance(offers, dict):
            price = parse_price(offers.get("price") or offers.get("lowPrice"))
            availability = str(offers.get("availability") or "")
            seller = offers.get("seller")
        else:
            seller = None

        agg = prod.get("aggregateRating") or {}
        brand = prod.get("brand")
        merge_missing(out, {
            "title": prod.get("name") if isinstance(prod.get("name"), str) else None,
            "description": prod.get("description") if isinstance(prod.get("description"), str) else None,
            "image_url": img if isinstance(img, str) else None,
            "price": price,
            "rating": parse_rating(agg.get("ratingValue")) if isinstance(agg, dict) else None,
            "review_count": parse_count(agg.get("reviewCount") or agg.get("ratingCount")) if isinstance(agg, dict) else None,
            "seller": (seller or {}).get("name") if isinstance(seller, dict) else (brand.get("name") if isinstance(brand, dict) else None),
            "in_stock": ("OutOfStock" not in availability) if availability else None,
        })
        if out["title"] and out["image_url"] and out["price"] is not None:
            break
    return out


# ---------------------------------------------------------------------- #
# Selectors and meta tags
# ---------------------------------------------------------------------- #

def select_value(soup: BeautifulSoup, specs: Sequence[str]) -> Optional[str]:
    """
    First non-empty value for a list of selectors. 'sel@attr' reads an
    attribute, a bare selector reads the element text.
    """
    for spec in specs:
        sel, sep, attr = spec.rpartition("@") if "@" in spec else (spec, "", "")
        el = soup.select_one(sel)
        if el is None:
            continue
        value = el.get(attr) if sep else el.get_text(" ", strip=True)
        if isinstance(value, list):
            value = " ".join(value)
        if value and value.strip():
            return value.strip()
    return None


META_SELECTORS = {
    "title": ["meta[property='og:title']@content", "meta[name='twitter:title']@content"],
    "description": ["meta[property='og:description']@content", "meta[name='description']@content"],
    "image_url": [
        "meta[property='og:image:secure_url']@content",
        "meta[property='og:image']@content",
        "meta[name='twitter:image']@content",
    ],
    "price": [
        "meta[property='product:price:amount']@content",
        "meta[property='og:price:amount']@content",
        "[itemprop='price']@content",
    ],
}


def from_selectors(soup: BeautifulSoup, selectors: Mapping[str, Sequence[str]]) -> Dict[str, Any]:
    out = empty_candidate()
    for field, specs in selectors.items():
        value = select_value(soup, specs)
        if value is None:
            continue
        if field in ("price", "original_price"):
            out[field] = parse_price(value)
        elif field == "rating":
            out[field] = parse_rating(value)
        elif field in ("review_count", "sales_quantity"):
            out[field] = parse_count(value)
        elif field == "in_stock":
            out[field] = not any(w in value.lower() for w in OUT_OF_STOCK_WORDS)
        else:
            out[field] = value
    return out


def extract_generic(html: str, profile: NodeProfile = DEFAULT_PROFILE,
                    selectors: Optional[Mapping[str, Sequence[str]]] = None,
                    blob_specs: Sequence[str] = ()) -> Dict[str, Any]:
    """
    Run every tier over one document in priority order: embedded state,
    attribute blobs, JSON-LD, marketplace selectors, meta tags. Earlier
    tiers win; later tiers only fill gaps.
    """
    soup = BeautifulSoup(html, "lxml")
    out = from_payloads(embedded_states(soup), profile)
    if blob_specs:
        merge_missing(out, from_payloads(attribute_blobs(soup, blob_specs), profile))
    merge_missing(out, extract_ld_json(soup))
    if selectors:
        merge_missing(out, from_selectors(soup, selectors))
    merge_missing(out, from_selectors(soup, META_SELECTORS))
    if not out["title"] and soup.title and soup.title.string:
        out["title"] = soup.title.get_text(strip=True)
    return out
