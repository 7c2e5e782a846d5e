import math
import re
from typing import Any, Optional

_NUMBER_TOKEN = re.compile(r"\d[\d.,]*")
_THOUSANDS_DOTS = re.compile(r"\d{1,3}(?:\.\d{3})+")
_THOUSANDS_COMMAS = re.compile(r"\d{1,3}(?:,\d{3}){2,}")
_ARIA_PRICE = re.compile(r"([\d.]+)\s*reais(?:\s*(?:com|con|e)\s*(\d{1,2})\s*centavos)?", re.I)
_COUNT = re.compile(r"(\d[\d.,]*)\s*(mil|k|m)?\b", re.I)

PRICE_CEILING = 100_000.0


def _finite(value: float) -> Optional[float]:
    return value if math.isfinite(value) else None


def parse_price(value: Any) -> Optional[float]:
    """
    Parse a price in Brazilian or plain notation.

    "R$ 1.234,56" -> 1234.56, "R$ 50,00" -> 50.0, "1234.56" -> 1234.56.
    Returns None (never NaN) when nothing numeric is found.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _finite(float(value))
    if not isinstance(value, str):
        return None

    m = _NUMBER_TOKEN.search(value)
    if not m:
        return None
    s = m.group(0).rstrip(".,")

    if "." in s and "," in s:
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif "," in s:
        if s.count(",") == 1:
            s = s.replace(",", ".")
        elif _THOUSANDS_COMMAS.fullmatch(s):
            s = s.replace(",", "")
        else:
            head, _, tail = s.rpartition(",")
            s = head.replace(",", "") + "." + tail
    elif "." in s:
        if _THOUSANDS_DOTS.fullmatch(s):
            s = s.replace(".", "")
        elif s.count(".") > 1:
            head, _, tail = s.rpartition(".")
            s = head.replace(".", "") + "." + tail

    try:
        return _finite(float(s))
    except ValueError:
        return None


def parse_aria_price(label: Optional[str]) -> Optional[float]:
    """Mercado Livre accessibility labels: '1.234 reais com 56 centavos'."""
    if not label:
        return None
    m = _ARIA_PRICE.search(label)
    if not m:
        return None
    whole = m.group(1).replace(".", "")
    cents = m.group(2) or "0"
    try:
        return float(whole) + int(cents) / 100
    except ValueError:
        return None


def scale_shopee_price(raw: Any) -> Optional[float]:
    # Shopee's API reports prices as integers scaled by 100000 (sometimes 100).
    value = parse_price(raw)
    if value is None:
        return None
    if value > 1_000_000:
        return round(value / 100_000, 2)
    if value > 10_000:
        return round(value / 100, 2)
    return value


def parse_count(value: Any) -> Optional[int]:
    """'1,2 mil' -> 1200, '+10mil vendidos' -> 10000, '(2.345)' -> 2345."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if math.isfinite(value) else None
    m = _COUNT.search(str(value))
    if not m:
        return None
    number, unit = m.group(1), (m.group(2) or "").lower()
    if unit:
        base = parse_price(number.replace(".", ",") if number.count(".") == 1 else number)
        if base is None:
            return None
        factor = 1_000_000 if unit == "m" else 1_000
        return int(round(base * factor))
    digits = re.sub(r"[^\d]", "", number)
    return int(digits) if digits else None


def parse_rating(value: Any) -> Optional[float]:
    rating = parse_price(value)
    if rating is None or rating < 0 or rating > 5:
        return None
    return round(rating, 2)


def discount_percentage(price: Optional[float], original: Optional[float]) -> Optional[int]:
    if not price or not original or original <= price:
        return None
    return int(round((original - price) / original * 100))
