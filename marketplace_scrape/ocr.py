import logging
import re
from typing import List, Optional, Tuple

from .errors import TransientNetworkError
from .fetcher import HttpClient
from .prices import PRICE_CEILING, parse_price

logger = logging.getLogger(__name__)

OCR_SPACE_URL = "https://api.ocr.space/parse/imageurl"

_PRICE_TOKEN = re.compile(r"(?:R\$\s*)?(\d{1,3}(?:\.\d{3})+,\d{2}|\d+,\d{2})", re.I)
_WORD = re.compile(r"\d+\s*x\b|[^\W\d_]+", re.I)
_INSTALLMENT = re.compile(r"^\d+\s*x$", re.I)

NOW_WORDS = {"por", "agora", "now", "for", "só", "so", "apenas", "hoje"}
WAS_WORDS = {"de", "era", "antes", "was", "before", "previously"}
CONTEXT_CHARS = 12


def _price_tokens(text: str) -> List[Tuple[float, List[str]]]:
    """Each price token with the words right before it (never reaching into the previous token)."""
    out = []
    prev_end = 0
    for m in _PRICE_TOKEN.finditer(text):
        window = text[max(prev_end, m.start() - CONTEXT_CHARS):m.start()]
        prev_end = m.end()
        value = parse_price(m.group(1))
        if value is None or not (0 < value <= PRICE_CEILING):
            continue
        out.append((value, [w.lower() for w in _WORD.findall(window)]))
    return out


def pick_price_from_ocr_text(text: Optional[str]) -> Optional[float]:
    """
    Choose the current price among the R$ amounts OCR found on an image.
    "de R$ 199,90 por R$ 149,90" -> 149.90. Amounts introduced by "de",
    "era", "antes" or an installment count are treated as old prices.
    """
    if not text:
        return None
    preferred, neutral, rest = [], [], []
    for value, words in _price_tokens(text):
        was = any(w in WAS_WORDS or _INSTALLMENT.match(w) for w in words)
        now = any(w in NOW_WORDS for w in words)
        if now and not was:
            preferred.append(value)
        elif not was:
            neutral.append(value)
        else:
            rest.append(value)
    for group in (preferred, neutral, rest):
        if group:
            return min(group)
    return None


class OcrSpaceClient:

    def __init__(self, http: HttpClient, api_key: Optional[str], timeout: float = 20.0):
        self.http = http
        self.api_key = api_key
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def extract_text(self, image_url: str) -> Optional[str]:
        if not self.enabled:
            return None
        params = {
            "apikey": self.api_key,
            "url": image_url,
            "language": "por",
            "OCREngine": "2",
            "scale": "true",
            "isOverlayRequired": "false",
        }
        try:
            payload = await self.http.get_json(OCR_SPACE_URL, params=params, timeout=self.timeout)
        except TransientNetworkError as e:
            logger.warning("[OCR] request failed for %s: %s", image_url, e)
            return None
        if not isinstance(payload, dict) or payload.get("IsErroredOnProcessing"):
            logger.info("[OCR] processing error for %s: %s", image_url,
                        payload.get("ErrorMessage") if isinstance(payload, dict) else payload)
            return None
        results = payload.get("ParsedResults") or []
        text = "\n".join(r.get("ParsedText") or "" for r in results if isinstance(r, dict)).strip()
        return text or None

    async def find_price(self, image_url: str) -> Optional[float]:
        price = pick_price_from_ocr_text(await self.extract_text(image_url))
        if price is not None:
            logger.info("[OCR] price %.2f read from %s", price, image_url)
        return price
