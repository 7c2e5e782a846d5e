from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from ..normalizer import html_looks_blocked
from ..parser_generic import DEFAULT_PROFILE, NodeProfile, extract_generic, from_payloads
from ..schema import Marketplace


@dataclass(frozen=True)
class MarketplaceAdapter:
    """
    Everything the strategies need to know about one marketplace: where
    product data lives in its pages and how to tell a real page from a
    challenge page.
    """

    marketplace: Marketplace
    home_url: str
    cookie_domain: str
    profile: NodeProfile = DEFAULT_PROFILE
    selectors: Mapping[str, Sequence[str]] = field(default_factory=dict)
    blob_specs: Tuple[str, ...] = ()
    # any of these in the HTML means the page shipped product data
    markers: Tuple[str, ...] = ("application/ld+json", "og:title", "__NEXT_DATA__")
    # internal API responses worth capturing while a browser renders the page
    api_patterns: Tuple[str, ...] = ()
    # selector that signals the product area rendered in a browser
    ready_selector: Optional[str] = None

    def extract_html(self, html: str) -> Dict[str, Any]:
        return extract_generic(html, self.profile, self.selectors, self.blob_specs)

    def extract_payload(self, payload: Any) -> Dict[str, Any]:
        return from_payloads([payload], self.profile)

    def looks_complete(self, html: Optional[str]) -> bool:
        if not html or html_looks_blocked(html):
            return False
        return any(m in html for m in self.markers)


def has_core_fields(candidate: Optional[Mapping[str, Any]]) -> bool:
    return bool(candidate and candidate.get("title") and candidate.get("image_url"))
