import hashlib
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import orjson

from .schema import Marketplace

logger = logging.getLogger(__name__)


def key_for(url: str) -> str:
    return hashlib.sha1(url.encode()).hexdigest()


class TTLCache:
    """
    In-memory cache with per-entry expiry. Expired entries are dropped on
    read; there is no background sweep. A stored ``None`` is a cached failure.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}

    def get(self, key: str) -> Tuple[bool, Any]:
        entry = self._entries.get(key_for(key))
        if entry is None:
            return False, None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key_for(key)]
            return False, None
        return True, value

    def set(self, key: str, value: Any, ttl: float):
        self._entries[key_for(key)] = (self._clock() + ttl, value)

    def __len__(self):
        return len(self._entries)


class StateStore:
    """
    Browser storage state (cookies + local storage) persisted per marketplace
    as JSON under ``root``. Read before a session starts, written only after
    a session got through to real content.
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    def path_for(self, marketplace: Marketplace) -> Path:
        return self.root / f"{marketplace.value.lower()}-playwright.json"

    def load(self, marketplace: Marketplace) -> Optional[Dict[str, Any]]:
        p = self.path_for(marketplace)
        if not p.exists():
            return None
        try:
            state = orjson.loads(p.read_bytes())
        except orjson.JSONDecodeError:
            logger.warning("[State] corrupt storage state at %s, ignoring", p)
            return None
        return state if isinstance(state, dict) else None

    def save(self, marketplace: Marketplace, state: Dict[str, Any]):
        self.root.mkdir(parents=True, exist_ok=True)
        self.path_for(marketplace).write_bytes(orjson.dumps(state))
        logger.info("[State] saved %s storage state (%d cookies)",
                    marketplace.value, len(state.get("cookies") or []))

    def cookies(self, marketplace: Marketplace, domain_hint: Optional[str] = None) -> Dict[str, str]:
        state = self.load(marketplace) or {}
        out: Dict[str, str] = {}
        for c in state.get("cookies") or []:
            if not isinstance(c, dict) or "name" not in c:
                continue
            if domain_hint and domain_hint not in (c.get("domain") or ""):
                continue
            out[c["name"]] = c.get("value", "")
        return out
