import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError


class Settings(BaseModel):
    scraper_api_key: Optional[str] = Field(default=None, alias="SCRAPER_API_KEY")
    ocr_space_api_key: Optional[str] = Field(default=None, alias="OCR_SPACE_API_KEY")
    google_cse_api_key: Optional[str] = Field(default=None, alias="GOOGLE_CSE_API_KEY")
    google_cse_id: Optional[str] = Field(default=None, alias="GOOGLE_CSE_ID")
    serpapi_api_key: Optional[str] = Field(default=None, alias="SERPAPI_API_KEY")
    microlink_api_key: Optional[str] = Field(default=None, alias="MICROLINK_API_KEY")
    iframely_api_key: Optional[str] = Field(default=None, alias="IFRAMELY_API_KEY")
    opengraph_app_id: Optional[str] = Field(default=None, alias="OPENGRAPH_APP_ID")

    state_dir: Path = Field(default=Path(".cache"), alias="SCRAPE_STATE_DIR")
    browser_headless: bool = Field(default=True, alias="BROWSER_HEADLESS")

    # seconds
    http_timeout: float = Field(default=12.0, alias="HTTP_TIMEOUT")
    browser_timeout: float = Field(default=40.0, alias="BROWSER_TIMEOUT")
    proxy_timeout: float = Field(default=60.0, alias="PROXY_TIMEOUT")
    ocr_timeout: float = Field(default=20.0, alias="OCR_TIMEOUT")
    proxy_cache_success_ttl: float = Field(default=600.0, alias="PROXY_CACHE_SUCCESS_TTL")
    proxy_cache_failure_ttl: float = Field(default=120.0, alias="PROXY_CACHE_FAILURE_TTL")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = {"populate_by_name": True}

    @property
    def has_google_cse(self) -> bool:
        return bool(self.google_cse_api_key and self.google_cse_id)


def _load_dotenv():
    # Load from repo root if present, otherwise rely on environment variables.
    root_env = Path(__file__).resolve().parents[1] / ".env"
    if root_env.exists():
        load_dotenv(root_env)
    else:
        load_dotenv()


@lru_cache()
def get_settings() -> Settings:
    _load_dotenv()
    # Blank values in .env count as unset.
    env = {k: v for k, v in os.environ.items() if v != ""}
    try:
        return Settings(**env)
    except ValidationError as exc:
        bad = [str(e["loc"][0]) for e in exc.errors()]
        detail = f"Invalid scraper environment variables: {', '.join(bad)}"
        raise RuntimeError(detail) from exc
