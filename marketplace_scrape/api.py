import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Request
from pydantic import BaseModel

from .config import get_settings
from .schema import ExtractOptions
from .scrape import Extractor

settings = get_settings()
logging.basicConfig(level=settings.log_level.upper())


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.extractor = Extractor(settings)
    try:
        yield
    finally:
        await app.state.extractor.aclose()


app = FastAPI(title="Marketplace Scrape", version="0.1.0", lifespan=lifespan)


class ExtractRequest(BaseModel):
    url: str
    options: Optional[ExtractOptions] = None


class PreviewRequest(BaseModel):
    url: str
    web_page: Optional[Dict[str, Any]] = None


def get_extractor(request: Request) -> Extractor:
    return request.app.state.extractor


@app.get("/health")
def healthcheck():
    return {
        "status": "ok",
        "proxy": bool(settings.scraper_api_key),
        "ocr": bool(settings.ocr_space_api_key),
        "search": settings.has_google_cse or bool(settings.serpapi_api_key),
    }


@app.post("/extract")
async def extract(body: ExtractRequest, extractor: Extractor = Depends(get_extractor)):
    result = await extractor.extract(body.url, body.options)
    return result.to_dict()


@app.post("/preview")
async def preview(body: PreviewRequest, extractor: Extractor = Depends(get_extractor)):
    result = await extractor.build_from_preview(body.url, body.web_page)
    return result.to_dict()
