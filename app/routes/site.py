"""robots.txt / sitemap / 헬스체크."""

from fastapi import APIRouter
from fastapi.responses import FileResponse, PlainTextResponse

from app.config import settings

router = APIRouter()


@router.get("/status", response_class=PlainTextResponse)
async def status():
    return "ok"


@router.get("/robots.txt")
async def robots_text():
    return FileResponse(settings.static_dir / "robots.txt", media_type="text/plain")


@router.get("/sitemap.xml")
async def sitemap():
    return FileResponse(settings.static_dir / "sitemap.xml", media_type="application/xml")


@router.get("/sitemap_index.xml")
async def sitemap_index():
    return FileResponse(settings.static_dir / "sitemapindex.xml", media_type="application/xml")
