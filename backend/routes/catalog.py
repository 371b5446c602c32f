"""Catalog read routes. Every endpoint here goes through the response cache.

Endpoint -> TTL (seconds), from config.ROUTE_TTLS:
  /                           180  home shelves
  /manga/{slug}               180  series detail (counts a view on miss only)
  /manga-list                 300  filtered A-Z list
  /read/{slug}/{chapter_slug} 600  chapter reader with prev/next navigation
  /search                     120  title search
  /genres                    3600  genre index
  /genre|type|status/{value}  300  archives
"""

import asyncio
import logging
import math
import re

from fastapi import APIRouter, Depends, Query, Request

from config import ROUTE_TTLS, Settings
from errors import not_found_response
from services.catalog import ORDERINGS, CatalogDB, series_filter
from services.relations import attach_latest_chapter, find_adjacent
from services.response_cache import CachedRoute, cache_for

logger = logging.getLogger(__name__)

router = APIRouter(route_class=CachedRoute)

TRENDING_SIZE = 10
SHELF_SIZE = 24
RECOMMENDATION_SIZE = 12
# Keeps (page - 1) * page_size inside SQLite INTEGER range
MAX_PAGE = 10_000


def get_catalog(request: Request) -> CatalogDB:
    return request.app.state.catalog


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _pagination(total: int, page: int, page_size: int) -> dict:
    return {
        "current_page": page,
        "total_pages": math.ceil(total / page_size) if total else 0,
        "total": total,
    }


def _canonical_url(request: Request, settings: Settings, path: str, page: int) -> str:
    base = settings.site_url or str(request.base_url).rstrip("/")
    url = f"{base}{path}"
    if page > 1:
        url += f"?page={page}"
    return url


# ---------------------------------------------------------------------------
# Home & detail
# ---------------------------------------------------------------------------

@router.get("/")
@cache_for(ROUTE_TTLS["home"])
async def home(
    page: int = Query(1, ge=1, le=MAX_PAGE),
    catalog: CatalogDB = Depends(get_catalog),
    settings: Settings = Depends(get_settings),
) -> dict:
    """Recent updates plus trending and per-type shelves."""
    limit = settings.page_size
    manhwa_where, manhwa_params = series_filter(type_="manhwa")
    doujinshi_where, doujinshi_params = series_filter(type_="doujinshi")

    recents, trending, manhwas, doujinshis = await asyncio.gather(
        catalog.list_series(order_by="updated_at DESC", limit=limit, offset=(page - 1) * limit),
        catalog.list_series(order_by="views DESC", limit=TRENDING_SIZE),
        catalog.list_series(manhwa_where, manhwa_params, limit=SHELF_SIZE),
        catalog.list_series(doujinshi_where, doujinshi_params, limit=SHELF_SIZE),
    )

    return {
        "title": f"{settings.site_name} - Baca Komik Terbaru",
        "page": page,
        "recents": await attach_latest_chapter(catalog, recents),
        "trending": trending,
        "manhwa": await attach_latest_chapter(catalog, manhwas),
        "doujinshi": await attach_latest_chapter(catalog, doujinshis),
    }


@router.get("/manga/{slug}")
@cache_for(ROUTE_TTLS["series_detail"])
async def series_detail(
    slug: str,
    catalog: CatalogDB = Depends(get_catalog),
    settings: Settings = Depends(get_settings),
) -> dict:
    """Series page. The view counter only moves when the response is rendered."""
    series = await catalog.record_view(slug)
    if series is None:
        return not_found_response("Series")

    chapters, recommendations = await asyncio.gather(
        catalog.chapters_for(series["id"]),
        catalog.random_series(series["id"], RECOMMENDATION_SIZE),
    )

    return {
        "title": f"{series['title']} - {settings.site_name}",
        "series": series,
        "chapters": chapters,
        "recommendations": await attach_latest_chapter(catalog, recommendations),
    }


@router.get("/read/{slug}/{chapter_slug}")
@cache_for(ROUTE_TTLS["read_chapter"])
async def read_chapter(
    slug: str,
    chapter_slug: str,
    catalog: CatalogDB = Depends(get_catalog),
    settings: Settings = Depends(get_settings),
) -> dict:
    """One chapter with its images and links to the neighbouring chapters."""
    series = await catalog.get_series(slug)
    if series is None:
        return not_found_response("Series")

    chapter = await catalog.get_chapter(series["id"], chapter_slug)
    if chapter is None:
        return not_found_response("Chapter")

    chapters, navigation = await asyncio.gather(
        catalog.chapters_for(series["id"]),
        find_adjacent(catalog, series["id"], chapter["chapter_index"]),
    )

    return {
        "title": f"{series['title']} - Chapter {chapter['title']}",
        "site_name": settings.site_name,
        "series": {
            "id": series["id"],
            "slug": series["slug"],
            "title": series["title"],
            "thumb": series["thumb"],
            "author": series["author"] or "Unknown",
            "chapters": chapters,
        },
        "chapter": chapter,
        "navigation": navigation,
    }


# ---------------------------------------------------------------------------
# Lists, search & archives
# ---------------------------------------------------------------------------

@router.get("/manga-list")
@cache_for(ROUTE_TTLS["series_list"])
async def series_list(
    page: int = Query(1, ge=1, le=MAX_PAGE),
    q: str | None = Query(None),
    status: str | None = Query(None),
    type_: str | None = Query(None, alias="type"),
    genre: list[str] = Query([]),
    genre_brackets: list[str] = Query([], alias="genre[]"),
    orderby: str = Query("title"),
    catalog: CatalogDB = Depends(get_catalog),
    settings: Settings = Depends(get_settings),
) -> dict:
    """Filtered, sorted series list with chapter counts and the filter options."""
    limit = settings.page_size
    # HTML filter forms send genre[]=...
    genre = genre + genre_brackets
    where, params = series_filter(q=q, status=status, type_=type_, genres=genre)
    order_by = ORDERINGS.get(orderby, ORDERINGS["title"])

    total = await catalog.count_series(where, params)
    series = await catalog.list_series(where, params, order_by=order_by, limit=limit, offset=(page - 1) * limit)
    series = await catalog.attach_chapter_counts(series)

    genres, statuses, types = await asyncio.gather(
        catalog.genre_counts(),
        catalog.distinct_values("status"),
        catalog.distinct_values("type"),
    )

    return {
        "title": f"Daftar Semua Manga - Halaman {page}",
        "series": series,
        **_pagination(total, page, limit),
        "filters": {"q": q, "status": status, "type": type_, "genre": genre, "orderby": orderby},
        "genre_list": [g["name"] for g in genres],
        "status_list": statuses,
        "type_list": types,
    }


@router.get("/search")
@cache_for(ROUTE_TTLS["search"])
async def search(
    q: str | None = Query(None),
    page: int = Query(1, ge=1, le=MAX_PAGE),
    catalog: CatalogDB = Depends(get_catalog),
    settings: Settings = Depends(get_settings),
) -> dict:
    if not q:
        raise ValueError("Query parameter 'q' is required")

    limit = settings.page_size
    where, params = series_filter(q=q)
    total = await catalog.count_series(where, params)
    series = await catalog.list_series(where, params, order_by="title ASC", limit=limit, offset=(page - 1) * limit)

    return {
        "title": f'Hasil Pencarian: "{q}"',
        "query": q,
        "series": await catalog.attach_chapter_counts(series),
        **_pagination(total, page, limit),
    }


@router.get("/genres")
@cache_for(ROUTE_TTLS["genres"])
async def genres(catalog: CatalogDB = Depends(get_catalog)) -> dict:
    return {"genres": await catalog.genre_counts()}


async def _archive(
    request: Request,
    catalog: CatalogDB,
    settings: Settings,
    path: str,
    heading: str,
    where: str,
    params: list,
    page: int,
    order_by: str = "updated_at DESC",
) -> dict:
    limit = settings.page_size
    total = await catalog.count_series(where, params)
    series = await catalog.list_series(where, params, order_by=order_by, limit=limit, offset=(page - 1) * limit)
    return {
        "title": heading if page == 1 else f"{heading} - Page {page}",
        "series": await catalog.attach_chapter_counts(series),
        **_pagination(total, page, limit),
        "canonical_url": _canonical_url(request, settings, path, page),
    }


@router.get("/genre/{tag}")
@cache_for(ROUTE_TTLS["archive"])
async def genre_archive(
    request: Request,
    tag: str,
    page: int = Query(1, ge=1, le=MAX_PAGE),
    catalog: CatalogDB = Depends(get_catalog),
    settings: Settings = Depends(get_settings),
) -> dict:
    # "slice-of-life" matches both "Slice-of-Life" and "Slice of Life"
    pattern = "[- ]".join(re.escape(part) for part in tag.split("-"))
    where = "EXISTS (SELECT 1 FROM json_each(series.tags) WHERE value REGEXP ?)"
    heading = f"Genre {tag.replace('-', ' ').upper()}"
    return await _archive(request, catalog, settings, f"/genre/{tag}", heading, where, [pattern], page)


@router.get("/type/{type_name}")
@cache_for(ROUTE_TTLS["archive"])
async def type_archive(
    request: Request,
    type_name: str,
    page: int = Query(1, ge=1, le=MAX_PAGE),
    catalog: CatalogDB = Depends(get_catalog),
    settings: Settings = Depends(get_settings),
) -> dict:
    where = "type REGEXP ?"
    pattern = f"^{re.escape(type_name)}$"
    heading = f"Type {type_name.upper()}"
    return await _archive(request, catalog, settings, f"/type/{type_name}", heading, where, [pattern], page)


@router.get("/status/{status}")
@cache_for(ROUTE_TTLS["archive"])
async def status_archive(
    request: Request,
    status: str,
    page: int = Query(1, ge=1, le=MAX_PAGE),
    catalog: CatalogDB = Depends(get_catalog),
    settings: Settings = Depends(get_settings),
) -> dict:
    where = "status REGEXP ?"
    pattern = f"^{re.escape(status)}$"
    heading = f"Status {status.upper()}"
    return await _archive(
        request, catalog, settings, f"/status/{status}", heading, where, [pattern], page, order_by="title ASC"
    )
