"""Derived chapter views: latest chapter per series and previous/next navigation.

Both views are computed from the chapters table on every call and never
cached on their own. The only caching is the outer HTTP response cache.

Order keys (``chapters.chapter_index``) are written by the ingestion job and
may be INTEGER, REAL or TEXT ("12", "Ch. 12.5"). Every comparison goes
through the ``order_key()`` SQL function so all of them live in one numeric
domain. Values that cannot be parsed sort as 0 instead of failing the query.
"""

import asyncio
import json
import logging
import math
import re
from typing import Any, Iterable, Mapping

logger = logging.getLogger(__name__)

_NON_NUMERIC = re.compile(r"[^0-9.]")
_LEADING_NUMBER = re.compile(r"\d+(?:\.\d*)?|\.\d+")
_NEGATIVE = re.compile(r"\s*-\s*\.?\d")

_LATEST_CHAPTERS_SQL = """
SELECT series_id, order_key, slug, created_at
FROM (
    SELECT series_id,
           order_key(chapter_index) AS order_key,
           slug,
           created_at,
           ROW_NUMBER() OVER (
               PARTITION BY series_id
               ORDER BY order_key(chapter_index) DESC
           ) AS position
    FROM chapters
    WHERE series_id IN (SELECT value FROM json_each(?))
)
WHERE position = 1
"""

_NEXT_CHAPTER_SQL = """
SELECT slug, title, order_key(chapter_index) AS order_key
FROM chapters
WHERE series_id = ? AND order_key(chapter_index) > order_key(?)
ORDER BY order_key ASC
LIMIT 1
"""

_PREV_CHAPTER_SQL = """
SELECT slug, title, order_key(chapter_index) AS order_key
FROM chapters
WHERE series_id = ? AND order_key(chapter_index) < order_key(?)
ORDER BY order_key DESC
LIMIT 1
"""


def coerce_order_key(value: Any) -> float:
    """Map a stored chapter index onto a float. Never raises.

    Numbers pass through. Anything else is stripped down to digits and dots
    and its leading decimal number is used ("Ch. 10.5" -> 10.5,
    "1.2.3" -> 1.2). A string that opens with a minus sign keeps it, so
    "-2" and -2 compare equal. Missing or unparseable values become 0.0.
    """
    if isinstance(value, (int, float)):
        return 0.0 if math.isnan(value) else float(value)
    if value is None:
        return 0.0
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="ignore")
    text = str(value)
    match = _LEADING_NUMBER.match(_NON_NUMERIC.sub("", text))
    if not match:
        return 0.0
    number = float(match.group())
    return -number if _NEGATIVE.match(text) else number


async def attach_latest_chapter(db, series: Iterable[Mapping[str, Any]]) -> list[dict]:
    """Return copies of ``series`` with ``latest_chapter`` attached to each one.

    One grouped query covers the whole batch. Input order is kept and no item
    is dropped: series without chapters get ``latest_chapter = None``.

    When several chapters share a series' highest order key, which of them is
    returned is unspecified.
    """
    items = [dict(s) for s in series]
    if not items:
        return []

    ids = sorted({item["id"] for item in items})
    rows = await db.fetch_all("latest_chapters", _LATEST_CHAPTERS_SQL, (json.dumps(ids),))
    latest = {
        row["series_id"]: {
            "series_id": row["series_id"],
            "order_key": row["order_key"],
            "slug": row["slug"],
            "created_at": row["created_at"],
        }
        for row in rows
    }

    for item in items:
        item["latest_chapter"] = latest.get(item["id"])
    return items


async def find_adjacent(db, series_id: int, order_key: Any) -> dict:
    """Nearest chapters on either side of ``order_key`` within one series.

    ``next`` has the smallest key strictly greater than ``order_key``,
    ``prev`` the largest key strictly smaller. A missing side is None.
    """
    next_row, prev_row = await asyncio.gather(
        db.fetch_one("next_chapter", _NEXT_CHAPTER_SQL, (series_id, order_key)),
        db.fetch_one("prev_chapter", _PREV_CHAPTER_SQL, (series_id, order_key)),
    )
    return {"next": _chapter_ref(next_row), "prev": _chapter_ref(prev_row)}


def _chapter_ref(row: Mapping[str, Any] | None) -> dict | None:
    if row is None:
        return None
    return {"slug": row["slug"], "title": row["title"], "order_key": row["order_key"]}
