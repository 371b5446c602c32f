"""SQLite catalog store (series and their chapters) on aiosqlite.

The tables are filled by the ingestion job; this service only reads them,
apart from the series view counter. ``init_db`` creates the schema when it
is missing so a fresh database (or ``:memory:`` in tests) works.

Every query failure is logged and re-raised as ``CatalogQueryError`` so
callers see one error type whatever went wrong in the driver.
"""

import json
import logging
import re
from typing import Any, Iterable, Sequence

import aiosqlite

from errors import CatalogQueryError
from services.relations import coerce_order_key

logger = logging.getLogger(__name__)

_CREATE_SERIES_TABLE = """
CREATE TABLE IF NOT EXISTS series (
    id          INTEGER PRIMARY KEY,
    slug        TEXT NOT NULL UNIQUE,
    title       TEXT NOT NULL,
    thumb       TEXT,
    synopsis    TEXT,
    author      TEXT,
    type        TEXT,
    status      TEXT,
    tags        TEXT NOT NULL DEFAULT '[]',
    views       INTEGER NOT NULL DEFAULT 0,
    updated_at  TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
)
"""

# chapter_index has no declared type on purpose: ingestion stores numbers and
# numeric-looking strings side by side.
_CREATE_CHAPTERS_TABLE = """
CREATE TABLE IF NOT EXISTS chapters (
    id             INTEGER PRIMARY KEY,
    series_id      INTEGER NOT NULL REFERENCES series(id),
    slug           TEXT NOT NULL,
    title          TEXT,
    chapter_index,
    images         TEXT NOT NULL DEFAULT '[]',
    content        TEXT,
    created_at     TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
)
"""

SCHEMA = (
    _CREATE_SERIES_TABLE,
    _CREATE_CHAPTERS_TABLE,
    "CREATE INDEX IF NOT EXISTS idx_chapters_series ON chapters(series_id)",
    "CREATE INDEX IF NOT EXISTS idx_series_updated ON series(updated_at)",
)

SERIES_CARD_COLUMNS = "id, slug, title, thumb, type, status, tags, views, updated_at"
SERIES_COLUMNS = f"{SERIES_CARD_COLUMNS}, synopsis, author"

ORDERINGS = {
    "title": "title ASC",
    "titledesc": "title DESC",
    "update": "updated_at DESC",
    "popular": "views DESC",
}

_JSON_COLUMNS = ("tags", "images")


def _regexp(pattern: str, value: Any) -> bool:
    """Case-insensitive search backing SQLite's REGEXP operator."""
    if value is None:
        return False
    return re.search(pattern, str(value), re.IGNORECASE) is not None


def _decode(row: aiosqlite.Row) -> dict:
    item = dict(row)
    for column in _JSON_COLUMNS:
        if column in item and isinstance(item[column], str):
            item[column] = json.loads(item[column])
    return item


class CatalogDB:
    """Thin async wrapper around one aiosqlite connection."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    @classmethod
    async def open(cls, path: str) -> "CatalogDB":
        db = await aiosqlite.connect(path)
        db.row_factory = aiosqlite.Row
        await db.create_function("order_key", 1, coerce_order_key, deterministic=True)
        await db.create_function("regexp", 2, _regexp, deterministic=True)
        catalog = cls(db)
        await catalog.init_db()
        logger.info("Catalog opened at %s", path)
        return catalog

    async def init_db(self) -> None:
        """Create tables and indexes if missing. Called once at startup."""
        for statement in SCHEMA:
            await self._db.execute(statement)
        await self._db.commit()

    async def close(self) -> None:
        await self._db.close()

    @property
    def connection(self) -> aiosqlite.Connection:
        return self._db

    # ------------------------------------------------------------------
    # Query primitives
    # ------------------------------------------------------------------

    async def fetch_all(self, operation: str, sql: str, params: Sequence[Any] = ()) -> list[dict]:
        try:
            async with self._db.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            logger.error("Catalog query %s failed: %s", operation, e)
            raise CatalogQueryError(operation) from e
        return [_decode(row) for row in rows]

    async def fetch_one(self, operation: str, sql: str, params: Sequence[Any] = ()) -> dict | None:
        rows = await self.fetch_all(operation, sql, params)
        return rows[0] if rows else None

    async def ping(self) -> bool:
        row = await self.fetch_one("ping", "SELECT 1 AS ok")
        return row is not None and row["ok"] == 1

    # ------------------------------------------------------------------
    # Series
    # ------------------------------------------------------------------

    async def get_series(self, slug: str) -> dict | None:
        return await self.fetch_one(
            "get_series", f"SELECT {SERIES_COLUMNS} FROM series WHERE slug = ?", (slug,)
        )

    async def record_view(self, slug: str) -> dict | None:
        """Increment the view counter and return the updated series.

        ``updated_at`` is left alone so views do not reorder "latest" lists.
        """
        try:
            await self._db.execute("UPDATE series SET views = views + 1 WHERE slug = ?", (slug,))
            await self._db.commit()
        except aiosqlite.Error as e:
            logger.error("Catalog query record_view failed: %s", e)
            raise CatalogQueryError("record_view") from e
        return await self.get_series(slug)

    async def list_series(
        self,
        where: str = "",
        params: Sequence[Any] = (),
        order_by: str = "updated_at DESC",
        limit: int = 24,
        offset: int = 0,
    ) -> list[dict]:
        sql = f"SELECT {SERIES_CARD_COLUMNS} FROM series"
        if where:
            sql += f" WHERE {where}"
        sql += f" ORDER BY {order_by} LIMIT ? OFFSET ?"
        return await self.fetch_all("list_series", sql, (*params, limit, offset))

    async def count_series(self, where: str = "", params: Sequence[Any] = ()) -> int:
        sql = "SELECT COUNT(*) AS total FROM series"
        if where:
            sql += f" WHERE {where}"
        row = await self.fetch_one("count_series", sql, params)
        return row["total"] if row else 0

    async def random_series(self, exclude_id: int, size: int = 12) -> list[dict]:
        return await self.fetch_all(
            "random_series",
            f"SELECT {SERIES_CARD_COLUMNS} FROM series WHERE id != ? ORDER BY RANDOM() LIMIT ?",
            (exclude_id, size),
        )

    async def genre_counts(self) -> list[dict]:
        return await self.fetch_all(
            "genre_counts",
            "SELECT tag.value AS name, COUNT(*) AS count "
            "FROM series, json_each(series.tags) AS tag "
            "WHERE tag.value IS NOT NULL AND tag.value != '' "
            "GROUP BY tag.value ORDER BY tag.value",
        )

    async def distinct_values(self, column: str) -> list[str]:
        if column not in ("status", "type"):
            raise ValueError(f"Unsupported column: {column}")
        rows = await self.fetch_all(
            f"distinct_{column}",
            f"SELECT DISTINCT {column} AS value FROM series "
            f"WHERE {column} IS NOT NULL AND {column} != '' ORDER BY {column}",
        )
        return [row["value"] for row in rows]

    # ------------------------------------------------------------------
    # Chapters
    # ------------------------------------------------------------------

    async def chapters_for(self, series_id: int) -> list[dict]:
        """All chapters of a series, highest order key first."""
        return await self.fetch_all(
            "chapters_for",
            "SELECT id, slug, title, chapter_index, order_key(chapter_index) AS order_key, created_at "
            "FROM chapters WHERE series_id = ? ORDER BY order_key DESC",
            (series_id,),
        )

    async def get_chapter(self, series_id: int, slug: str) -> dict | None:
        return await self.fetch_one(
            "get_chapter",
            "SELECT id, series_id, slug, title, chapter_index, "
            "order_key(chapter_index) AS order_key, images, content, created_at "
            "FROM chapters WHERE series_id = ? AND slug = ?",
            (series_id, slug),
        )

    async def chapter_counts(self, series_ids: Iterable[int]) -> dict[int, int]:
        ids = sorted(set(series_ids))
        if not ids:
            return {}
        rows = await self.fetch_all(
            "chapter_counts",
            "SELECT series_id, COUNT(*) AS count FROM chapters "
            "WHERE series_id IN (SELECT value FROM json_each(?)) GROUP BY series_id",
            (json.dumps(ids),),
        )
        return {row["series_id"]: row["count"] for row in rows}

    async def attach_chapter_counts(self, series: Iterable[dict]) -> list[dict]:
        items = [dict(s) for s in series]
        counts = await self.chapter_counts(item["id"] for item in items)
        for item in items:
            item["chapter_count"] = counts.get(item["id"], 0)
        return items


def series_filter(
    q: str | None = None,
    status: str | None = None,
    type_: str | None = None,
    genres: Sequence[str] = (),
) -> tuple[str, list[Any]]:
    """Build a WHERE clause for the series list filters.

    User input is escaped, so every filter is a case-insensitive substring
    match. ``"all"`` disables the status and type filters.
    """
    clauses: list[str] = []
    params: list[Any] = []
    if q:
        clauses.append("title REGEXP ?")
        params.append(re.escape(q))
    if status and status != "all":
        clauses.append("status REGEXP ?")
        params.append(re.escape(status))
    if type_ and type_ != "all":
        clauses.append("type REGEXP ?")
        params.append(re.escape(type_))
    for genre in genres:
        if not genre:
            continue
        clauses.append("EXISTS (SELECT 1 FROM json_each(series.tags) WHERE value REGEXP ?)")
        params.append(re.escape(genre))
    return " AND ".join(clauses), params
