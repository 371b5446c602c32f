"""Shared fixtures: in-memory catalog for unit tests, seeded SQLite file for the app."""

from __future__ import annotations

import json
import sqlite3

import pytest

from services.catalog import SCHEMA, CatalogDB

# (id, slug, title, type, status, tags, views, updated_at)
SERIES = [
    (1, "alpha", "Alpha", "Manhwa", "Ongoing", ["Action", "Slice of Life"], 5, "2026-01-03T00:00:00"),
    (2, "beta", "Beta", "Doujinshi", "Completed", ["Romance"], 10, "2026-01-02T00:00:00"),
    (3, "gamma", "Gamma", "Manga", "Ongoing", ["Action"], 1, "2026-01-01T00:00:00"),
]

# Alpha's chapter indexes are stored as a mix of numbers and strings: 1, 2, 3, 5
CHAPTERS = [
    (1, "alpha-ch-1", "1", 1, "2026-01-01T00:00:00"),
    (1, "alpha-ch-2", "2", "2", "2026-01-02T00:00:00"),
    (1, "alpha-ch-3", "3", 3.0, "2026-01-03T00:00:00"),
    (1, "alpha-ch-5", "5", "Chapter 5", "2026-01-05T00:00:00"),
]


def _statements(series, chapters) -> list[tuple[str, tuple]]:
    statements = []
    for series_id, slug, title, type_, status, tags, views, updated_at in series:
        statements.append((
            "INSERT INTO series (id, slug, title, thumb, type, status, tags, views, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (series_id, slug, title, f"https://img.example/{slug}.jpg", type_, status, json.dumps(tags), views, updated_at),
        ))
    for series_id, slug, title, chapter_index, created_at in chapters:
        statements.append((
            "INSERT INTO chapters (series_id, slug, title, chapter_index, images, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (series_id, slug, title, chapter_index, json.dumps([f"{slug}/1.jpg"]), created_at),
        ))
    return statements


async def seed(catalog: CatalogDB, series=SERIES, chapters=CHAPTERS) -> None:
    db = catalog.connection
    for sql, params in _statements(series, chapters):
        await db.execute(sql, params)
    await db.commit()


@pytest.fixture()
async def catalog():
    """Empty in-memory catalog."""
    db = await CatalogDB.open(":memory:")
    try:
        yield db
    finally:
        await db.close()


@pytest.fixture()
async def seeded_catalog(catalog: CatalogDB):
    await seed(catalog)
    return catalog


@pytest.fixture()
def catalog_file(tmp_path):
    """SQLite file with the standard fixture data, for tests that start the app."""
    path = tmp_path / "catalog.db"
    conn = sqlite3.connect(path)
    try:
        for statement in SCHEMA:
            conn.execute(statement)
        for sql, params in _statements(SERIES, CHAPTERS):
            conn.execute(sql, params)
        conn.commit()
    finally:
        conn.close()
    return path
