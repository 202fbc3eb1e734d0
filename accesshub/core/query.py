"""Shared query helpers: pagination, search and sorting."""

from __future__ import annotations

from typing import Any

from sqlalchemy import Select, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100


def clamp_page(page: int | None, limit: int | None) -> tuple[int, int]:
    page = page if page and page > 0 else DEFAULT_PAGE
    limit = limit if limit and limit > 0 else DEFAULT_LIMIT
    return page, min(limit, MAX_LIMIT)


def search_filter(columns, term: str | None):
    """OR of case-insensitive substring matches over `columns`, or None."""
    if not term:
        return None
    pattern = f"%{term}%"
    return or_(*(column.ilike(pattern) for column in columns))


def order_clause(allowed: dict[str, Any], sort_by: str | None, sort_order: str | None, default: str):
    """Resolve `sort_by` against an allow-list; unknown keys fall back to `default`."""
    column = allowed.get(sort_by or default, allowed[default])
    if (sort_order or "desc").lower() == "asc":
        return column.asc()
    return column.desc()


async def count_rows(session: AsyncSession, stmt: Select) -> int:
    count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
    return (await session.execute(count_stmt)).scalar_one()


async def paginate(
    session: AsyncSession,
    stmt: Select,
    page: int,
    limit: int,
) -> tuple[list, int]:
    """Execute `stmt` for one page and return (rows, total)."""
    total = await count_rows(session, stmt)
    result = await session.execute(stmt.offset((page - 1) * limit).limit(limit))
    return list(result.all()), total


def page_envelope(data: list, total: int, page: int, limit: int) -> dict:
    return {"data": data, "total": total, "page": page, "limit": limit}
