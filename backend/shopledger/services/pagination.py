# Overview: Page/limit slicing shared by the listing services.

from __future__ import annotations

from typing import Callable


DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def paginate(query, *, page: int | None, limit: int | None, serialize: Callable) -> dict:
    """
    Slice an ordered query into one page.

    Returns a dict with 'items', 'count' and pagination metadata.
    """
    limit = min(limit or DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE)
    limit = max(limit, 1)
    page = max(page or 1, 1)

    total = query.order_by(None).count()
    total_pages = (total + limit - 1) // limit if total > 0 else 1

    rows = query.offset((page - 1) * limit).limit(limit).all()

    return {
        "items": [serialize(row) for row in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": limit,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
