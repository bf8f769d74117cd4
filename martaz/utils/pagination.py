from __future__ import annotations

import math

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


def parse_page_args(args) -> tuple[int, int]:
    """Read 1-based ``page`` and clamped ``limit`` from request args."""
    try:
        page = int(args.get("page") or 1)
    except (TypeError, ValueError):
        page = 1
    try:
        limit = int(args.get("limit") or DEFAULT_LIMIT)
    except (TypeError, ValueError):
        limit = DEFAULT_LIMIT
    return max(1, page), max(1, min(limit, MAX_LIMIT))


def paginate(query, *, page: int = 1, limit: int = DEFAULT_LIMIT) -> tuple[list, int]:
    page = max(1, int(page or 1))
    limit = max(1, min(int(limit or DEFAULT_LIMIT), MAX_LIMIT))
    total = query.order_by(None).count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    return rows, total


def page_payload(items: list, *, total: int, page: int, limit: int) -> dict:
    return {
        "items": items,
        "total": int(total),
        "currentPage": int(page),
        "totalPages": int(math.ceil(total / limit)) if limit else 0,
    }
