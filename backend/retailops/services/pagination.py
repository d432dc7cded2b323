from __future__ import annotations

from ..config import ServiceSettings
from ..validation import page_params


def paginate(query, page, limit, settings: ServiceSettings, *, key: str, serialize=None) -> dict:
    """
    Run an ordered query one page at a time.

    Returns {key: [...], "pagination": {...}}; rows are passed through
    serialize (default: row.to_dict()).
    """
    page, limit = page_params(
        page,
        limit,
        default_limit=settings.default_page_size,
        max_limit=settings.max_page_size,
    )

    total = query.order_by(None).count()
    total_pages = (total + limit - 1) // limit if total > 0 else 1
    rows = query.offset((page - 1) * limit).limit(limit).all()

    serialize = serialize or (lambda row: row.to_dict())
    return {
        key: [serialize(row) for row in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
