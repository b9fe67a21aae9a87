"""Page/limit normalisation shared by the paginated list services."""

import math
from typing import Any, Dict, Tuple

from constants import DEFAULT_PAGE_LIMIT, MAX_PAGE, MAX_PAGE_LIMIT


def as_int(value: Any, fallback: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return fallback
    return parsed or fallback


def normalize_page(page: Any = 1, limit: Any = DEFAULT_PAGE_LIMIT) -> Tuple[int, int]:
    """Clamp limit to [1, MAX_PAGE_LIMIT] and page to [1, MAX_PAGE].

    Missing, zero or unparseable values fall back to the defaults.
    """
    safe_limit = min(max(as_int(limit, DEFAULT_PAGE_LIMIT), 1), MAX_PAGE_LIMIT)
    safe_page = min(max(as_int(page, 1), 1), MAX_PAGE)
    return safe_page, safe_limit


def page_offset(page: int, limit: int) -> int:
    return (page - 1) * limit


def pagination_info(page: int, limit: int, total: int) -> Dict[str, Any]:
    total_pages = math.ceil(total / limit)
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": total_pages,
        "hasNext": page < total_pages,
        "hasPrev": page > 1,
    }
