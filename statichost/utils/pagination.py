"""Page arithmetic for paginated listings."""

import math
from typing import Any


def total_pages(total: int, limit: int) -> int:
    """Number of pages needed for `total` items, e.g. 47 items by 20 -> 3."""
    if limit <= 0:
        return 0
    return math.ceil(total / limit)


def page_window(current: int, pages: int) -> list[int | None]:
    """
    Page numbers to offer around `current`, with None marking an elided gap.

    The first page is always present, the last page whenever there is more than one,
    and the neighbours of the current page in between.

    Example: page_window(5, 10) -> [1, None, 4, 5, 6, None, 10]
    """
    numbers = {1}
    for page in range(max(2, current - 1), min(pages - 1, current + 1) + 1):
        numbers.add(page)
    if pages > 1:
        numbers.add(pages)

    items: list[int | None] = []
    previous = 0
    for page in sorted(numbers):
        if page > previous + 1:
            items.append(None)
        items.append(page)
        previous = page
    return items


def offset_for(page: int, limit: int) -> int:
    return max(page - 1, 0) * limit


def pagination_meta(page: int, limit: int, total: int) -> dict[str, Any]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": total_pages(total, limit),
    }
