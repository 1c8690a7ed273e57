import math
from typing import List, Sequence, Tuple, TypeVar

T = TypeVar("T")


def paginate(items: Sequence[T], page: int, per_page: int) -> Tuple[List[T], int, int]:
    """Slice ``items`` for a 1-based page; out-of-range pages are clamped."""
    per_page = max(1, per_page)
    total_pages = max(1, math.ceil(len(items) / per_page))
    page = min(max(1, page), total_pages)
    start = (page - 1) * per_page
    return list(items[start:start + per_page]), page, total_pages
