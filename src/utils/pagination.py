# src/utils/pagination.py

"""1-based page slicing shared by every list endpoint."""

from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")


def paginate(items: Sequence[T], page: int, limit: int) -> list[T]:
    """Return items ``[(page-1)*limit, page*limit)``.

    Pages below 1 are treated as page 1; a non-positive limit yields
    an empty page.
    """
    if limit <= 0:
        return []
    start = (max(page, 1) - 1) * limit
    return list(items[start:start + limit])
