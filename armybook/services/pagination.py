from __future__ import annotations

import math
from typing import Sequence

from ..config import PAGE_SIZE_OPTIONS


def estimate_total(limit: int, skip: int, returned: int) -> int:
    """Approximate item count when the backend does not report one.

    A full page means there is probably at least one more item, so the
    estimate runs one past what has been seen.
    """
    limit = max(int(limit), 0)
    skip = max(int(skip), 0)
    returned = max(int(returned), 0)
    if returned == 0:
        return skip
    if returned < limit:
        return skip + returned
    return skip + returned + 1


class Pager:
    def __init__(
        self,
        page_size: int | None = None,
        page_size_options: Sequence[int] | None = None,
    ) -> None:
        self.page_size_options = list(page_size_options or PAGE_SIZE_OPTIONS)
        self.page_size = int(page_size or self.page_size_options[0])
        self.current_page = 1
        self.total_items = 0

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return math.ceil(self.total_items / self.page_size)

    @property
    def skip(self) -> int:
        return (self.current_page - 1) * self.page_size

    @property
    def limit(self) -> int:
        return self.page_size

    def change_page(self, page: int) -> bool:
        if 1 <= page <= self.total_pages:
            self.current_page = page
            return True
        return False

    def change_page_size(self, page_size: int | str) -> None:
        self.page_size = int(page_size)
        self.current_page = 1

    def reset(self) -> None:
        self.current_page = 1
        self.total_items = 0

    def update_total(self, total: int) -> None:
        self.total_items = max(int(total), 0)
        pages = self.total_pages
        if pages == 0:
            self.current_page = 1
        elif self.current_page > pages:
            self.current_page = pages

    def record_fetch(self, returned: int, total: int | None = None) -> int:
        if total is None:
            total = estimate_total(self.limit, self.skip, returned)
        self.update_total(total)
        return self.total_items
