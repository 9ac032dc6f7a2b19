"""Page-number pagination shared by list endpoints."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Generic, List, TypeVar

from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response

from modules.core.validation import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

T = TypeVar("T")


class StandardResultsSetPagination(PageNumberPagination):
    page_size = DEFAULT_PAGE_SIZE
    page_size_query_param = "limit"
    max_page_size = MAX_PAGE_SIZE


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of results plus the totals the admin UI needs."""

    items: List[T]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def to_response(self, key: str, data: list) -> Response:
        return Response(
            {
                key: data,
                "total": self.total,
                "page": self.page,
                "limit": self.limit,
                "totalPages": self.total_pages,
            }
        )
