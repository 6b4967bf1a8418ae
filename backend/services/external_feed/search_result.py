"""
Paginated result of a feed search.
"""

from __future__ import annotations

import math
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from services.external_feed.normalized_property import NormalizedProperty


@dataclass
class NormalizedSearchResult:
    properties: list[NormalizedProperty] = field(default_factory=list)
    total_count: int | None = None
    page: int = 1
    per_page: int = 24
    provider: str | None = None
    query_params: dict[str, Any] = field(default_factory=dict)
    error: bool = False
    error_message: str | None = None

    def __post_init__(self) -> None:
        if self.total_count is None:
            self.total_count = len(self.properties)

    def __iter__(self) -> Iterator[NormalizedProperty]:
        return iter(self.properties)

    def __len__(self) -> int:
        return len(self.properties)

    @property
    def total_pages(self) -> int:
        if not self.total_count or self.per_page <= 0:
            return 0
        return math.ceil(self.total_count / self.per_page)

    @property
    def next_page(self) -> int | None:
        return self.page + 1 if self.page < self.total_pages else None

    @property
    def prev_page(self) -> int | None:
        return self.page - 1 if self.page > 1 else None

    @property
    def first_page(self) -> bool:
        return self.page == 1

    @property
    def last_page(self) -> bool:
        return self.page >= self.total_pages

    def results_range(self) -> str:
        """``"21-40 of 100"``"""
        if not self.total_count:
            return "0 of 0"
        start = (self.page - 1) * self.per_page + 1
        end = min(self.page * self.per_page, self.total_count)
        return f"{start}-{end} of {self.total_count}"

    def any(self) -> bool:
        return bool(self.properties)

    def is_empty(self) -> bool:
        return not self.properties

    def is_error(self) -> bool:
        return self.error

    def to_dict(self) -> dict[str, Any]:
        return {
            "properties": [prop.to_dict() for prop in self.properties],
            "total_count": self.total_count,
            "page": self.page,
            "per_page": self.per_page,
            "total_pages": self.total_pages,
            "provider": self.provider,
            "query_params": self.query_params,
            "error": self.error,
            "error_message": self.error_message,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NormalizedSearchResult:
        return cls(
            properties=[NormalizedProperty.from_dict(item) for item in data.get("properties", [])],
            total_count=data.get("total_count"),
            page=data.get("page", 1),
            per_page=data.get("per_page", 24),
            provider=data.get("provider"),
            query_params=data.get("query_params") or {},
            error=data.get("error", False),
            error_message=data.get("error_message"),
        )
