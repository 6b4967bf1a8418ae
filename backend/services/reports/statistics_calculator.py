"""
Market statistics over a set of comparables.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from database.models import RealtyAsset


def _round(value: float) -> int:
    # half away from zero, np.rint would round half to even
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def _positive(values: list[Any]) -> np.ndarray:
    return np.array([float(v) for v in values if v is not None and v > 0], dtype=np.float64)


def _average(values: np.ndarray) -> int | None:
    return _round(float(np.mean(values))) if values.size else None


def _median(values: np.ndarray) -> int | None:
    return _round(float(np.median(values))) if values.size else None


@dataclass
class StatisticsResult:
    average_price_cents: int | None = None
    median_price_cents: int | None = None
    price_per_sqft_cents: int | None = None
    price_range: dict[str, int] | None = None
    adjusted_average_cents: int | None = None
    adjusted_median_cents: int | None = None
    comparable_count: int = 0
    currency: str = "USD"
    statistics: dict[str, Any] = field(default_factory=lambda: {"comparable_count": 0})


class StatisticsCalculator:
    def __init__(
        self,
        comparables: list[dict[str, Any]] | None,
        subject: RealtyAsset | None = None,
        currency: str = "USD",
    ) -> None:
        self.comparables = comparables or []
        self.subject = subject
        self.currency = currency

    def calculate(self) -> StatisticsResult:
        if not self.comparables:
            return StatisticsResult(currency=self.currency)

        prices = _positive([c.get("price_cents") for c in self.comparables])
        adjusted = _positive([c.get("adjusted_price_cents") for c in self.comparables])
        sizes = _positive([c.get("constructed_area") for c in self.comparables])
        price_range = self.price_range(prices)

        return StatisticsResult(
            average_price_cents=_average(prices),
            median_price_cents=_median(prices),
            price_per_sqft_cents=self.price_per_sqft(),
            price_range=price_range,
            adjusted_average_cents=_average(adjusted),
            adjusted_median_cents=_median(adjusted),
            comparable_count=len(self.comparables),
            currency=self.currency,
            statistics=self.full_statistics(prices, adjusted, sizes, price_range),
        )

    @staticmethod
    def price_range(prices: np.ndarray) -> dict[str, int] | None:
        if not prices.size:
            return None
        low, high = int(prices.min()), int(prices.max())
        return {"low_cents": low, "high_cents": high, "range_cents": high - low}

    def price_per_sqft(self) -> int | None:
        per_unit = np.array(
            [
                _round(c["price_cents"] / c["constructed_area"])
                for c in self.comparables
                if (c.get("price_cents") or 0) > 0 and (c.get("constructed_area") or 0) > 0
            ],
            dtype=np.float64,
        )
        return _average(per_unit)

    @staticmethod
    def standard_deviation(values: np.ndarray) -> int | None:
        """Sample standard deviation; needs at least two values."""
        if values.size < 2:
            return None
        return _round(float(np.std(values, ddof=1)))

    def estimated_value(self, adjusted: np.ndarray, sizes: np.ndarray) -> dict[str, Any] | None:
        subject_size = float(getattr(self.subject, "constructed_area", 0) or 0)
        if not adjusted.size or subject_size <= 0 or not sizes.size:
            return None

        average_adjusted = _average(adjusted)
        average_size = float(np.mean(np.round(sizes, 1)))
        if not average_adjusted or average_size <= 0:
            return None

        per_sqft = average_adjusted / average_size
        return {
            "price_per_sqft_cents": _round(per_sqft),
            "subject_size": subject_size,
            "estimated_value_cents": _round(per_sqft * subject_size),
        }

    def full_statistics(
        self,
        prices: np.ndarray,
        adjusted: np.ndarray,
        sizes: np.ndarray,
        price_range: dict[str, int] | None,
    ) -> dict[str, Any]:
        similarity = np.array(
            [c["similarity_score"] for c in self.comparables if c.get("similarity_score") is not None],
            dtype=np.float64,
        )
        stats = {
            "average_price": _average(prices),
            "median_price": _median(prices),
            "min_price": int(prices.min()) if prices.size else None,
            "max_price": int(prices.max()) if prices.size else None,
            "standard_deviation": self.standard_deviation(prices),
            "adjusted_average": _average(adjusted),
            "adjusted_median": _median(adjusted),
            "average_size": round(float(np.mean(sizes)), 1) if sizes.size else None,
            "median_size": round(float(np.median(sizes)), 1) if sizes.size else None,
            "min_size": _round(float(sizes.min())) if sizes.size else None,
            "max_size": _round(float(sizes.max())) if sizes.size else None,
            "price_per_sqft": self.price_per_sqft(),
            "price_range": price_range,
            "comparable_count": len(self.comparables),
            "currency": self.currency,
            "similarity_scores": similarity.tolist(),
            "average_similarity": _average(similarity),
            "subject_size": getattr(self.subject, "constructed_area", None),
            "estimated_value_per_sqft": self.estimated_value(adjusted, sizes),
        }
        return {key: value for key, value in stats.items() if value is not None}
