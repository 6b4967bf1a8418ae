"""
URL parameter parsing and generation for property search.

URL format examples::

    /en/buy?type=apartment&bedrooms=2&price_min=100000
    /en/rent?features=garden,pool&sort=price-asc&view=grid
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any
from urllib.parse import quote_plus

VALID_SORTS = ("price-asc", "price-desc", "newest", "oldest")
VALID_VIEWS = ("grid", "list", "map")

# URL param name -> internal criteria key
PARAM_MAPPING = {
    "type": "property_type",
    "bedrooms": "bedrooms",
    "bathrooms": "bathrooms",
    "price_min": "price_min",
    "price_max": "price_max",
    "features": "features",
    "zone": "zone",
    "locality": "locality",
    "sort": "sort",
    "view": "view",
    "page": "page",
}
CRITERIA_TO_PARAM = {value: key for key, value in PARAM_MAPPING.items()}

NUMERIC_PARAMS = ("bedrooms", "bathrooms", "price_min", "price_max")

# parsed numbers are capped to fit 32-bit integer columns
MAX_NUMBER = 2_147_483_647
MAX_PAGE = 10_000


def normalize_slug(value: Any) -> str | None:
    if value is None:
        return None
    slug = str(value).strip().lower()
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"[^a-z0-9\-]", "", slug)
    return slug or None


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, list | tuple):
        return bool(value)
    return True


def _digits(value: Any, ceiling: int = MAX_NUMBER) -> int:
    digits = re.sub(r"[^\d]", "", str(value))
    return min(int(digits), ceiling) if digits else 0


def _values(params: Mapping[str, Any], key: str) -> list[Any]:
    """All values for ``key``, including repeated query string keys."""
    if hasattr(params, "getlist"):
        return list(params.getlist(key))
    value = params.get(key)
    if value is None:
        return []
    return list(value) if isinstance(value, list | tuple) else [value]


class SearchParamsService:
    """Translate between query strings and search criteria dicts."""

    def from_url_params(self, params: Mapping[str, Any]) -> dict[str, Any]:
        """
        Parse query parameters into normalized criteria.

        Legacy ``search[...]`` keys (either a nested mapping under ``search``
        or flat ``search[key]`` names) fill values the new format left unset.
        """
        criteria: dict[str, Any] = {}

        if _present(params.get("type")):
            criteria["property_type"] = normalize_slug(params["type"])

        for key in NUMERIC_PARAMS:
            if _present(params.get(key)):
                parsed = _digits(params[key])
                if parsed > 0:
                    criteria[key] = parsed

        raw_features = [
            item
            for value in _values(params, "features") + _values(params, "features[]")
            for item in str(value).split(",")
        ]
        if raw_features:
            features = self._parse_features(raw_features)
            if features:
                criteria["features"] = features

        for key in ("zone", "locality"):
            if _present(params.get(key)):
                criteria[key] = normalize_slug(params[key])

        if _present(params.get("sort")):
            sort = str(params["sort"]).lower()
            if sort in VALID_SORTS:
                criteria["sort"] = sort

        if _present(params.get("view")):
            view = str(params["view"]).lower()
            if view in VALID_VIEWS:
                criteria["view"] = view

        if _present(params.get("page")):
            page = _digits(params["page"], MAX_PAGE)
            if page > 0:
                criteria["page"] = page

        legacy = self._legacy_params(params)
        if legacy:
            self._apply_legacy(legacy, criteria)

        return {key: value for key, value in criteria.items() if value is not None}

    def to_url_params(self, criteria: Mapping[str, Any]) -> str:
        """Query string (without the leading ``?``) with keys sorted."""
        params: dict[str, str] = {}
        for key, value in criteria.items():
            if not _present(value):
                continue
            url_key = CRITERIA_TO_PARAM.get(key, key)
            if key == "features":
                items = value if isinstance(value, list | tuple) else [value]
                params[url_key] = ",".join(sorted(str(item) for item in items))
            else:
                params[url_key] = str(value)
        return "&".join(f"{key}={quote_plus(value)}" for key, value in sorted(params.items()))

    def canonical_url(
        self,
        criteria: Mapping[str, Any],
        locale: str,
        operation: str,
        host: str | None = None,
    ) -> str:
        clean = {key: value for key, value in criteria.items() if not (key == "page" and _digits(value) <= 1)}
        query = self.to_url_params(clean)
        path = f"/{locale}/{operation}"
        if query:
            path = f"{path}?{query}"
        return f"https://{host}{path}" if host else path

    @staticmethod
    def _parse_features(raw: list[Any]) -> list[str]:
        return sorted({slug for slug in (normalize_slug(item) for item in raw) if slug})

    @staticmethod
    def _legacy_params(params: Mapping[str, Any]) -> dict[str, Any]:
        nested = params.get("search")
        if isinstance(nested, Mapping):
            return dict(nested)
        legacy: dict[str, Any] = {}
        for key in params:
            match = re.fullmatch(r"search\[(\w+)\](\[\])?", str(key))
            if match:
                if match.group(2) and hasattr(params, "getlist"):
                    legacy[match.group(1)] = params.getlist(key)
                else:
                    legacy[match.group(1)] = params[key]
        return legacy

    def _apply_legacy(self, legacy: dict[str, Any], criteria: dict[str, Any]) -> None:
        if _present(legacy.get("property_type")) and "property_type" not in criteria:
            criteria["property_type"] = normalize_slug(legacy["property_type"])

        for legacy_key, key in (
            ("count_bedrooms", "bedrooms"),
            ("count_bathrooms", "bathrooms"),
            ("for_sale_price_from", "price_min"),
            ("for_sale_price_till", "price_max"),
        ):
            if _present(legacy.get(legacy_key)) and key not in criteria:
                parsed = _digits(legacy[legacy_key])
                if parsed > 0:
                    criteria[key] = parsed

        if _present(legacy.get("features")) and "features" not in criteria:
            raw = legacy["features"]
            features = self._parse_features(raw if isinstance(raw, list | tuple) else str(raw).split(","))
            if features:
                criteria["features"] = features
