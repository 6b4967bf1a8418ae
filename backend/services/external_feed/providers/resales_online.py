"""
Resales Online provider (Spanish resale market, Costa del Sol).

Sales are searched through the V6 API, long-term rentals through V5-2.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from services.external_feed.base_provider import BaseProvider
from services.external_feed.errors import (
    FeedAuthenticationError,
    FeedError,
    FeedInvalidResponseError,
    FeedPropertyNotFoundError,
    FeedProviderUnavailableError,
    FeedRateLimitError,
)
from services.external_feed.normalized_property import NormalizedProperty
from services.external_feed.search_result import NormalizedSearchResult

RETRY_ATTEMPTS = 3
RETRY_WAIT_MIN = 1
RETRY_WAIT_MAX = 8

LANG_CODES = {
    "en": "1", "es": "2", "de": "3", "fr": "4", "nl": "5",
    "da": "6", "ru": "7", "sv": "8", "pl": "9", "no": "10", "tr": "11",
}

SORT_OPTIONS = {
    "price_asc": "0",
    "price_desc": "1",
    "location": "2",
    "newest": "3",
    "oldest": "4",
    "listed_newest": "5",
    "listed_oldest": "6",
    "updated": "3",
}

# Checked in order; the first match wins
TYPE_PATTERNS = (
    ("penthouse", re.compile(r"penthouse")),
    ("apartment_top", re.compile(r"top floor|top-floor")),
    ("apartment_ground", re.compile(r"ground floor|ground-floor")),
    ("apartment_middle", re.compile(r"middle floor|middle-floor")),
    ("apartment", re.compile(r"apartment|flat|duplex")),
    ("villa", re.compile(r"villa|(?<!semi-)(?<!semi )(?<!semi)detached")),
    ("townhouse", re.compile(r"townhouse|town house|town-house|terraced")),
    ("semi_detached", re.compile(r"semi-detached|semi detached|semidetached")),
    ("bungalow", re.compile(r"bungalow")),
    ("finca", re.compile(r"finca|cortijo|country")),
    ("land", re.compile(r"plot|land")),
    ("commercial", re.compile(r"commercial|office|retail|shop")),
)

STATUS_MAP = {
    "Available": "available",
    "Reserved": "reserved",
    "Sold": "sold",
    "Off Market": "unavailable",
}

DEFAULT_LOCATIONS = [
    {"value": "Marbella", "label": "Marbella"},
    {"value": "Estepona", "label": "Estepona"},
    {"value": "Benahavis", "label": "Benahavís"},
    {"value": "Mijas", "label": "Mijas"},
    {"value": "Fuengirola", "label": "Fuengirola"},
    {"value": "Benalmadena", "label": "Benalmádena"},
    {"value": "Torremolinos", "label": "Torremolinos"},
    {"value": "Malaga", "label": "Málaga"},
    {"value": "Nerja", "label": "Nerja"},
    {"value": "Casares", "label": "Casares"},
    {"value": "Manilva", "label": "Manilva"},
    {"value": "Sotogrande", "label": "Sotogrande"},
    {"value": "Puerto Banus", "label": "Puerto Banús"},
    {"value": "Nueva Andalucia", "label": "Nueva Andalucía"},
    {"value": "San Pedro de Alcantara", "label": "San Pedro de Alcántara"},
    {"value": "La Cala de Mijas", "label": "La Cala de Mijas"},
    {"value": "Mijas Costa", "label": "Mijas Costa"},
    {"value": "Mijas Pueblo", "label": "Mijas Pueblo"},
    {"value": "Calahonda", "label": "Calahonda"},
    {"value": "Riviera del Sol", "label": "Riviera del Sol"},
]

DEFAULT_PROPERTY_TYPES = [
    {
        "value": "1-1",
        "label": "Apartment",
        "subtypes": [
            {"value": "1-2", "label": "Ground Floor Apartment"},
            {"value": "1-4", "label": "Middle Floor Apartment"},
            {"value": "1-5", "label": "Top Floor Apartment"},
            {"value": "1-6", "label": "Penthouse"},
            {"value": "1-7", "label": "Duplex"},
        ],
    },
    {
        "value": "2-1",
        "label": "House",
        "subtypes": [
            {"value": "2-2", "label": "Detached Villa"},
            {"value": "2-4", "label": "Semi-Detached House"},
            {"value": "2-5", "label": "Townhouse"},
            {"value": "2-6", "label": "Finca / Country House"},
        ],
    },
    {"value": "3-1", "label": "Plot / Land"},
    {"value": "4-1", "label": "Commercial"},
]


def normalize_type(raw_type: str | None) -> str:
    if not raw_type:
        return "other"
    value = str(raw_type).lower()
    for name, pattern in TYPE_PATTERNS:
        if pattern.search(value):
            return name
    return "other"


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _cents(value: Any) -> int | None:
    number = _float(value)
    return None if number is None else int(number * 100)


def _float(value: Any) -> float | None:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _int(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


class ResalesOnlineProvider(BaseProvider):
    provider_name = "resales_online"
    display_name = "Resales Online"
    required_config_keys = ("api_key", "api_id_sales")

    SEARCH_URL_V6 = "https://webapi.resales-online.com/WebApi/V6/SearchProperties.php"
    SEARCH_URL_V5 = "https://webapi.resales-online.com/WebApi/V5-2/SearchProperties.php"
    DETAILS_URL = "https://webapi.resales-online.com/WebApi/V6/PropertyDetails.php"

    def __init__(
        self,
        website: Any,
        config: dict[str, Any] | None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(website, config)
        self._client = client
        self._owns_client = client is None

    # ==================== HTTP ====================

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(30.0, connect=10.0), follow_redirects=True)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @retry(
        stop=stop_after_attempt(RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=1, min=RETRY_WAIT_MIN, max=RETRY_WAIT_MAX),
        retry=retry_if_exception_type((httpx.ConnectError, httpx.RemoteProtocolError)),
        reraise=True,
    )
    async def _send(self, url: str, params: dict[str, Any]) -> httpx.Response:
        return await self._ensure_client().get(url, params=params)

    async def _fetch_json(self, url: str, params: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._send(url, params)
        except httpx.TimeoutException as exc:
            raise FeedProviderUnavailableError("Resales API request timed out", cause=exc) from exc
        except httpx.HTTPError as exc:
            self.log(logging.ERROR, "Fetch error: %s - %s", type(exc).__name__, exc)
            raise FeedProviderUnavailableError(f"Failed to fetch from Resales API: {exc}", cause=exc) from exc

        self._raise_for_status(response)

        try:
            payload = response.json()
        except ValueError as exc:
            raise FeedInvalidResponseError(f"Invalid JSON from Resales API: {exc}", cause=exc) from exc
        if not isinstance(payload, dict):
            raise FeedInvalidResponseError("Unexpected response shape from Resales API")
        return payload

    def _raise_for_status(self, response: httpx.Response) -> None:
        code = response.status_code
        if code < 400:
            return
        if code in (401, 403):
            raise FeedAuthenticationError(f"Resales API authentication failed ({code})", status_code=code)
        if code == 429:
            raise FeedRateLimitError("Resales API rate limit exceeded", status_code=code)
        if code == 404:
            raise FeedPropertyNotFoundError("Property not found", status_code=code)
        if code >= 500:
            raise FeedProviderUnavailableError(f"Resales API server error ({code})", status_code=code)
        raise FeedError(f"Resales API HTTP error: {code}", status_code=code)

    # ==================== Configuration ====================

    @property
    def api_key(self) -> str:
        return self.config["api_key"]

    @property
    def p1_constant(self) -> str:
        return str(self.config.get("p1_constant") or "1014359")

    def api_id_for(self, listing_type: str) -> str:
        if listing_type == "rental":
            return str(self.config.get("api_id_rentals") or self.config["api_id_sales"])
        return str(self.config["api_id_sales"])

    @staticmethod
    def agency_filter_id(api_id: str) -> str:
        return "1" if str(api_id) == "4069" else "2"

    @staticmethod
    def lang_code_for(locale: str | None) -> str:
        return LANG_CODES.get(str(locale or "en"), LANG_CODES["en"])

    # ==================== Queries ====================

    def build_search_query(self, params: dict[str, Any], api_id: str) -> dict[str, Any]:
        query: dict[str, Any] = {
            "p1": self.p1_constant,
            "p2": self.api_key,
            "p_apiid": api_id,
            "p_PageSize": params.get("per_page") or self.default_per_page,
            "P_Lang": self.lang_code_for(params.get("locale")),
            "P_Country": self.config.get("default_country") or "Spain",
            "P_Images": self.config.get("image_count") or 0,
            "p_MustHaveFeatures": "2",
            "p_new_devs": "only" if params.get("new_developments_only") else "include",
        }

        page = params.get("page")
        if page and page > 1:
            query["p_PageNo"] = page

        if params.get("sort"):
            query["p_SortType"] = SORT_OPTIONS.get(str(params["sort"]), "0")

        property_types = _as_list(params.get("property_types"))
        if property_types:
            query["p_PropertyTypes"] = ",".join(str(t) for t in property_types)

        if params.get("location"):
            query["p_Location"] = params["location"]

        if params.get("min_bedrooms"):
            query["p_Beds"] = f"{params['min_bedrooms']}x"
        if params.get("min_bathrooms"):
            query["p_Baths"] = f"{params['min_bathrooms']}x"

        # Whole units, not cents
        if params.get("min_price"):
            query["p_Min"] = params["min_price"]
        if params.get("max_price"):
            query["p_Max"] = params["max_price"]

        feature_mappings = self.config.get("features") or {}
        for feature in _as_list(params.get("features")):
            mapping = feature_mappings.get(str(feature))
            query[mapping["param"] if mapping else str(feature)] = "1"

        return query

    async def search(self, params: dict[str, Any]) -> NormalizedSearchResult:
        listing_type = params.get("listing_type") or "sale"
        url = self.SEARCH_URL_V5 if listing_type == "rental" else self.SEARCH_URL_V6
        query = self.build_search_query(params, self.api_id_for(listing_type))

        self.log(logging.DEBUG, "Search %s page %s", listing_type, params.get("page", 1))
        response = await self._fetch_json(url, query)
        return self.normalize_search_results(response, params)

    async def find(self, reference: str, params: dict[str, Any] | None = None) -> NormalizedProperty | None:
        params = params or {}
        api_id = self.api_id_for(params.get("listing_type") or "sale")
        query = {
            "p1": self.p1_constant,
            "p2": self.api_key,
            "P_Lang": self.lang_code_for(params.get("locale")),
            "p_agency_filterid": self.agency_filter_id(api_id),
            "p_apiid": api_id,
            "P_RefId": reference,
        }

        response = await self._fetch_json(self.DETAILS_URL, query)
        data = response.get("Property")
        if not data:
            return None

        prop = self.normalize_property(data, params)
        system_status = (data.get("Status") or {}).get("system")
        if system_status == "Sold":
            prop.status = "sold"
        elif system_status == "Off Market":
            prop.status = "unavailable"
        return prop

    async def similar(
        self, prop: NormalizedProperty, params: dict[str, Any] | None = None
    ) -> list[NormalizedProperty]:
        params = params or {}
        limit = _int(params.get("limit")) or 8
        price = prop.price or 0

        search_params = {
            "locale": params.get("locale") or "en",
            "listing_type": prop.listing_type,
            "property_types": [prop.property_type_raw] if prop.property_type_raw else [],
            "location": prop.city,
            "min_price": int(price * 0.7 / 100),
            "max_price": int(price * 1.3 / 100),
            "min_bedrooms": prop.bedrooms,
            "sort": "newest",
            "per_page": limit + 1,
        }
        result = await self.search(search_params)
        return [item for item in result.properties if item.reference != prop.reference][:limit]

    async def locations(self, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        return self.config.get("locations") or DEFAULT_LOCATIONS

    async def property_types(self, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        return self.config.get("property_types") or DEFAULT_PROPERTY_TYPES

    async def is_available(self) -> bool:
        query = {
            "p1": self.p1_constant,
            "p2": self.api_key,
            "p_apiid": self.config["api_id_sales"],
            "p_PageSize": "1",
        }
        try:
            response = await self._fetch_json(self.SEARCH_URL_V6, query)
        except FeedError as exc:
            self.log(logging.WARNING, "Availability check failed: %s", exc.message)
            return False
        return (response.get("transaction") or {}).get("status") == "success"

    # ==================== Normalisation ====================

    def normalize_search_results(self, response: dict[str, Any], params: dict[str, Any]) -> NormalizedSearchResult:
        transaction = response.get("transaction") or {}
        if transaction.get("status") != "success":
            raise FeedError(f"Resales API error: {transaction.get('message') or 'Search failed'}")

        properties = [self.normalize_property(item, params) for item in _as_list(response.get("Property"))]
        info = response.get("QueryInfo") or {}
        return NormalizedSearchResult(
            properties=properties,
            total_count=_int(info.get("PropertyCount")),
            page=_int(info.get("CurrentPage")) or params.get("page") or 1,
            per_page=_int(info.get("PropertiesPerPage")) or params.get("per_page") or 24,
            provider=self.provider_name,
            query_params=dict(params),
        )

    def normalize_property(self, data: dict[str, Any], params: dict[str, Any] | None = None) -> NormalizedProperty:
        params = params or {}
        property_type = data.get("PropertyType") or {}
        geo = data.get("GeoData") or {}
        energy = data.get("EnergyRating") or {}

        return NormalizedProperty(
            reference=data.get("Reference"),
            provider=self.provider_name,
            title=self.build_title(data),
            description=data.get("Description"),
            property_type=normalize_type(data.get("Type")),
            property_type_raw=property_type.get("SubtypeId1") or data.get("TypeId"),
            property_subtype=property_type.get("Subtype1") or data.get("Type"),
            country=data.get("Country"),
            region=data.get("Province"),
            area=data.get("Area"),
            city=data.get("Location"),
            latitude=_float(geo.get("Latitude", data.get("Latitude"))),
            longitude=_float(geo.get("Longitude", data.get("Longitude"))),
            listing_type=params.get("listing_type") or "sale",
            status=STATUS_MAP.get((data.get("Status") or {}).get("system"), "available"),
            price=_cents(data.get("Price")) or 0,
            currency=data.get("Currency") or "EUR",
            original_price=_cents(data.get("OriginalPrice")),
            bedrooms=_int(data.get("Bedrooms")),
            bathrooms=_float(data.get("Bathrooms")) or 0.0,
            built_area=_int(data.get("Built")),
            plot_area=_int(data.get("GardenPlot")),
            terrace_area=_int(data.get("Terrace")),
            features=self.extract_features(data),
            features_by_category=self.extract_features_by_category(data),
            energy_rating=energy.get("EnergyRated"),
            energy_consumption=_float(energy.get("EnergyValue")),
            images=self.normalize_images(data),
            virtual_tour_url=data.get("VirtualTour"),
            community_fees=_cents(data.get("Community_Fees_Year")),
            ibi_tax=_cents(data.get("IBI_Fees_Year")),
            garbage_tax=_cents(data.get("Basura_Tax_Year")),
        )

    @staticmethod
    def build_title(data: dict[str, Any]) -> str:
        parts = []
        if _int(data.get("Bedrooms")) > 0:
            parts.append(f"{_int(data['Bedrooms'])} Bedroom")
        parts.append(data.get("Type") or "Property")
        if data.get("Location"):
            parts.append(f"in {data['Location']}")
        return " ".join(parts)

    @staticmethod
    def normalize_images(data: dict[str, Any]) -> list[dict[str, Any]]:
        pictures = _as_list((data.get("Pictures") or {}).get("Picture"))
        return [
            {"url": picture.get("PictureURL"), "caption": None, "position": index}
            for index, picture in enumerate(pictures)
        ]

    @staticmethod
    def extract_features(data: dict[str, Any]) -> list[str]:
        categories = _as_list((data.get("PropertyFeatures") or {}).get("Category"))
        return [value for category in categories for value in _as_list(category.get("Value")) if value]

    @staticmethod
    def extract_features_by_category(data: dict[str, Any]) -> dict[str, list[str]]:
        categories = _as_list((data.get("PropertyFeatures") or {}).get("Category"))
        grouped: dict[str, list[str]] = {}
        for category in categories:
            name = (category.get("@attributes") or {}).get("Type") or "Other"
            grouped[name] = [value for value in _as_list(category.get("Value")) if value]
        return grouped
