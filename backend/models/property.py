"""
Property schemas
"""

from datetime import datetime

from pydantic import BaseModel, Field

from models.base import BaseSchema


class SearchCriteria(BaseModel):
    """Internal search criteria produced from URL parameters"""

    property_type: str | None = None
    property_state: str | None = None
    bedrooms: int | None = Field(None, ge=0)
    bathrooms: int | None = Field(None, ge=0)
    price_min: int | None = Field(None, ge=0, description="Whole currency units")
    price_max: int | None = Field(None, ge=0, description="Whole currency units")
    features: list[str] = Field(default_factory=list)
    zone: str | None = None
    locality: str | None = None
    sort: str | None = None
    view: str | None = None
    page: int | None = None


class PropertyResponse(BaseSchema):
    """Property as exposed by the public API"""

    id: int
    reference: str | None = None
    slug: str | None = None
    title: str | None = None
    description: str | None = None
    city: str | None = None
    region: str | None = None
    country: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    prop_type_key: str | None = None
    prop_state_key: str | None = None
    count_bedrooms: int = 0
    count_bathrooms: float = 0
    count_garages: int = 0
    constructed_area: float = 0
    plot_area: float = 0
    year_construction: int | None = None
    for_sale: bool = False
    for_rent: bool = False
    price_cents: int | None = None
    currency: str | None = None
    primary_image_url: str | None = None
    feature_keys: list[str] = Field(default_factory=list)
    created_at: datetime | None = None


class FacetItem(BaseModel):
    global_key: str
    value: str
    label: str
    count: int


class SearchFacets(BaseModel):
    property_types: list[FacetItem] = Field(default_factory=list)
    property_states: list[FacetItem] = Field(default_factory=list)
    features: list[FacetItem] = Field(default_factory=list)
    bedrooms: list[FacetItem] = Field(default_factory=list)
    bathrooms: list[FacetItem] = Field(default_factory=list)
