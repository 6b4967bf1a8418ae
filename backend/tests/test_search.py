"""Tests for search parameter parsing, filtering and facets."""

from starlette.datastructures import QueryParams

from services.search import PropertyFilterService, SearchFacetsService, SearchParamsService
from services.search.facets import humanize_key
from services.search.params import normalize_slug


class TestSearchParams:
    def setup_method(self):
        self.service = SearchParamsService()

    def test_parses_and_normalizes(self):
        criteria = self.service.from_url_params(
            {
                "type": " Town House ",
                "bedrooms": "3",
                "price_min": "€150.000",
                "features": "Pool,garden, pool",
                "zone": "Costa del Sol",
                "sort": "PRICE-ASC",
                "view": "map",
                "page": "2",
            }
        )
        assert criteria == {
            "property_type": "town-house",
            "bedrooms": 3,
            "price_min": 150000,
            "features": ["garden", "pool"],
            "zone": "costa-del-sol",
            "sort": "price-asc",
            "view": "map",
            "page": 2,
        }

    def test_drops_invalid_values(self):
        criteria = self.service.from_url_params({"sort": "cheapest", "view": "3d", "bedrooms": "0", "page": "abc"})
        assert criteria == {}

    def test_legacy_nested_params_fill_gaps(self):
        criteria = self.service.from_url_params(
            {
                "bedrooms": "4",
                "search": {"count_bedrooms": "2", "for_sale_price_till": "500000", "property_type": "Villa"},
            }
        )
        assert criteria["bedrooms"] == 4
        assert criteria["price_max"] == 500000
        assert criteria["property_type"] == "villa"

    def test_repeated_feature_keys_are_combined(self):
        params = QueryParams("features=pool&features=Garden&features[]=sea-views,terrace&page=3")

        criteria = self.service.from_url_params(params)

        assert criteria == {"features": ["garden", "pool", "sea-views", "terrace"], "page": 3}

    def test_huge_numbers_are_capped(self):
        criteria = self.service.from_url_params({"price_max": "9" * 30, "page": "9" * 30})
        assert criteria == {"price_max": 2_147_483_647, "page": 10_000}

    def test_legacy_flat_keys(self):
        criteria = self.service.from_url_params({"search[count_bathrooms]": "2"})
        assert criteria == {"bathrooms": 2}

    def test_to_url_params_sorted_and_skips_blanks(self):
        query = self.service.to_url_params(
            {"property_type": "villa", "features": ["pool", "garden"], "zone": "", "bedrooms": 2}
        )
        assert query == "bedrooms=2&features=garden%2Cpool&type=villa"

    def test_canonical_url_drops_first_page(self):
        assert self.service.canonical_url({"bedrooms": 2, "page": 1}, "en", "buy") == "/en/buy?bedrooms=2"
        assert (
            self.service.canonical_url({"page": 3}, "es", "rent", host="costa-homes.propertywebbuilder.com")
            == "https://costa-homes.propertywebbuilder.com/es/rent?page=3"
        )

    def test_normalize_slug(self):
        assert normalize_slug("Sea  View!") == "sea-view"
        assert normalize_slug("   ") is None


class TestPropertyFilterService:
    async def test_filters_by_price_bedrooms_and_features(self, session, website, asset_factory):
        cheap = await asset_factory(website, reference="A", price_cents=15_000_000, features=("features.pool",))
        await asset_factory(website, reference="B", price_cents=60_000_000, count_bedrooms=4)
        await asset_factory(website, reference="C", price_cents=20_000_000, count_bedrooms=1)

        result = await PropertyFilterService().search(
            session, website, {"price_max": 250000, "bedrooms": 2, "features": ["pool"]}
        )

        assert result.total == 1
        assert result.items[0].id == cheap.id
        assert result.items[0].feature_keys == ["features.pool"]

    async def test_operations_are_separate(self, session, website, asset_factory):
        await asset_factory(website, reference="SALE")
        rental = await asset_factory(website, reference="RENT", rental=True, price_cents=150_000)

        result = await PropertyFilterService().search(session, website, {}, operation="rent")

        assert [item.id for item in result.items] == [rental.id]
        assert result.items[0].for_rent

    async def test_excludes_hidden_and_other_tenants(self, session, website, other_website, asset_factory):
        await asset_factory(website, reference="HIDDEN", visible=False)
        await asset_factory(other_website, reference="ELSEWHERE")
        shown = await asset_factory(website, reference="SHOWN")

        result = await PropertyFilterService().search(session, website, {})
        assert [item.id for item in result.items] == [shown.id]

    async def test_sort_and_pagination(self, session, website, asset_factory):
        for index, price in enumerate((30_000_000, 10_000_000, 20_000_000)):
            await asset_factory(website, reference=f"P{index}", price_cents=price)

        result = await PropertyFilterService().search(session, website, {"sort": "price-asc", "page": 2})
        assert result.total == 3
        assert result.page == 2
        assert result.items == []

        ordered = await PropertyFilterService().search(session, website, {"sort": "price-desc"})
        assert [item.price_cents for item in ordered.items] == [30_000_000, 20_000_000, 10_000_000]

    async def test_zone_and_locality_match_slugs(self, session, website, asset_factory):
        match = await asset_factory(website, reference="Z", region="Costa del Sol", city="San Pedro")
        await asset_factory(website, reference="X", region="Andalucia")

        result = await PropertyFilterService().search(
            session, website, {"zone": "costa-del-sol", "locality": "san-pedro"}
        )
        assert [item.id for item in result.items] == [match.id]

    async def test_property_type_matches_namespaced_keys(self, session, website, asset_factory):
        villa = await asset_factory(website, reference="V", prop_type_key="types.villa")
        await asset_factory(website, reference="A")

        result = await PropertyFilterService().search(session, website, {"property_type": "villa"})
        assert [item.id for item in result.items] == [villa.id]


class TestSearchFacets:
    async def test_counts_over_filtered_set(self, session, website, asset_factory):
        await asset_factory(website, reference="1", count_bedrooms=3, features=("features.pool",))
        await asset_factory(website, reference="2", count_bedrooms=1, prop_type_key="villa",
                            features=("features.pool", "features.garden"))
        await asset_factory(website, reference="3", rental=True)

        facets = await SearchFacetsService().calculate(session, website, {}, operation="buy")

        assert [(item.value, item.count) for item in facets.property_types] == [("apartment", 1), ("villa", 1)]
        assert [(item.label, item.count) for item in facets.features] == [("Pool", 2), ("Garden", 1)]
        bedrooms = {item.value: item.count for item in facets.bedrooms}
        assert bedrooms["1"] == 2
        assert bedrooms["3"] == 1
        assert bedrooms["6"] == 0

    async def test_facets_respect_criteria(self, session, website, asset_factory):
        await asset_factory(website, reference="1", prop_type_key="villa")
        await asset_factory(website, reference="2")

        facets = await SearchFacetsService().calculate(session, website, {"property_type": "villa"})
        assert [item.value for item in facets.property_types] == ["villa"]

    def test_humanize_key(self):
        assert humanize_key("features.private_pool") == "Private Pool"
