"""Tests for CMA reports: comparables, statistics, insights and the workflow."""

import json

import pytest

from conftest import FakeAIService
from database.models import MarketReport, RealtyAsset, Website
from services.ai_service import AiRateLimitError
from services.reports import (
    CmaGenerator,
    CmaInsightsGenerator,
    ComparablesFinder,
    StatisticsCalculator,
    haversine_km,
)
from services.reports.cma_generator import NO_COMPARABLES_MESSAGE


def insights_reply(**overrides):
    payload = {
        "executive_summary": "Well priced two bedroom apartment.",
        "market_position": "Average",
        "pricing_rationale": "Based on one close comparable.",
        "strengths": ["Sea views"],
        "considerations": ["Limited comparables"],
        "recommendation": "List at the midpoint.",
        "time_to_sell_estimate": "60-90 days",
        "suggested_price_low_cents": 29_000_000,
        "suggested_price_high_cents": 31_500_000,
        "confidence_level": "medium",
    }
    payload.update(overrides)
    return json.dumps(payload)


SAMPLE_COMPARABLES = [
    {"price_cents": 30_000_000, "adjusted_price_cents": 31_000_000, "constructed_area": 100, "similarity_score": 90},
    {"price_cents": 40_000_000, "adjusted_price_cents": 39_000_000, "constructed_area": 125, "similarity_score": 80},
    {"price_cents": 35_000_000, "adjusted_price_cents": None, "constructed_area": None, "similarity_score": 70},
]


def test_haversine_one_degree_of_longitude_at_equator():
    assert haversine_km(0, 0, 0, 1) == pytest.approx(111.19, abs=0.01)


class TestComparablesFinder:
    def make_finder(self, **subject_fields):
        values = {
            "id": 1,
            "prop_type_key": "apartment",
            "count_bedrooms": 3,
            "count_bathrooms": 2,
            "count_garages": 2,
            "constructed_area": 150.0,
            "year_construction": 2015,
        }
        values.update(subject_fields)
        return ComparablesFinder(None, RealtyAsset(**values), Website(id=1, slug="x"))

    def comparable(self, **fields):
        values = {
            "id": 2,
            "prop_type_key": "apartment",
            "count_bedrooms": 2,
            "count_bathrooms": 1,
            "count_garages": 1,
            "constructed_area": 120.0,
            "year_construction": 2005,
        }
        values.update(fields)
        return RealtyAsset(**values)

    def test_adjustments_bring_comparable_to_subject(self):
        finder = self.make_finder()
        adjustments = finder.adjustments(self.comparable())

        assert {key: value["adjustment_cents"] for key, value in adjustments.items()} == {
            "bedrooms": 1_500_000,
            "bathrooms": 1_000_000,
            "size": 450_000,
            "year_built": 1_000_000,
            "garages": 800_000,
        }
        assert finder.adjusted_price(20_000_000, adjustments) == 24_750_000
        assert finder.adjusted_price(0, adjustments) is None

    def test_small_differences_are_not_adjusted(self):
        finder = self.make_finder()
        asset = self.comparable(count_bedrooms=3, count_bathrooms=2, count_garages=2,
                                constructed_area=145.0, year_construction=2012)
        assert finder.adjustments(asset) == {}

    def test_similarity_deductions(self):
        finder = self.make_finder()
        assert finder.similarity(self.comparable()) == 86.0
        assert finder.similarity(self.comparable(prop_type_key="villa")) == 66.0

    async def test_find_filters_candidates(self, session, website, other_website, asset_factory):
        subject = await asset_factory(website, reference="SUBJECT")
        close = await asset_factory(website, reference="CLOSE", latitude=36.512, count_bedrooms=3,
                                    constructed_area=110.0, price_cents=32_000_000)
        await asset_factory(website, reference="FAR", latitude=36.60)
        await asset_factory(website, reference="VILLA", prop_type_key="villa")
        await asset_factory(website, reference="RENTAL", rental=True)
        await asset_factory(website, reference="BIG", count_bedrooms=5)
        await asset_factory(other_website, reference="OTHER")

        result = await ComparablesFinder(session, subject, website).find()

        assert [comp["id"] for comp in result.comparables] == [close.id]
        assert result.total_found == 1
        comp = result.comparables[0]
        assert comp["similarity_score"] >= 90
        assert comp["adjustments"] == {"bedrooms": {"difference": -1, "adjustment_cents": -1_500_000}}
        assert comp["adjusted_price_cents"] == 30_500_000
        assert comp["distance_km"] == pytest.approx(0.22, abs=0.01)
        assert result.search_criteria["radius_km"] == 2


class TestStatisticsCalculator:
    def test_empty_comparables(self):
        result = StatisticsCalculator([], currency="EUR").calculate()
        assert result.comparable_count == 0
        assert result.average_price_cents is None
        assert result.statistics == {"comparable_count": 0}

    def test_summary_values(self):
        subject = RealtyAsset(constructed_area=110.0)
        result = StatisticsCalculator(SAMPLE_COMPARABLES, subject, currency="EUR").calculate()

        assert result.average_price_cents == 35_000_000
        assert result.median_price_cents == 35_000_000
        assert result.adjusted_average_cents == 35_000_000
        assert result.price_per_sqft_cents == 310_000
        assert result.price_range == {"low_cents": 30_000_000, "high_cents": 40_000_000, "range_cents": 10_000_000}
        assert result.comparable_count == 3

        stats = result.statistics
        assert stats["standard_deviation"] == 5_000_000
        assert stats["average_similarity"] == 80
        assert stats["average_size"] == 112.5
        assert stats["estimated_value_per_sqft"] == {
            "price_per_sqft_cents": 311_111,
            "subject_size": 110.0,
            "estimated_value_cents": 34_222_222,
        }

    def test_single_comparable_has_no_deviation(self):
        result = StatisticsCalculator(SAMPLE_COMPARABLES[:1]).calculate()
        assert "standard_deviation" not in result.statistics
        assert "estimated_value_per_sqft" not in result.statistics


class TestCmaInsightsGenerator:
    def make_generator(self, ai=None, comparables=SAMPLE_COMPARABLES):
        statistics = StatisticsCalculator(comparables, currency="EUR").calculate()
        report = MarketReport(title="CMA", report_type="cma", suggested_price_currency="EUR")
        subject = RealtyAsset(id=1, street_address="1 Calle Mar", city="Marbella", prop_type_key="apartment",
                              count_bedrooms=2, count_bathrooms=2, constructed_area=100.0)
        return CmaInsightsGenerator(None, ai or FakeAIService(), Website(id=1, slug="x"), report, subject,
                                    comparables, statistics)

    def test_suggested_range_from_adjusted_median(self):
        generator = self.make_generator()
        assert generator.suggested_low() == 33_250_000
        assert generator.suggested_high() == 36_750_000

    def test_parse_response_falls_back_to_statistics(self):
        parsed = self.make_generator().parse_response(json.dumps({"executive_summary": "Fine"}))
        assert parsed["insights"]["executive_summary"] == "Fine"
        assert parsed["insights"]["strengths"] == []
        assert parsed["suggested_price"] == {"low_cents": 33_250_000, "high_cents": 36_750_000, "currency": "EUR"}

    def test_prompt_lists_subject_and_comparables(self):
        prompt = self.make_generator().build_prompt()
        assert "Address: 1 Calle Mar, Marbella" in prompt
        assert "## Comparable Properties (3 found)" in prompt
        assert "Price Range: €300,000 - €400,000" in prompt

    def test_format_adjustments(self):
        generator = self.make_generator()
        assert generator.format_adjustments({"garages": {"adjustment_cents": 800_000}}) == "Garages: +€8,000"
        assert generator.format_adjustments(None) == "None"


class TestCmaGenerator:
    async def test_generates_completed_report(self, session, website, asset_factory):
        subject = await asset_factory(website, reference="SUBJECT")
        await asset_factory(website, reference="CLOSE", latitude=36.512, price_cents=31_000_000)
        ai = FakeAIService([insights_reply()])

        result = await CmaGenerator(session, ai, website, subject).generate()

        assert result.success
        report = result.report
        assert report.status == "completed"
        assert report.title == "CMA Report for 1 Calle Mar, Marbella"
        assert report.suggested_price_low_cents == 29_000_000
        assert report.suggested_price_currency == "EUR"
        assert report.ai_insights["confidence_level"] == "medium"
        assert len(report.comparable_properties) == 1
        assert report.market_statistics["comparable_count"] == 1
        assert report.branding == {"company_name": "Costa Homes", "agent_email": "owner@costahomes.test"}
        assert report.ai_generation_request_id is not None
        assert "## Comparable Properties (1 found)" in ai.calls[0]["prompt"]

    async def test_no_comparables_completes_without_ai(self, session, website, asset_factory):
        subject = await asset_factory(website)
        ai = FakeAIService()

        result = await CmaGenerator(session, ai, website, subject, title="Quick check").generate()

        assert result.success
        assert result.error == NO_COMPARABLES_MESSAGE
        assert result.report.is_completed
        assert result.report.title == "Quick check"
        assert ai.calls == []

    async def test_failed_insights_keep_statistics(self, session, website, asset_factory):
        subject = await asset_factory(website, reference="SUBJECT")
        await asset_factory(website, reference="CLOSE", latitude=36.512)

        result = await CmaGenerator(session, FakeAIService(["not json"]), website, subject).generate()

        assert not result.success
        assert result.error == "No valid JSON in response"
        assert result.report.is_completed
        assert result.report.market_statistics["comparable_count"] == 1
        assert result.report.suggested_price_low_cents is None

    async def test_rate_limit_reverts_report_to_draft(self, session, website, asset_factory):
        subject = await asset_factory(website, reference="SUBJECT")
        await asset_factory(website, reference="CLOSE", latitude=36.512)
        generator = CmaGenerator(session, FakeAIService(error=AiRateLimitError()), website, subject)

        with pytest.raises(AiRateLimitError):
            await generator.generate()

        report = (await session.execute(MarketReport.__table__.select())).one()
        assert report.status == "draft"

    async def test_database_failure_reverts_report_to_draft(self, session, website, asset_factory, monkeypatch):
        subject = await asset_factory(website, reference="SUBJECT")
        slug = website.slug

        async def conflicting_find(finder):
            finder.session.add(Website(slug=slug))
            await finder.session.flush()

        monkeypatch.setattr(ComparablesFinder, "find", conflicting_find)

        result = await CmaGenerator(session, FakeAIService(), website, subject).generate()

        assert not result.success
        assert result.error
        assert result.report.status == "draft"
        report = (await session.execute(MarketReport.__table__.select())).one()
        assert report.status == "draft"
