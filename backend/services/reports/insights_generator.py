"""
LLM narrative for CMA reports.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from database.models import MarketReport, RealtyAsset, Website, format_cents
from services.ai_requests import AiRequestTracker
from services.ai_service import AiApiError, AiConfigurationError, AiError, AiRateLimitError
from services.reports.statistics_calculator import StatisticsResult

logger = logging.getLogger(__name__)

JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

INSIGHT_KEYS = (
    "executive_summary",
    "market_position",
    "pricing_rationale",
    "strengths",
    "considerations",
    "recommendation",
    "time_to_sell_estimate",
    "confidence_level",
)


@dataclass
class InsightsResult:
    success: bool
    insights: dict[str, Any] | None = None
    suggested_price: dict[str, Any] | None = None
    request_id: int | None = None
    error: str | None = None


class CmaInsightsGenerator:
    def __init__(
        self,
        session: AsyncSession,
        ai_service: Any,
        website: Website,
        report: MarketReport,
        subject: RealtyAsset | None,
        comparables: list[dict[str, Any]],
        statistics: StatisticsResult | None,
    ) -> None:
        self.session = session
        self.ai_service = ai_service
        self.website = website
        self.report = report
        self.subject = subject
        self.comparables = comparables
        self.statistics = statistics
        self.tracker = AiRequestTracker(session, ai_service)

    @property
    def currency(self) -> str:
        return self.report.suggested_price_currency or "USD"

    def format_price(self, cents: int | None) -> str:
        if cents is None:
            return "N/A"
        return format_cents(cents, self.currency) or "N/A"

    def baseline_cents(self) -> int | None:
        if self.statistics is None:
            return None
        return self.statistics.adjusted_median_cents or self.statistics.median_price_cents

    def suggested_low(self) -> int:
        baseline = self.baseline_cents()
        return round(baseline * 0.95) if baseline else 0

    def suggested_high(self) -> int:
        baseline = self.baseline_cents()
        return round(baseline * 1.05) if baseline else 0

    def format_subject(self) -> str:
        subject = self.subject
        if subject is None:
            return "No subject property specified"

        address = ", ".join(p for p in (subject.street_address, subject.city, subject.postal_code) if p)
        details = [f"Address: {address}", f"Property Type: {subject.prop_type_key}"]
        if (subject.count_bedrooms or 0) > 0:
            details.append(f"Bedrooms: {subject.count_bedrooms}")
        if (subject.count_bathrooms or 0) > 0:
            details.append(f"Bathrooms: {subject.count_bathrooms}")
        if (subject.constructed_area or 0) > 0:
            details.append(f"Size: {subject.constructed_area} sqm")
        if (subject.year_construction or 0) > 0:
            details.append(f"Year Built: {subject.year_construction}")
        if (subject.count_garages or 0) > 0:
            details.append(f"Garages: {subject.count_garages}")
        return "\n".join(details)

    def format_adjustments(self, adjustments: dict[str, dict[str, Any]] | None) -> str:
        if not adjustments:
            return "None"
        parts = []
        for key, adjustment in adjustments.items():
            cents = adjustment["adjustment_cents"]
            sign = "+" if cents >= 0 else ""
            parts.append(f"{key.replace('_', ' ').capitalize()}: {sign}{self.format_price(cents)}")
        return ", ".join(parts)

    def format_comparables(self) -> str:
        if not self.comparables:
            return "No comparable properties found"

        blocks = []
        for index, comp in enumerate(self.comparables, start=1):
            blocks.append(
                f"### Comparable {index}\n"
                f"- Address: {comp.get('address')}\n"
                f"- Sale Price: {self.format_price(comp.get('price_cents'))}\n"
                f"- Bedrooms: {comp.get('bedrooms')}, Bathrooms: {comp.get('bathrooms')}\n"
                f"- Size: {comp.get('constructed_area')} sqm\n"
                f"- Year Built: {comp.get('year_built')}\n"
                f"- Similarity Score: {comp.get('similarity_score')}%\n"
                f"- Distance: {comp.get('distance_km')} km\n"
                f"- Adjustments: {self.format_adjustments(comp.get('adjustments'))}\n"
                f"- Adjusted Price: {self.format_price(comp.get('adjusted_price_cents'))}"
            )
        return "\n\n".join(blocks)

    def format_statistics(self) -> str:
        stats = self.statistics
        if stats is None:
            return "No statistics available"

        lines = [
            f"Average Price: {self.format_price(stats.average_price_cents)}",
            f"Median Price: {self.format_price(stats.median_price_cents)}",
            f"Adjusted Average: {self.format_price(stats.adjusted_average_cents)}",
            f"Adjusted Median: {self.format_price(stats.adjusted_median_cents)}",
            f"Price per Sqft: {self.format_price(stats.price_per_sqft_cents)}/sqm",
            f"Comparable Count: {stats.comparable_count}",
            f"Average Similarity Score: {stats.statistics.get('average_similarity')}%",
        ]
        if stats.price_range:
            lines.append(
                f"Price Range: {self.format_price(stats.price_range['low_cents'])} - "
                f"{self.format_price(stats.price_range['high_cents'])}"
            )
        return "\n".join(lines)

    def build_prompt(self) -> str:
        return f"""You are an expert real estate appraiser and market analyst. Generate a professional CMA (Comparative Market Analysis) insight report.

## Subject Property
{self.format_subject()}

## Comparable Properties ({len(self.comparables)} found)
{self.format_comparables()}

## Market Statistics
{self.format_statistics()}

## Task
Analyze the data and provide a comprehensive CMA report. Return your response as valid JSON in this exact format:

{{
  "executive_summary": "2-3 sentence overview of the property's market position and recommended pricing",
  "market_position": "How this property compares to the local market (above average, average, below average) with specific reasons",
  "pricing_rationale": "Detailed explanation of how the suggested price range was determined based on the comparable sales",
  "strengths": ["List 3-5 key strengths or selling points"],
  "considerations": ["List 2-3 factors that might affect marketability or require attention"],
  "recommendation": "Clear, actionable pricing recommendation with specific strategy",
  "time_to_sell_estimate": "Estimated days on market at the suggested price",
  "suggested_price_low_cents": {self.suggested_low()},
  "suggested_price_high_cents": {self.suggested_high()},
  "confidence_level": "high/medium/low based on comparable quality and quantity"
}}

Important:
- Return ONLY valid JSON, no additional text or markdown
- Base your analysis on the actual comparable data provided
- Be specific about how adjustments affect the price recommendation
- Consider both the raw prices and the adjusted prices when making recommendations
- The suggested prices should be in cents (e.g., 350,000 = 35000000)"""

    def input_data(self) -> dict[str, Any]:
        stats = self.statistics
        return {
            "report_id": self.report.id,
            "report_type": self.report.report_type,
            "subject_property_id": self.subject.id if self.subject else None,
            "comparable_count": len(self.comparables),
            "statistics_summary": {
                "average_price": stats.average_price_cents if stats else None,
                "median_price": stats.median_price_cents if stats else None,
                "adjusted_average": stats.adjusted_average_cents if stats else None,
                "adjusted_median": stats.adjusted_median_cents if stats else None,
            },
        }

    def parse_response(self, text: str) -> dict[str, Any]:
        match = JSON_OBJECT.search(text or "")
        if not match:
            raise AiApiError("No valid JSON in response")
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError as exc:
            raise AiApiError(f"Failed to parse AI response: {exc}", cause=exc) from exc

        insights = {key: parsed.get(key) for key in INSIGHT_KEYS}
        insights["strengths"] = insights["strengths"] or []
        insights["considerations"] = insights["considerations"] or []

        return {
            "insights": insights,
            "suggested_price": {
                "low_cents": parsed.get("suggested_price_low_cents") or self.suggested_low() or None,
                "high_cents": parsed.get("suggested_price_high_cents") or self.suggested_high() or None,
                "currency": self.currency,
            },
        }

    async def generate(self) -> InsightsResult:
        request = await self.tracker.create(self.website, "market_report", self.input_data())
        await self.tracker.mark_processing(request)

        try:
            response = await self.ai_service.generate_text(self.build_prompt())
            parsed = self.parse_response(response.get("text", ""))
            await self.tracker.mark_completed(request, parsed, model_used=response.get("model_used"))
            return InsightsResult(
                success=True,
                insights=parsed["insights"],
                suggested_price=parsed["suggested_price"],
                request_id=request.id,
            )
        except (AiRateLimitError, AiConfigurationError) as exc:
            await self.tracker.mark_failed(request, exc.message)
            raise
        except AiError as exc:
            await self.tracker.mark_failed(request, exc.message)
            return InsightsResult(success=False, error=exc.message, request_id=request.id)
        except Exception as exc:
            logger.exception("[CmaInsights] Unexpected error: %s", exc)
            await self.tracker.mark_failed(request, f"Unexpected error: {exc}")
            return InsightsResult(success=False, error="An unexpected error occurred", request_id=request.id)
