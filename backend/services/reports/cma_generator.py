"""
Comparative Market Analysis workflow.

1. Create the report record
2. Find comparable properties
3. Calculate market statistics
4. Generate AI insights
5. Store everything on the report
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from database.models import MarketReport, RealtyAsset, Website
from services.ai_service import AiConfigurationError, AiRateLimitError
from services.reports.comparables_finder import ComparablesFinder
from services.reports.insights_generator import CmaInsightsGenerator
from services.reports.statistics_calculator import StatisticsCalculator, StatisticsResult

logger = logging.getLogger(__name__)

NO_COMPARABLES_MESSAGE = "No comparable properties found within search criteria"

DEFAULT_OPTIONS: dict[str, Any] = {
    "radius_km": 2,
    "months_back": 6,
    "max_comparables": 10,
    "title": None,
    "branding": {},
}


@dataclass
class CmaResult:
    success: bool
    report: MarketReport | None = None
    comparables: list[dict[str, Any]] = field(default_factory=list)
    statistics: StatisticsResult | None = None
    insights: dict[str, Any] | None = None
    error: str | None = None


class CmaGenerator:
    def __init__(
        self,
        session: AsyncSession,
        ai_service: Any,
        website: Website,
        asset: RealtyAsset,
        **options: Any,
    ) -> None:
        self.session = session
        self.ai_service = ai_service
        self.website = website
        self.asset = asset
        self.options = {**DEFAULT_OPTIONS, **{k: v for k, v in options.items() if v is not None}}

    def title(self) -> str:
        if self.options["title"]:
            return self.options["title"]
        address = ", ".join(p for p in (self.asset.street_address, self.asset.city) if p and p.strip())
        return f"CMA Report for {address or 'Subject Property'}"

    def currency(self) -> str:
        asset = self.asset
        if asset.sale_listing is not None:
            return asset.sale_listing.currency
        if asset.rental_listing is not None:
            return asset.rental_listing.currency
        return self.website.default_currency or "USD"

    def default_branding(self) -> dict[str, Any]:
        branding = {
            "company_name": self.website.company_display_name,
            "company_logo_url": self.website.main_logo_url,
            "agent_email": self.website.owner_email,
        }
        return {k: v for k, v in branding.items() if v}

    def subject_details(self) -> dict[str, Any]:
        asset = self.asset
        return {
            "property_id": asset.id,
            "reference": asset.reference,
            "address": {
                "street": asset.street_address,
                "city": asset.city,
                "region": asset.region,
                "postal_code": asset.postal_code,
                "country": asset.country,
            },
            "characteristics": {
                "property_type": asset.prop_type_key,
                "bedrooms": asset.count_bedrooms,
                "bathrooms": asset.count_bathrooms,
                "constructed_area": asset.constructed_area,
                "plot_area": asset.plot_area,
                "year_built": asset.year_construction,
                "garages": asset.count_garages,
            },
            "coordinates": {"latitude": asset.latitude, "longitude": asset.longitude},
        }

    async def create_report(self) -> MarketReport:
        asset = self.asset
        report = MarketReport(
            website_id=self.website.id,
            realty_asset_id=asset.id,
            report_type="cma",
            title=self.title(),
            status="draft",
            city=asset.city,
            region=asset.region,
            postal_code=asset.postal_code,
            latitude=asset.latitude,
            longitude=asset.longitude,
            radius_km=float(self.options["radius_km"]),
            subject_details=self.subject_details(),
            branding=self.options["branding"] or self.default_branding(),
            suggested_price_currency=self.currency(),
        )
        self.session.add(report)
        await self.session.commit()
        return report

    async def revert_to_draft(self, report: MarketReport) -> None:
        report.status = "draft"
        await self.session.commit()

    async def generate(self) -> CmaResult:
        report = await self.create_report()

        try:
            report.mark_generating()
            await self.session.flush()

            found = await ComparablesFinder(
                self.session,
                self.asset,
                self.website,
                radius_km=self.options["radius_km"],
                months_back=self.options["months_back"],
                max_comparables=self.options["max_comparables"],
            ).find()
            comparables = found.comparables

            if not comparables:
                report.mark_completed()
                await self.session.commit()
                logger.info("CMA %s completed without comparables", report.reference_number)
                return CmaResult(success=True, report=report, error=NO_COMPARABLES_MESSAGE)

            statistics = StatisticsCalculator(comparables, self.asset, currency=self.currency()).calculate()
            insights = await CmaInsightsGenerator(
                self.session,
                self.ai_service,
                self.website,
                report,
                self.asset,
                comparables,
                statistics,
            ).generate()

            if insights.success:
                report.mark_completed(
                    insights=insights.insights,
                    statistics=statistics.statistics,
                    comparables=comparables,
                    suggested_price=insights.suggested_price,
                )
                report.ai_generation_request_id = insights.request_id
                await self.session.commit()
                logger.info("CMA %s completed with %s comparable(s)", report.reference_number, len(comparables))
                return CmaResult(
                    success=True,
                    report=report,
                    comparables=comparables,
                    statistics=statistics,
                    insights=insights.insights,
                )

            # keep the numbers even when the narrative failed
            report.mark_completed(statistics=statistics.statistics, comparables=comparables)
            await self.session.commit()
            return CmaResult(
                success=False,
                report=report,
                comparables=comparables,
                statistics=statistics,
                error=insights.error,
            )
        except (AiConfigurationError, AiRateLimitError):
            await self.revert_to_draft(report)
            raise
        except Exception as exc:
            logger.exception("CMA generation failed for asset %s: %s", self.asset.id, exc)
            await self.session.rollback()
            await self.session.refresh(self.website)
            await self.session.refresh(report)
            await self.revert_to_draft(report)
            return CmaResult(success=False, report=report, error=str(exc))
