"""
CMA (Comparative Market Analysis) reports
"""

from services.reports.cma_generator import CmaGenerator, CmaResult
from services.reports.comparables_finder import ComparablesFinder, ComparablesResult, haversine_km
from services.reports.insights_generator import CmaInsightsGenerator, InsightsResult
from services.reports.statistics_calculator import StatisticsCalculator, StatisticsResult

__all__ = [
    "CmaGenerator",
    "CmaInsightsGenerator",
    "CmaResult",
    "ComparablesFinder",
    "ComparablesResult",
    "InsightsResult",
    "StatisticsCalculator",
    "StatisticsResult",
    "haversine_km",
]
