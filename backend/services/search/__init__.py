"""
Property search: URL parameters, filtering and facets
"""

from services.search.facets import SearchFacetsService
from services.search.filtering import PropertyFilterService
from services.search.params import SearchParamsService

__all__ = ["PropertyFilterService", "SearchFacetsService", "SearchParamsService"]
