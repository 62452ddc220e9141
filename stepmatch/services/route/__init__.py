# Route matching package
from .matcher import MatchResult, RouteMatcher, VariantsResult
from .policy import SearchPolicy
from .response_builder import ResponseBuilderService

__all__ = [
    "MatchResult",
    "RouteMatcher",
    "ResponseBuilderService",
    "SearchPolicy",
    "VariantsResult",
]
