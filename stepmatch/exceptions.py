"""
Custom exceptions for the StepMatch route engine
"""


class StepMatchError(Exception):
    """Base exception for the StepMatch route engine"""
    pass


class InvalidInputError(StepMatchError):
    """Raised when planning parameters are invalid. Never triggers a search."""
    pass


class RoutingOracleError(StepMatchError):
    """Raised when the directions service cannot answer a single request"""

    kind = "routing_error"

    def __init__(self, message: str = "", status_code: int = None):
        super().__init__(message or self.kind)
        self.status_code = status_code


class NoRouteFoundError(RoutingOracleError):
    """The directions service found no walkable path between the points"""

    kind = "no_route_found"


class ServiceUnavailableError(RoutingOracleError):
    """The directions service is down, unreachable or refused our credentials"""

    kind = "service_unavailable"


class RateLimitedError(RoutingOracleError):
    """The directions service (or our own daily quota) refused the call"""

    kind = "rate_limited"


class SelectionError(StepMatchError):
    """Raised when a planning session cannot honour a selection operation"""
    pass
