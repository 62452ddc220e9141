import logging
import time
from typing import Dict, List, Optional, Sequence

import httpx

from stepmatch.config import settings
from stepmatch.exceptions import (
    NoRouteFoundError,
    RateLimitedError,
    RoutingOracleError,
    ServiceUnavailableError,
)
from stepmatch.logger import log_oracle_call
from stepmatch.models.request import Coordinate
from stepmatch.models.route import RouteResult
from stepmatch.services.map.api_counter import APICounter, api_counter
from stepmatch.services.map.routing_service import RoutingService

logger = logging.getLogger(__name__)

NO_ROUTE_CODES = {"NoRoute", "NoSegment", "InvalidInput"}


class MapboxRoutingService(RoutingService):
    """Mapbox Directions API v5 implementation"""

    def __init__(
        self,
        access_token: Optional[str] = None,
        *,
        base_url: Optional[str] = None,
        profile: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
        counter: Optional[APICounter] = None,
    ):
        self.access_token = access_token or settings.mapbox_access_token
        self.base_url = (base_url or settings.mapbox_base_url).rstrip("/")
        self.profile = profile or settings.mapbox_profile
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self.counter = counter or api_counter
        self._client = client

    async def fetch_route(
        self,
        start: Coordinate,
        end: Coordinate,
        *,
        alternatives: bool = False,
        max_alternatives: int = 3,
        waypoints: Sequence[Coordinate] = (),
    ) -> List[RouteResult]:
        """Get walking routes using the Mapbox Directions API"""
        if not self.access_token:
            raise ServiceUnavailableError("Mapbox access token is not configured")

        # Check API call limit
        if not self.counter.can_make_call():
            raise RateLimitedError(
                f"API call limit exceeded. Max calls per day: {self.counter.max_calls_per_day}"
            )

        url = self._build_directions_url([start, *waypoints, end])
        params = {
            "alternatives": "true" if alternatives else "false",
            "geometries": "geojson",
            "overview": "full",
            "access_token": self.access_token,
        }

        started = time.perf_counter()
        success = False
        try:
            if self._client is not None:
                response = await self._client.get(url, params=params, timeout=self.timeout)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.get(url, params=params, timeout=self.timeout)

            # Record API call
            self.counter.record_call()

            self._raise_for_status(response)
            routes = self._convert_directions_response(response.json())
            success = True
        except RoutingOracleError:
            raise
        except httpx.TimeoutException as e:
            raise ServiceUnavailableError(f"Directions request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise ServiceUnavailableError(f"Directions request failed: {e}") from e
        except ValueError as e:
            raise ServiceUnavailableError(f"Malformed directions response: {e}") from e
        finally:
            log_oracle_call(
                logger, start, end, (time.perf_counter() - started) * 1000, success
            )

        limit = max(1, max_alternatives) if alternatives else 1
        return routes[:limit]

    def _build_directions_url(self, points: Sequence[Coordinate]) -> str:
        """Mapbox expects lng,lat pairs joined by semicolons"""
        coordinates = ";".join(f"{p.lng:.6f},{p.lat:.6f}" for p in points)
        return f"{self.base_url}/directions/v5/mapbox/{self.profile}/{coordinates}"

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return

        error_detail = ""
        try:
            error_detail = f" - {response.json().get('message', '')}"
        except (ValueError, AttributeError):
            pass

        if status == 429:
            raise RateLimitedError(f"API quota exceeded{error_detail}", status)
        elif status in (401, 403):
            raise ServiceUnavailableError(
                f"Access token invalid or Directions API not enabled{error_detail}", status
            )
        elif status in (404, 422):
            raise NoRouteFoundError(f"No route ({status}){error_detail}", status)
        else:
            raise ServiceUnavailableError(
                f"Directions API error: {status}{error_detail}", status
            )

    def _convert_directions_response(self, data: Dict) -> List[RouteResult]:
        """Convert Directions API response to RouteResults"""
        code = data.get("code", "Ok")
        if code in NO_ROUTE_CODES:
            raise NoRouteFoundError(data.get("message") or code)
        if code != "Ok":
            raise ServiceUnavailableError(f"Directions API returned code {code}")

        routes = []
        for route in data.get("routes") or []:
            coordinates = route.get("geometry", {}).get("coordinates", [])
            geometry = [Coordinate(lat=lat, lng=lng) for lng, lat, *_ in coordinates]
            if len(geometry) < 2:
                continue
            routes.append(
                RouteResult(
                    distance_meters=float(route.get("distance", 0.0)),
                    duration_seconds=float(route.get("duration", 0.0)),
                    geometry=geometry,
                )
            )

        if not routes:
            raise NoRouteFoundError("Directions API returned no routes")
        return routes
