import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from . import config
from .geo import distance_km
from .incidents import IncidentStore
from .models import AlternativeRoute, GeocodeResult, GeoPoint, RouteResult, TravelMode

logger = logging.getLogger(__name__)

FALLBACK_INSTRUCTION = "Route calculation failed - showing direct path"
# Direct-path duration estimate: one minute per km
FALLBACK_SECONDS_PER_KM = 60.0
MAX_ROUTES = 3
MAX_ALTERNATIVES = 2


class RoutingError(Exception):
    """The routing service answered but the answer is unusable."""


class GeocodingError(Exception):
    """The geocoding service failed or returned garbage."""


def _format_coordinates(points: Sequence[GeoPoint]) -> str:
    # OSRM wants lon,lat
    return ";".join(f"{p.lon},{p.lat}" for p in points)


def _to_geopoints(osrm_coords: List[List[float]]) -> List[GeoPoint]:
    # OSRM returns [lon, lat]
    return [GeoPoint(lat=lat, lon=lon) for lon, lat in osrm_coords]


def _step_instruction(step: Dict[str, Any]) -> str:
    maneuver = step.get("maneuver") or {}
    instruction = maneuver.get("instruction")
    if instruction:
        return instruction
    # Stock OSRM has no instruction text, build one from the maneuver
    parts = [str(maneuver.get("type", "continue"))]
    if maneuver.get("modifier"):
        parts.append(str(maneuver["modifier"]))
    if step.get("name"):
        parts.append(f"onto {step['name']}")
    return " ".join(parts)


def _parse_route(route: Dict[str, Any]) -> RouteResult:
    coordinates = _to_geopoints(route["geometry"]["coordinates"])
    if len(coordinates) < 2:
        raise RoutingError("Route has fewer than two coordinates")
    instructions = [
        _step_instruction(step)
        for leg in route.get("legs") or []
        for step in leg.get("steps") or []
    ]
    return RouteResult(
        coordinates=coordinates,
        distance_meters=float(route["distance"]),
        duration_seconds=float(route["duration"]),
        instructions=instructions,
    )


def direct_route(start: GeoPoint, end: GeoPoint) -> RouteResult:
    """Straight-line stand-in used whenever the routing service fails."""
    km = distance_km(start, end)
    return RouteResult(
        coordinates=[start, end],
        distance_meters=km * 1000.0,
        duration_seconds=km * FALLBACK_SECONDS_PER_KM,
        instructions=[FALLBACK_INSTRUCTION],
        alternatives=[],
    )


class RouteProvider:
    """
    Fetches a primary route plus alternatives from an OSRM-compatible service.

    Delivery and emergency modes ask for up to three routes and pass severe
    incident locations as points to avoid (best effort, the service may
    ignore them). School mode routes through every waypoint in order with no
    alternatives. Any failure degrades to a direct two-point route.
    """

    def __init__(
        self,
        store: IncidentStore,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = config.OSRM_BASE_URL,
        profile: str = "driving",
        timeout: Optional[float] = config.ROUTING_TIMEOUT_S,
    ):
        self.store = store
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.profile = profile
        self.timeout = timeout

    def build_params(self, mode: TravelMode, avoid_severe: bool) -> Dict[str, str]:
        with_alternatives = mode != TravelMode.school
        params = {
            "overview": "full",
            "geometries": "geojson",
            "steps": "true",
            "alternatives": "true" if with_alternatives else "false",
        }
        if with_alternatives:
            params["number"] = str(MAX_ROUTES)
            if avoid_severe:
                avoid = [incident.location for incident in self.store.severe_incidents()]
                if avoid:
                    params[config.ROUTING_EXCLUDE_PARAM] = _format_coordinates(avoid)
        return params

    async def get_route(
        self,
        points: Sequence[GeoPoint],
        avoid_severe: bool,
        mode: TravelMode = TravelMode.delivery,
    ) -> Optional[RouteResult]:
        """
        Route through `points` ([start, ...waypoints, end]) in the given order.

        Returns None when fewer than two points are given. Never raises for
        service failures: those fall back to the direct start-to-end route.
        """
        if len(points) < 2:
            return None

        mode = TravelMode(mode)
        start, end = points[0], points[-1]
        url = f"{self.base_url}/route/v1/{self.profile}/{_format_coordinates(points)}"
        params = self.build_params(mode, avoid_severe)

        logger.info("[ROUTING] %s: %d point(s), avoid_severe=%s", mode.value, len(points), avoid_severe)

        try:
            data = await self._fetch(url, params)
            result = self._parse_response(data)
        except (httpx.HTTPError, RoutingError, ValueError, KeyError, TypeError, IndexError, AttributeError) as exc:
            logger.warning("[ROUTING] falling back to direct path: %s", exc)
            return direct_route(start, end)

        logger.info(
            "[ROUTING] primary %.0f m / %.0f s with %d alternative(s)",
            result.distance_meters, result.duration_seconds, len(result.alternatives),
        )
        return result

    async def _fetch(self, url: str, params: Dict[str, str]) -> Dict[str, Any]:
        headers = {"User-Agent": config.ROUTING_USER_AGENT}
        if self.client is not None:
            resp = await self.client.get(url, params=params, headers=headers, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(url, params=params, headers=headers)

        if resp.status_code != 200:
            raise RoutingError(f"Routing failed with HTTP {resp.status_code}: {resp.text[:200]}")
        return resp.json()

    @staticmethod
    def _parse_response(data: Dict[str, Any]) -> RouteResult:
        code = data.get("code", "Ok")
        if code != "Ok":
            raise RoutingError(f"OSRM error {code}: {data.get('message', 'Unknown error')}")

        routes = data.get("routes") or []
        if not routes:
            raise RoutingError("No route found")

        primary = _parse_route(routes[0])
        alternatives: List[AlternativeRoute] = []
        for index, raw in enumerate(routes[1 : 1 + MAX_ALTERNATIVES], start=1):
            parsed = _parse_route(raw)
            alternatives.append(
                AlternativeRoute(
                    label=f"Alternative {index}",
                    coordinates=parsed.coordinates,
                    distance_meters=parsed.distance_meters,
                    duration_seconds=parsed.duration_seconds,
                )
            )
        primary.alternatives = alternatives
        return primary


class Geocoder:
    """Free-text search against a Nominatim-compatible service."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = config.NOMINATIM_BASE_URL,
        timeout: float = 10.0,
    ):
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def search(self, query: str, limit: int = 5) -> List[GeocodeResult]:
        url = f"{self.base_url}/search"
        params = {"format": "json", "q": query, "limit": str(limit)}
        headers = {"User-Agent": config.ROUTING_USER_AGENT}

        try:
            if self.client is not None:
                resp = await self.client.get(url, params=params, headers=headers, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.get(url, params=params, headers=headers)
        except httpx.HTTPError as exc:
            raise GeocodingError(f"Geocoding request failed: {exc}") from exc

        if resp.status_code != 200:
            raise GeocodingError(f"Geocoding failed: {resp.text[:200]}")

        try:
            return [
                GeocodeResult(
                    lat=float(item["lat"]),
                    lon=float(item["lon"]),
                    display_name=item.get("display_name", ""),
                )
                for item in resp.json()
            ]
        except (ValueError, KeyError, TypeError) as exc:
            raise GeocodingError(f"Unexpected geocoding response: {exc}") from exc

    async def first(self, query: str) -> Optional[GeoPoint]:
        results = await self.search(query, limit=1)
        if not results:
            logger.info("[GEOCODING] no match for %r", query)
            return None
        hit = results[0]
        logger.info("[GEOCODING] %r -> lat=%.4f, lon=%.4f", query, hit.lat, hit.lon)
        return GeoPoint(lat=hit.lat, lon=hit.lon)
