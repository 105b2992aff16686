"""Geocoding (Nominatim) and driving routes (OSRM) over httpx.

Both upstreams are public best-effort services. Route calculation falls
back to a straight-line estimate when OSRM is unreachable.
"""

import logging
import math
from dataclasses import dataclass

import httpx
from fastapi import Request

from rentals.config import settings
from rentals.errors import ValidationError

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
FALLBACK_SPEED_KMH = 50.0


@dataclass(frozen=True)
class Point:
    lat: float
    lng: float


def haversine_km(origin: Point, destination: Point) -> float:
    """Great-circle distance between two points, rounded to 10 m."""
    d_lat = math.radians(destination.lat - origin.lat)
    d_lng = math.radians(destination.lng - origin.lng)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(origin.lat)) * math.cos(math.radians(destination.lat)) * math.sin(d_lng / 2) ** 2
    )
    return round(EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a)), 2)


class GeoService:
    """Thin async client for the geocoding and routing upstreams."""

    def __init__(
        self,
        nominatim_url: str = settings.nominatim_url,
        osrm_url: str = settings.osrm_url,
        user_agent: str = settings.geo_user_agent,
        timeout: float = settings.geo_timeout_seconds,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.nominatim_url = nominatim_url.rstrip("/")
        self.osrm_url = osrm_url.rstrip("/")
        self.timeout = timeout
        # Nominatim rejects requests without an identifying User-Agent.
        self.headers = {"User-Agent": user_agent}
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, headers=self.headers, transport=self._transport)

    async def geocode_address(self, address: str) -> dict:
        """Resolve free text to ``{"lat", "lng", "display_name"}``.

        Raises:
            ValidationError: If the address is blank, unknown, or the upstream failed.
        """
        if not address or not address.strip():
            raise ValidationError("An address is required for geocoding")

        try:
            async with self._client() as client:
                response = await client.get(
                    f"{self.nominatim_url}/search",
                    params={"q": address, "format": "json", "limit": 1, "addressdetails": 1},
                )
                response.raise_for_status()
                results = response.json()
        except httpx.HTTPError as exc:
            logger.warning("Geocoding request failed for %r: %s", address, exc)
            raise ValidationError("Could not resolve coordinates for the address") from exc

        if not results:
            raise ValidationError("Location not found")

        first = results[0]
        return {
            "lat": float(first["lat"]),
            "lng": float(first["lon"]),
            "display_name": first.get("display_name"),
        }

    async def calculate_route(self, origin: Point, destination: Point) -> dict:
        """Driving route between two points.

        Returns ``distance`` in km, ``duration`` in minutes, ``path`` as
        ``[lat, lng]`` pairs, and ``source`` (``osrm`` or ``straight_line``).
        """
        url = f"{self.osrm_url}/route/v1/driving/{origin.lng},{origin.lat};{destination.lng},{destination.lat}"
        try:
            async with self._client() as client:
                response = await client.get(url, params={"overview": "full", "geometries": "geojson"})
                response.raise_for_status()
                routes = response.json().get("routes") or []
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("OSRM route request failed: %s", exc)
            routes = []

        if routes:
            route = routes[0]
            coordinates = route.get("geometry", {}).get("coordinates", [])
            return {
                "distance": round(route["distance"] / 1000, 2),
                "duration": round(route["duration"] / 60),
                "path": [[lat, lng] for lng, lat in coordinates],
                "source": "osrm",
            }

        distance = haversine_km(origin, destination)
        return {
            "distance": distance,
            "duration": round(distance / FALLBACK_SPEED_KMH * 60),
            "path": [[origin.lat, origin.lng], [destination.lat, destination.lng]],
            "source": "straight_line",
        }


def get_geo_service(request: Request) -> GeoService:
    return request.app.state.geo
