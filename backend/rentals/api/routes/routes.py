"""Route calculation and geocoding endpoints."""

from fastapi import APIRouter, Depends, Query

from rentals.api.deps import get_geo_service
from rentals.schemas.common import ApiResponse
from rentals.schemas.route import GeocodeResponse, RouteRequest, RouteResponse
from rentals.services.geo import GeoService, Point

router = APIRouter(prefix="/api/routes", tags=["routes"])


@router.post("/calculate", response_model=ApiResponse[RouteResponse])
async def calculate_route(
    body: RouteRequest, geo: GeoService = Depends(get_geo_service)
) -> ApiResponse[RouteResponse]:
    """Driving route between two points, or a straight-line estimate when routing is unavailable."""
    route = await geo.calculate_route(
        Point(body.origin.lat, body.origin.lng),
        Point(body.destination.lat, body.destination.lng),
    )
    return ApiResponse(data=RouteResponse(origin=body.origin, destination=body.destination, **route))


@router.get("/geocode", response_model=ApiResponse[GeocodeResponse])
async def geocode(
    address: str = Query(..., min_length=1), geo: GeoService = Depends(get_geo_service)
) -> ApiResponse[GeocodeResponse]:
    return ApiResponse(data=GeocodeResponse(**await geo.geocode_address(address)))
