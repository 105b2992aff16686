"""Schemas for geocoding and route calculation."""

from pydantic import BaseModel, Field


class Coordinates(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class RouteRequest(BaseModel):
    origin: Coordinates
    destination: Coordinates


class RouteResponse(BaseModel):
    origin: Coordinates
    destination: Coordinates
    distance: float = Field(..., description="Kilometres")
    duration: int = Field(..., description="Minutes")
    path: list[list[float]] = Field(..., description="[lat, lng] pairs")
    source: str = Field(..., description="'osrm' or 'straight_line'")


class GeocodeResponse(BaseModel):
    lat: float
    lng: float
    display_name: str | None = None
