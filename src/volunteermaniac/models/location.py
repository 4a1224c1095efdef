"""Location models — Coordinates and geocoded search targets."""

from __future__ import annotations

from pydantic import BaseModel, Field


class Coordinates(BaseModel):
    """A latitude / longitude pair in decimal degrees."""

    model_config = {"frozen": True}

    latitude: float = Field(ge=-90.0, le=90.0, description="Latitude in decimal degrees")
    longitude: float = Field(ge=-180.0, le=180.0, description="Longitude in decimal degrees")

    def rounded(self, places: int = 3) -> tuple[float, float]:
        """Return the pair rounded to ``places`` decimals (3 places is roughly 110 m)."""
        return round(self.latitude, places), round(self.longitude, places)


class GeocodedTarget(BaseModel):
    """One location of a multi-location search, already resolved by the geocoder.

    ``coordinates`` is ``None`` when geocoding failed for this input; the
    geocoder's message is then carried in ``error``.
    """

    original_input: str = Field(description="Location text exactly as the user typed it")
    coordinates: Coordinates | None = Field(default=None, description="Resolved coordinates, if any")
    display_location: str | None = Field(default=None, description="Human-readable resolved location")
    error: str | None = Field(default=None, description="Geocoding failure message")

    @property
    def label(self) -> str:
        return self.display_location or self.original_input


class LocationContext(BaseModel):
    """Originating location attached to opportunities merged from a multi-location search."""

    model_config = {"frozen": True}

    original_input: str = Field(description="Location text the opportunity was found for")
    display_location: str | None = Field(default=None, description="Resolved location label")
    coordinates: Coordinates = Field(description="Coordinates that were searched")
