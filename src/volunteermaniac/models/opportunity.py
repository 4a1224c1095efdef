"""Opportunity model — The common record every backend client produces.

Backend clients map their vendor-specific JSON into ``Opportunity``. Records are
frozen once produced; the engine never edits them, it only concatenates
them. Identity is ``(source, id)`` and the same real-world listing coming
from two different sources is kept as two records.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from volunteermaniac.models.location import Coordinates, LocationContext

OpportunityType = Literal["in-person", "virtual"]


class ContactInfo(BaseModel):
    """Contact details published with an opportunity."""

    model_config = {"frozen": True}

    email: str | None = Field(default=None, description="Contact email")
    phone: str | None = Field(default=None, description="Contact phone number")
    website: str | None = Field(default=None, description="Organization website")


class Opportunity(BaseModel):
    """A single volunteer opportunity, normalized from one backend."""

    model_config = {"frozen": True}

    # Identification
    id: str = Field(description="Identifier, unique within its source")
    source: str = Field(description="Name of the backend that produced this record")

    # Basic information
    title: str = Field(description="Opportunity title")
    organization: str = Field(description="Hosting organization")
    description: str = Field(default="", description="Free-text description")

    # Location
    location: str = Field(default="", description="Human-readable location")
    city: str = Field(default="", description="City")
    country: str = Field(default="", description="Country")
    coordinates: Coordinates | None = Field(default=None, description="Venue coordinates")
    distance: float | None = Field(default=None, description="Distance in miles from the search point")

    # Details
    type: OpportunityType = Field(default="in-person", description="in-person or virtual")
    cause: str = Field(default="", description="Cause area, e.g. 'environment'")
    skills: list[str] = Field(default_factory=list, description="Skills asked for")
    time_commitment: str = Field(default="", description="Expected time commitment")
    date: str = Field(default="", description="Event date as published by the source")
    participants: int | None = Field(default=None, description="Participant count or cap")

    # Contact / external
    contact_info: ContactInfo = Field(default_factory=ContactInfo, description="Contact details")
    external_url: str = Field(default="", description="Link to the listing at the source")
    image: str | None = Field(default=None, description="Image URL")

    # Metadata
    last_updated: datetime = Field(description="Last update timestamp reported by the source")
    verified: bool = Field(default=False, description="Whether the source marks the listing as verified")
    application_deadline: datetime | None = Field(default=None, description="Application deadline")
    requirements: list[str] | None = Field(default=None, description="Participation requirements")

    # Set only when merged from a multi-location search
    search_context: LocationContext | None = Field(
        default=None,
        description="Location of the multi-location search that found this record",
    )

    @property
    def key(self) -> tuple[str, str]:
        return self.source, self.id

    def with_search_context(self, context: LocationContext) -> Opportunity:
        """Return a copy tagged with the location it was found for."""
        return self.model_copy(update={"search_context": context})
