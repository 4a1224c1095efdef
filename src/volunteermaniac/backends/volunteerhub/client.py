"""VolunteerHub backend — Geo search over the VolunteerHub REST API.

API reference:
  GET /opportunities/search
    ?lat=<lat>&lng=<lng>&radius=<miles>
    &category=<cause>&type=<in-person|virtual>&q=<keywords>&limit=<n>
  GET /opportunities/<id>
  GET /health
"""

from __future__ import annotations

import contextlib
import logging
from datetime import UTC, datetime
from typing import Any

from volunteermaniac.backends.base.client import HTTPBackendClient
from volunteermaniac.backends.base.exceptions import BackendRequestError, OpportunityNotFoundError
from volunteermaniac.models.location import Coordinates
from volunteermaniac.models.opportunity import ContactInfo, Opportunity
from volunteermaniac.models.query import SearchQuery
from volunteermaniac.models.result import ErrorKind

logger = logging.getLogger(__name__)


def _parse_datetime(value: Any) -> datetime | None:
    if not value:
        return None
    with contextlib.suppress(ValueError, TypeError):
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return None


class VolunteerHubClient(HTTPBackendClient):
    """Backend client for the VolunteerHub API.

    Args:
        base_url: VolunteerHub API base URL.
        name: Backend name reported in results.
        **kwargs: Passed to ``HTTPBackendClient`` (api_key, timeout, retry,
            rate_limiter, transport, ...).
    """

    def __init__(
        self,
        base_url: str = "https://api.volunteerhub.com/v1",
        *,
        name: str = "VolunteerHub",
        **kwargs: Any,
    ) -> None:
        super().__init__(base_url, **kwargs)
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    # ── Search ───────────────────────────────────────────────────────────

    async def search_opportunities(self, query: SearchQuery) -> list[Opportunity]:
        params: dict[str, Any] = {
            "lat": query.coordinates.latitude,
            "lng": query.coordinates.longitude,
            "radius": query.radius_miles,
            "limit": query.limit,
        }
        if query.keywords:
            params["q"] = query.keywords
        if query.causes:
            # VolunteerHub filters on a single category
            params["category"] = query.causes[0]
        if query.type != "both":
            params["type"] = query.type

        data = await self.request_json("GET", "/opportunities/search", "search opportunities", params=params)
        items = data.get("opportunities", [])

        logger.debug(
            "VolunteerHub search: lat=%s, lng=%s, radius=%s, results=%d, total=%s",
            query.coordinates.latitude,
            query.coordinates.longitude,
            query.radius_miles,
            len(items),
            data.get("total_count"),
        )
        return [self.normalize(item) for item in items]

    async def get_details(self, opportunity_id: str) -> Opportunity:
        try:
            data = await self.request_json("GET", f"/opportunities/{opportunity_id}", "get opportunity details")
        except BackendRequestError as e:
            if e.error.status_code == 404 and e.error.type == ErrorKind.INVALID_RESPONSE:
                raise OpportunityNotFoundError(f"VolunteerHub opportunity not found: {opportunity_id}") from e
            raise
        return self.normalize(data)

    # ── Schema mapping ───────────────────────────────────────────────────

    def normalize(self, raw: dict[str, Any]) -> Opportunity:
        """Map a VolunteerHub opportunity dict to ``Opportunity``."""
        organization = raw.get("organization") or {}
        location = raw.get("location") or {}
        coords = location.get("coordinates")

        participants = raw.get("current_participants")
        if participants is None:
            participants = raw.get("max_participants")

        return Opportunity(
            id=str(raw["id"]),
            source=self.name,
            title=raw.get("title") or "Untitled",
            organization=organization.get("name") or "Unknown organization",
            description=raw.get("description") or "",
            location=location.get("address") or "",
            city=location.get("city") or "",
            country=location.get("country") or "",
            coordinates=Coordinates(latitude=coords["lat"], longitude=coords["lng"]) if coords else None,
            distance=raw.get("distance"),
            type="virtual" if raw.get("is_virtual") else "in-person",
            cause=raw.get("category") or "",
            skills=list(raw.get("skills_required") or []),
            time_commitment=raw.get("time_commitment") or "",
            date=raw.get("event_date") or "",
            participants=participants,
            contact_info=ContactInfo(
                email=organization.get("email"),
                phone=organization.get("phone"),
                website=organization.get("website"),
            ),
            external_url=raw.get("external_url") or "",
            image=raw.get("image_url"),
            last_updated=_parse_datetime(raw.get("updated_at")) or datetime.now(UTC),
            verified=bool(raw.get("verified", False)),
            application_deadline=_parse_datetime(raw.get("application_deadline")),
            requirements=raw.get("requirements"),
        )
