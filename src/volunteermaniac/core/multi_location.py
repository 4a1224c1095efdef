"""Multi-location helpers — Grouping, merging and statistics.

The engine runs one single-location search per geocoded target and hands
the outcomes to these functions:

  - ``merge_opportunities`` flattens the successful groups, tagging every
    opportunity with the location it was found for
  - ``compute_statistics`` builds the per-location counters
  - ``merge_results`` folds the per-target aggregated results into one
    set of sources, errors and service statuses
"""

from __future__ import annotations

from volunteermaniac.models.location import LocationContext
from volunteermaniac.models.opportunity import Opportunity
from volunteermaniac.models.response import AggregatedResult, LocationCount, LocationGroup, SearchStatistics
from volunteermaniac.models.result import APIError, ServiceStatus


def merge_opportunities(groups: list[LocationGroup]) -> list[Opportunity]:
    """Concatenate the opportunities of successful groups, in group order."""
    merged: list[Opportunity] = []
    for group in groups:
        if not group.search_success or group.location.coordinates is None:
            continue
        context = LocationContext(
            original_input=group.location.original_input,
            display_location=group.location.display_location,
            coordinates=group.location.coordinates,
        )
        merged.extend(opportunity.with_search_context(context) for opportunity in group.opportunities)
    return merged


def compute_statistics(groups: list[LocationGroup]) -> SearchStatistics:
    total = len(groups)
    successful = sum(1 for group in groups if group.search_success)
    opportunities = sum(len(group.opportunities) for group in groups)
    return SearchStatistics(
        total_locations=total,
        successful_locations=successful,
        failed_locations=total - successful,
        total_opportunities=opportunities,
        average_opportunities_per_location=round(opportunities / successful) if successful else 0,
        location_breakdown=[
            LocationCount(location=group.location.label, count=len(group.opportunities)) for group in groups
        ],
    )


def merge_results(
    results: list[AggregatedResult],
) -> tuple[list[str], list[APIError], list[ServiceStatus]]:
    """Union of sources, errors and statuses over several aggregated results.

    Sources keep first-seen order. Errors and statuses are kept once per
    backend; an unhealthy status wins over a healthy one for the same backend.
    """
    sources: list[str] = []
    errors: dict[str, APIError] = {}
    statuses: dict[str, ServiceStatus] = {}

    for result in results:
        for source in result.sources:
            if source not in sources:
                sources.append(source)
        for error in result.errors or []:
            errors.setdefault(error.source, error)
        for status in result.service_statuses:
            current = statuses.get(status.service_name)
            if current is None or (current.healthy and not status.healthy):
                statuses[status.service_name] = status

    return sources, list(errors.values()), list(statuses.values())
