"""VolunteerManiac — Aggregated volunteer-opportunity search across unreliable third-party APIs."""

__version__ = "0.1.0"
