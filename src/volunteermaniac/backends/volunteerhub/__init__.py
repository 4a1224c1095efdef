from volunteermaniac.backends.volunteerhub.client import VolunteerHubClient

__all__ = ["VolunteerHubClient"]
