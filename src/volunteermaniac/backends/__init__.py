"""Backend layer — Pluggable connectors for volunteer-opportunity APIs.

Built-in backends:
  - volunteerhub: VolunteerHub REST API (geo search by lat/lng/radius)

Implement ``BackendClient`` (or ``HTTPBackendClient`` for HTTP/JSON APIs) to
connect your own source.
"""
