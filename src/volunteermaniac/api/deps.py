"""API dependencies — Dependency injection for FastAPI endpoints."""

from __future__ import annotations

from fastapi import Request

from volunteermaniac.core.engine import SearchEngine


def get_engine(request: Request) -> SearchEngine:
    """Get the search engine owned by the running application.

    The engine lives on ``app.state`` (set during the application lifespan),
    so each app instance, including each test client, has its own.

    Raises:
        RuntimeError: If the engine is not initialized.
    """
    engine: SearchEngine | None = getattr(request.app.state, "engine", None)
    if engine is None:
        raise RuntimeError("VolunteerManiac engine not initialized. Is the server running?")
    return engine
