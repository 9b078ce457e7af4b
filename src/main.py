"""
main.py

Entry point for the Plot Build-Stage Tracker API.

Loads settings from the environment, configures logging, wires the stage
catalog and the in-memory infrastructure into the FastAPI app and starts
uvicorn.

Usage
-----
    # Option 1: run directly
    python main.py

    # Option 2: run via uvicorn CLI (recommended for development)
    uvicorn main:app --reload --port 8000

    # Option 3: custom stage catalog
    PLOTS_STAGE_CATALOG=stages.json uvicorn main:app

Once running, open your browser at:
    http://localhost:8000/docs      ← Swagger UI  (try every endpoint interactively)
    http://localhost:8000/redoc     ← ReDoc
    http://localhost:8000/health    ← liveness check

Quick-start walkthrough (use Swagger UI or curl)
-------------------------------------------------
1.  GET   /api/v1/stage-templates                        — view the stage catalog
2.  POST  /api/v1/plots                                  — create a plot
3.  PATCH /api/v1/plots/{id}/stages/{sid}/status         — complete a stage
4.  POST  /api/v1/plots/{id}/stages/{sid}/delays         — record a delay
5.  GET   /api/v1/plots/{id}/summary                     — ahead / behind / on schedule
6.  GET   /api/v1/reports/portfolio                      — report across every plot
"""

import logging

import uvicorn

from api import app, get_catalog, get_uow
from config import configure_logging, load_settings
from infrastructure import InMemoryUnitOfWork

settings = load_settings()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

_catalog = settings.stage_catalog()
logger.info("Using a stage catalog of %d stages", len(_catalog))


# ---------------------------------------------------------------------------
# Wire the concrete Unit of Work and the configured catalog into the FastAPI
# dependency system.  To swap storage, replace InMemoryUnitOfWork.
# ---------------------------------------------------------------------------

app.dependency_overrides[get_uow] = lambda: InMemoryUnitOfWork()
app.dependency_overrides[get_catalog] = lambda: _catalog


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )
