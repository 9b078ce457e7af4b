"""
api.py

REST API layer for the Plot Build-Stage Tracker.

Framework : FastAPI
Auth      : none; the tracker assumes a single local user editing one plot
            at a time.

Structure
---------
  Routers (all prefixed under /api/v1)
  ├── /stage-templates              — the build-stage catalog
  ├── /plots                        — plot CRUD, notes
  │   ├── /{plot_id}/stages/{stage_id}/status   — status changes & cascade
  │   ├── /{plot_id}/stages/{stage_id}/notes    — stage notes
  │   ├── /{plot_id}/stages/{stage_id}/issues   — issues & resolution
  │   ├── /{plot_id}/stages/{stage_id}/delays   — delays
  │   ├── /{plot_id}/summary        — schedule summary
  │   └── /{plot_id}/report         — detailed single-plot report
  ├── /summaries                    — summaries for every plot
  ├── /reports/portfolio            — cross-plot report
  ├── /calendar                     — stage starts/ends on a given day
  └── /calendar/month               — days of a month that have events

Error handling
--------------
  NotFoundError      → 404
  ValidationError    → 422
  ApplicationError   → 422
  ValueError         → 422
  Unhandled          → 500 (FastAPI default)

Response envelope
-----------------
  Success  : { "data": <payload> }
  Error    : { "detail": "<message>" }

Running
-------
  uvicorn api:app --reload
"""

from __future__ import annotations

import dataclasses
import logging
from datetime import date
from typing import Any, Dict, Optional, Sequence

from fastapi import APIRouter, Depends, FastAPI, Path, Query, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi_mcp import FastApiMCP
from pydantic import BaseModel, Field, field_validator

from application import (
    # Exceptions
    ApplicationError,
    NotFoundError,
    ValidationError,
    # Use-case commands
    AddPlotNoteCommand,
    AddStageDelayCommand,
    AddStageIssueCommand,
    AddStageNoteCommand,
    CreatePlotCommand,
    ResolveStageIssueCommand,
    UpdatePlotCommand,
    UpdateStageStatusCommand,
    # Use-case classes
    AddPlotNoteUseCase,
    AddStageDelayUseCase,
    AddStageIssueUseCase,
    AddStageNoteUseCase,
    CreatePlotUseCase,
    DeletePlotUseCase,
    GetCalendarEventsUseCase,
    GetCalendarMonthUseCase,
    GetPlotReportUseCase,
    GetPlotSummaryUseCase,
    GetPlotUseCase,
    GetPortfolioReportUseCase,
    ListPlotSummariesUseCase,
    ListPlotsUseCase,
    ListStageTemplatesUseCase,
    ResolveStageIssueUseCase,
    UpdatePlotUseCase,
    UpdateStageStatusUseCase,
    AbstractUnitOfWork,
)
from catalog import DEFAULT_BUILD_STAGES
from infrastructure import InMemoryUnitOfWork
from model import StageStatus, StageTemplate

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# App bootstrap
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Plot Build-Stage Tracker API",
    version="1.0.0",
    description=(
        "REST API for tracking construction plots through a fixed sequence of "
        "build stages: status changes with automatic completion cascades, "
        "notes, issues, delays, schedule summaries and portfolio reports."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Global exception handlers
# ---------------------------------------------------------------------------

@app.exception_handler(NotFoundError)
async def not_found_handler(request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def validation_error_handler(request, exc: ValidationError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(ApplicationError)
async def application_error_handler(request, exc: ApplicationError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(ValueError)
async def value_error_handler(request, exc: ValueError):
    logger.warning("Rejected request %s: %s", request.url.path, exc)
    return JSONResponse(status_code=422, content={"detail": str(exc)})


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_uow() -> AbstractUnitOfWork:
    """Returns the in-memory Unit of Work (no database required)."""
    return InMemoryUnitOfWork()


def get_catalog() -> Sequence[StageTemplate]:
    """Returns the stage catalog new plots are built from.  Overridden in main.py."""
    return DEFAULT_BUILD_STAGES


# ---------------------------------------------------------------------------
# Envelope helper
# ---------------------------------------------------------------------------

def _ok(data: Any) -> Dict:
    """Wrap a DTO or list of DTOs in the standard success envelope."""
    if dataclasses.is_dataclass(data):
        return {"data": dataclasses.asdict(data)}
    if isinstance(data, list):
        return {
            "data": [
                dataclasses.asdict(item) if dataclasses.is_dataclass(item) else item
                for item in data
            ]
        }
    return {"data": data}


# ===========================================================================
# REQUEST BODY SCHEMAS  (Pydantic v2)
# ===========================================================================

# ---------------------------------------------------------------------------
# Plot schemas
# ---------------------------------------------------------------------------

class CreatePlotRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    address: str = Field(..., min_length=1, max_length=500)
    start_date: str = Field(..., description="ISO-8601 date or date-time")
    end_date: str = Field(..., description="ISO-8601 date or date-time; must be after start_date")


class UpdatePlotRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    address: Optional[str] = Field(default=None, min_length=1, max_length=500)


class NoteRequest(BaseModel):
    note: str = Field(..., min_length=1, max_length=5000)


# ---------------------------------------------------------------------------
# Stage schemas
# ---------------------------------------------------------------------------

class UpdateStageStatusRequest(BaseModel):
    status: str = Field(
        ..., description="One of: not-started, in-progress, completed, delayed"
    )

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        valid = {s.value for s in StageStatus}
        if v not in valid:
            raise ValueError(f"status must be one of: {sorted(valid)}")
        return v


class AddIssueRequest(BaseModel):
    description: str = Field(..., min_length=1, max_length=2000)


class AddDelayRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)
    days_added: int = Field(..., ge=1, strict=True)


# ===========================================================================
# ROUTERS
# ===========================================================================

api_v1 = APIRouter(prefix="/api/v1")


# ---------------------------------------------------------------------------
# Stage templates
# ---------------------------------------------------------------------------

template_router = APIRouter(prefix="/stage-templates", tags=["Stage Templates"])


@template_router.get("", summary="List the build-stage catalog in order")
def list_stage_templates(catalog: Sequence[StageTemplate] = Depends(get_catalog)):
    return _ok(ListStageTemplatesUseCase(catalog).execute())


# ---------------------------------------------------------------------------
# Plots
# ---------------------------------------------------------------------------

plot_router = APIRouter(prefix="/plots", tags=["Plots"])


@plot_router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create a new plot",
    response_description="The created plot with its full stage sequence.",
)
def create_plot(
    body: CreatePlotRequest,
    uow: AbstractUnitOfWork = Depends(get_uow),
    catalog: Sequence[StageTemplate] = Depends(get_catalog),
):
    """
    Seeds one stage per catalog entry with planned dates laid end to end in
    work days from the start date.  The first stage starts immediately.
    """
    cmd = CreatePlotCommand(
        name=body.name,
        address=body.address,
        start_date=body.start_date,
        end_date=body.end_date,
    )
    return _ok(CreatePlotUseCase(catalog).execute(cmd, uow))


@plot_router.get("", summary="List all plots")
def list_plots(uow: AbstractUnitOfWork = Depends(get_uow)):
    return _ok(ListPlotsUseCase().execute(uow))


@plot_router.get("/{plot_id}", summary="Get a plot by ID")
def get_plot(
    plot_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    return _ok(GetPlotUseCase().execute(plot_id, uow))


@plot_router.patch("/{plot_id}", summary="Update plot name or address")
def update_plot(
    body: UpdatePlotRequest,
    plot_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    cmd = UpdatePlotCommand(plot_id=plot_id, name=body.name, address=body.address)
    return _ok(UpdatePlotUseCase().execute(cmd, uow))


@plot_router.delete(
    "/{plot_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a plot and all of its stages",
)
def delete_plot(
    plot_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    DeletePlotUseCase().execute(plot_id, uow)


@plot_router.post("/{plot_id}/notes", summary="Append a dated note to the plot")
def add_plot_note(
    body: NoteRequest,
    plot_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    cmd = AddPlotNoteCommand(plot_id=plot_id, note=body.note)
    return _ok(AddPlotNoteUseCase().execute(cmd, uow))


@plot_router.get("/{plot_id}/summary", summary="Schedule summary for one plot")
def get_plot_summary(
    plot_id: str = Path(...),
    today: Optional[str] = Query(default=None, description="ISO-8601; defaults to now"),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    return _ok(GetPlotSummaryUseCase().execute(plot_id, uow, today=today))


@plot_router.get("/{plot_id}/report", summary="Detailed report for one plot")
def get_plot_report(
    plot_id: str = Path(...),
    today: Optional[str] = Query(default=None, description="ISO-8601; defaults to now"),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    """
    Schedule position, then every stage in order with its actual dates,
    delays and issues, then the plot notes.
    """
    return _ok(GetPlotReportUseCase().execute(plot_id, uow, today=today))


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------

stage_router = APIRouter(prefix="/plots/{plot_id}/stages", tags=["Stages"])


@stage_router.patch(
    "/{stage_id}/status",
    summary="Change a stage's status",
)
def update_stage_status(
    body: UpdateStageStatusRequest,
    plot_id: str = Path(...),
    stage_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    """
    Completing a stage also completes every earlier stage that is not yet
    complete (flagged auto_completed) and moves the plot's current stage on
    to the next unfinished stage, starting it.  Returns the whole plot.
    """
    cmd = UpdateStageStatusCommand(plot_id=plot_id, stage_id=stage_id, status=body.status)
    return _ok(UpdateStageStatusUseCase().execute(cmd, uow))


@stage_router.post("/{stage_id}/notes", summary="Append a dated note to a stage")
def add_stage_note(
    body: NoteRequest,
    plot_id: str = Path(...),
    stage_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    cmd = AddStageNoteCommand(plot_id=plot_id, stage_id=stage_id, note=body.note)
    return _ok(AddStageNoteUseCase().execute(cmd, uow))


@stage_router.post(
    "/{stage_id}/issues",
    status_code=status.HTTP_201_CREATED,
    summary="Report an issue on a stage",
)
def add_stage_issue(
    body: AddIssueRequest,
    plot_id: str = Path(...),
    stage_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    cmd = AddStageIssueCommand(plot_id=plot_id, stage_id=stage_id, description=body.description)
    return _ok(AddStageIssueUseCase().execute(cmd, uow))


@stage_router.post(
    "/{stage_id}/issues/{issue_id}/resolve",
    summary="Resolve an issue",
)
def resolve_stage_issue(
    plot_id: str = Path(...),
    stage_id: str = Path(...),
    issue_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    cmd = ResolveStageIssueCommand(plot_id=plot_id, stage_id=stage_id, issue_id=issue_id)
    return _ok(ResolveStageIssueUseCase().execute(cmd, uow))


@stage_router.post(
    "/{stage_id}/delays",
    status_code=status.HTTP_201_CREATED,
    summary="Record a delay on a stage",
)
def add_stage_delay(
    body: AddDelayRequest,
    plot_id: str = Path(...),
    stage_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    """The stage is set to delayed, even if it had already been completed."""
    cmd = AddStageDelayCommand(
        plot_id=plot_id,
        stage_id=stage_id,
        reason=body.reason,
        days_added=body.days_added,
    )
    return _ok(AddStageDelayUseCase().execute(cmd, uow))


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

report_router = APIRouter(tags=["Reports"])


@report_router.get("/summaries", summary="Schedule summaries for every plot")
def list_plot_summaries(
    today: Optional[str] = Query(default=None, description="ISO-8601; defaults to now"),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    return _ok(ListPlotSummariesUseCase().execute(uow, today=today))


@report_router.get("/reports/portfolio", summary="Cross-plot progress report")
def get_portfolio_report(
    today: Optional[str] = Query(default=None, description="ISO-8601; defaults to now"),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    return _ok(GetPortfolioReportUseCase().execute(uow, today=today))


@report_router.get("/calendar", summary="Stage starts and ends on a given day")
def get_calendar(
    day: date = Query(..., alias="date", description="YYYY-MM-DD"),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    return _ok(GetCalendarEventsUseCase().execute(day, uow))


@report_router.get("/calendar/month", summary="Days of a month with stage starts or ends")
def get_calendar_month(
    year: int = Query(..., ge=1, le=9999),
    month: int = Query(..., ge=1, le=12),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    return _ok(GetCalendarMonthUseCase().execute(year, month, uow))


# ---------------------------------------------------------------------------
# Register routers
# ---------------------------------------------------------------------------

api_v1.include_router(template_router)
api_v1.include_router(plot_router)
api_v1.include_router(stage_router)
api_v1.include_router(report_router)

app.include_router(api_v1)


@app.get("/health", tags=["Health"], summary="Liveness check")
def health():
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# MCP Server: exposes all API routes as MCP tools
# Accessible at: http://localhost:8000/mcp
# ---------------------------------------------------------------------------
mcp = FastApiMCP(app)
mcp.mount()


# ---------------------------------------------------------------------------
# OpenAPI tag metadata
# ---------------------------------------------------------------------------

tags_metadata = [
    {
        "name": "Stage Templates",
        "description": "The fixed, ordered list of build stages every new plot follows.",
    },
    {
        "name": "Plots",
        "description": (
            "Construction plots.  Each plot owns one stage per catalog entry; "
            "stages are never added or removed after creation."
        ),
    },
    {
        "name": "Stages",
        "description": (
            "Stage status changes with the completion cascade, plus append-only "
            "notes, issues and delays."
        ),
    },
    {
        "name": "Reports",
        "description": (
            "Derived, read-only views: schedule summaries, the portfolio report "
            "and the day calendar."
        ),
    },
]

app.openapi_tags = tags_metadata
