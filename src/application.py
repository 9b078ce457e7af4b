"""
application.py

Application layer for the Plot Build-Stage Tracker.

Overview
--------
The application layer sits between the presentation layer (API / UI) and the
domain / service layer.  It is responsible for:

  1. Defining clean output DTOs (dataclasses) that carry only the data
     the presentation layer needs; no raw domain objects are leaked upward.
  2. Declaring the abstract PlotRepository so that the application layer
     remains fully persistence-agnostic (implementations live in
     infrastructure.py).
  3. Declaring the UnitOfWork abstraction so that every cascade produced by
     a single use case is stored as one replacement of the plot.
  4. Validating raw input (ISO dates, positive delay days, non-empty text)
     before any service is called.
  5. Implementing Use Case handlers, one class per user-facing operation.

Structure
---------
DTOs
    StageTemplateDTO, IssueDTO, DelayDTO, StageDTO, PlotDTO
    PlotSummaryDTO, CalendarEventDTO, PortfolioReportDTO
    PlotReportDTO, CalendarMonthDTO

Repository interfaces
    AbstractPlotRepository

Unit of Work
    AbstractUnitOfWork

Use Cases
    --- Catalog ---
    ListStageTemplatesUseCase

    --- Plot management ---
    CreatePlotUseCase
    UpdatePlotUseCase
    GetPlotUseCase
    ListPlotsUseCase
    DeletePlotUseCase
    AddPlotNoteUseCase

    --- Stage progression ---
    UpdateStageStatusUseCase
    AddStageNoteUseCase
    AddStageIssueUseCase
    ResolveStageIssueUseCase
    AddStageDelayUseCase

    --- Schedule & reporting ---
    GetPlotSummaryUseCase
    ListPlotSummariesUseCase
    GetPortfolioReportUseCase
    GetCalendarEventsUseCase
    GetPlotReportUseCase
    GetCalendarMonthUseCase

Design notes
------------
- Use cases receive commands and return DTOs only; no domain objects cross
  the application boundary.
- Each use case accepts a UnitOfWork as its sole persistence dependency.
- All timestamps flowing in and out are ISO-8601 strings (UTC).
- Errors bubble up as NotFoundError (unknown id), ValidationError (bad
  input) or ApplicationError (any other business rule).
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

from catalog import DEFAULT_BUILD_STAGES
from model import (
    CalendarEvent,
    Delay,
    Issue,
    Plot,
    PlotSummary,
    Stage,
    StageStatus,
    StageTemplate,
)
from service import (
    PlotService,
    ReportService,
    ScheduleService,
    StageProgressionService,
)
from workdays import parse_iso, to_iso

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ApplicationError(Exception):
    """Raised when a use case cannot complete due to a business rule violation."""


class NotFoundError(ApplicationError):
    """Raised when a requested plot, stage or issue does not exist."""


class ValidationError(ApplicationError):
    """Raised when input is rejected before any change is attempted."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _parse_date(value: str, field_name: str) -> datetime:
    try:
        return parse_iso(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field_name} is not a valid ISO-8601 date: {value!r}") from exc


def _parse_status(value: Any) -> StageStatus:
    try:
        return StageStatus(value)
    except ValueError as exc:
        valid = sorted(s.value for s in StageStatus)
        raise ValidationError(f"status must be one of: {valid}") from exc


def _require_text(value: Optional[str], field_name: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{field_name} must not be empty.")
    return value.strip()


# ===========================================================================
# DTO DEFINITIONS
# ===========================================================================

@dataclass
class StageTemplateDTO:
    position: int
    name: str
    duration: int


@dataclass
class IssueDTO:
    id: str
    description: str
    created_at: str
    resolved: bool
    resolved_at: Optional[str]


@dataclass
class DelayDTO:
    id: str
    reason: str
    days_added: int
    created_at: str


@dataclass
class StageDTO:
    id: str
    name: str
    duration: int
    status: str
    planned_start_date: Optional[str]
    planned_end_date: Optional[str]
    actual_start_date: Optional[str]
    actual_end_date: Optional[str]
    notes: str
    issues: List[IssueDTO]
    delays: List[DelayDTO]
    auto_completed: bool


@dataclass
class PlotDTO:
    id: str
    name: str
    address: str
    start_date: Optional[str]
    end_date: Optional[str]
    current_stage_id: str
    stages: List[StageDTO]
    notes: str
    created_at: str
    updated_at: str


@dataclass
class PlotSummaryDTO:
    id: str
    name: str
    current_stage: str
    progress: int
    days_remaining: int
    status: str
    days_ahead_or_behind: int


@dataclass
class CalendarEventDTO:
    plot_id: str
    plot_name: str
    stage_id: str
    stage_name: str
    kind: str
    source: str


@dataclass
class OpenIssueDTO:
    issue_id: str
    stage_id: str
    stage_name: str
    description: str
    created_at: str


@dataclass
class PlotOpenIssuesDTO:
    plot_id: str
    plot_name: str
    issues: List[OpenIssueDTO]


@dataclass
class DelayEntryDTO:
    delay_id: str
    stage_id: str
    stage_name: str
    reason: str
    days_added: int
    created_at: str


@dataclass
class PlotDelaysDTO:
    plot_id: str
    plot_name: str
    total_days: int
    delays: List[DelayEntryDTO]


@dataclass
class PortfolioReportDTO:
    """Cross-plot report: status counts, summaries, open issues, delays."""
    generated_on: str
    total_plots: int
    ahead: int
    on_schedule: int
    behind: int
    summaries: List[PlotSummaryDTO]
    open_issues: List[PlotOpenIssuesDTO]
    delays: List[PlotDelaysDTO]


@dataclass
class ReportDelayDTO:
    reason: str
    days_added: int


@dataclass
class ReportIssueDTO:
    description: str
    resolved: bool


@dataclass
class PlotReportStageDTO:
    position: int
    stage_id: str
    name: str
    status: str
    status_label: str
    actual_start_date: Optional[str]
    actual_end_date: Optional[str]
    delay_days: int
    delays: List[ReportDelayDTO]
    open_issue_count: int
    issues: List[ReportIssueDTO]


@dataclass
class PlotReportDTO:
    """Single-plot report: schedule position, every stage in order, notes."""
    generated_on: str
    plot_id: str
    name: str
    address: str
    start_date: Optional[str]
    end_date: Optional[str]
    planned_work_days: int
    summary: PlotSummaryDTO
    schedule_label: str
    stages: List[PlotReportStageDTO]
    notes: str


@dataclass
class CalendarMonthDTO:
    year: int
    month: int
    days: List[str]         # YYYY-MM-DD, each with at least one event


# ===========================================================================
# DTO ASSEMBLERS
# ===========================================================================

class _Assembler:
    """Converts domain model instances into DTOs."""

    @staticmethod
    def template(position: int, t: StageTemplate) -> StageTemplateDTO:
        return StageTemplateDTO(position=position, name=t.name, duration=t.duration)

    @staticmethod
    def issue(i: Issue) -> IssueDTO:
        return IssueDTO(
            id=i.id,
            description=i.description,
            created_at=to_iso(i.created_at),
            resolved=i.resolved,
            resolved_at=to_iso(i.resolved_at),
        )

    @staticmethod
    def delay(d: Delay) -> DelayDTO:
        return DelayDTO(
            id=d.id,
            reason=d.reason,
            days_added=d.days_added,
            created_at=to_iso(d.created_at),
        )

    @staticmethod
    def stage(s: Stage) -> StageDTO:
        return StageDTO(
            id=s.id,
            name=s.name,
            duration=s.duration,
            status=s.status.value,
            planned_start_date=to_iso(s.planned_start_date),
            planned_end_date=to_iso(s.planned_end_date),
            actual_start_date=to_iso(s.actual_start_date),
            actual_end_date=to_iso(s.actual_end_date),
            notes=s.notes,
            issues=[_Assembler.issue(i) for i in s.issues],
            delays=[_Assembler.delay(d) for d in s.delays],
            auto_completed=s.auto_completed,
        )

    @staticmethod
    def plot(p: Plot) -> PlotDTO:
        return PlotDTO(
            id=p.id,
            name=p.name,
            address=p.address,
            start_date=to_iso(p.start_date),
            end_date=to_iso(p.end_date),
            current_stage_id=p.current_stage_id,
            stages=[_Assembler.stage(s) for s in p.stages],
            notes=p.notes,
            created_at=to_iso(p.created_at),
            updated_at=to_iso(p.updated_at),
        )

    @staticmethod
    def summary(s: PlotSummary) -> PlotSummaryDTO:
        return PlotSummaryDTO(
            id=s.id,
            name=s.name,
            current_stage=s.current_stage,
            progress=s.progress,
            days_remaining=s.days_remaining,
            status=s.status.value,
            days_ahead_or_behind=s.days_ahead_or_behind,
        )

    @staticmethod
    def calendar_event(e: CalendarEvent) -> CalendarEventDTO:
        return CalendarEventDTO(
            plot_id=e.plot_id,
            plot_name=e.plot_name,
            stage_id=e.stage_id,
            stage_name=e.stage_name,
            kind=e.kind.value,
            source=e.source.value,
        )

    @staticmethod
    def portfolio(report: Dict) -> PortfolioReportDTO:
        counts = report["status_counts"]
        return PortfolioReportDTO(
            generated_on=report["generated_on"],
            total_plots=report["total_plots"],
            ahead=counts["ahead"],
            on_schedule=counts["on-schedule"],
            behind=counts["behind"],
            summaries=[_Assembler.summary(s) for s in report["summaries"]],
            open_issues=[
                PlotOpenIssuesDTO(
                    plot_id=row["plot_id"],
                    plot_name=row["plot_name"],
                    issues=[
                        OpenIssueDTO(
                            issue_id=i["issue_id"],
                            stage_id=i["stage_id"],
                            stage_name=i["stage_name"],
                            description=i["description"],
                            created_at=to_iso(i["created_at"]),
                        )
                        for i in row["issues"]
                    ],
                )
                for row in report["open_issues"]
            ],
            delays=[
                PlotDelaysDTO(
                    plot_id=row["plot_id"],
                    plot_name=row["plot_name"],
                    total_days=row["total_days"],
                    delays=[
                        DelayEntryDTO(
                            delay_id=d["delay_id"],
                            stage_id=d["stage_id"],
                            stage_name=d["stage_name"],
                            reason=d["reason"],
                            days_added=d["days_added"],
                            created_at=to_iso(d["created_at"]),
                        )
                        for d in row["delays"]
                    ],
                )
                for row in report["delays"]
            ],
        )

    @staticmethod
    def plot_report(report: Dict) -> PlotReportDTO:
        return PlotReportDTO(
            generated_on=report["generated_on"],
            plot_id=report["plot_id"],
            name=report["name"],
            address=report["address"],
            start_date=to_iso(report["start_date"]),
            end_date=to_iso(report["end_date"]),
            planned_work_days=report["planned_work_days"],
            summary=_Assembler.summary(report["summary"]),
            schedule_label=report["schedule_label"],
            stages=[
                PlotReportStageDTO(
                    position=row["position"],
                    stage_id=row["stage_id"],
                    name=row["name"],
                    status=row["status"].value,
                    status_label=row["status_label"],
                    actual_start_date=to_iso(row["actual_start_date"]),
                    actual_end_date=to_iso(row["actual_end_date"]),
                    delay_days=row["delay_days"],
                    delays=[ReportDelayDTO(**d) for d in row["delays"]],
                    open_issue_count=row["open_issue_count"],
                    issues=[ReportIssueDTO(**i) for i in row["issues"]],
                )
                for row in report["stages"]
            ],
            notes=report["notes"],
        )


# ===========================================================================
# REPOSITORY INTERFACES
# ===========================================================================

class AbstractPlotRepository(abc.ABC):
    @abc.abstractmethod
    def get(self, plot_id: str) -> Optional[Plot]: ...
    @abc.abstractmethod
    def list_all(self) -> List[Plot]: ...
    @abc.abstractmethod
    def save(self, plot: Plot) -> None: ...
    @abc.abstractmethod
    def delete(self, plot_id: str) -> None: ...


# ===========================================================================
# UNIT OF WORK
# ===========================================================================

class AbstractUnitOfWork(abc.ABC):
    """
    Groups repositories under a single transactional boundary.
    Use as a context manager:

        with uow:
            uow.plots.save(plot)
            uow.commit()
    """
    plots: AbstractPlotRepository

    def __enter__(self) -> "AbstractUnitOfWork":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type:
            self.rollback()
        else:
            self.commit()

    @abc.abstractmethod
    def commit(self) -> None: ...

    @abc.abstractmethod
    def rollback(self) -> None: ...


# ===========================================================================
# SERVICE SINGLETONS (shared across use cases)
# ===========================================================================

_progression_svc = StageProgressionService()
_schedule_svc = ScheduleService()
_report_svc = ReportService(_schedule_svc)


# ===========================================================================
# USE CASE HELPERS
# ===========================================================================

def _get_plot_or_raise(uow: AbstractUnitOfWork, plot_id: str) -> Plot:
    plot = uow.plots.get(plot_id)
    if plot is None:
        raise NotFoundError(f"Plot {plot_id} not found.")
    return plot


def _get_stage_or_raise(plot: Plot, stage_id: str) -> Stage:
    stage = plot.get_stage(stage_id)
    if stage is None:
        raise NotFoundError(f"Stage {stage_id} not found on plot {plot.id}.")
    return stage


def _parse_today(value: Optional[str]) -> Optional[datetime]:
    return _parse_date(value, "today") if value else None


# ===========================================================================
# USE CASES: CATALOG
# ===========================================================================

class ListStageTemplatesUseCase:
    def __init__(self, catalog: Sequence[StageTemplate] = DEFAULT_BUILD_STAGES):
        self.catalog = catalog

    def execute(self) -> List[StageTemplateDTO]:
        return [_Assembler.template(i, t) for i, t in enumerate(self.catalog, start=1)]


# ===========================================================================
# USE CASES: PLOT MANAGEMENT
# ===========================================================================

@dataclass
class CreatePlotCommand:
    name: str
    address: str
    start_date: str     # ISO-8601
    end_date: str       # ISO-8601


class CreatePlotUseCase:
    """
    Create a new plot seeded with one stage per catalog entry.
    """

    def __init__(self, catalog: Sequence[StageTemplate] = DEFAULT_BUILD_STAGES):
        self._plot_svc = PlotService(catalog)

    def execute(self, cmd: CreatePlotCommand, uow: AbstractUnitOfWork) -> PlotDTO:
        name = _require_text(cmd.name, "name")
        address = _require_text(cmd.address, "address")
        start = _parse_date(cmd.start_date, "start_date")
        end = _parse_date(cmd.end_date, "end_date")
        try:
            self._plot_svc.validate_plot_dates(start, end)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        with uow:
            plot = self._plot_svc.create_plot(name, address, start, end)
            uow.plots.save(plot)
            uow.commit()
            logger.info("Created plot %s (%s) with %d stages", plot.id, plot.name, len(plot.stages))
            return _Assembler.plot(plot)


@dataclass
class UpdatePlotCommand:
    plot_id: str
    name: Optional[str] = None
    address: Optional[str] = None


class UpdatePlotUseCase:
    def __init__(self):
        self._plot_svc = PlotService()

    def execute(self, cmd: UpdatePlotCommand, uow: AbstractUnitOfWork) -> PlotDTO:
        with uow:
            plot = _get_plot_or_raise(uow, cmd.plot_id)
            try:
                plot = self._plot_svc.update_plot(plot, name=cmd.name, address=cmd.address)
            except ValueError as exc:
                raise ValidationError(str(exc)) from exc
            uow.plots.save(plot)
            uow.commit()
            return _Assembler.plot(plot)


class GetPlotUseCase:
    def execute(self, plot_id: str, uow: AbstractUnitOfWork) -> PlotDTO:
        with uow:
            return _Assembler.plot(_get_plot_or_raise(uow, plot_id))


class ListPlotsUseCase:
    def execute(self, uow: AbstractUnitOfWork) -> List[PlotDTO]:
        with uow:
            return [_Assembler.plot(p) for p in uow.plots.list_all()]


class DeletePlotUseCase:
    """Plots are deleted as a whole; stages cannot be removed individually."""

    def execute(self, plot_id: str, uow: AbstractUnitOfWork) -> None:
        with uow:
            _get_plot_or_raise(uow, plot_id)
            uow.plots.delete(plot_id)
            uow.commit()
            logger.info("Deleted plot %s", plot_id)


@dataclass
class AddPlotNoteCommand:
    plot_id: str
    note: str


class AddPlotNoteUseCase:
    def execute(self, cmd: AddPlotNoteCommand, uow: AbstractUnitOfWork) -> PlotDTO:
        note = _require_text(cmd.note, "note")
        with uow:
            plot = _get_plot_or_raise(uow, cmd.plot_id)
            plot = _progression_svc.add_plot_note(plot, note)
            uow.plots.save(plot)
            uow.commit()
            return _Assembler.plot(plot)


# ===========================================================================
# USE CASES: STAGE PROGRESSION
# ===========================================================================

@dataclass
class UpdateStageStatusCommand:
    plot_id: str
    stage_id: str
    status: str


class UpdateStageStatusUseCase:
    """
    Apply an explicit status change, including the completion cascade and
    current-stage pointer maintenance, as one stored change.
    """

    def execute(self, cmd: UpdateStageStatusCommand, uow: AbstractUnitOfWork) -> PlotDTO:
        status = _parse_status(cmd.status)
        with uow:
            plot = _get_plot_or_raise(uow, cmd.plot_id)
            _get_stage_or_raise(plot, cmd.stage_id)
            plot = _progression_svc.update_stage_status(plot, cmd.stage_id, status)
            uow.plots.save(plot)
            uow.commit()
            return _Assembler.plot(plot)


@dataclass
class AddStageNoteCommand:
    plot_id: str
    stage_id: str
    note: str


class AddStageNoteUseCase:
    def execute(self, cmd: AddStageNoteCommand, uow: AbstractUnitOfWork) -> StageDTO:
        note = _require_text(cmd.note, "note")
        with uow:
            plot = _get_plot_or_raise(uow, cmd.plot_id)
            _get_stage_or_raise(plot, cmd.stage_id)
            plot = _progression_svc.add_stage_note(plot, cmd.stage_id, note)
            uow.plots.save(plot)
            uow.commit()
            return _Assembler.stage(plot.get_stage(cmd.stage_id))


@dataclass
class AddStageIssueCommand:
    plot_id: str
    stage_id: str
    description: str


class AddStageIssueUseCase:
    def execute(self, cmd: AddStageIssueCommand, uow: AbstractUnitOfWork) -> StageDTO:
        description = _require_text(cmd.description, "description")
        with uow:
            plot = _get_plot_or_raise(uow, cmd.plot_id)
            _get_stage_or_raise(plot, cmd.stage_id)
            plot = _progression_svc.add_stage_issue(plot, cmd.stage_id, description)
            uow.plots.save(plot)
            uow.commit()
            return _Assembler.stage(plot.get_stage(cmd.stage_id))


@dataclass
class ResolveStageIssueCommand:
    plot_id: str
    stage_id: str
    issue_id: str


class ResolveStageIssueUseCase:
    """Resolving an already resolved issue succeeds and changes nothing."""

    def execute(self, cmd: ResolveStageIssueCommand, uow: AbstractUnitOfWork) -> StageDTO:
        with uow:
            plot = _get_plot_or_raise(uow, cmd.plot_id)
            stage = _get_stage_or_raise(plot, cmd.stage_id)
            if not any(i.id == cmd.issue_id for i in stage.issues):
                raise NotFoundError(f"Issue {cmd.issue_id} not found on stage {cmd.stage_id}.")
            plot = _progression_svc.resolve_stage_issue(plot, cmd.stage_id, cmd.issue_id)
            uow.plots.save(plot)
            uow.commit()
            return _Assembler.stage(plot.get_stage(cmd.stage_id))


@dataclass
class AddStageDelayCommand:
    plot_id: str
    stage_id: str
    reason: str
    days_added: Any


class AddStageDelayUseCase:
    """
    Record a delay.  The stage is forced into DELAYED even when it was
    already completed.
    """

    def execute(self, cmd: AddStageDelayCommand, uow: AbstractUnitOfWork) -> StageDTO:
        reason = _require_text(cmd.reason, "reason")
        days = cmd.days_added
        if isinstance(days, bool) or not isinstance(days, int) or days < 1:
            raise ValidationError("days_added must be a positive whole number of days.")
        with uow:
            plot = _get_plot_or_raise(uow, cmd.plot_id)
            _get_stage_or_raise(plot, cmd.stage_id)
            plot = _progression_svc.add_stage_delay(plot, cmd.stage_id, reason, days)
            uow.plots.save(plot)
            uow.commit()
            return _Assembler.stage(plot.get_stage(cmd.stage_id))


# ===========================================================================
# USE CASES: SCHEDULE & REPORTING
# ===========================================================================

class GetPlotSummaryUseCase:
    def execute(
        self, plot_id: str, uow: AbstractUnitOfWork, today: Optional[str] = None
    ) -> PlotSummaryDTO:
        when = _parse_today(today)
        with uow:
            plot = _get_plot_or_raise(uow, plot_id)
            return _Assembler.summary(_schedule_svc.get_plot_summary(plot, when))


class ListPlotSummariesUseCase:
    def execute(self, uow: AbstractUnitOfWork, today: Optional[str] = None) -> List[PlotSummaryDTO]:
        when = _parse_today(today)
        with uow:
            return [
                _Assembler.summary(_schedule_svc.get_plot_summary(p, when))
                for p in uow.plots.list_all()
            ]


class GetPortfolioReportUseCase:
    def execute(self, uow: AbstractUnitOfWork, today: Optional[str] = None) -> PortfolioReportDTO:
        when = _parse_today(today)
        with uow:
            report = _report_svc.generate_portfolio_report(uow.plots.list_all(), when)
            return _Assembler.portfolio(report)


class GetCalendarEventsUseCase:
    def execute(self, day: date, uow: AbstractUnitOfWork) -> List[CalendarEventDTO]:
        with uow:
            events = _report_svc.calendar_events(uow.plots.list_all(), day)
            return [_Assembler.calendar_event(e) for e in events]


class GetPlotReportUseCase:
    def execute(
        self, plot_id: str, uow: AbstractUnitOfWork, today: Optional[str] = None
    ) -> PlotReportDTO:
        when = _parse_today(today)
        with uow:
            plot = _get_plot_or_raise(uow, plot_id)
            return _Assembler.plot_report(_report_svc.generate_plot_report(plot, when))


class GetCalendarMonthUseCase:
    """Days of a month that carry at least one stage start or end."""

    def execute(self, year: int, month: int, uow: AbstractUnitOfWork) -> CalendarMonthDTO:
        if not 1 <= month <= 12:
            raise ValidationError("month must be between 1 and 12.")
        with uow:
            days = _report_svc.calendar_month_days(uow.plots.list_all(), year, month)
            return CalendarMonthDTO(year=year, month=month, days=[d.isoformat() for d in days])
