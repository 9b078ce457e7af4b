"""
service.py

Service layer for the Plot Build-Stage Tracker.

Responsibilities
----------------
Each service class encapsulates the business logic for its concern.
Services receive and return domain model instances (from model.py).
No persistence is handled here; callers are responsible for storing
and retrieving plots via a repository of their choosing.

Services
--------
- PlotService               – Plot factory and metadata edits
- StageProgressionService   – Stage status transitions, cascades, notes,
                              issues and delays
- ScheduleService           – Progress, remaining duration, ahead/behind
- ReportService             – Portfolio and plot reports, calendar events

Design notes
------------
- Every mutating method returns a NEW Plot; the plot passed in is never
  modified, so callers can keep the previous value as a snapshot.
- Unknown stage or issue ids are not errors: the input plot is returned
  unchanged and a warning is logged.
- Business rule violations on inputs raise ValueError with a descriptive
  message before anything is changed.
- Every method that reads the clock accepts an optional `now` / `today`
  so callers and tests can pin it.
"""

from __future__ import annotations

import copy
import logging
import math
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence

from catalog import DEFAULT_BUILD_STAGES, total_duration
from model import (
    CalendarEvent,
    CalendarEventKind,
    CalendarEventSource,
    Delay,
    Issue,
    Plot,
    PlotSummary,
    ScheduleStatus,
    Stage,
    StageStatus,
    StageTemplate,
)
from workdays import (
    add_work_days,
    format_date,
    get_work_days_between,
    to_day_stamp,
    utcnow,
)

logger = logging.getLogger(__name__)

NOT_STARTED_LABEL = "Not started"

STAGE_STATUS_LABELS = {
    StageStatus.NOT_STARTED: "Not Started",
    StageStatus.IN_PROGRESS: "In Progress",
    StageStatus.COMPLETED: "Completed",
    StageStatus.DELAYED: "Delayed",
}


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _require_text(value: str, field_name: str) -> str:
    """Raise ValueError if a required free-text field is empty."""
    if value is None or not str(value).strip():
        raise ValueError(f"{field_name} must not be empty.")
    return str(value).strip()


def _append_log_line(log: str, text: str, now: datetime) -> str:
    """Append a 'YYYY-MM-DD: text' entry to a free-text log."""
    entry = f"{to_day_stamp(now)}: {text}"
    return f"{log}\n\n{entry}" if log else entry


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# ---------------------------------------------------------------------------
# PlotService
# ---------------------------------------------------------------------------

class PlotService:
    """
    Builds new plots from the stage catalog and edits plot metadata.
    """

    def __init__(self, catalog: Sequence[StageTemplate] = DEFAULT_BUILD_STAGES):
        self.catalog = tuple(catalog)

    def create_plot(
        self,
        name: str,
        address: str,
        start_date: datetime,
        end_date: datetime,
        now: Optional[datetime] = None,
    ) -> Plot:
        """
        Create and return a new Plot (unsaved) with one stage per catalog entry.

        Each stage's planned start is the previous stage's planned end (the
        plot start for the first stage); its planned end is the planned start
        plus the template duration in work days.  The first stage starts
        in progress on the plot start date.

        The caller is responsible for checking that end_date is after
        start_date; see validate_plot_dates().
        """
        now = now or utcnow()
        stages: List[Stage] = []
        planned_start = start_date

        for index, template in enumerate(self.catalog):
            planned_end = add_work_days(planned_start, template.duration)
            first = index == 0
            stages.append(
                Stage(
                    name=template.name,
                    duration=template.duration,
                    status=StageStatus.IN_PROGRESS if first else StageStatus.NOT_STARTED,
                    planned_start_date=planned_start,
                    planned_end_date=planned_end,
                    actual_start_date=start_date if first else None,
                )
            )
            planned_start = planned_end

        plot = Plot(
            name=name,
            address=address,
            start_date=start_date,
            end_date=end_date,
            current_stage_id=stages[0].id if stages else "",
            stages=stages,
            created_at=now,
            updated_at=now,
        )
        logger.debug(
            "Built plot %s with %d stages, planned finish %s",
            plot.id,
            len(stages),
            stages[-1].planned_end_date if stages else None,
        )
        return plot

    @staticmethod
    def validate_plot_dates(start_date: datetime, end_date: datetime) -> None:
        if end_date <= start_date:
            raise ValueError("end_date must be after start_date.")

    def update_plot(
        self,
        plot: Plot,
        name: Optional[str] = None,
        address: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Plot:
        """Apply field-level updates to a plot's descriptive metadata."""
        updated = copy.deepcopy(plot)
        if name is not None:
            updated.name = _require_text(name, "name")
        if address is not None:
            updated.address = _require_text(address, "address")
        updated.updated_at = now or utcnow()
        return updated


# ---------------------------------------------------------------------------
# StageProgressionService
# ---------------------------------------------------------------------------

class StageProgressionService:
    """
    The stage state machine.

        not-started ──> in-progress ──> completed
              │               │              │
              └───────────────┴──> delayed <─┘   (whenever a Delay is recorded)

    `delayed` is left only through an explicit status update.  Completing a
    stage completes every earlier stage that is not already complete and
    moves the current-stage pointer forward.
    """

    # --- Status -------------------------------------------------------------

    def update_stage_status(
        self,
        plot: Plot,
        stage_id: str,
        new_status: StageStatus,
        now: Optional[datetime] = None,
    ) -> Plot:
        """
        Set a stage's status and apply the completion cascade.

        1. Completing stage k (k > 0) marks every earlier, not yet completed
           stage as completed and auto_completed.
        2. The target stage takes the new status and loses any auto flag.
        3. If the completed stage was the current one, the pointer moves to
           the next stage, which is put in progress.  If another stage was
           completed, the pointer moves to the first stage not completed,
           starting it if it had not started, or to the last stage once
           every stage is complete.
        """
        index = plot.stage_index(stage_id)
        if index < 0:
            logger.warning("Plot %s has no stage %s; status unchanged", plot.id, stage_id)
            return plot

        now = now or utcnow()
        new_status = StageStatus(new_status)
        updated = copy.deepcopy(plot)
        stages = updated.stages
        completing = new_status == StageStatus.COMPLETED

        if completing and index > 0:
            for earlier in stages[:index]:
                if earlier.status != StageStatus.COMPLETED:
                    earlier.status = StageStatus.COMPLETED
                    earlier.actual_start_date = earlier.actual_start_date or now
                    earlier.actual_end_date = now
                    earlier.auto_completed = True
                    logger.debug("Auto-completed stage %r on plot %s", earlier.name, plot.id)

        target = stages[index]
        target.status = new_status
        target.auto_completed = False
        if new_status == StageStatus.IN_PROGRESS and target.actual_start_date is None:
            target.actual_start_date = now
        elif completing and target.actual_end_date is None:
            target.actual_end_date = now

        if completing:
            if stage_id == plot.current_stage_id:
                if index < len(stages) - 1:
                    following = stages[index + 1]
                    updated.current_stage_id = following.id
                    following.status = StageStatus.IN_PROGRESS
                    following.actual_start_date = now
            else:
                first_open = next(
                    (s for s in stages if s.status != StageStatus.COMPLETED), None
                )
                if first_open is None:
                    updated.current_stage_id = stages[-1].id
                else:
                    updated.current_stage_id = first_open.id
                    if first_open.status == StageStatus.NOT_STARTED:
                        first_open.status = StageStatus.IN_PROGRESS
                        first_open.actual_start_date = now

            if updated.current_stage_id != plot.current_stage_id:
                logger.debug(
                    "Plot %s current stage moved to %r",
                    plot.id,
                    updated.current_stage.name if updated.current_stage else None,
                )

        updated.updated_at = now
        return updated

    # --- Delays -------------------------------------------------------------

    def add_stage_delay(
        self,
        plot: Plot,
        stage_id: str,
        reason: str,
        days_added: int,
        now: Optional[datetime] = None,
    ) -> Plot:
        """
        Record a delay against a stage and force the stage into DELAYED.

        The status is overwritten unconditionally, including on a completed
        stage.
        """
        if isinstance(days_added, bool) or not isinstance(days_added, int) or days_added < 1:
            raise ValueError("days_added must be a positive whole number of days.")
        reason = _require_text(reason, "reason")

        index = plot.stage_index(stage_id)
        if index < 0:
            logger.warning("Plot %s has no stage %s; delay ignored", plot.id, stage_id)
            return plot

        now = now or utcnow()
        updated = copy.deepcopy(plot)
        stage = updated.stages[index]
        stage.delays.append(Delay(reason=reason, days_added=days_added, created_at=now))
        stage.status = StageStatus.DELAYED
        updated.updated_at = now
        logger.debug(
            "Stage %r on plot %s delayed by %d days", stage.name, plot.id, days_added
        )
        return updated

    # --- Issues -------------------------------------------------------------

    def add_stage_issue(
        self,
        plot: Plot,
        stage_id: str,
        description: str,
        now: Optional[datetime] = None,
    ) -> Plot:
        """Append an unresolved issue to a stage.  Stage status is untouched."""
        description = _require_text(description, "description")
        index = plot.stage_index(stage_id)
        if index < 0:
            logger.warning("Plot %s has no stage %s; issue ignored", plot.id, stage_id)
            return plot

        now = now or utcnow()
        updated = copy.deepcopy(plot)
        updated.stages[index].issues.append(Issue(description=description, created_at=now))
        updated.updated_at = now
        return updated

    def resolve_stage_issue(
        self,
        plot: Plot,
        stage_id: str,
        issue_id: str,
        now: Optional[datetime] = None,
    ) -> Plot:
        """
        Mark one issue resolved.  Resolving twice keeps the first resolved_at.
        """
        stage = plot.get_stage(stage_id)
        if stage is None:
            logger.warning("Plot %s has no stage %s; issue not resolved", plot.id, stage_id)
            return plot
        issue = next((i for i in stage.issues if i.id == issue_id), None)
        if issue is None:
            logger.warning("Stage %s has no issue %s", stage_id, issue_id)
            return plot
        if issue.resolved:
            return plot

        now = now or utcnow()
        updated = copy.deepcopy(plot)
        target = next(i for i in updated.get_stage(stage_id).issues if i.id == issue_id)
        target.resolved = True
        target.resolved_at = now
        updated.updated_at = now
        return updated

    # --- Notes --------------------------------------------------------------

    def add_stage_note(
        self,
        plot: Plot,
        stage_id: str,
        note: str,
        now: Optional[datetime] = None,
    ) -> Plot:
        """Append a dated line to a stage's notes."""
        note = _require_text(note, "note")
        index = plot.stage_index(stage_id)
        if index < 0:
            logger.warning("Plot %s has no stage %s; note ignored", plot.id, stage_id)
            return plot

        now = now or utcnow()
        updated = copy.deepcopy(plot)
        stage = updated.stages[index]
        stage.notes = _append_log_line(stage.notes, note, now)
        updated.updated_at = now
        return updated

    def add_plot_note(
        self,
        plot: Plot,
        note: str,
        now: Optional[datetime] = None,
    ) -> Plot:
        """Append a dated line to the plot's notes."""
        note = _require_text(note, "note")
        now = now or utcnow()
        updated = copy.deepcopy(plot)
        updated.notes = _append_log_line(updated.notes, note, now)
        updated.updated_at = now
        return updated


# ---------------------------------------------------------------------------
# ScheduleService
# ---------------------------------------------------------------------------

class ScheduleService:
    """
    Derives read-only schedule figures from a plot.
    """

    def calculate_progress(self, plot: Plot) -> int:
        """
        Percentage of stages completed, rounded half up (0 – 100).

        100 is reserved for a plot whose every stage is completed; with a
        long catalog a nearly finished plot reports 99.
        """
        if not plot.stages:
            return 0
        completed = sum(1 for s in plot.stages if s.status == StageStatus.COMPLETED)
        if completed == len(plot.stages):
            return 100
        return min(99, _round_half_up(100 * completed / len(plot.stages)))

    def calculate_remaining_duration(
        self, plot: Plot, today: Optional[datetime] = None
    ) -> int:
        """
        Work days still to go.

        Not-started stages count in full.  An in-progress stage counts its
        duration less the work days elapsed since it actually started, never
        below zero.  Every recorded delay on every stage is added on top,
        whatever that stage's status.  Delayed and completed stages add
        nothing of their own.
        """
        today = today or utcnow()
        remaining = 0
        for stage in plot.stages:
            if stage.status == StageStatus.NOT_STARTED:
                remaining += stage.duration
            elif stage.status == StageStatus.IN_PROGRESS and stage.actual_start_date:
                elapsed = get_work_days_between(stage.actual_start_date, today)
                remaining += max(0, stage.duration - elapsed)

        return remaining + sum(s.total_delay_days for s in plot.stages)

    def calculate_plot_status(
        self, plot: Plot, today: Optional[datetime] = None
    ) -> Dict[str, object]:
        """
        Compare remaining work against the work days left before end_date.

        Returns {"status": ScheduleStatus, "days_ahead_or_behind": int}.
        """
        today = today or utcnow()
        remaining = self.calculate_remaining_duration(plot, today)
        available = get_work_days_between(today, plot.end_date)

        if remaining < available:
            return {"status": ScheduleStatus.AHEAD, "days_ahead_or_behind": available - remaining}
        if remaining > available:
            return {"status": ScheduleStatus.BEHIND, "days_ahead_or_behind": remaining - available}
        return {"status": ScheduleStatus.ON_SCHEDULE, "days_ahead_or_behind": 0}

    def get_plot_summary(self, plot: Plot, today: Optional[datetime] = None) -> PlotSummary:
        today = today or utcnow()
        current = plot.current_stage
        schedule = self.calculate_plot_status(plot, today)
        return PlotSummary(
            id=plot.id,
            name=plot.name,
            current_stage=current.name if current else NOT_STARTED_LABEL,
            progress=self.calculate_progress(plot),
            days_remaining=self.calculate_remaining_duration(plot, today),
            status=schedule["status"],
            days_ahead_or_behind=schedule["days_ahead_or_behind"],
        )


# ---------------------------------------------------------------------------
# ReportService
# ---------------------------------------------------------------------------

class ReportService:
    """
    Roll-ups: the portfolio report, the single-plot report and the calendar.
    """

    def __init__(self, schedule: Optional[ScheduleService] = None):
        self.schedule = schedule or ScheduleService()

    def generate_portfolio_report(
        self, plots: List[Plot], today: Optional[datetime] = None
    ) -> Dict:
        """
        Produce a structured report dict suitable for serialisation to JSON.

        The report includes:
        - Status counts across all plots
        - Plot summaries, highest progress first
        - Unresolved issues grouped by plot
        - Delays grouped by plot with their total days
        """
        today = today or utcnow()
        summaries = [self.schedule.get_plot_summary(p, today) for p in plots]

        counts = {status.value: 0 for status in ScheduleStatus}
        for summary in summaries:
            counts[summary.status.value] += 1

        open_issues = []
        delays = []
        for plot in plots:
            plot_issues = [
                {
                    "issue_id": issue.id,
                    "stage_id": stage.id,
                    "stage_name": stage.name,
                    "description": issue.description,
                    "created_at": issue.created_at,
                }
                for stage in plot.stages
                for issue in stage.open_issues
            ]
            if plot_issues:
                open_issues.append(
                    {"plot_id": plot.id, "plot_name": plot.name, "issues": plot_issues}
                )

            plot_delays = [
                {
                    "delay_id": delay.id,
                    "stage_id": stage.id,
                    "stage_name": stage.name,
                    "reason": delay.reason,
                    "days_added": delay.days_added,
                    "created_at": delay.created_at,
                }
                for stage in plot.stages
                for delay in stage.delays
            ]
            if plot_delays:
                delays.append(
                    {
                        "plot_id": plot.id,
                        "plot_name": plot.name,
                        "total_days": sum(d["days_added"] for d in plot_delays),
                        "delays": plot_delays,
                    }
                )

        return {
            "generated_on": format_date(today),
            "total_plots": len(plots),
            "status_counts": counts,
            "summaries": sorted(summaries, key=lambda s: s.progress, reverse=True),
            "open_issues": open_issues,
            "delays": delays,
        }

    def generate_plot_report(self, plot: Plot, today: Optional[datetime] = None) -> Dict:
        """
        Detailed report for one plot: schedule position, then every stage in
        order with its actual dates, delays and issues, then the plot notes.
        """
        today = today or utcnow()
        summary = self.schedule.get_plot_summary(plot, today)

        stages = []
        for position, stage in enumerate(plot.stages, start=1):
            stages.append(
                {
                    "position": position,
                    "stage_id": stage.id,
                    "name": stage.name,
                    "status": stage.status,
                    "status_label": STAGE_STATUS_LABELS[stage.status],
                    "actual_start_date": stage.actual_start_date,
                    "actual_end_date": stage.actual_end_date,
                    "delay_days": stage.total_delay_days,
                    "delays": [
                        {"reason": d.reason, "days_added": d.days_added} for d in stage.delays
                    ],
                    "open_issue_count": len(stage.open_issues),
                    "issues": [
                        {"description": i.description, "resolved": i.resolved}
                        for i in stage.issues
                    ],
                }
            )

        return {
            "generated_on": format_date(today),
            "plot_id": plot.id,
            "name": plot.name,
            "address": plot.address,
            "start_date": plot.start_date,
            "end_date": plot.end_date,
            "planned_work_days": total_duration(plot.stages),
            "summary": summary,
            "schedule_label": _schedule_label(summary.status, summary.days_ahead_or_behind),
            "stages": stages,
            "notes": plot.notes,
        }

    def calendar_events(self, plots: List[Plot], day: date) -> List[CalendarEvent]:
        """
        Planned and actual stage starts and ends falling on `day`.

        Auto-completed stages are left out entirely: their actual dates
        record when the cascade ran, not when work happened.
        """
        if isinstance(day, datetime):
            day = day.date()

        events: List[CalendarEvent] = []
        for plot in plots:
            for stage in plot.stages:
                for when, kind, source in _stage_dates(stage):
                    if when.date() == day:
                        events.append(
                            CalendarEvent(
                                plot_id=plot.id,
                                plot_name=plot.name,
                                stage_id=stage.id,
                                stage_name=stage.name,
                                kind=kind,
                                source=source,
                            )
                        )
        return events

    def calendar_month_days(self, plots: List[Plot], year: int, month: int) -> List[date]:
        """Days of the given month with at least one calendar event, in order."""
        if not 1 <= month <= 12:
            raise ValueError("month must be between 1 and 12.")
        days = {
            when.date()
            for plot in plots
            for stage in plot.stages
            for when, _, _ in _stage_dates(stage)
            if when.year == year and when.month == month
        }
        return sorted(days)


def _stage_dates(stage: Stage):
    """(datetime, kind, source) for each date set on a stage; none if auto-completed."""
    if stage.auto_completed:
        return []
    candidates = (
        (stage.planned_start_date, CalendarEventKind.START, CalendarEventSource.PLANNED),
        (stage.planned_end_date, CalendarEventKind.END, CalendarEventSource.PLANNED),
        (stage.actual_start_date, CalendarEventKind.START, CalendarEventSource.ACTUAL),
        (stage.actual_end_date, CalendarEventKind.END, CalendarEventSource.ACTUAL),
    )
    return [c for c in candidates if c[0] is not None]


def _schedule_label(status: ScheduleStatus, days: int) -> str:
    if status == ScheduleStatus.AHEAD:
        return f"{days} days ahead of schedule"
    if status == ScheduleStatus.BEHIND:
        return f"{days} days behind schedule"
    return "On schedule"
