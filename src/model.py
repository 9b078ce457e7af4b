"""
model.py

Domain models for the Plot Build-Stage Tracker.

Entities
--------
- StageTemplate
- Issue
- Delay
- Stage
- Plot
- PlotSummary
- CalendarEvent

All models use Python dataclasses for clean, framework-agnostic definitions.
Identifiers are opaque uuid4 strings.
Timestamps are always tz-aware UTC datetimes; ISO-8601 strings only appear
at the application boundary.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional


def new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class StageStatus(str, Enum):
    """Lifecycle status of an individual build stage."""
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    DELAYED = "delayed"       # Entered whenever a Delay is recorded; not terminal


class ScheduleStatus(str, Enum):
    """
    Classification of a plot against its target end date.

    AHEAD        – Remaining work-days are fewer than work-days left to the end date.
    BEHIND       – Remaining work-days exceed the work-days left.
    ON_SCHEDULE  – Both are equal.
    """
    AHEAD = "ahead"
    BEHIND = "behind"
    ON_SCHEDULE = "on-schedule"


class CalendarEventKind(str, Enum):
    START = "start"
    END = "end"


class CalendarEventSource(str, Enum):
    PLANNED = "planned"
    ACTUAL = "actual"


# ---------------------------------------------------------------------------
# Catalog Entities
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StageTemplate:
    """
    One entry of the ordered build-stage catalog.

    `duration` is the nominal length of the stage in work days (Mon–Fri).
    """
    name: str
    duration: int


# ---------------------------------------------------------------------------
# Stage Log Entities
# ---------------------------------------------------------------------------


@dataclass
class Issue:
    """
    A problem reported against a stage.

    Created unresolved; may be resolved exactly once.  `resolved_at` is fixed
    at the first resolution and never moves afterwards.
    """
    id: str = field(default_factory=new_id)
    description: str = ""
    created_at: datetime = field(default_factory=_utcnow)
    resolved: bool = False
    resolved_at: Optional[datetime] = None


@dataclass
class Delay:
    """
    Append-only record of work days added to a stage.

    Recording a delay forces the stage into DELAYED and adds `days_added`
    to the plot's remaining duration regardless of the stage's later status.
    """
    id: str = field(default_factory=new_id)
    reason: str = ""
    days_added: int = 0
    created_at: datetime = field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Core Plot Entities
# ---------------------------------------------------------------------------


@dataclass
class Stage:
    """
    A single build stage of a plot.

    Planned dates are derived once, at plot creation, from the catalog and the
    plot start date; they are read-only thereafter.  Actual dates are stamped
    by the progression engine as the stage moves through its lifecycle.

    `auto_completed` is True only when the stage was completed as a side
    effect of completing a later stage.  Any explicit status update clears it.
    """
    id: str = field(default_factory=new_id)
    name: str = ""
    duration: int = 0                   # Work days, copied from the template

    status: StageStatus = StageStatus.NOT_STARTED

    # Planned schedule (immutable after creation)
    planned_start_date: Optional[datetime] = None
    planned_end_date: Optional[datetime] = None

    # Actuals
    actual_start_date: Optional[datetime] = None
    actual_end_date: Optional[datetime] = None

    notes: str = ""
    issues: List[Issue] = field(default_factory=list)
    delays: List[Delay] = field(default_factory=list)
    auto_completed: bool = False

    @property
    def total_delay_days(self) -> int:
        return sum(d.days_added for d in self.delays)

    @property
    def open_issues(self) -> List[Issue]:
        return [i for i in self.issues if not i.resolved]


@dataclass
class Plot:
    """
    A construction plot and its full stage sequence.

    `stages` follows the stage catalog 1:1 in length and order; stages are
    never added or removed after creation.  `current_stage_id` always points
    at one of `stages`: the first stage not completed, or the last stage once
    everything is complete.
    """
    id: str = field(default_factory=new_id)
    name: str = ""
    address: str = ""

    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    current_stage_id: str = ""
    stages: List[Stage] = field(default_factory=list)
    notes: str = ""

    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def stage_index(self, stage_id: str) -> int:
        """Return the position of `stage_id` in the sequence, or -1."""
        for index, stage in enumerate(self.stages):
            if stage.id == stage_id:
                return index
        return -1

    def get_stage(self, stage_id: str) -> Optional[Stage]:
        index = self.stage_index(stage_id)
        return self.stages[index] if index >= 0 else None

    @property
    def current_stage(self) -> Optional[Stage]:
        return self.get_stage(self.current_stage_id)


# ---------------------------------------------------------------------------
# Derived Projections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PlotSummary:
    """Read-only schedule projection of a plot.  Recomputed on demand, never stored."""
    id: str
    name: str
    current_stage: str
    progress: int                   # 0 – 100
    days_remaining: int
    status: ScheduleStatus
    days_ahead_or_behind: int       # Always non-negative


@dataclass(frozen=True)
class CalendarEvent:
    """A stage start or end landing on a given calendar day."""
    plot_id: str
    plot_name: str
    stage_id: str
    stage_name: str
    kind: CalendarEventKind
    source: CalendarEventSource
