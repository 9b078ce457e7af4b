"""
Shared fixtures for the Plot Build-Stage Tracker tests.

All clocks are pinned: 2024-01-01 is a Monday.
"""

from datetime import datetime, timezone

import pytest

from infrastructure import InMemoryDatabase, InMemoryUnitOfWork
from model import StageTemplate
from service import PlotService, ReportService, ScheduleService, StageProgressionService

UTC = timezone.utc


def at(year, month, day, hour=0, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=UTC)


MONDAY = at(2024, 1, 1)
END_OF_MONTH = at(2024, 1, 31)

TWO_STAGES = (
    StageTemplate(name="Foundations", duration=5),
    StageTemplate(name="Brickwork", duration=3),
)

THREE_STAGES = (
    StageTemplate(name="Foundations", duration=5),
    StageTemplate(name="Brickwork", duration=3),
    StageTemplate(name="Roofing", duration=2),
)


@pytest.fixture
def monday():
    return MONDAY


@pytest.fixture
def progression():
    return StageProgressionService()


@pytest.fixture
def schedule():
    return ScheduleService()


@pytest.fixture
def reports():
    return ReportService()


@pytest.fixture
def two_stage_plot():
    return PlotService(TWO_STAGES).create_plot(
        "Plot 1", "1 High Street", MONDAY, END_OF_MONTH, now=MONDAY
    )


@pytest.fixture
def three_stage_plot():
    return PlotService(THREE_STAGES).create_plot(
        "Plot 2", "2 High Street", MONDAY, END_OF_MONTH, now=MONDAY
    )


@pytest.fixture
def uow():
    """A unit of work over an empty, test-private database."""
    return InMemoryUnitOfWork(InMemoryDatabase())
