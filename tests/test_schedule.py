"""
Tests for progress, remaining duration and ahead/behind status.
"""

import json

import pytest

from catalog import load_catalog
from conftest import END_OF_MONTH, MONDAY, at
from model import ScheduleStatus, StageStatus, StageTemplate
from service import NOT_STARTED_LABEL, PlotService

WEDNESDAY = at(2024, 1, 3)
MUCH_LATER = at(2024, 3, 1)


def _complete(progression, plot, *indexes):
    for index in indexes:
        plot = progression.update_stage_status(
            plot, plot.stages[index].id, StageStatus.COMPLETED, now=MONDAY
        )
    return plot


class TestProgress:
    def test_progress_steps(self, progression, schedule, three_stage_plot):
        plot = three_stage_plot
        assert schedule.calculate_progress(plot) == 0
        plot = _complete(progression, plot, 0)
        assert schedule.calculate_progress(plot) == 33
        plot = _complete(progression, plot, 1)
        assert schedule.calculate_progress(plot) == 67
        plot = _complete(progression, plot, 2)
        assert schedule.calculate_progress(plot) == 100

    def test_half_rounds_up(self, progression, schedule):
        """One of eight stages is 12.5%, reported as 13."""
        catalog = [StageTemplate(name=f"Stage {n}", duration=1) for n in range(8)]
        plot = PlotService(catalog).create_plot("P", "A", MONDAY, END_OF_MONTH, now=MONDAY)
        plot = _complete(progression, plot, 0)
        assert schedule.calculate_progress(plot) == 13

    def test_empty_plot(self, schedule):
        plot = PlotService(()).create_plot("P", "A", MONDAY, END_OF_MONTH, now=MONDAY)
        assert schedule.calculate_progress(plot) == 0

    def test_long_catalog_reaches_100_only_when_finished(self, progression, schedule, tmp_path):
        """199 of 200 stages would round to 100; it must report 99."""
        path = tmp_path / "stages.json"
        path.write_text(json.dumps([{"name": f"Stage {n}", "duration": 1} for n in range(200)]))
        plot = PlotService(load_catalog(path)).create_plot("P", "A", MONDAY, END_OF_MONTH, now=MONDAY)

        plot = progression.update_stage_status(
            plot, plot.stages[-2].id, StageStatus.COMPLETED, now=MONDAY
        )
        assert plot.stages[-1].status == StageStatus.IN_PROGRESS
        assert schedule.calculate_progress(plot) == 99

        plot = _complete(progression, plot, 199)
        assert schedule.calculate_progress(plot) == 100

    def test_delayed_stage_does_not_count_as_complete(self, progression, schedule, two_stage_plot):
        plot = _complete(progression, two_stage_plot, 0)
        plot = progression.add_stage_delay(plot, plot.stages[0].id, "Rework", 1)
        assert schedule.calculate_progress(plot) == 0


class TestRemainingDuration:
    @pytest.mark.parametrize(
        "today, expected",
        [
            (MONDAY, 7),       # 5 - 1 elapsed + 3
            (WEDNESDAY, 5),    # 5 - 3 elapsed + 3
            (MUCH_LATER, 3),   # in-progress stage floors at zero
        ],
    )
    def test_in_progress_stage_counts_down(self, schedule, two_stage_plot, today, expected):
        assert schedule.calculate_remaining_duration(two_stage_plot, today) == expected

    def test_completed_stages_count_nothing(self, progression, schedule, two_stage_plot):
        plot = _complete(progression, two_stage_plot, 1)
        assert schedule.calculate_remaining_duration(plot, MONDAY) == 0

    def test_completed_plot_leaves_only_delays(self, progression, schedule, two_stage_plot):
        plot = _complete(progression, two_stage_plot, 1)
        plot = progression.add_stage_delay(plot, plot.stages[0].id, "Rework", 4)
        assert schedule.calculate_remaining_duration(plot, MONDAY) == 4

    def test_delay_on_completed_stage_adds_exactly(self, progression, schedule, three_stage_plot):
        plot = _complete(progression, three_stage_plot, 0)
        before = schedule.calculate_remaining_duration(plot, MONDAY)
        plot = progression.add_stage_delay(plot, plot.stages[0].id, "Rework", 3)
        assert schedule.calculate_remaining_duration(plot, MONDAY) == before + 3

    def test_delayed_stage_drops_its_own_duration(self, progression, schedule, two_stage_plot):
        plot = progression.add_stage_delay(two_stage_plot, two_stage_plot.stages[1].id, "Rain", 2)
        # stage one: 5 - 1; stage two: delayed, so only its delay counts
        assert schedule.calculate_remaining_duration(plot, MONDAY) == 4 + 2


class TestPlotStatus:
    def test_ahead(self, schedule, two_stage_plot):
        """23 work days in January against 7 remaining."""
        result = schedule.calculate_plot_status(two_stage_plot, MONDAY)
        assert result == {"status": ScheduleStatus.AHEAD, "days_ahead_or_behind": 16}

    def test_behind(self, progression, schedule, two_stage_plot):
        plot = progression.add_stage_delay(two_stage_plot, two_stage_plot.stages[1].id, "Rain", 20)
        result = schedule.calculate_plot_status(plot, MONDAY)
        assert result == {"status": ScheduleStatus.BEHIND, "days_ahead_or_behind": 1}

    def test_on_schedule(self, progression, schedule, two_stage_plot):
        plot = progression.add_stage_delay(two_stage_plot, two_stage_plot.stages[1].id, "Rain", 19)
        result = schedule.calculate_plot_status(plot, MONDAY)
        assert result == {"status": ScheduleStatus.ON_SCHEDULE, "days_ahead_or_behind": 0}

    def test_past_end_date_with_work_left_is_behind(self, schedule, two_stage_plot):
        result = schedule.calculate_plot_status(two_stage_plot, MUCH_LATER)
        assert result == {"status": ScheduleStatus.BEHIND, "days_ahead_or_behind": 3}


class TestPlotSummary:
    def test_summary_fields(self, schedule, two_stage_plot):
        summary = schedule.get_plot_summary(two_stage_plot, MONDAY)
        assert summary.id == two_stage_plot.id
        assert summary.name == "Plot 1"
        assert summary.current_stage == "Foundations"
        assert summary.progress == 0
        assert summary.days_remaining == 7
        assert summary.status == ScheduleStatus.AHEAD
        assert summary.days_ahead_or_behind == 16

    def test_missing_current_stage_uses_label(self, schedule):
        plot = PlotService(()).create_plot("P", "A", MONDAY, END_OF_MONTH, now=MONDAY)
        assert schedule.get_plot_summary(plot, MONDAY).current_stage == NOT_STARTED_LABEL == "Not started"
