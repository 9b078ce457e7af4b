"""
Tests for the use-case layer over the in-memory unit of work.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import date

import pytest

from application import (
    AddPlotNoteCommand,
    AddPlotNoteUseCase,
    AddStageDelayCommand,
    AddStageDelayUseCase,
    AddStageIssueCommand,
    AddStageIssueUseCase,
    CreatePlotCommand,
    CreatePlotUseCase,
    DeletePlotUseCase,
    GetCalendarEventsUseCase,
    GetCalendarMonthUseCase,
    GetPlotReportUseCase,
    GetPlotSummaryUseCase,
    GetPlotUseCase,
    GetPortfolioReportUseCase,
    ListPlotsUseCase,
    ListPlotSummariesUseCase,
    ListStageTemplatesUseCase,
    NotFoundError,
    ResolveStageIssueCommand,
    ResolveStageIssueUseCase,
    UpdatePlotCommand,
    UpdatePlotUseCase,
    UpdateStageStatusCommand,
    UpdateStageStatusUseCase,
    ValidationError,
)
from conftest import THREE_STAGES, TWO_STAGES
from infrastructure import InMemoryDatabase, InMemoryUnitOfWork


@pytest.fixture
def plot_dto(uow):
    cmd = CreatePlotCommand(
        name="Plot 7", address="7 Mill Lane", start_date="2024-01-01", end_date="2024-01-31"
    )
    return CreatePlotUseCase(THREE_STAGES).execute(cmd, uow)


class TestCatalogAndCreate:
    def test_list_templates_numbers_from_one(self):
        templates = ListStageTemplatesUseCase(TWO_STAGES).execute()
        assert [(t.position, t.name, t.duration) for t in templates] == [
            (1, "Foundations", 5),
            (2, "Brickwork", 3),
        ]

    def test_create_persists_plot(self, uow, plot_dto):
        assert plot_dto.name == "Plot 7"
        assert [s.name for s in plot_dto.stages] == ["Foundations", "Brickwork", "Roofing"]
        assert plot_dto.stages[0].status == "in-progress"
        assert plot_dto.stages[0].planned_end_date == "2024-01-08T00:00:00+00:00"
        assert plot_dto.current_stage_id == plot_dto.stages[0].id
        assert GetPlotUseCase().execute(plot_dto.id, uow) == plot_dto

    @pytest.mark.parametrize(
        "name, address, start, end",
        [
            ("", "Addr", "2024-01-01", "2024-01-31"),
            ("Plot", "   ", "2024-01-01", "2024-01-31"),
            ("Plot", "Addr", "yesterday", "2024-01-31"),
            ("Plot", "Addr", "2024-01-31", "2024-01-01"),
            ("Plot", "Addr", "2024-01-01", "2024-01-01"),
        ],
    )
    def test_create_rejects_bad_input(self, uow, name, address, start, end):
        with pytest.raises(ValidationError):
            CreatePlotUseCase().execute(CreatePlotCommand(name, address, start, end), uow)
        assert ListPlotsUseCase().execute(uow) == []


class TestPlotManagement:
    def test_update_and_note(self, uow, plot_dto):
        updated = UpdatePlotUseCase().execute(
            UpdatePlotCommand(plot_id=plot_dto.id, address="7a Mill Lane"), uow
        )
        assert updated.address == "7a Mill Lane"
        assert updated.name == "Plot 7"

        noted = AddPlotNoteUseCase().execute(AddPlotNoteCommand(plot_dto.id, "Scaffold up"), uow)
        assert noted.notes.endswith(": Scaffold up")

    def test_update_rejects_blank_name(self, uow, plot_dto):
        with pytest.raises(ValidationError):
            UpdatePlotUseCase().execute(UpdatePlotCommand(plot_id=plot_dto.id, name=""), uow)
        assert GetPlotUseCase().execute(plot_dto.id, uow).name == "Plot 7"

    def test_delete(self, uow, plot_dto):
        DeletePlotUseCase().execute(plot_dto.id, uow)
        assert ListPlotsUseCase().execute(uow) == []
        with pytest.raises(NotFoundError):
            GetPlotUseCase().execute(plot_dto.id, uow)
        with pytest.raises(NotFoundError):
            DeletePlotUseCase().execute(plot_dto.id, uow)

    def test_unknown_plot(self, uow):
        with pytest.raises(NotFoundError):
            GetPlotUseCase().execute("missing", uow)
        with pytest.raises(NotFoundError):
            AddPlotNoteUseCase().execute(AddPlotNoteCommand("missing", "Hello"), uow)


class TestStageUseCases:
    def test_status_cascade_is_stored(self, uow, plot_dto):
        last = plot_dto.stages[2].id
        result = UpdateStageStatusUseCase().execute(
            UpdateStageStatusCommand(plot_dto.id, last, "completed"), uow
        )
        assert [s.status for s in result.stages] == ["completed"] * 3
        assert [s.auto_completed for s in result.stages] == [True, True, False]
        assert GetPlotUseCase().execute(plot_dto.id, uow) == result

    def test_status_rejects_unknown_value(self, uow, plot_dto):
        with pytest.raises(ValidationError):
            UpdateStageStatusUseCase().execute(
                UpdateStageStatusCommand(plot_dto.id, plot_dto.stages[0].id, "finished"), uow
            )

    def test_status_unknown_stage(self, uow, plot_dto):
        with pytest.raises(NotFoundError):
            UpdateStageStatusUseCase().execute(
                UpdateStageStatusCommand(plot_dto.id, "missing", "completed"), uow
            )

    def test_issue_lifecycle(self, uow, plot_dto):
        stage_id = plot_dto.stages[0].id
        stage = AddStageIssueUseCase().execute(
            AddStageIssueCommand(plot_dto.id, stage_id, "Soft spot"), uow
        )
        issue_id = stage.issues[0].id
        resolved = ResolveStageIssueUseCase().execute(
            ResolveStageIssueCommand(plot_dto.id, stage_id, issue_id), uow
        )
        assert resolved.issues[0].resolved is True
        first_resolution = resolved.issues[0].resolved_at

        again = ResolveStageIssueUseCase().execute(
            ResolveStageIssueCommand(plot_dto.id, stage_id, issue_id), uow
        )
        assert again.issues[0].resolved_at == first_resolution

        with pytest.raises(NotFoundError):
            ResolveStageIssueUseCase().execute(
                ResolveStageIssueCommand(plot_dto.id, stage_id, "missing"), uow
            )

    @pytest.mark.parametrize("days", [0, -2, 1.5, "3", True])
    def test_delay_rejects_bad_days(self, uow, plot_dto, days):
        with pytest.raises(ValidationError):
            AddStageDelayUseCase().execute(
                AddStageDelayCommand(plot_dto.id, plot_dto.stages[0].id, "Rain", days), uow
            )
        stored = GetPlotUseCase().execute(plot_dto.id, uow)
        assert stored.stages[0].delays == []

    def test_delay_recorded(self, uow, plot_dto):
        stage = AddStageDelayUseCase().execute(
            AddStageDelayCommand(plot_dto.id, plot_dto.stages[1].id, "Rain", 2), uow
        )
        assert stage.status == "delayed"
        assert [(d.reason, d.days_added) for d in stage.delays] == [("Rain", 2)]


class TestReadModels:
    def test_summary_with_pinned_day(self, uow, plot_dto):
        summary = GetPlotSummaryUseCase().execute(plot_dto.id, uow, today="2024-01-01")
        assert summary.current_stage == "Foundations"
        assert summary.days_remaining == 9
        assert summary.status == "ahead"
        assert summary.days_ahead_or_behind == 14

    def test_summary_rejects_bad_day(self, uow, plot_dto):
        with pytest.raises(ValidationError):
            GetPlotSummaryUseCase().execute(plot_dto.id, uow, today="soon")

    def test_list_summaries_and_portfolio(self, uow, plot_dto):
        assert [s.id for s in ListPlotSummariesUseCase().execute(uow, "2024-01-01")] == [plot_dto.id]
        report = GetPortfolioReportUseCase().execute(uow, "2024-01-01")
        assert report.generated_on == "01 Jan 2024"
        assert (report.total_plots, report.ahead, report.on_schedule, report.behind) == (1, 1, 0, 0)

    def test_calendar(self, uow, plot_dto):
        events = GetCalendarEventsUseCase().execute(date(2024, 1, 8), uow)
        assert {(e.stage_name, e.kind, e.source) for e in events} == {
            ("Foundations", "end", "planned"),
            ("Brickwork", "start", "planned"),
        }

    def test_plot_report(self, uow, plot_dto):
        foundations, brickwork, _ = (s.id for s in plot_dto.stages)
        AddStageDelayUseCase().execute(
            AddStageDelayCommand(plot_dto.id, brickwork, "Rain", 3), uow
        )
        stage = AddStageIssueUseCase().execute(
            AddStageIssueCommand(plot_dto.id, foundations, "Soft spot"), uow
        )
        AddStageIssueUseCase().execute(AddStageIssueCommand(plot_dto.id, foundations, "Cracked kerb"), uow)
        ResolveStageIssueUseCase().execute(
            ResolveStageIssueCommand(plot_dto.id, foundations, stage.issues[0].id), uow
        )

        report = GetPlotReportUseCase().execute(plot_dto.id, uow, today="2024-01-01")

        assert report.generated_on == "01 Jan 2024"
        assert report.planned_work_days == 10
        assert report.summary.days_remaining == 9
        assert report.schedule_label == "14 days ahead of schedule"
        assert [(s.position, s.name, s.status_label) for s in report.stages] == [
            (1, "Foundations", "In Progress"),
            (2, "Brickwork", "Delayed"),
            (3, "Roofing", "Not Started"),
        ]
        first, second, third = report.stages
        assert first.actual_start_date == "2024-01-01T00:00:00+00:00"
        assert first.open_issue_count == 1
        assert [(i.description, i.resolved) for i in first.issues] == [
            ("Soft spot", True),
            ("Cracked kerb", False),
        ]
        assert second.delay_days == 3
        assert [(d.reason, d.days_added) for d in second.delays] == [("Rain", 3)]
        assert third.actual_start_date is None

    def test_plot_report_unknown_plot(self, uow):
        with pytest.raises(NotFoundError):
            GetPlotReportUseCase().execute("missing", uow)

    def test_calendar_month(self, uow, plot_dto):
        january = GetCalendarMonthUseCase().execute(2024, 1, uow)
        assert january.days == ["2024-01-01", "2024-01-08", "2024-01-11", "2024-01-15"]
        assert GetCalendarMonthUseCase().execute(2024, 2, uow).days == []
        with pytest.raises(ValidationError):
            GetCalendarMonthUseCase().execute(2024, 13, uow)


class TestUnitOfWork:
    def test_rollback_on_error_leaves_store(self, uow, plot_dto):
        with pytest.raises(RuntimeError):
            with uow:
                plot = uow.plots.get(plot_dto.id)
                plot.name = "Changed"
                uow.plots.save(plot)
                raise RuntimeError("boom")
        assert GetPlotUseCase().execute(plot_dto.id, uow).name == "Plot 7"

    def test_repository_hands_out_copies(self, uow, plot_dto):
        with uow:
            plot = uow.plots.get(plot_dto.id)
            plot.name = "Scribbled"
        assert uow.plots.get(plot_dto.id).name == "Plot 7"

    def test_lock_released_after_error(self, uow, plot_dto):
        with pytest.raises(RuntimeError):
            with uow:
                raise RuntimeError("boom")
        with ThreadPoolExecutor(max_workers=1) as pool:
            other = pool.submit(GetPlotUseCase().execute, plot_dto.id, uow)
            assert other.result(timeout=5).name == "Plot 7"

    def test_concurrent_writers_lose_no_updates(self):
        """Each request gets its own unit of work over one shared database."""
        db = InMemoryDatabase()
        plot = CreatePlotUseCase(THREE_STAGES).execute(
            CreatePlotCommand("Plot 9", "9 Mill Lane", "2024-01-01", "2024-01-31"),
            InMemoryUnitOfWork(db),
        )
        stage_id = plot.stages[0].id

        def add_delay(n):
            cmd = AddStageDelayCommand(plot.id, stage_id, f"Delay {n}", 1)
            return AddStageDelayUseCase().execute(cmd, InMemoryUnitOfWork(db))

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(add_delay, range(40)))

        stored = GetPlotUseCase().execute(plot.id, InMemoryUnitOfWork(db))
        assert len(stored.stages[0].delays) == 40
