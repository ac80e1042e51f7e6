from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from protocolgen.models import (
    Annotation,
    JobStatus,
    Marker,
    ProjectMeta,
    ProtocolJob,
    ReportData,
    TaskFilters,
    TaskPriority,
    TaskSnapshot,
    TaskStatus,
)


def make_task(**fields):
    fields.setdefault("id", "t-1")
    fields.setdefault("task_number", 1)
    fields.setdefault("title", "Fix outlet")
    fields.setdefault("status", "open")
    return TaskSnapshot(**fields)


def test_empty_filters_summarize_as_all_tasks():
    filters = TaskFilters()
    assert filters.is_empty()
    assert filters.summary() == "All tasks"


def test_filter_summary_lists_every_set_field():
    filters = TaskFilters(status="open", trade="Electrical", priority="high")
    assert filters.status is TaskStatus.OPEN
    assert filters.priority is TaskPriority.HIGH
    assert filters.summary() == "Status: open, Trade: Electrical, Priority: high"


def test_blank_trade_is_treated_as_absent():
    filters = TaskFilters(trade="   ")
    assert filters.trade is None
    assert filters.is_empty()

    assert TaskFilters(trade="  Plumbing ").trade == "Plumbing"


@pytest.mark.parametrize("payload", [
    {"status": "done"},
    {"priority": "urgent"},
    {"assignee": "someone"},
])
def test_invalid_filters_are_rejected(payload):
    with pytest.raises(ValidationError):
        TaskFilters.model_validate(payload)


def test_date_range_is_accepted_but_not_applied():
    filters = TaskFilters.model_validate({"status": "open", "dateFrom": "2025-01-01", "dateTo": "2025-02-01"})

    assert filters.date_from == "2025-01-01"
    assert filters.date_to == "2025-02-01"
    assert filters.summary() == "Status: open"
    assert filters.matches(make_task(status="open"))
    assert TaskFilters.model_validate({"dateFrom": "2025-01-01"}).is_empty()
    assert TaskFilters(date_to="2025-02-01").summary() == "All tasks"


def test_filters_match_on_all_set_fields():
    filters = TaskFilters(status="open", trade="Electrical")
    assert filters.matches(make_task(trade="Electrical"))
    assert not filters.matches(make_task(trade="Plumbing"))
    assert not filters.matches(make_task(status="completed", trade="Electrical"))
    assert TaskFilters().matches(make_task(status="something_else"))


@pytest.mark.parametrize("field,value", [
    ("x", 1.5),
    ("y", -0.1),
    ("width", 2.0),
    ("page", 0),
])
def test_annotation_geometry_is_bounded(field, value):
    data = {"task_number": 1, "status": "open", "x": 0.1, "y": 0.1, "width": 0.2, "height": 0.2, "page": 1}
    data[field] = value
    with pytest.raises(ValidationError):
        Annotation(**data)


def test_marker_page_is_one_indexed():
    with pytest.raises(ValidationError):
        Marker(x=0.5, y=0.5, page=0)


def test_task_geometry_carries_task_identity():
    task = make_task(
        task_number=7,
        status="in_progress",
        annotation={"x": 0.1, "y": 0.2, "width": 0.3, "height": 0.4, "page": 2},
        markers=[{"x": 0.5, "y": 0.5, "page": 1}],
    )

    annotation = task.to_annotation()
    assert annotation.task_number == 7
    assert annotation.status == "in_progress"
    assert annotation.page == 2

    group = task.to_marker_group()
    assert group.task_number == 7
    assert len(group.markers) == 1


def test_task_without_geometry_has_no_overlays():
    task = make_task()
    assert task.to_annotation() is None
    assert task.to_marker_group() is None
    assert make_task(markers=[]).to_marker_group() is None


def test_completed_job_requires_storage_key_and_size():
    base = dict(id="job-1", project_id="p", organization_id="o", name="Walk", requested_by="u")

    with pytest.raises(ValidationError):
        ProtocolJob(status=JobStatus.COMPLETED, **base)
    with pytest.raises(ValidationError):
        ProtocolJob(status=JobStatus.FAILED, storage_key="k", size_bytes=10, **base)

    job = ProtocolJob(status=JobStatus.COMPLETED, storage_key="k", size_bytes=10, **base)
    assert job.status.is_terminal
    assert not JobStatus.GENERATING.is_terminal


def test_status_counts_ignore_unknown_statuses():
    data = ReportData(
        organization_name="Acme",
        project=ProjectMeta(id="p", organization_id="o", name="P"),
        generated_at=datetime(2025, 3, 5, tzinfo=timezone.utc),
        requested_by="u",
        filter_summary="All tasks",
        tasks=[
            make_task(id="a", status="open"),
            make_task(id="b", status="open"),
            make_task(id="c", status="verified"),
            make_task(id="d", status="blocked"),
        ],
    )
    assert data.status_counts() == {"open": 2, "in_progress": 0, "completed": 0, "verified": 1}
