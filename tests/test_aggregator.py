import logging
from datetime import datetime, timezone

import pytest

from protocolgen.errors import MissingDependency
from protocolgen.models import TaskFilters


def test_missing_project_is_a_missing_dependency(env):
    env.projects.delete(env.project.id)
    with pytest.raises(MissingDependency) as exc:
        env.aggregator().aggregate(env.project.id, env.org.id)
    assert exc.value.kind == "project"


def test_project_from_another_organization_is_not_visible(env):
    with pytest.raises(MissingDependency) as exc:
        env.aggregator().aggregate(env.project.id, "org-2")
    assert exc.value.kind == "project"


def test_missing_organization_is_a_missing_dependency(env):
    env.organizations = type(env.organizations)()
    with pytest.raises(MissingDependency) as exc:
        env.aggregator().aggregate(env.project.id, env.org.id)
    assert exc.value.kind == "organization"


def test_report_metadata(env):
    env.add_task(1)
    generated_at = datetime(2025, 3, 5, 12, 0, tzinfo=timezone.utc)

    data = env.aggregator().aggregate(
        env.project.id,
        env.org.id,
        TaskFilters(status="open"),
        requested_by="user-1",
        generated_at=generated_at,
    )

    assert data.organization_name == "Acme Construction"
    assert data.project.name == "Riverside Apartments"
    assert data.generated_at == generated_at
    assert data.requested_by == "user-1"
    assert data.filter_summary == "Status: open"
    assert [t.task_number for t in data.tasks] == [1]


def test_task_list_is_capped_and_logged(env, caplog):
    for number in range(5, 0, -1):
        env.add_task(number)

    with caplog.at_level(logging.INFO, logger="protocolgen.report.aggregator"):
        data = env.aggregator(task_cap=3).aggregate(env.project.id, env.org.id)

    assert [t.task_number for t in data.tasks] == [1, 2, 3]
    assert "cap of 3" in caplog.text


def test_unreadable_photos_are_dropped(env, png_bytes, caplog):
    good = png_bytes()
    env.add_task(1, photos=[(good, "Before"), (None, "Lost"), (good, "After")])

    with caplog.at_level(logging.WARNING, logger="protocolgen.report.aggregator"):
        data = env.aggregator().aggregate(env.project.id, env.org.id)

    assert [p.caption for p in data.photos] == ["Before", "After"]
    assert all(p.task_id == "task-1" for p in data.photos)
    assert "task-1-p2" in caplog.text


def test_photos_follow_task_order(env, png_bytes):
    env.add_task(2, photos=[(png_bytes(), "two")])
    env.add_task(1, photos=[(png_bytes(), "one")])

    data = env.aggregator(read_workers=4).aggregate(env.project.id, env.org.id)

    assert [p.caption for p in data.photos] == ["one", "two"]


def test_photos_of_filtered_out_tasks_are_not_loaded(env, png_bytes):
    env.add_task(1, status="open", photos=[(png_bytes(), "open task")])
    env.add_task(2, status="completed", photos=[(png_bytes(), "done task")])

    data = env.aggregator().aggregate(env.project.id, env.org.id, TaskFilters(status="completed"))

    assert [p.caption for p in data.photos] == ["done task"]


def test_blueprints_carry_geometry_of_referencing_tasks(env, blueprint_pdf):
    env.add_blueprint("bp-1", "Ground Floor", blueprint_pdf())
    env.add_blueprint("bp-2", "First Floor", blueprint_pdf())
    env.add_task(
        1,
        blueprint_id="bp-1",
        annotation={"x": 0.1, "y": 0.1, "width": 0.2, "height": 0.2, "page": 1},
        markers=[{"x": 0.5, "y": 0.5, "page": 1}, {"x": 0.6, "y": 0.6, "page": 1}],
    )
    env.add_task(2, status="completed", blueprint_id="bp-1",
                 annotation={"x": 0.5, "y": 0.5, "width": 0.1, "height": 0.1, "page": 1})
    env.add_task(3, blueprint_id="bp-2")

    data = env.aggregator().aggregate(env.project.id, env.org.id)

    ground, first = data.blueprints
    assert ground.name == "Ground Floor"
    assert [(a.task_number, a.status) for a in ground.annotations] == [(1, "open"), (2, "completed")]
    assert [(g.task_number, len(g.markers)) for g in ground.markers] == [(1, 2)]
    assert first.annotations == []
    assert first.markers is None


def test_unreadable_blueprint_is_dropped(env, blueprint_pdf):
    env.add_blueprint("bp-1", "Missing", None)
    env.add_blueprint("bp-2", "Present", blueprint_pdf())

    data = env.aggregator().aggregate(env.project.id, env.org.id)

    assert [b.name for b in data.blueprints] == ["Present"]
