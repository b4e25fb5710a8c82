from __future__ import annotations

import json
from pathlib import Path

from autopilot_runner.backlog import Task, TaskStatus, get_backlog_path, new_backlog, save_backlog
from autopilot_runner.loop import StopReason
from autopilot_runner.pilot import PilotSummary
from autopilot_runner.status import check_backlog_health, render_pilot_summary, render_status, render_task_list


def _backlog():
    backlog = new_backlog("demo")
    backlog.add_task(Task(id="1.0", title="Parent", status=TaskStatus.COMPLETED, commit_sha="abcdef123"))
    backlog.add_task(Task(id="1.1", title="Child", parent_id="1.0"))
    backlog.add_task(Task(id="2.0", title="Stuck", status=TaskStatus.BLOCKED))
    backlog.recalculate_progress()
    return backlog


class TestRendering:
    def test_status(self) -> None:
        text = render_status(_backlog())
        assert "Auto Loop: demo" in text
        assert "1/3 completed" in text
        assert "Next task: 1.1 - Child" in text

    def test_task_list_icons_and_indent(self) -> None:
        lines = render_task_list(_backlog()).splitlines()
        assert lines[0].startswith("[x] 1.0: Parent (abcdef1)")
        assert lines[1].startswith("  [ ] 1.1: Child")
        assert lines[2].startswith("[!] 2.0: Stuck")

    def test_task_list_filter(self) -> None:
        text = render_task_list(_backlog(), TaskStatus.BLOCKED)
        assert "Stuck" in text
        assert "Parent" not in text

    def test_pilot_summary(self) -> None:
        summary = PilotSummary(
            discovery_iterations=2,
            implementation_iterations=5,
            tasks_generated=6,
            tasks_completed=4,
            total_tasks=6,
            remaining_tasks=2,
            stop_reason=StopReason.NO_NEW_TASKS,
        )
        text = render_pilot_summary(summary)
        assert "no_new_tasks" in text
        assert "4/6" in text


class TestHealthCheck:
    def test_healthy(self, tmp_path: Path) -> None:
        save_backlog(_backlog(), get_backlog_path(tmp_path))
        result = check_backlog_health(tmp_path)
        assert result.ok
        assert result.errors == []

    def test_missing(self, tmp_path: Path) -> None:
        result = check_backlog_health(tmp_path)
        assert not result.ok
        assert "Run init first" in result.errors[0]

    def test_reports_invalid_values(self, tmp_path: Path) -> None:
        path = get_backlog_path(tmp_path)
        path.parent.mkdir(parents=True)
        path.write_text(
            json.dumps(
                {
                    "version": "1.0",
                    "project": {"name": "demo"},
                    "tasks": [{"id": "1", "title": "t", "status": "finished"}],
                }
            ),
            encoding="utf-8",
        )
        result = check_backlog_health(tmp_path)
        assert not result.ok
        assert "task 1 has invalid status: finished" in result.errors

    def test_reports_dangling_dependency(self, tmp_path: Path) -> None:
        backlog = new_backlog("demo")
        backlog.add_task(Task(id="1", title="t", depends_on=["7"]))
        save_backlog(backlog, get_backlog_path(tmp_path))
        result = check_backlog_health(tmp_path)
        assert not result.ok
        assert result.errors == ["task 1 depends on unknown task: 7"]
