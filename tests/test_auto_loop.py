"""End-to-end tests for the plain auto loop with a fake agent."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import pytest

from autopilot_runner.agent import AgentInvocation
from autopilot_runner.backlog import (
    AutoConfig,
    LoopStatus,
    Task,
    get_backlog_path,
    load_backlog,
    new_backlog,
    save_backlog,
    update_backlog,
)
from autopilot_runner.config import LoopSettings
from autopilot_runner.errors import AgentError, BacklogParseError, ConfigError, LoopAbortedError
from autopilot_runner.loop import FailureTracker, StopReason, new_loop_config, run_auto_loop
from autopilot_runner.sandbox import SandboxAvailability


def _setup_project(project_dir: Path, task_count: int = 1, max_iterations: int = 3) -> Path:
    backlog = new_backlog("demo")
    backlog.config = AutoConfig(max_iterations=max_iterations)
    for idx in range(1, task_count + 1):
        backlog.add_task(Task(id=str(idx), title=f"Task {idx}"))
    path = get_backlog_path(project_dir)
    save_backlog(backlog, path)
    (project_dir / backlog.config.prompt_file).write_text("implement the next task\n", encoding="utf-8")
    return path


def _config(project_dir: Path, invoke, *, failures: int = 3, pause: float = 0):
    cfg = new_loop_config(project_dir, settings=LoopSettings(pause_seconds=pause, max_consecutive_failures=failures))
    cfg.invoke = invoke
    return cfg


class _FakeAgent:
    """Replays a script of outcomes: "complete", "noop" or "fail"."""

    def __init__(self, script: list[str], default: str = "noop") -> None:
        self.script = list(script)
        self.default = default
        self.calls: list[AgentInvocation] = []

    def __call__(self, invocation: AgentInvocation) -> None:
        self.calls.append(invocation)
        outcome = self.script.pop(0) if self.script else self.default
        if outcome == "fail":
            raise AgentError("agent crashed", exit_code=1)
        if outcome == "complete":
            path = get_backlog_path(invocation.project_dir)
            update_backlog(
                path,
                lambda b: b.complete_task(b.get_next_task().id, "abc1234", len(self.calls)),
            )


class TestAutoLoop:
    def test_stops_early_once_no_task_is_pending(self, tmp_path: Path) -> None:
        path = _setup_project(tmp_path, task_count=1, max_iterations=3)
        agent = _FakeAgent(["complete"])

        result = run_auto_loop(_config(tmp_path, agent))

        assert len(agent.calls) == 1
        assert result.iterations_run == 1
        assert result.stop_reason == StopReason.ALL_TASKS_DONE
        backlog = load_backlog(path)
        assert backlog.progress.status == LoopStatus.COMPLETED
        assert backlog.progress.completed_tasks == 1
        assert backlog.progress.total_iterations_run == 1
        assert backlog.progress.impl_iterations == 1
        assert backlog.progress.current_iteration == 1
        assert backlog.tasks[0].commit_sha == "abc1234"

    def test_runs_up_to_max_iterations(self, tmp_path: Path) -> None:
        path = _setup_project(tmp_path, task_count=5, max_iterations=3)
        agent = _FakeAgent([], default="complete")

        result = run_auto_loop(_config(tmp_path, agent))

        assert result.iterations_run == 3
        assert result.stop_reason == StopReason.MAX_ITERATIONS
        assert result.completed_tasks == 3
        assert load_backlog(path).progress.status == LoopStatus.PAUSED

    def test_pauses_between_iterations_but_not_after_last(self, tmp_path: Path) -> None:
        _setup_project(tmp_path, task_count=1, max_iterations=3)
        sleeps: list[float] = []
        cfg = _config(tmp_path, _FakeAgent([]), pause=1.5)
        cfg.sleep = sleeps.append

        run_auto_loop(cfg)

        assert sleeps == [1.5, 1.5]

    def test_agent_sees_project_and_prompt(self, tmp_path: Path) -> None:
        _setup_project(tmp_path)
        agent = _FakeAgent(["complete"])
        run_auto_loop(_config(tmp_path, agent))

        invocation = agent.calls[0]
        assert invocation.project_dir == tmp_path.resolve()
        assert invocation.prompt_path.name == "prompt.md"
        assert invocation.ai_tool == "claude"
        assert invocation.sandbox == "none"

    def test_appends_progress_log(self, tmp_path: Path) -> None:
        _setup_project(tmp_path)
        run_auto_loop(_config(tmp_path, _FakeAgent(["complete"])))

        log = (tmp_path / ".claude" / "auto" / "progress.md").read_text(encoding="utf-8")
        assert "[iteration:1] [task:1] COMPLETED: implementation iteration finished" in log


class TestConsecutiveFailures:
    def test_aborts_at_threshold(self, tmp_path: Path) -> None:
        path = _setup_project(tmp_path, task_count=1, max_iterations=10)
        agent = _FakeAgent([], default="fail")

        with pytest.raises(LoopAbortedError) as excinfo:
            run_auto_loop(_config(tmp_path, agent, failures=5))

        assert len(agent.calls) == 5
        assert excinfo.value.threshold == 5
        assert "5 consecutive failures" in str(excinfo.value)
        assert "auth/config" in str(excinfo.value)
        assert load_backlog(path).progress.status == LoopStatus.FAILED

    def test_success_resets_counter(self, tmp_path: Path) -> None:
        _setup_project(tmp_path, task_count=1, max_iterations=10)
        agent = _FakeAgent(["fail", "fail", "noop", "fail", "fail", "fail"], default="noop")

        with pytest.raises(LoopAbortedError):
            run_auto_loop(_config(tmp_path, agent, failures=3))

        assert len(agent.calls) == 6

    def test_failures_below_threshold_are_recovered(self, tmp_path: Path) -> None:
        _setup_project(tmp_path, task_count=1, max_iterations=5)
        agent = _FakeAgent(["fail", "fail", "complete"])

        result = run_auto_loop(_config(tmp_path, agent, failures=3))

        assert result.stop_reason == StopReason.ALL_TASKS_DONE
        assert len(agent.calls) == 3

    def test_tracker(self) -> None:
        tracker = FailureTracker(threshold=2)
        tracker.record_failure(1, AgentError("x"))
        assert tracker.consecutive == 1
        tracker.record_success()
        assert tracker.consecutive == 0
        tracker.record_failure(3, AgentError("x"))
        with pytest.raises(LoopAbortedError):
            tracker.record_failure(4, AgentError("x"))


class TestHooks:
    def test_hooks_fire_around_each_iteration(self, tmp_path: Path) -> None:
        _setup_project(tmp_path, task_count=1, max_iterations=5)
        events: list[tuple] = []
        cfg = _config(tmp_path, _FakeAgent(["fail", "complete"]))
        cfg.on_iteration_start = lambda i: events.append(("start", i))
        cfg.on_iteration_end = lambda i, err: events.append(("end", i, type(err).__name__ if err else None))

        run_auto_loop(cfg)

        assert events == [
            ("start", 1),
            ("end", 1, "AgentError"),
            ("start", 2),
            ("end", 2, None),
        ]

    def test_hook_exceptions_do_not_change_control_flow(self, tmp_path: Path) -> None:
        _setup_project(tmp_path, task_count=2, max_iterations=5)
        agent = _FakeAgent([], default="complete")

        def _broken(*_: object) -> None:
            raise RuntimeError("observer bug")

        cfg = _config(tmp_path, agent)
        cfg.on_iteration_start = _broken
        cfg.on_iteration_end = _broken

        result = run_auto_loop(cfg)

        assert result.stop_reason == StopReason.ALL_TASKS_DONE
        assert len(agent.calls) == 2


class TestPreflight:
    def test_unavailable_sandbox_runs_nothing(self, tmp_path: Path) -> None:
        _setup_project(tmp_path)
        agent = _FakeAgent(["complete"])

        def _unavailable(mode: str) -> SandboxAvailability:
            return SandboxAvailability(False, "docker daemon is not running")

        with pytest.raises(ConfigError) as excinfo:
            run_auto_loop(_config(tmp_path, agent), check_sandbox=_unavailable)

        assert "docker daemon is not running" in str(excinfo.value)
        assert agent.calls == []

    def test_invalid_ai_tool(self, tmp_path: Path) -> None:
        _setup_project(tmp_path)
        agent = _FakeAgent(["complete"])
        cfg = _config(tmp_path, agent)
        cfg.ai_tool = "gpt"

        with pytest.raises(ConfigError):
            run_auto_loop(cfg)
        assert agent.calls == []

    def test_missing_prompt_file(self, tmp_path: Path) -> None:
        _setup_project(tmp_path)
        (tmp_path / ".claude" / "auto" / "prompt.md").unlink()

        with pytest.raises(ConfigError):
            run_auto_loop(_config(tmp_path, _FakeAgent([])))

    def test_sandbox_checked_once_with_configured_mode(self, tmp_path: Path) -> None:
        _setup_project(tmp_path, task_count=2)
        checked: list[Optional[str]] = []

        def _check(mode: str) -> SandboxAvailability:
            checked.append(mode)
            return SandboxAvailability(True)

        run_auto_loop(_config(tmp_path, _FakeAgent([], default="complete")), check_sandbox=_check)

        assert checked == ["none"]

    def test_invalid_sandbox_image_rejected_before_any_iteration(self, tmp_path: Path) -> None:
        path = _setup_project(tmp_path)
        agent = _FakeAgent(["complete"])
        cfg = _config(tmp_path, agent)
        cfg.sandbox = "docker"
        cfg.sandbox_image = "node;rm -rf /"

        with pytest.raises(ConfigError) as excinfo:
            run_auto_loop(cfg, check_sandbox=lambda mode: SandboxAvailability(True))

        assert "invalid sandbox image" in str(excinfo.value)
        assert agent.calls == []
        assert load_backlog(path).progress.status == LoopStatus.NOT_STARTED

    def test_container_prompt_outside_project_rejected(self, tmp_path: Path) -> None:
        project = tmp_path / "project"
        project.mkdir()
        _setup_project(project)
        outside = tmp_path / "outside.md"
        outside.write_text("prompt", encoding="utf-8")
        agent = _FakeAgent(["complete"])
        cfg = _config(project, agent)
        cfg.ai_tool = "codex"
        cfg.sandbox = "docker"
        cfg.prompt_path = outside

        with pytest.raises(ConfigError):
            run_auto_loop(cfg, check_sandbox=lambda mode: SandboxAvailability(True))
        assert agent.calls == []


class TestUnexpectedErrors:
    def test_config_error_mid_run_marks_failed(self, tmp_path: Path) -> None:
        path = _setup_project(tmp_path)

        def _refuse(invocation: AgentInvocation) -> None:
            raise ConfigError("refused to use invalid sandbox image")

        with pytest.raises(ConfigError):
            run_auto_loop(_config(tmp_path, _refuse))

        assert load_backlog(path).progress.status == LoopStatus.FAILED

    def test_corrupted_backlog_propagates_without_masking(self, tmp_path: Path) -> None:
        path = _setup_project(tmp_path)

        def _corrupt(invocation: AgentInvocation) -> None:
            path.write_text("[]", encoding="utf-8")

        with pytest.raises(BacklogParseError):
            run_auto_loop(_config(tmp_path, _corrupt))

        assert path.read_text(encoding="utf-8") == "[]"
