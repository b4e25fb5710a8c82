from __future__ import annotations

from pathlib import Path

import pytest

from autopilot_runner.backlog import TaskComplexity, TaskSource, TaskStatus
from autopilot_runner.convert import (
    convert_markdown_to_backlog,
    extract_prd_metadata,
    find_tasks_file,
    parse_task_line,
    parse_task_markdown,
)
from autopilot_runner.errors import BacklogValidationError

TASKS_MD = """# Tasks

## Relevant Files

- `src/auth.py`

## Tasks

- [ ] 1.0 Build auth module [~3,000 tokens - Medium]
  - [x] 1.1 Create user schema [~1,000 tokens - Simple]
  - [ ] 1.2 Add login endpoint
- [ ] 2.0 Write docs [~8,000 tokens - Complex]
"""


class TestParseTaskMarkdown:
    def test_parses_hierarchy(self) -> None:
        tasks = parse_task_markdown(TASKS_MD)

        assert [t.id for t in tasks] == ["1.0", "1.1", "1.2", "2.0"]
        assert tasks[0].complexity == TaskComplexity.MEDIUM
        assert tasks[1].complexity == TaskComplexity.SIMPLE
        assert tasks[3].complexity == TaskComplexity.COMPLEX
        assert tasks[1].status == TaskStatus.COMPLETED
        assert tasks[1].parent_id == "1.0"
        assert tasks[1].depends_on == ["1.0"]
        assert tasks[3].parent_id == ""
        assert all(t.source == TaskSource.PRD for t in tasks)

    def test_title_without_estimate(self) -> None:
        task = parse_task_line("- [ ] 3.0 Ship it")
        assert task is not None
        assert task.title == "Ship it"
        assert task.complexity == TaskComplexity.MEDIUM

    def test_ignores_other_lines(self) -> None:
        assert parse_task_line("- plain bullet") is None

    def test_no_tasks(self) -> None:
        with pytest.raises(BacklogValidationError):
            parse_task_markdown("# Nothing here\n")


class TestConvert:
    def test_metadata_from_title(self) -> None:
        assert extract_prd_metadata("# User Authentication Feature\n\nBody") == (
            "user-authentication-feature",
            "User Authentication Feature",
        )

    def test_metadata_fallback(self) -> None:
        assert extract_prd_metadata("no heading") == ("unnamed-project", "Converted from PRD")

    def test_converts_prd_with_companion_tasks(self, tmp_path: Path) -> None:
        prd = tmp_path / "0001-prd-auth.md"
        prd.write_text("# Auth Feature\n", encoding="utf-8")
        tasks = tmp_path / "tasks-0001-prd-auth.md"
        tasks.write_text(TASKS_MD, encoding="utf-8")

        assert find_tasks_file(prd) == tasks
        backlog = convert_markdown_to_backlog(prd, tasks)

        assert backlog.project.name == "auth-feature"
        assert backlog.project.source_prd == str(prd)
        assert backlog.progress.total_tasks == 4
        assert backlog.progress.completed_tasks == 1

    def test_missing_companion(self, tmp_path: Path) -> None:
        prd = tmp_path / "0002-prd-x.md"
        prd.write_text("# X\n", encoding="utf-8")
        assert find_tasks_file(prd) is None
        assert convert_markdown_to_backlog(prd).tasks == []
