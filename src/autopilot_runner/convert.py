"""Import a markdown PRD and its generated task list into a backlog."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Optional

from .backlog import Backlog, Task, TaskComplexity, TaskPriority, TaskSource, TaskStatus, new_backlog
from .errors import BacklogValidationError
from .utils import slugify

# "- [ ] 1.0 Task title [~3,000 tokens - Medium]"
_TASK_LINE_RE = re.compile(
    r"^(\s*)- \[([ xX])\]\s*(\d+\.\d+)\s+(.+?)(?:\s*\[~[\d,]+\s+tokens?\s*-\s*(\w+)\])?\s*$"
)
_TITLE_RE = re.compile(r"^#\s+(.+)$")


def extract_prd_metadata(content: str) -> tuple[str, str]:
    """Return ``(name, description)`` from the first H1 heading."""
    for line in content.splitlines():
        match = _TITLE_RE.match(line.strip())
        if match:
            title = match.group(1).strip()
            return _slug(title), title
    return "unnamed-project", "Converted from PRD"


def _slug(title: str) -> str:
    return slugify(title) or "unnamed-project"


def parse_task_line(line: str) -> Optional[Task]:
    match = _TASK_LINE_RE.match(line)
    if not match:
        return None
    _, checkbox, task_id, title, complexity_raw = match.groups()
    try:
        complexity = TaskComplexity((complexity_raw or "").strip().lower())
    except ValueError:
        complexity = TaskComplexity.MEDIUM
    return Task(
        id=task_id,
        title=title.strip(),
        status=TaskStatus.COMPLETED if checkbox in {"x", "X"} else TaskStatus.PENDING,
        priority=TaskPriority.MEDIUM,
        complexity=complexity,
        source=TaskSource.PRD,
    )


def parse_task_markdown(content: str) -> list[Task]:
    """Parse checkbox task lines; indented lines become children of the last top-level task."""
    tasks: list[Task] = []
    parent_id = ""
    for line in content.splitlines():
        task = parse_task_line(line)
        if task is None:
            continue
        if line[:1] in {" ", "\t"}:
            task.parent_id = parent_id
            if parent_id:
                task.depends_on = [parent_id]
        else:
            parent_id = task.id
        tasks.append(task)
    if not tasks:
        raise BacklogValidationError(["no valid tasks found in markdown"])
    return tasks


def find_tasks_file(prd_path: Path) -> Optional[Path]:
    """``.claude/tasks/0001-prd-x.md`` pairs with ``.claude/tasks/tasks-0001-prd-x.md``."""
    prd_path = Path(prd_path)
    candidate = prd_path.parent / f"tasks-{prd_path.name}"
    return candidate if candidate.exists() else None


def convert_markdown_to_backlog(prd_path: Path, tasks_path: Optional[Path] = None) -> Backlog:
    prd_path = Path(prd_path)
    name, description = extract_prd_metadata(prd_path.read_text(encoding="utf-8"))
    backlog = new_backlog(name, description)
    backlog.project.source_prd = str(prd_path)
    if tasks_path is not None:
        for task in parse_task_markdown(Path(tasks_path).read_text(encoding="utf-8")):
            backlog.add_task(task)
    backlog.recalculate_progress()
    return backlog
