from __future__ import annotations

from pathlib import Path

from autopilot_runner.progress_log import (
    ProgressEntry,
    ProgressEntryType,
    append_progress,
    format_progress_entry,
    read_progress_tail,
)


def test_format_full_entry() -> None:
    entry = ProgressEntry(ProgressEntryType.LEARNING, "use fixtures", iteration=3, task_id="1.2")
    line = format_progress_entry(entry, timestamp="2025-01-01T00:00:00Z")
    assert line == "[2025-01-01T00:00:00Z] [iteration:3] [task:1.2] LEARNING: use fixtures"


def test_format_omits_empty_parts() -> None:
    entry = ProgressEntry(ProgressEntryType.ERROR, "boom")
    line = format_progress_entry(entry, timestamp="ts")
    assert line == "[ts] ERROR: boom"


def test_append_and_tail(tmp_path: Path) -> None:
    path = tmp_path / "auto" / "progress.md"
    for idx in range(1, 5):
        append_progress(path, ProgressEntry(ProgressEntryType.COMMIT, f"commit {idx}", iteration=idx))

    tail = read_progress_tail(path, 2)
    assert len(tail) == 2
    assert tail[0].endswith("COMMIT: commit 3")
    assert tail[1].endswith("COMMIT: commit 4")
    assert len(read_progress_tail(path, 0)) == 4


def test_tail_of_missing_file(tmp_path: Path) -> None:
    assert read_progress_tail(tmp_path / "missing.md", 5) == []
