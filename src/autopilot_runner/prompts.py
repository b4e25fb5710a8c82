"""Build the implementation and discovery prompt files handed to the agent."""

from __future__ import annotations

from typing import Optional

from .backlog import AutoConfig, PilotConfig
from .constants import AUTO_DIR, BACKLOG_FILE, PROGRESS_FILE

_BACKLOG_REF = f"{AUTO_DIR}/{BACKLOG_FILE}"
_PROGRESS_REF = f"{AUTO_DIR}/{PROGRESS_FILE}"

IMPLEMENTATION_PROMPT_TEMPLATE = f"""# Autonomous Iteration Prompt

You are running in autonomous mode. Each iteration is independent: you start
with a fresh context window.

## Your Task

1. **Read project context**:
   - Read `CLAUDE.md` or `AGENTS.md` for project guardrails
   - Read `{_PROGRESS_REF}` for learnings from prior iterations
   - Read `{_BACKLOG_REF}` to find the task list and current state

2. **Select the next task**:
   - Take the first task in the list whose status is "pending"

3. **Implement the task**:
   - Update the task's status to "in_progress" in {BACKLOG_FILE}
   - Follow project guardrails from CLAUDE.md
   - Write tests alongside code
   - Keep changes atomic: one task per iteration

4. **Run quality checks**:
   - Execute the commands listed in `{BACKLOG_FILE}` under `config.quality_checks`
   - All checks must pass before committing
   - If a check fails, fix the issue and retry

5. **Commit changes**:
   - Use conventional commit format: `type(scope): description`
   - Include the task ID in the commit message
   - Example: `feat(auth): task 1.1 - create user schema`

6. **Update state**:
   - Set the task's status to "completed" in {BACKLOG_FILE}
   - Record the commit SHA in the task's `commit_sha` field

7. **Document learnings**:
   - Append insights, gotchas, or decisions to `{_PROGRESS_REF}`
   - Format: `[timestamp] [iteration:N] [task:ID] LEARNING: description`

## Rules

- Complete exactly ONE task per iteration
- Never skip quality checks
- If stuck, mark the task as "blocked" and document why
- Write tests for all new code

## Error Recovery

If you encounter errors:
1. Try to fix them within this iteration
2. If unfixable, mark the task as "blocked" with a description
3. Append the error details to {PROGRESS_FILE} as a LEARNING entry
4. The next iteration will have fresh context and can try a different approach
"""

DISCOVERY_PROMPT_TEMPLATE = f"""# Discovery Iteration Prompt

You are running in DISCOVERY mode as part of the autonomous pilot loop.
Your job is to analyze the project and generate high-value tasks.

**CRITICAL: Do NOT write any code or make any commits in this iteration.**
**Only update {BACKLOG_FILE} and {PROGRESS_FILE}.**

## Steps

1. **Read project context**:
   - Read `CLAUDE.md` or `AGENTS.md` for project guardrails and conventions
   - Read `README.md` for the project overview
   - Scan the project directory structure

2. **Analyze the codebase** for improvement opportunities:
   - Test coverage gaps
   - TODOs, FIXMEs, and HACKs in the code
   - Code quality issues (long functions, high complexity, dead code)
   - Documentation gaps
   - Security concerns (input validation, error handling)
   - Incomplete work in the recent git log

3. **Read existing tasks**:
   - Read `{_BACKLOG_REF}` to see current tasks
   - Do NOT create duplicate tasks; check titles and descriptions carefully
   - Skip areas that already have pending or in-progress tasks

4. **Generate new tasks**:
   - Append tasks to {BACKLOG_FILE} with status "pending" and a unique "id"
   - Each task must be atomic (affects <=5 files)
   - Use clear, actionable titles
   - Set priority and complexity
   - Set the "source" field to "pilot-discovery"

5. **Document findings**:
   - Append a summary of what you discovered to `{_PROGRESS_REF}`
   - Format: `[timestamp] [discovery] FOUND: description`

## Priority Order

1. **Security issues** (critical priority)
2. **Failing or missing tests** (high priority)
3. **Code quality violations** (medium priority)
4. **Documentation gaps** (medium priority)
5. **Performance improvements** (low priority)
6. **Refactoring opportunities** (low priority)

## Rules

- Generate ONLY atomic tasks
- Do NOT make code changes or commits
- Keep task descriptions specific and actionable
- Include files_to_modify in each task when possible
"""

_FOCUS_HINTS = {
    "testing": "Focus on test coverage gaps, missing edge case tests, flaky tests, "
    "and test infrastructure improvements.",
    "docs": "Focus on missing documentation, outdated README, and API documentation.",
    "documentation": "Focus on missing documentation, outdated README, and API documentation.",
    "security": "Focus on input validation, authentication, authorization, "
    "dependency vulnerabilities, and the OWASP top 10.",
    "performance": "Focus on hot paths, unnecessary allocations, N+1 queries, "
    "caching opportunities, and benchmarks.",
    "refactoring": "Focus on code duplication, long functions, high complexity, "
    "dead code, and architectural improvements.",
}


def _quality_checks_block(checks: list[str]) -> list[str]:
    return ["```bash", *checks, "```"]


def generate_prompt_file(config: AutoConfig) -> str:
    """Implementation prompt customized with the project's loop config."""
    lines = [
        IMPLEMENTATION_PROMPT_TEMPLATE,
        "## Project-Specific Configuration",
        "",
        f"- **AI Tool**: {config.ai_tool.value}",
        f"- **Max Iterations**: {config.max_iterations}",
        f"- **PRD File**: {_BACKLOG_REF}",
        f"- **Progress File**: {_PROGRESS_REF}",
    ]
    if config.quality_checks:
        lines += [
            "",
            "### Quality Checks",
            "",
            "Run these commands as quality gates before committing:",
            "",
            *_quality_checks_block(config.quality_checks),
        ]
    return "\n".join(lines) + "\n"


def generate_focus_section(focus: str) -> str:
    hint = _FOCUS_HINTS.get(focus.strip().lower(), f"Look for improvements related to: {focus}")
    return f"\n### Focus Area: {focus}\n\nPrioritize tasks related to this focus area. {hint}\n"


def generate_discovery_prompt(config: AutoConfig, pilot: Optional[PilotConfig]) -> str:
    parts = [DISCOVERY_PROMPT_TEMPLATE]
    if pilot is not None:
        parts.append("## Discovery Configuration\n")
        parts.append(f"- **Max new tasks to generate**: {pilot.max_discovery_tasks}\n")
        if pilot.focus:
            parts.append(generate_focus_section(pilot.focus))
    if config.quality_checks:
        block = "\n".join(_quality_checks_block(config.quality_checks))
        parts.append(
            "\n## Quality Checks Reference\n\n"
            "These are the project's quality check commands:\n\n"
            f"{block}\n"
        )
    return "\n".join(parts)
