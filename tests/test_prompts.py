from __future__ import annotations

from autopilot_runner.backlog import AITool, AutoConfig, PilotConfig
from autopilot_runner.prompts import (
    DISCOVERY_PROMPT_TEMPLATE,
    IMPLEMENTATION_PROMPT_TEMPLATE,
    generate_discovery_prompt,
    generate_focus_section,
    generate_prompt_file,
)


class TestImplementationPrompt:
    def test_includes_project_configuration(self) -> None:
        prompt = generate_prompt_file(AutoConfig(ai_tool=AITool.AMP, max_iterations=12))
        assert prompt.startswith(IMPLEMENTATION_PROMPT_TEMPLATE)
        assert "- **AI Tool**: amp" in prompt
        assert "- **Max Iterations**: 12" in prompt
        assert "- **PRD File**: .claude/auto/prd.json" in prompt
        assert "### Quality Checks" not in prompt

    def test_quality_checks_block(self) -> None:
        prompt = generate_prompt_file(AutoConfig(quality_checks=["pytest", "ruff check ."]))
        assert "### Quality Checks" in prompt
        assert "```bash\npytest\nruff check .\n```" in prompt


class TestDiscoveryPrompt:
    def test_includes_limits(self) -> None:
        prompt = generate_discovery_prompt(AutoConfig(), PilotConfig(max_discovery_tasks=4))
        assert prompt.startswith(DISCOVERY_PROMPT_TEMPLATE)
        assert "- **Max new tasks to generate**: 4" in prompt
        assert "Focus Area" not in prompt

    def test_focus_section(self) -> None:
        prompt = generate_discovery_prompt(AutoConfig(), PilotConfig(focus="security"))
        assert "### Focus Area: security" in prompt
        assert "OWASP" in prompt

    def test_without_pilot_config(self) -> None:
        prompt = generate_discovery_prompt(AutoConfig(quality_checks=["make test"]), None)
        assert "Discovery Configuration" not in prompt
        assert "## Quality Checks Reference" in prompt
        assert "make test" in prompt

    def test_free_text_focus(self) -> None:
        section = generate_focus_section("billing")
        assert "### Focus Area: billing" in section
        assert "Look for improvements related to: billing" in section
