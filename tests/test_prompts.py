"""Tests for prompt templates and the placeholder renderer."""

import pytest

from loop_agent import prompts
from loop_agent.prompts import PLACEHOLDERS, is_outdated, persist_prompt, render, task_filter_prompt


class TestRender:
    def test_substitutes_every_occurrence(self):
        out = render("run {{validate_script}} then {{validate_script}}", {"validate_script": "./validate.sh"})

        assert out == "run ./validate.sh then ./validate.sh"

    def test_values_are_stringified(self):
        assert render("{{iteration}}/{{attempt}}", {"iteration": 3, "attempt": 12}) == "3/12"

    def test_unbound_and_unknown_placeholders_stay_literal(self):
        out = render("{{FAIL}} {{other}}", {"validate_script": "x"})

        assert out == "{{FAIL}} {{other}}"

    def test_substituted_values_are_not_rescanned(self):
        out = render("{{FAIL}}", {"FAIL": "log says {{validate_script}}", "validate_script": "./validate.sh"})

        assert out == "log says {{validate_script}}"

    def test_rejects_unrecognised_binding_names(self):
        with pytest.raises(ValueError):
            render("{{task}}", {"task": "x"})

    def test_no_escaping(self):
        assert render("{{files}}", {"files": "?? a b\n M \"c\"\n"}) == "?? a b\n M \"c\"\n"


class TestTemplates:
    def test_placeholder_set(self):
        assert PLACEHOLDERS == {"FAIL", "validate_script", "files", "iteration", "attempt"}

    def test_cleanup_template_uses_cleanup_bindings(self):
        for name in ("files", "iteration", "attempt"):
            assert "{{" + name + "}}" in prompts.CLEANUP_TEMPLATE

    def test_green_template_uses_fail_and_script(self):
        assert "{{FAIL}}" in prompts.GREEN_TEMPLATE
        assert "{{validate_script}}" in prompts.GREEN_TEMPLATE

    def test_spec_template_names_required_sections(self):
        for heading in ("不可修改条款", "可验证验收标准", "后续任务"):
            assert heading in prompts.SPEC_TEMPLATE

    def test_evolve_template_names_tasks_dir_and_naming_rule(self):
        assert "./tasks/" in prompts.EVOLVE_TEMPLATE
        assert "002_<short_slug>.md" in prompts.EVOLVE_TEMPLATE

    def test_task_filter_prompt_embeds_path_and_body(self):
        out = task_filter_prompt("./tasks/001_x.md", "body {{FAIL}}\n")

        assert "@./tasks/001_x.md" in out
        assert prompts.OUTDATED_MARKER in out
        assert out.endswith("【需求文档内容】\nbody {{FAIL}}\n")


class TestHelpers:
    def test_outdated_is_substring_match(self):
        assert is_outdated("# Title [OUTDATED]\n")
        assert is_outdated("quoted: `[OUTDATED]` somewhere")
        assert not is_outdated("# Title OUTDATED\n")

    def test_persist_prompt(self, tmp_path):
        path = persist_prompt(tmp_path, "spec-prompt.txt", "prompt text")

        assert path == tmp_path / "spec-prompt.txt"
        assert path.read_text(encoding="utf-8") == "prompt text"
