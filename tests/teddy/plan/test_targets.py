"""Tests for target discovery, cleanup and step routing."""

import pytest

from teddy.plan.models import StepType
from teddy.plan.routing import DEFAULT_ROUTING
from teddy.plan.targets import (
    clean_target,
    find_inline_target,
    infer_target_from_code,
    is_malformed_target,
)


class TestCleanTarget:

    @pytest.mark.parametrize("raw,expected", [
        ("`src/a.ts`", "src/a.ts"),
        ("**src/a.ts**", "src/a.ts"),
        ("`src/a.ts` (new file)", "src/a.ts"),
        ("src/b.py (modify)", "src/b.py"),
        ("  package.json  ", "package.json"),
    ])
    def test_decoration_removed(self, raw, expected):
        assert clean_target(raw) == expected


class TestInferTarget:

    def test_leading_path_comment(self):
        assert infer_target_from_code("// src/app.ts\nconst x = 1;", "ts") == "src/app.ts"

    def test_file_label_comment(self):
        assert infer_target_from_code("# File: pkg/mod.py\nx = 1", "python") == "pkg/mod.py"

    def test_rust_mod_declaration(self):
        assert infer_target_from_code("pub mod parser;\n", "rust") == "src/parser.rs"

    def test_class_with_fence_language(self):
        code = "export class UserService {\n  run() {}\n}"
        assert infer_target_from_code(code, "typescript") == "UserService.ts"

    def test_class_without_language(self):
        assert infer_target_from_code("class UserService {}", "") is None

    def test_nothing_to_infer(self):
        assert infer_target_from_code("const x = 1;", "ts") is None


class TestInlineTarget:

    def test_backticked_path_wins(self):
        assert find_inline_target("update `src/a.ts` and b.json") == "src/a.ts"

    def test_bare_file_name(self):
        assert find_inline_target("edit config.yaml now") == "config.yaml"

    def test_abbreviations_are_not_files(self):
        assert find_inline_target("e.g. do this on Node 20.") is None


class TestMalformedTarget:

    @pytest.mark.parametrize("target", [None, "", "   ", "src/a.ts - the entry point", "a" * 201])
    def test_malformed(self, target):
        assert is_malformed_target(target)

    def test_plain_path(self):
        assert not is_malformed_target("src/a.ts")


class TestRouting:

    @pytest.mark.parametrize("title", ["Update the handler", "Refactored utils", "Fixing the bug"])
    def test_modification_titles_edit(self, title):
        assert DEFAULT_ROUTING.code_step_type(title) is StepType.EDIT_FILE

    @pytest.mark.parametrize("title", ["Create a helper", "Add validation", "Health check"])
    def test_other_titles_insert(self, title):
        assert DEFAULT_ROUTING.code_step_type(title) is StepType.INSERT_CODE

    def test_action_verbs(self):
        assert DEFAULT_ROUTING.has_action_verb("Adding logging to the service")
        assert not DEFAULT_ROUTING.has_action_verb("Background on the service")
