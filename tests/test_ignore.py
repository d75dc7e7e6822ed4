"""Tests for ignore-rule compilation and first-match-wins decisions."""

import pytest

from acrbuild.errors import ConfigurationError
from acrbuild.ignore import (
    Decision,
    compile_rule,
    compile_rules,
    decide,
    is_common_ignore,
    matches,
    read_ignore_file,
)


class TestCompileRule:
    def test_plain_pattern_is_an_ignore_rule(self):
        rule = compile_rule("*.log")
        assert rule.is_ignore is True
        assert rule.decision is Decision.EXCLUDE
        assert rule.pattern == "*.log"

    def test_negated_pattern_is_an_include_rule(self):
        rule = compile_rule("!important.log")
        assert rule.is_ignore is False
        assert rule.decision is Decision.INCLUDE
        assert matches(rule, "important.log")

    @pytest.mark.parametrize("raw", ["", "   ", "!", "/", "./"])
    def test_empty_patterns_are_rejected(self, raw):
        with pytest.raises(ConfigurationError):
            compile_rule(raw)

    @pytest.mark.parametrize("raw", ["[abc", "foo[!x", "trailing\\", "bad[a\\"])
    def test_malformed_patterns_are_rejected(self, raw):
        with pytest.raises(ConfigurationError):
            compile_rule(raw)

    def test_non_string_pattern_is_rejected(self):
        with pytest.raises(ConfigurationError):
            compile_rule(42)  # type: ignore[arg-type]

    def test_invalid_range_is_rejected(self):
        with pytest.raises(ConfigurationError):
            compile_rule("[z-a].txt")


class TestMatches:
    @pytest.mark.parametrize(
        "pattern, path, expected",
        [
            ("*.log", "debug.log", True),
            ("*.log", "nested/dir/debug.log", True),
            ("*.log", "debug.log.txt", False),
            ("build", "build", True),
            ("build", "src/build", True),
            ("build/", "build", True),
            ("docs/*.md", "docs/readme.md", True),
            ("docs/*.md", "docs/api/readme.md", False),
            ("docs/*.md", "other/docs/readme.md", False),
            ("docs/**/*.md", "docs/readme.md", True),
            ("docs/**/*.md", "docs/api/v1/readme.md", True),
            ("**/cache", "a/b/cache", True),
            ("/app/main.py", "app/main.py", True),
            ("./app/main.py", "app/main.py", True),
            ("file?.txt", "file1.txt", True),
            ("file?.txt", "file10.txt", False),
            ("file[0-9].txt", "file7.txt", True),
            ("file[!0-9].txt", "filex.txt", True),
            ("file[!0-9].txt", "file7.txt", False),
            ("a+b(c).txt", "a+b(c).txt", True),
            ("a.b", "axb", False),
            ("\\*.txt", "*.txt", True),
            ("\\*.txt", "a.txt", False),
        ],
    )
    def test_grammar(self, pattern, path, expected):
        assert matches(compile_rule(pattern), path) is expected

    def test_matching_is_a_full_match(self):
        rule = compile_rule("src/app")
        assert matches(rule, "src/app")
        assert not matches(rule, "src/application")
        assert not matches(rule, "src/app/main.py")

    def test_star_does_not_cross_directories(self):
        rule = compile_rule("src/*")
        assert matches(rule, "src/main.py")
        assert not matches(rule, "src/pkg/main.py")


class TestDecide:
    def test_no_rules_includes_everything(self):
        assert decide(compile_rules(None), "anything") is Decision.INCLUDE
        assert decide(compile_rules([]), "a/b/c") is Decision.INCLUDE

    def test_no_match_includes(self):
        rules = compile_rules(["*.log"])
        assert decide(rules, "main.py") is Decision.INCLUDE

    def test_first_match_wins(self):
        rules = compile_rules(["!important.log", "*.log"])
        assert decide(rules, "important.log") is Decision.INCLUDE
        assert decide(rules, "debug.log") is Decision.EXCLUDE

    def test_later_override_does_not_apply_after_earlier_match(self):
        rules = compile_rules(["*.log", "!important.log"])
        assert decide(rules, "important.log") is Decision.EXCLUDE

    @pytest.mark.parametrize(
        "path", ["a.log", "keep.log", "dir/keep.log", "main.py", "dir/x.tmp"]
    )
    def test_decision_equals_first_matching_rule(self, path):
        raw = ["dir/keep.log", "!keep.log", "*.log", "!*.py", "*.tmp"]
        rules = compile_rules(raw)
        expected = Decision.INCLUDE
        for rule in rules:
            if matches(rule, path):
                expected = rule.decision
                break
        assert decide(rules, path) is expected
        assert decide(rules, path) is decide(rules, path)


def test_common_ignore_names():
    assert is_common_ignore(".git")
    assert is_common_ignore(".DS_Store")
    assert not is_common_ignore("git")
    assert not is_common_ignore("src")


class TestReadIgnoreFile:
    def test_skips_comments_and_blank_lines(self, tmp_path):
        ignore_file = tmp_path / ".dockerignore"
        ignore_file.write_text(
            "# comment\n\n*.log\n  build/  \n!keep.log\n", encoding="utf-8"
        )
        assert read_ignore_file(ignore_file) == ["*.log", "build/", "!keep.log"]

    def test_missing_file_yields_no_patterns(self, tmp_path):
        assert read_ignore_file(tmp_path / "missing") == []
