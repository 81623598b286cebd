"""Tests for rule evaluation.

- Given-When-Then structure
- Real engine, real rules; no mocking
"""

import asyncio

from review_bot.engine import (
    DEFAULT_RULES,
    HEURISTICS,
    RuleEngine,
    default_rule_set,
    is_suppressed,
    is_test_file,
)
from review_bot.engine.rule_engine import compile_pattern
from review_bot.errors import ErrorKind
from review_bot.models import Rule, RuleSet, TESTS_EXCLUDED

from conftest import MAGIC_NUMBERS, make_file


class TestPatternRules:
    """Tests for regex-based rules."""

    def test_suppression_marker_vetoes_finding(self, engine, magic_rules):
        """Given a magic number marked as intentional, should report nothing."""
        # Given
        file = make_file("src/Demo.cs", ["var x = 12345; // intentionally hardcoded for demo"])

        # When
        findings = engine.evaluate(file, magic_rules)

        # Then
        assert findings == []

    def test_unsuppressed_match_is_reported(self, engine, magic_rules):
        """Given a plain magic number, should report it on its line."""
        # Given
        file = make_file("src/Demo.cs", ["int a = 1;", "var x = 12345;"])

        # When
        findings = engine.evaluate(file, magic_rules)

        # Then
        assert len(findings) == 1
        assert findings[0].rule_id == "magic-numbers"
        assert findings[0].line_number == 2
        assert findings[0].severity == "warning"
        assert findings[0].confidence is None

    def test_every_match_on_a_line_yields_a_finding(self, engine, magic_rules):
        """Given two magic numbers on one line, should report two findings."""
        # Given
        file = make_file("src/calc.py", ["total = 1000 + 2000"])

        # When
        findings = engine.evaluate(file, magic_rules)

        # Then
        assert [f.line_number for f in findings] == [1, 1]

    def test_matching_is_case_insensitive(self, engine):
        """Given a lowercase pattern, should match mixed-case code."""
        # Given
        rules = RuleSet([Rule(id="console-output", severity="warning", message="No console",
                              pattern=r"console\.writeline\s*\(")])
        file = make_file("src/Program.cs", ['Console.WriteLine("hi");'])

        # When
        findings = engine.evaluate(file, rules)

        # Then
        assert len(findings) == 1

    def test_only_changed_lines_are_scanned(self, engine, magic_rules):
        """Given analyze_only_changed, should ignore unchanged lines."""
        # Given
        file = make_file("src/a.py", ["x = 100", "y = 200", "z = 300"], changed=[2])

        # When
        findings = engine.evaluate(file, magic_rules)

        # Then
        assert [f.line_number for f in findings] == [2]

    def test_file_without_changed_lines_is_skipped(self, engine, magic_rules):
        """Given no changed lines, should not scan the file at all."""
        # Given
        file = make_file("src/a.py", ["x = 100"], changed=[])

        # When
        results = engine.evaluate_results(file, magic_rules)

        # Then
        assert results == []

    def test_whole_file_scanned_when_not_limited_to_changes(self, magic_rules):
        """Given analyze_only_changed off, should scan every line."""
        # Given
        file = make_file("src/a.py", ["x = 100", "y = 200"], changed=[])

        # When
        with RuleEngine(max_workers=2, analyze_only_changed=False) as engine:
            findings = engine.evaluate(file, magic_rules)

        # Then
        assert [f.line_number for f in findings] == [1, 2]


class TestApplicability:
    """Tests for test-file and path-glob filtering."""

    def test_tests_excluded_rule_skips_test_files(self, engine):
        """Given a tests-excluded rule, should not run it on test files."""
        # Given
        rule = Rule(id="magic-numbers", severity="warning", message="Magic",
                    pattern=r"\d{3,}", applicability=frozenset([TESTS_EXCLUDED]))
        test_file = make_file("tests/test_billing.py", ["assert total == 1500"])
        source_file = make_file("src/billing.py", ["total = 1500"])

        # When
        in_tests = engine.evaluate(test_file, RuleSet([rule]))
        in_source = engine.evaluate(source_file, RuleSet([rule]))

        # Then
        assert in_tests == []
        assert len(in_source) == 1

    def test_untagged_rule_runs_on_test_files(self, engine, magic_rules):
        """Given a rule without the tag, should still run on test files."""
        # Given
        file = make_file("tests/test_billing.py", ["assert total == 1500"])

        # When
        findings = engine.evaluate(file, magic_rules)

        # Then
        assert len(findings) == 1

    def test_path_glob_limits_rule_to_matching_files(self, engine):
        """Given a *.py glob, should only run the rule on Python files."""
        # Given
        rule = Rule(id="print-call", severity="warning", message="Use logging",
                    pattern=r"\bprint\(", applicability=frozenset(["*.py"]))
        py_file = make_file("app/main.py", ["print('x')"])
        js_file = make_file("web/main.js", ["print('x')"])

        # When / Then
        assert len(engine.evaluate(py_file, RuleSet([rule]))) == 1
        assert engine.evaluate(js_file, RuleSet([rule])) == []

    def test_test_file_detection(self):
        """Should recognize common test path conventions."""
        assert is_test_file("tests/test_api.py")
        assert is_test_file("src/spec/user.rb")
        assert is_test_file("web/button.test.tsx")
        assert is_test_file("web/button.spec.js")
        assert is_test_file("pkg/handler_test.go")
        assert is_test_file("test_utils.py")
        assert is_test_file("src/CodeReviewBot.Tests/LearningServiceTests.cs")
        assert is_test_file("src/button-test.js")
        assert is_test_file("test.py")
        assert not is_test_file("src/contest/entry.py")
        assert not is_test_file("src/latest.py")

    def test_suppression_markers(self):
        """Should honor marker words only inside comments."""
        assert is_suppressed("x = 500  # TODO extract constant")
        assert is_suppressed("timeout = 3000; // by design")
        assert is_suppressed("retry(5000) /* workaround for flaky API */")
        assert not is_suppressed("todo_count = 500")
        assert not is_suppressed("x = 500  # FIXME")


class TestFailures:
    """Tests for per-rule failure isolation."""

    def test_invalid_pattern_fails_only_that_rule(self, engine):
        """Given one broken pattern, should still report other rules' findings."""
        # Given
        broken = Rule(id="broken", severity="warning", message="Broken", pattern="(unclosed")
        rules = RuleSet([broken, MAGIC_NUMBERS])
        file = make_file("src/a.py", ["x = 100"])

        # When
        results = engine.evaluate_results(file, rules)
        findings = engine.evaluate(file, rules)

        # Then
        failed = [r for r in results if not r.ok]
        assert len(failed) == 1
        assert failed[0].error == ErrorKind.CONFIGURATION
        assert "broken" in failed[0].message
        assert [f.rule_id for f in findings] == ["magic-numbers"]


class TestHeuristics:
    """Tests for patternless rules."""

    def test_long_line_is_flagged(self, engine):
        """Given a line over 120 characters, should flag it."""
        # Given
        rules = RuleSet([Rule(id="line-length", severity="warning", message="Too long")])
        file = make_file("src/a.py", ["x = 1", "y = '" + "a" * 130 + "'"])

        # When
        findings = engine.evaluate(file, rules)

        # Then
        assert [f.line_number for f in findings] == [2]

    def test_parameter_count_ignores_self(self):
        """Given six parameters including self, should not flag the method."""
        lines = [
            "def build(a, b, c, d, e, f):",
            "    def method(self, a, b, c, d, e):",
            "public void Save(int a, int b, int c, int d, int e, int f) {",
            "if (a && b) {",
        ]

        assert HEURISTICS["parameter-count"](lines) == [1, 3]

    def test_nesting_depth_flags_first_line_past_limit(self):
        """Given indentation five levels deep, should flag where it crosses the limit."""
        lines = [
            "def f():",
            "    if a:",
            "        if b:",
            "            if c:",
            "                if d:",
            "                    x = 1",
            "                    y = 2",
        ]

        assert HEURISTICS["nesting-depth"](lines) == [6]

    def test_nesting_depth_with_braces(self):
        """Given brace-delimited code, should count brace depth."""
        lines = ["void F() {", "if (a) {", "if (b) {", "if (c) {", "if (d) {", "x++;", "}}}}}"]

        assert HEURISTICS["nesting-depth"](lines) == [6]

    def test_patternless_rule_without_heuristic_is_skipped(self, engine):
        """Given a patternless rule with no registered check, should report nothing."""
        # Given
        rules = RuleSet([Rule(id="cyclomatic-complexity", severity="warning", message="Complex")])
        file = make_file("src/a.py", ["x = 1"])

        # When
        results = engine.evaluate_results(file, rules)

        # Then
        assert len(results) == 1
        assert results[0].ok
        assert results[0].value == []


class TestDeterminism:
    """Tests for concurrent evaluation."""

    def test_async_evaluation_matches_blocking(self, engine):
        """Given the same inputs, async and blocking evaluation should agree."""
        # Given
        file = make_file("src/service.cs", [
            "public async void Run() {",
            "    Console.WriteLine(\"start\");",
            "    var timeout = 30000;",
            "    try { Work(); } catch (Exception e) { }",
            "    goto done;",
            "}",
        ])
        rules = default_rule_set()

        # When
        blocking = engine.evaluate(file, rules)
        first = asyncio.run(engine.evaluate_async(file, rules))
        second = asyncio.run(engine.evaluate_async(file, rules))

        # Then
        assert blocking == first == second
        assert {"async-void", "console-output", "magic-numbers", "goto-statement"} <= {f.rule_id for f in first}


class TestDefaultRules:
    """Tests for the built-in rule set."""

    def test_default_rules_are_unique_and_compile(self):
        """Built-in rules should have unique ids and valid patterns."""
        rule_set = default_rule_set()

        assert len(rule_set) == len(DEFAULT_RULES)
        assert rule_set.rejected == []
        for rule in rule_set:
            if rule.pattern:
                compile_pattern(rule.pattern)
            else:
                assert rule.id in HEURISTICS
