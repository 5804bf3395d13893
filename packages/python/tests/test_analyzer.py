"""End-to-end tests for the analysis pipeline."""

import pytest

import migraguard
from migraguard import (
    Analyzer,
    DiagnosticKind,
    NestedBlockError,
    ParseError,
    RunConfig,
    SandboxLimits,
    UnmatchedEndError,
)
from migraguard.analyzer import parse_unit

MIGRATION = """\
-- Add email lookup
CREATE INDEX idx_users_email ON users (email);

ALTER TABLE users ADD COLUMN nickname TEXT;

-- safety-assured:start
CREATE INDEX idx_new_table ON new_table (id);
-- safety-assured:end

DROP TABLE legacy_users;
"""


@pytest.fixture
def analyzer() -> Analyzer:
    return Analyzer()


class TestAnalyze:
    """Test the full pipeline on realistic migrations."""

    def test_findings_carry_source_lines(self, analyzer: Analyzer) -> None:
        result = analyzer.analyze(MIGRATION)
        assert [(f.line, f.rule) for f in result.findings] == [
            (2, "add-index"),
            (10, "drop-table"),
        ]
        assert result.is_safe is False
        assert not result

    def test_safe_migration(self, analyzer: Analyzer) -> None:
        result = analyzer.analyze("CREATE INDEX CONCURRENTLY idx ON users (email);")
        assert result.is_safe
        assert result.findings == []
        assert result.violations == []

    def test_exempt_statement_has_no_violations(self, analyzer: Analyzer) -> None:
        sql = "-- safety-assured:start\nCREATE INDEX idx ON t(a);\n-- safety-assured:end\n"
        assert analyzer.analyze(sql).findings == []

    def test_validate_constraint_step(self, analyzer: Analyzer) -> None:
        sql = (
            "-- second half of a NOT VALID constraint\n"
            "ALTER TABLE users VALIDATE CONSTRAINT email_not_null;\n"
            "DROP TABLE legacy_users;\n"
        )
        result = analyzer.analyze(sql)
        assert [(f.line, f.rule) for f in result.findings] == [(3, "drop-table")]
        assert result.diagnostics == []

    def test_idempotent(self, analyzer: Analyzer) -> None:
        assert analyzer.analyze(MIGRATION) == analyzer.analyze(MIGRATION)

    def test_no_directives_means_no_ranges(self) -> None:
        unit = parse_unit("CREATE INDEX idx ON t (a);\nDROP TABLE t;")
        assert unit.ignore_ranges == ()
        assert len(unit.statements) == 2
        assert unit.statement_lines == {0: 1, 1: 2}

    def test_parsed_unit_is_read_only(self) -> None:
        unit = parse_unit("DROP TABLE t;")
        with pytest.raises(TypeError):
            unit.statement_lines[0] = 5  # type: ignore[index]
        assert unit.line_of(0) == 1

    def test_disabled_rule(self) -> None:
        analyzer = Analyzer(RunConfig(disabled_names={"add-index"}))
        assert [f.rule for f in analyzer.analyze(MIGRATION).findings] == ["drop-table"]
        assert "add-index" not in analyzer.active_rule_names()

    def test_unknown_disabled_name(self) -> None:
        analyzer = Analyzer(RunConfig(disabled_names={"add-idnex"}))
        assert [d.kind for d in analyzer.setup_diagnostics] == [
            DiagnosticKind.UNKNOWN_DISABLED_NAME
        ]
        assert len(analyzer.analyze(MIGRATION).findings) == 2

    def test_builtin_rule_names(self) -> None:
        names = Analyzer.builtin_rule_names()
        assert "add-index" in names
        assert names == sorted(names)


class TestFatalErrors:
    """Only parse and directive errors abort a unit."""

    def test_nested_block(self, analyzer: Analyzer) -> None:
        sql = (
            "-- safety-assured:start\n"
            "CREATE INDEX a ON t (x);\n"
            "-- safety-assured:start\n"
            "-- safety-assured:end\n"
        )
        with pytest.raises(NestedBlockError):
            analyzer.analyze(sql)

    def test_lone_end(self, analyzer: Analyzer) -> None:
        with pytest.raises(UnmatchedEndError):
            analyzer.analyze("DROP TABLE t;\n-- safety-assured:end\n")

    def test_directive_errors_come_before_parse_errors(self, analyzer: Analyzer) -> None:
        with pytest.raises(UnmatchedEndError):
            analyzer.analyze("CREATE TABLE users (id INT\n-- safety-assured:end\n")

    def test_parse_error(self, analyzer: Analyzer) -> None:
        with pytest.raises(ParseError):
            analyzer.analyze("CREATE TABLE users (id INT")


class TestFallback:
    """Known-safe idioms the grammar cannot parse."""

    def test_constraint_using_index(self, analyzer: Analyzer) -> None:
        result = analyzer.analyze(
            "ALTER TABLE x ADD CONSTRAINT c UNIQUE USING INDEX i;"
        )
        assert result.findings == []

    def test_drop_index_concurrently(self, analyzer: Analyzer) -> None:
        assert analyzer.analyze("DROP INDEX CONCURRENTLY IF EXISTS idx;").findings == []


class TestScriptedRules:
    """Custom rules inside the full pipeline."""

    def test_custom_rule_reports(self) -> None:
        source = (
            "if node['kind'] == 'CREATE_INDEX' and node['table'] == 'users':\n"
            "    return {'operation': 'INDEX ON users', 'problem': 'p', 'solution': 's'}\n"
        )
        analyzer = Analyzer(RunConfig(custom_rule_sources=[("users-index", source)]))
        findings = analyzer.analyze(MIGRATION).findings
        assert [(f.line, f.rule) for f in findings] == [
            (2, "add-index"),
            (2, "users-index"),
            (10, "drop-table"),
        ]
        assert findings[1].violation.operation == "INDEX ON users"

    def test_runaway_script_is_stopped(self) -> None:
        config = RunConfig(custom_rule_sources=[("spin", "while True:\n    pass")])
        analyzer = Analyzer(config, sandbox_limits=SandboxLimits(max_operations=1_000))

        result = analyzer.analyze("DROP TABLE users;")
        assert [f.rule for f in result.findings] == ["drop-table"]
        stopped = [d for d in result.diagnostics if d.kind == DiagnosticKind.QUOTA_EXCEEDED]
        assert [d.rule for d in stopped] == ["spin"]

    def test_memory_amplification_is_stopped(self) -> None:
        source = (
            "s = 'a' * 10000\n"
            "grid = [[s] * 1000] * 1000\n"
            "return {'operation': str(grid), 'problem': 'p', 'solution': 's'}\n"
        )
        config = RunConfig(custom_rule_sources=[("amplify", source)])
        result = Analyzer(config).analyze("CREATE INDEX CONCURRENTLY i ON t (a);")
        assert result.findings == []
        assert [(d.kind, d.rule) for d in result.diagnostics] == [
            (DiagnosticKind.QUOTA_EXCEEDED, "amplify")
        ]

    def test_protocol_violation(self) -> None:
        config = RunConfig(custom_rule_sources=[("bad-result", "return 'not a violation'")])
        result = Analyzer(config).analyze("DROP TABLE users;")
        assert [f.rule for f in result.findings] == ["drop-table"]
        assert [d.kind for d in result.diagnostics] == [DiagnosticKind.PROTOCOL_VIOLATION]

    def test_script_sees_config(self) -> None:
        source = (
            "if config['postgres_version'] is not None and config['postgres_version'] < 12:\n"
            "    return {'operation': 'OLD', 'problem': 'p', 'solution': 's'}\n"
        )
        config = RunConfig(postgres_version=10, custom_rule_sources=[("old-pg", source)])
        findings = Analyzer(config).analyze("SELECT 1;").findings
        assert [f.rule for f in findings] == ["old-pg"]


class TestCheckSql:
    """Test the module-level convenience function."""

    def test_default(self) -> None:
        findings = migraguard.check_sql("CREATE INDEX idx ON users (email);")
        assert [f.rule for f in findings] == ["add-index"]

    def test_with_config(self) -> None:
        sql = "ALTER TABLE users ADD COLUMN active BOOLEAN DEFAULT true;"
        assert migraguard.check_sql(sql, RunConfig(postgres_version=11)) == []

    def test_finding_str(self) -> None:
        finding = migraguard.check_sql("TRUNCATE TABLE events;")[0]
        assert str(finding) == "line 1: [truncate-table] TRUNCATE TABLE"
