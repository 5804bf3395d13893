"""Tests for the grammar adapter and the fallback pattern detector."""

import pytest

from migraguard.diagnostics import DiagnosticKind, Diagnostics
from migraguard.exceptions import ParseError
from migraguard.fallback import SAFE_SIGNATURES, FallbackDetector
from migraguard.parser import Parser
from migraguard.statement import StatementKind


class TestParser:
    """Test SQL text to statements."""

    @pytest.fixture
    def parser(self) -> Parser:
        return Parser()

    @pytest.mark.parametrize(
        "sql,kind",
        [
            ("CREATE INDEX idx ON users (email);", StatementKind.CREATE_INDEX),
            ("CREATE UNIQUE INDEX idx ON users (email);", StatementKind.CREATE_INDEX),
            ("CREATE TABLE users (id BIGINT);", StatementKind.CREATE_TABLE),
            ("ALTER TABLE users ADD COLUMN age INT;", StatementKind.ALTER_TABLE),
            ("DROP TABLE users;", StatementKind.DROP),
            ("DROP INDEX idx;", StatementKind.DROP),
            ("TRUNCATE TABLE events;", StatementKind.TRUNCATE),
            ("REINDEX INDEX idx;", StatementKind.REINDEX),
            ("SELECT * FROM users;", StatementKind.SELECT),
            ("INSERT INTO users (id) VALUES (1);", StatementKind.INSERT),
            ("UPDATE users SET age = 1;", StatementKind.UPDATE),
            ("DELETE FROM users WHERE id = 1;", StatementKind.DELETE),
        ],
    )
    def test_statement_kinds(self, parser: Parser, sql: str, kind: StatementKind) -> None:
        statements = parser.parse(sql)
        assert len(statements) == 1
        assert statements[0].kind == kind

    def test_multiple_statements_keep_order(self, parser: Parser) -> None:
        statements = parser.parse("SELECT 1;\nDROP TABLE t;\nSELECT 2;")
        assert [s.kind for s in statements] == [
            StatementKind.SELECT,
            StatementKind.DROP,
            StatementKind.SELECT,
        ]

    def test_comment_only_text_has_no_statements(self, parser: Parser) -> None:
        assert parser.parse("-- nothing to do here\n") == []

    def test_parse_is_deterministic(self, parser: Parser) -> None:
        sql = "CREATE INDEX idx ON t (a);\nDROP TABLE t;"
        first = [s.sql() for s in parser.parse(sql)]
        second = [s.sql() for s in parser.parse(sql)]
        assert first == second

    def test_concurrent_index(self, parser: Parser) -> None:
        statement = parser.parse("CREATE INDEX CONCURRENTLY idx ON t (a);")[0]
        assert statement.is_concurrent is True

    def test_reindex_concurrently(self, parser: Parser) -> None:
        statement = parser.parse("REINDEX TABLE CONCURRENTLY users;")[0]
        assert statement.kind == StatementKind.REINDEX
        assert statement.is_concurrent is True
        view = statement.to_view()
        assert view["target_type"] == "TABLE"
        assert view["target"] == "users"

    @pytest.mark.parametrize(
        "sql",
        [
            "ALTER TABLE users VALIDATE CONSTRAINT email_not_null;",
            "ALTER TABLE users OWNER TO app;",
        ],
    )
    def test_uninspected_alter_table_passes_through(self, parser: Parser, sql: str) -> None:
        statements = parser.parse(sql)
        assert len(statements) == 1
        assert statements[0].sql().upper().startswith("ALTER TABLE USERS")

    def test_opaque_alter_table_with_inspected_action_raises(self, parser: Parser) -> None:
        with pytest.raises(ParseError) as exc_info:
            parser.parse("SELECT 1;\nALTER TABLE x ADD CONSTRAINT c UNIQUE USING INDEX i;")
        assert exc_info.value.line == 2

    def test_invalid_sql_raises(self, parser: Parser) -> None:
        with pytest.raises(ParseError) as exc_info:
            parser.parse("CREATE TABLE users (id INT")
        assert exc_info.value.reason


class TestStatementView:
    """The plain-data view handed to scripted rules."""

    def test_create_index_view(self) -> None:
        view = Parser().parse("CREATE UNIQUE INDEX idx ON users (email, name);")[0].to_view()
        assert view["kind"] == "CREATE_INDEX"
        assert view["name"] == "idx"
        assert view["table"] == "users"
        assert view["columns"] == ["email", "name"]
        assert view["unique"] is True
        assert view["concurrent"] is False

    def test_drop_view(self) -> None:
        view = Parser().parse("DROP TABLE IF EXISTS users CASCADE;")[0].to_view()
        assert view["kind"] == "DROP"
        assert view["names"] == ["users"]
        assert view["if_exists"] is True

    @pytest.mark.parametrize(
        "sql,name",
        [
            ("ALTER TABLE users DROP COLUMN email;", "email"),
            ("ALTER TABLE users DROP CONSTRAINT users_pkey;", "users_pkey"),
        ],
    )
    def test_alter_drop_view(self, sql: str, name: str) -> None:
        view = Parser().parse(sql)[0].to_view()
        assert view["table"] == "users"
        assert [action["name"] for action in view["actions"]] == [name]

    def test_view_is_a_fresh_copy(self) -> None:
        statement = Parser().parse("CREATE INDEX idx ON users (email);")[0]
        view = statement.to_view()
        view["columns"].append("tampered")
        assert statement.to_view()["columns"] == ["email"]


class TestFallbackDetector:
    """Test suppression of parse failures for safe idioms."""

    @pytest.fixture
    def detector(self) -> FallbackDetector:
        return FallbackDetector()

    @pytest.mark.parametrize(
        "sql",
        [
            "ALTER TABLE users ADD CONSTRAINT users_email_key UNIQUE USING INDEX idx;",
            "alter table users add constraint users_pkey primary key using index users_pkey_idx;",
            "DROP INDEX CONCURRENTLY idx_users_email;",
            "drop index concurrently if exists idx_users_email;",
        ],
    )
    def test_safe_idiom_suppresses_failure(self, detector: FallbackDetector, sql: str) -> None:
        diagnostics = Diagnostics()
        error = ParseError("unsupported syntax", line=1, col=1)
        assert detector.resolve(sql, error, diagnostics) == []
        assert len(diagnostics.of_kind(DiagnosticKind.FALLBACK_MATCH)) == 1

    def test_other_failure_propagates_unchanged(self, detector: FallbackDetector) -> None:
        error = ParseError("Expecting )", line=1, col=27)
        with pytest.raises(ParseError) as exc_info:
            detector.resolve("CREATE TABLE users (id INT", error)
        assert exc_info.value is error

    def test_first_matching_signature_wins(self, detector: FallbackDetector) -> None:
        sql = (
            "ALTER TABLE t ADD CONSTRAINT c UNIQUE USING INDEX i;\n"
            "DROP INDEX CONCURRENTLY j;"
        )
        signature = detector.match(sql)
        assert signature is not None
        assert signature.name == SAFE_SIGNATURES[0].name

    def test_no_match(self, detector: FallbackDetector) -> None:
        assert detector.match("ALTER TABLE t ADD CONSTRAINT c UNIQUE (a);") is None
