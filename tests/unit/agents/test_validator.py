"""
Unit tests for SQLValidator.

Tests the read-only gate including:
- SELECT prefix requirement
- Whole-word, case-insensitive keyword scan
- Quoted spans excluded from the scan, per dialect
- Single statement only
"""

import pytest

from sqlchat.agents.validator import (
    DANGEROUS_KEYWORDS,
    SQLValidator,
    keyword_scan_view,
    scan_statement,
)


@pytest.fixture
def validator():
    return SQLValidator()


class TestSelectPrefix:
    """Only SELECT statements pass."""

    @pytest.mark.parametrize(
        "sql",
        [
            "SELECT * FROM orders LIMIT 10",
            "select id from orders limit 10",
            "  \n SELECT COUNT(*) FROM customers",
        ],
    )
    def test_select_accepted(self, validator, sql):
        result = validator.validate(sql)

        assert result.ok is True
        assert result.reason is None

    @pytest.mark.parametrize(
        "sql",
        [
            "WITH t AS (SELECT 1) SELECT * FROM t",
            "EXPLAIN SELECT * FROM orders",
            "SELECTED_ROWS",
        ],
    )
    def test_non_select_rejected(self, validator, sql):
        result = validator.validate(sql)

        assert result.ok is False
        assert "Only SELECT queries are allowed" in result.reason

    def test_empty_rejected(self, validator):
        assert validator.validate("   ").ok is False


class TestDangerousKeywords:
    """Bare dangerous keywords anywhere reject the statement."""

    @pytest.mark.parametrize("keyword", DANGEROUS_KEYWORDS)
    def test_each_keyword(self, validator, keyword):
        result = validator.validate(f"SELECT 1; {keyword.lower()} something")

        assert result.ok is False
        assert result.keyword == keyword

    def test_reason_quotes_original_statement(self, validator):
        sql = "SELECT * FROM users; DROP TABLE users"

        result = validator.validate(sql)

        assert result.reason == f"Query contains forbidden keyword DROP: {sql}"

    def test_whole_word_only(self, validator):
        sql = "SELECT created_at, updated_by, last_update_time FROM audit_log LIMIT 10"

        assert validator.validate(sql).ok is True

    def test_keyword_in_string_literal(self, validator):
        sql = "SELECT * FROM notes WHERE body = 'please update later' LIMIT 10"

        assert validator.validate(sql).ok is True

    def test_keyword_as_quoted_identifier(self, validator):
        sql = 'SELECT "delete" FROM flags LIMIT 10'

        assert validator.validate(sql).ok is True

    def test_keyword_after_literal(self, validator):
        sql = "SELECT 'x' AS note; DELETE FROM orders"

        result = validator.validate(sql)

        assert result.ok is False
        assert result.keyword == "DELETE"


class TestKeywordScanView:
    def test_blanks_quoted_content(self):
        view = keyword_scan_view("SELECT 'drop it' AS x")

        assert view == "SELECT '       ' AS x"

    def test_keeps_length(self):
        sql = 'SELECT "update" FROM t WHERE a = \'grant\''

        assert len(keyword_scan_view(sql)) == len(sql)

    def test_comment_quote_does_not_open_literal(self):
        view = keyword_scan_view("SELECT 1 -- it's\n; DROP TABLE t")

        assert "DROP" in view


# ============================================================================
# Dialect-specific quoting
# ============================================================================


class TestPostgresQuoting:
    """Backslash is an ordinary character in standard PostgreSQL strings."""

    @pytest.fixture
    def validator(self):
        return SQLValidator("postgresql")

    def test_backslash_does_not_escape_quote(self, validator):
        sql = "SELECT 'a\\' AS x, 'b'; DROP TABLE orders; --'"

        result = validator.validate(sql)

        assert result.ok is False
        assert result.keyword == "DROP"

    def test_backslash_in_literal_accepted(self, validator):
        sql = "SELECT * FROM files WHERE path = 'C:\\temp\\' LIMIT 10"

        assert validator.validate(sql).ok is True

    def test_escape_string_honours_backslash(self, validator):
        sql = "SELECT E'it\\'s; drop it' AS note"

        assert validator.validate(sql).ok is True

    def test_doubled_quote_escape(self, validator):
        sql = "SELECT 'it''s; delete me' AS note"

        assert validator.validate(sql).ok is True

    def test_quoted_identifier_has_no_backslash_escape(self, validator):
        sql = 'SELECT "a\\" , 1; DROP TABLE orders; --"'

        assert validator.validate(sql).keyword == "DROP"

    def test_dollar_quoted_literal(self, validator):
        sql = "SELECT $body$ please update; drop $body$ AS note"

        assert validator.validate(sql).ok is True

    def test_quote_inside_dollar_literal(self, validator):
        sql = "SELECT $$ it's $$ AS x; DROP TABLE orders"

        assert validator.validate(sql).keyword == "DROP"

    def test_positional_parameter_is_not_dollar_quote(self):
        view = keyword_scan_view("SELECT $1, 'drop' FROM t WHERE a = $2")

        assert view == "SELECT $1, '    ' FROM t WHERE a = $2"

    def test_hash_is_not_a_comment(self):
        view = scan_statement("SELECT 1 # 2; SELECT 3", "postgresql")

        assert view.trailing_code is True


class TestMySQLQuoting:
    """MySQL strings honour backslash escapes."""

    @pytest.fixture
    def validator(self):
        return SQLValidator("mysql")

    def test_backslash_escapes_quote(self, validator):
        sql = "SELECT 'a\\' ; drop it' AS note"

        assert validator.validate(sql).ok is True

    def test_double_quoted_string(self, validator):
        sql = 'SELECT "please update later" AS note'

        assert validator.validate(sql).ok is True

    def test_backtick_identifier(self, validator):
        sql = "SELECT `delete` FROM flags LIMIT 10"

        assert validator.validate(sql).ok is True

    def test_hash_comment_quote_does_not_open_literal(self, validator):
        sql = "SELECT 1 # it's\n; DROP TABLE orders"

        assert validator.validate(sql).keyword == "DROP"

    def test_executable_comment_body_is_scanned(self, validator):
        sql = "SELECT 1 /*! ; DROP TABLE orders */"

        assert validator.validate(sql).keyword == "DROP"

    def test_double_dash_needs_whitespace(self):
        view = scan_statement("SELECT 1 --1; SELECT 2", "mysql")

        assert view.trailing_code is True


# ============================================================================
# Single statement
# ============================================================================


class TestSingleStatement:
    def test_trailing_semicolon_accepted(self, validator):
        assert validator.validate("SELECT * FROM orders LIMIT 10;").ok is True

    def test_trailing_comment_accepted(self, validator):
        assert validator.validate("SELECT 1; -- total\n").ok is True

    def test_second_select_rejected(self, validator):
        result = validator.validate("SELECT 1; SELECT pg_sleep(10)")

        assert result.ok is False
        assert result.reason.startswith(
            "Only a single statement is allowed (found a trailing SELECT statement)"
        )

    def test_unlisted_statement_rejected(self, validator):
        result = validator.validate("SELECT 1; VACUUM orders")

        assert result.ok is False
        assert "Only a single statement is allowed" in result.reason

    def test_semicolon_inside_literal_ignored(self, validator):
        assert validator.validate("SELECT 'a;b' AS x LIMIT 1").ok is True
