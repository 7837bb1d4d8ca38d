"""
Tests for the read-only SQL safety gate.
"""

import pytest

from text2sql.services.sql_safety import (
    check_sql,
    find_disallowed_keyword,
    is_sql_safe,
    strip_leading_comments,
)


class TestAllowedStatements:
    """Single SELECT statements pass."""

    @pytest.mark.parametrize("sql", [
        "SELECT * FROM employee",
        "select name from employee where dept = 'sales'",
        "SELECT * FROM employee;",
        "SELECT COUNT(*) FROM employee;   \n",
        "  \n SELECT id FROM employee",
        "-- list everyone\nSELECT * FROM employee",
        "/* header */ SELECT * FROM employee",
        "SELECT e.name, d.name FROM employee e JOIN department d "
        "ON e.department_id = d.id LIMIT 10",
    ])
    def test_allowed(self, sql):
        verdict = check_sql(sql)
        assert verdict.allowed, verdict.reason
        assert verdict.reason is None

    def test_column_names_containing_keywords(self):
        """Keywords are matched as whole words only."""
        sql = "SELECT updated_at, created_by, deleted_flag FROM audit"
        assert is_sql_safe(sql)


class TestRejectedStatements:
    """Anything that could mutate data or schema is rejected."""

    @pytest.mark.parametrize("keyword", [
        "INSERT", "UPDATE", "DELETE", "DROP", "ALTER",
        "TRUNCATE", "CREATE", "REPLACE", "GRANT", "REVOKE",
    ])
    def test_mutation_keywords(self, keyword):
        verdict = check_sql(f"{keyword} something")
        assert not verdict.allowed
        assert verdict.reason == f"disallowed keyword: {keyword}"

    def test_keyword_is_case_insensitive(self):
        verdict = check_sql("drop table employee")
        assert verdict.reason == "disallowed keyword: DROP"

    def test_keyword_inside_select(self):
        verdict = check_sql("SELECT * FROM employee WHERE 1=1 OR DELETE")
        assert not verdict.allowed

    def test_keyword_inside_comment(self):
        assert not is_sql_safe("SELECT 1 /*DROP*/")

    def test_into_outfile(self):
        verdict = check_sql("SELECT * FROM employee INTO OUTFILE '/tmp/x'")
        assert verdict.reason == "disallowed keyword: INTO OUTFILE"

    def test_multiple_statements(self):
        verdict = check_sql("SELECT * FROM employee; SELECT * FROM department")
        assert not verdict.allowed
        assert verdict.reason == "multiple statements are not allowed"

    def test_mutation_after_select(self):
        verdict = check_sql("SELECT * FROM employee; DELETE FROM employee")
        assert not verdict.allowed

    @pytest.mark.parametrize("sql", [
        "SHOW TABLES",
        "DESCRIBE employee",
        "WITH x AS (SELECT 1) SELECT * FROM x",
    ])
    def test_must_start_with_select(self, sql):
        verdict = check_sql(sql)
        assert verdict.reason == "only SELECT statements are allowed"

    @pytest.mark.parametrize("sql", [None, "", "   ", "\n\t"])
    def test_empty(self, sql):
        verdict = check_sql(sql)
        assert not verdict.allowed
        assert verdict.reason == "empty statement"


def test_strip_leading_comments():
    sql = "-- one\n  /* two\n lines */\n SELECT 1"
    assert strip_leading_comments(sql) == "SELECT 1"


def test_strip_leading_comments_keeps_inner_comments():
    sql = "SELECT 1 -- trailing"
    assert strip_leading_comments(sql) == sql


def test_find_disallowed_keyword():
    assert find_disallowed_keyword("delete from employee") == "DELETE"
    assert find_disallowed_keyword("SELECT 1") is None
    assert find_disallowed_keyword(None) is None
