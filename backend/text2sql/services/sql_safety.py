"""
Read-only SQL safety gate.

Stands between free-text model output and the execution backend.
A statement is allowed only when it is a single top-level SELECT
that mentions no data- or schema-mutation keyword anywhere in its
text (comments included, so ``/*DROP*/`` is rejected too).

This is a conservative keyword check, not a SQL parser.
"""

import re
from typing import Optional

from pydantic import BaseModel


# Patterns that must NEVER appear in executable SQL.
_DANGEROUS_SQL_RE = re.compile(
    r"\b(INSERT|UPDATE|DELETE|DROP|ALTER|TRUNCATE|CREATE|"
    r"REPLACE|GRANT|REVOKE|MERGE|EXEC|EXECUTE|CALL|LOAD|"
    r"INTO\s+OUTFILE|INTO\s+DUMPFILE)\b",
    re.IGNORECASE,
)

# A semicolon followed by anything but whitespace means a second
# statement is present.
_MULTI_STATEMENT_RE = re.compile(r";\s*\S")

_LEADING_NOISE_RE = re.compile(
    r"\A(?:\s+|--[^\n]*(?:\n|\Z)|/\*.*?\*/)+",
    re.DOTALL,
)

_SELECT_RE = re.compile(r"SELECT\b", re.IGNORECASE)


class SafetyVerdict(BaseModel):
    """Outcome of a safety check."""

    allowed: bool
    reason: Optional[str] = None

    model_config = {"frozen": True}

    @classmethod
    def allow(cls) -> "SafetyVerdict":
        return cls(allowed=True)

    @classmethod
    def reject(cls, reason: str) -> "SafetyVerdict":
        return cls(allowed=False, reason=reason)


def strip_leading_comments(sql: str) -> str:
    """
    Remove leading whitespace and ``--`` / ``/* */`` comments.

    Parameters:
        sql (str): Raw SQL text.

    Returns:
        str: The text starting at the first real token.
    """
    return _LEADING_NOISE_RE.sub("", sql, count=1)


def find_disallowed_keyword(sql: Optional[str]) -> Optional[str]:
    """
    Return the first mutation keyword in *sql*, upper-cased, or None.
    """
    match = _DANGEROUS_SQL_RE.search(sql or "")
    if match is None:
        return None
    return " ".join(match.group(1).upper().split())


def check_sql(sql: Optional[str]) -> SafetyVerdict:
    """
    Validate a candidate statement against the read-only policy.

    Parameters:
        sql (str): Candidate SQL statement.

    Returns:
        SafetyVerdict: ``allowed=True`` or a rejection with reason.
    """
    if sql is None or not sql.strip():
        return SafetyVerdict.reject("empty statement")

    keyword = find_disallowed_keyword(sql)
    if keyword:
        return SafetyVerdict.reject(
            f"disallowed keyword: {keyword}"
        )

    if _MULTI_STATEMENT_RE.search(sql):
        return SafetyVerdict.reject(
            "multiple statements are not allowed"
        )

    if not _SELECT_RE.match(strip_leading_comments(sql)):
        return SafetyVerdict.reject(
            "only SELECT statements are allowed"
        )

    return SafetyVerdict.allow()


def is_sql_safe(sql: Optional[str]) -> bool:
    """Shorthand for ``check_sql(sql).allowed``."""
    return check_sql(sql).allowed
