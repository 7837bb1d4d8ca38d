"""
Business rule advisor.

Deterministic heuristics that turn the rewritten question and the
selected tables into short rule annotations for the stage-3
(information inference) prompt.  No model calls, no shared state.

Each ``get_*`` / ``parse_*`` function returns an empty string when it
has nothing to say.  ``build_business_rules`` joins the non-empty
parts and falls back to a generic phrase so the prompt always gets
a well-formed annotation.
"""

import re
from datetime import date, timedelta
from typing import List, Optional, Tuple

GENERIC_ANALYSIS = "generic analysis"
RULE_SEPARATOR = "; "

# Strict whitelist: table names must be plain identifiers.
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,63}$")

_WORD_NUMBERS = {
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
    "twenty": 20, "thirty": 30, "hundred": 100,
}

_RELATIVE_RE = re.compile(
    r"\b(?:last|past|previous|recent)\s+(\d+|[a-z]+)\s+"
    r"(day|week|month|year)s?\b",
    re.IGNORECASE,
)
_YEAR_RE = re.compile(r"\b(?:in|during|for|of)\s+((?:19|20)\d{2})\b")

# Keyword -> field name.  Matched as whole words.
_FIELD_KEYWORDS: List[Tuple[str, str]] = [
    ("name", "name"),
    ("email", "email"),
    ("phone", "phone"),
    ("address", "address"),
    ("status", "status"),
    ("price", "price"),
    ("amount", "amount"),
    ("revenue", "amount"),
    ("quantity", "quantity"),
    ("salary", "salary"),
    ("department", "department_id"),
    ("dept", "department_id"),
    ("date", "created_at"),
    ("created", "created_at"),
    ("time", "created_at"),
]

# (pattern, function) in priority order.
_AGGREGATIONS: List[Tuple[str, str]] = [
    (r"\bhow many\b|\bcount\b|\bnumber of\b", "COUNT"),
    (r"\baverage\b|\bavg\b|\bmean\b", "AVG"),
    (r"\btotal\b|\bsum\b", "SUM"),
    (r"\bmax(?:imum)?\b|\bhighest\b|\blargest\b", "MAX"),
    (r"\bmin(?:imum)?\b|\blowest\b|\bsmallest\b|\bleast\b", "MIN"),
]

_STATUS_WORDS = (
    "active", "inactive", "pending", "paid", "unpaid",
    "cancelled", "canceled", "completed", "refunded", "failed",
)


def _range(start: date, end: date) -> str:
    return f"{start.isoformat()} to {end.isoformat()}"


def _to_number(token: str) -> Optional[int]:
    if token.isdigit():
        return int(token)
    return _WORD_NUMBERS.get(token.lower())


def _month_start(day: date) -> date:
    return day.replace(day=1)


def parse_time_expression(
    query: str,
    today: Optional[date] = None,
) -> str:
    """
    Infer a date range from temporal phrases in the query.

    Parameters:
        query (str): Natural-language question.
        today (date, optional): Reference date (defaults to today).

    Returns:
        str: ``"YYYY-MM-DD to YYYY-MM-DD"`` or ``""``.
    """
    if not query:
        return ""
    today = today or date.today()
    text = query.lower()

    if re.search(r"\btoday\b", text):
        return _range(today, today)
    if re.search(r"\byesterday\b", text):
        day = today - timedelta(days=1)
        return _range(day, day)

    relative = _RELATIVE_RE.search(text)
    if relative:
        count = _to_number(relative.group(1))
        if count:
            unit = relative.group(2)
            days = {"day": 1, "week": 7, "month": 30, "year": 365}[unit]
            return _range(today - timedelta(days=count * days), today)

    if re.search(r"\bthis week\b", text):
        start = today - timedelta(days=today.weekday())
        return _range(start, today)
    if re.search(r"\blast week\b", text):
        start = today - timedelta(days=today.weekday() + 7)
        return _range(start, start + timedelta(days=6))
    if re.search(r"\bthis month\b", text):
        return _range(_month_start(today), today)
    if re.search(r"\blast month\b", text):
        end = _month_start(today) - timedelta(days=1)
        return _range(_month_start(end), end)
    if re.search(r"\bthis year\b", text):
        return _range(date(today.year, 1, 1), today)
    if re.search(r"\blast year\b", text):
        year = today.year - 1
        return _range(date(year, 1, 1), date(year, 12, 31))

    year_match = _YEAR_RE.search(text)
    if year_match:
        year = int(year_match.group(1))
        return _range(date(year, 1, 1), date(year, 12, 31))

    return ""


def get_business_logic(query: str) -> str:
    """
    Infer status filters, ordering, grouping and row limits.

    Parameters:
        query (str): Natural-language question.

    Returns:
        str: Comma-separated hints or ``""``.
    """
    if not query:
        return ""
    text = query.lower()
    hints: List[str] = []

    statuses = [
        word for word in _STATUS_WORDS
        if re.search(rf"\b{word}\b", text)
    ]
    if statuses:
        hints.append(f"filter status in ({', '.join(statuses)})")

    top = re.search(r"\btop\s+(\d+|[a-z]+)\b", text)
    if top and _to_number(top.group(1)):
        hints.append("order descending")
        hints.append(f"limit {_to_number(top.group(1))}")
    elif re.search(r"\b(latest|newest|most recent)\b", text):
        hints.append("order by time descending")
    elif re.search(r"\b(oldest|earliest)\b", text):
        hints.append("order by time ascending")

    group = re.search(r"\b(?:by|per|for each|each)\s+([a-z_]+)", text)
    if group and group.group(1) not in ("the", "a", "an"):
        hints.append(f"group by {group.group(1)}")

    return ", ".join(hints)


def get_field_requirements(query: str, table: str) -> str:
    """
    List the fields of *table* the question refers to.

    Parameters:
        query (str): Natural-language question.
        table (str): Candidate table name.

    Returns:
        str: ``"table.field, table.field"`` or ``""``.
    """
    if not query or not table or not _IDENTIFIER_RE.match(table):
        return ""
    text = query.lower()
    fields: List[str] = []
    for keyword, field in _FIELD_KEYWORDS:
        if re.search(rf"\b{keyword}s?\b", text) and field not in fields:
            fields.append(field)
    return ", ".join(f"{table}.{field}" for field in fields)


def _singular(name: str) -> str:
    if name.endswith("ies"):
        return name[:-3] + "y"
    if name.endswith("ses"):
        return name[:-2]
    if name.endswith("s") and not name.endswith("ss"):
        return name[:-1]
    return name


def get_table_join_rule(left: str, right: str) -> str:
    """
    Infer the conventional foreign-key join between two tables.

    ``employee`` + ``department`` → ``employee.department_id =
    department.id``.

    Parameters:
        left (str): First table name.
        right (str): Second table name.

    Returns:
        str: Join condition or ``""`` if undeterminable.
    """
    if not left or not right or left == right:
        return ""
    if not (_IDENTIFIER_RE.match(left) and _IDENTIFIER_RE.match(right)):
        return ""
    return (
        f"{left}.{_singular(right)}_id = {right}.id"
    )


def get_aggregation_rule(query: str) -> str:
    """
    Infer the aggregation function the question implies.

    Parameters:
        query (str): Natural-language question.

    Returns:
        str: e.g. ``"COUNT"`` or ``"COUNT, AVG"``; ``""`` if none.
    """
    if not query:
        return ""
    text = query.lower()
    functions = [
        function for pattern, function in _AGGREGATIONS
        if re.search(pattern, text)
    ]
    return ", ".join(functions)


def parse_table_names(selected_tables: Optional[str]) -> List[str]:
    """
    Pull plain table identifiers out of the stage-2 output.

    Accepts comma / newline separated lists, optionally wrapped in
    backticks, quotes or markdown bullets.  Anything that is not a
    plain identifier (prose lines) is dropped.

    Parameters:
        selected_tables (str): Stage-2 content.

    Returns:
        list[str]: Table names in order, without duplicates.
    """
    if not selected_tables:
        return []
    tables: List[str] = []
    for part in re.split(r"[,\n]", selected_tables):
        name = part.strip().lstrip("-*").strip().strip("`'\"")
        if _IDENTIFIER_RE.match(name) and name not in tables:
            tables.append(name)
    return tables


def build_rule_set(
    query: str,
    selected_tables: Optional[str],
    today: Optional[date] = None,
) -> List[Tuple[str, str]]:
    """
    Compute the ordered (category, text) rule pairs.

    Parameters:
        query (str): Rewritten question (stage-1 content).
        selected_tables (str): Stage-2 content.
        today (date, optional): Reference date for time ranges.

    Returns:
        list[tuple[str, str]]: Non-empty rule pairs only.
    """
    rules: List[Tuple[str, str]] = []
    tables = parse_table_names(selected_tables)

    time_range = parse_time_expression(query, today)
    if time_range:
        rules.append(("time range", time_range))

    logic = get_business_logic(query)
    if logic:
        rules.append(("business rules", logic))

    for table in tables:
        fields = get_field_requirements(query, table)
        if fields:
            rules.append(("key fields", fields))

    if len(tables) >= 2:
        join = get_table_join_rule(tables[0], tables[1])
        if join:
            rules.append(("table join", join))

    aggregation = get_aggregation_rule(query)
    if aggregation:
        rules.append(("aggregation", aggregation))

    return rules


def build_business_rules(
    query: str,
    selected_tables: Optional[str],
    today: Optional[date] = None,
) -> str:
    """
    Concatenate the rule set into one annotation string.

    Parameters:
        query (str): Rewritten question (stage-1 content).
        selected_tables (str): Stage-2 content.
        today (date, optional): Reference date for time ranges.

    Returns:
        str: ``"category: text; ..."`` or ``"generic analysis"``.
    """
    rules = build_rule_set(query, selected_tables, today)
    if not rules:
        return GENERIC_ANALYSIS
    return RULE_SEPARATOR.join(
        f"{category}: {text}" for category, text in rules
    )
