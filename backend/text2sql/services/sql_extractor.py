"""
SQL extraction from free-text model responses.

Model output may wrap the statement in prose or fenced code blocks.
Extraction recovers exactly one statement: the first run that starts
at the ``SELECT`` token and stops at the first blank line, a closing
code fence, or the end of input, with fence markers stripped.  A
statement inside a ```sql block wins over a SELECT run in the prose
around it.  Line endings are normalised first.  It never concatenates
several candidates.
"""

import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)

_SQL_RUN_RE = re.compile(
    r"(\bSELECT\b.*?)(?=\n[ \t]*\n|```|\Z)",
    re.IGNORECASE | re.DOTALL,
)
# Body of the first ```sql block, preferred over a SELECT run in prose.
_FENCED_SQL_RE = re.compile(
    r"```sql[ \t]*\n(.*?)```",
    re.IGNORECASE | re.DOTALL,
)
_FENCE_OPEN_RE = re.compile(r"```sql\s*", re.IGNORECASE)
_FENCE_RE = re.compile(r"```\s*")


def strip_code_fences(text: str) -> str:
    """
    Remove fenced code-block markers (```sql / ```).

    Parameters:
        text (str): Text possibly containing fences.

    Returns:
        str: Text without fence markers, trimmed.
    """
    text = _FENCE_OPEN_RE.sub("", text)
    text = _FENCE_RE.sub("", text)
    return text.strip()


def extract_sql(text: Optional[str]) -> Optional[str]:
    """
    Extract one SQL statement from a model response.

    Parameters:
        text (str): Raw completion text.

    Returns:
        str | None: The statement, or None when the input is blank
            or contains no SELECT run.
    """
    if text is None or not text.strip():
        logger.warning("[sql_extractor] empty content, nothing to extract")
        return None

    text = text.replace("\r\n", "\n")
    fenced = _FENCED_SQL_RE.search(text)
    match = None
    if fenced:
        match = _SQL_RUN_RE.search(fenced.group(1))
    if match is None:
        match = _SQL_RUN_RE.search(text)
    if not match:
        preview = text if len(text) <= 200 else text[:200] + "..."
        logger.warning(
            "[sql_extractor] no SQL statement found in: %s", preview,
        )
        return None

    sql = strip_code_fences(match.group(1).strip())
    return sql or None
