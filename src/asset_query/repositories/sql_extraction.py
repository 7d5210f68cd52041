"""
SQL Extraction.

Pulls a single SQL statement out of free-form model output. Models answer
with prose, fenced code, or bare SQL; this module normalises all three.

Extraction Rules (in order):
1. A fenced block tagged ``sql`` (any case): its interior
2. Otherwise the first ``select`` or ``with`` keyword through end of text
3. Otherwise nothing (empty string)

Post-processing on any non-empty candidate:
- remove every backtick
- trim, drop one trailing semicolon, trim again

Architecture Notes:
- Pure functions, no I/O
- Rule 2 keeps trailing prose after the statement; the database error it
  causes is fed back to the model on the next attempt

Usage:
    sql = extract_sql("Here you go:\\n```sql\\nSELECT * FROM assets;\\n```")
    # "SELECT * FROM assets"
"""

import re
from typing import Optional


# Non-greedy: the first closing fence ends the block
_FENCED_SQL = re.compile(r"```sql([\s\S]*?)```", re.IGNORECASE)

# Word boundaries keep "selected" or "without" from matching
_LEADING_KEYWORD = re.compile(r"\b(?:select|with)\b[\s\S]*", re.IGNORECASE)


def _find_candidate(text: str) -> str:
    fenced = _FENCED_SQL.search(text)
    if fenced:
        return fenced.group(1)

    bare = _LEADING_KEYWORD.search(text)
    if bare:
        return bare.group(0)

    return ""


def _clean(candidate: str) -> str:
    cleaned = candidate.replace("`", "").strip()
    if cleaned.endswith(";"):
        cleaned = cleaned[:-1]
    return cleaned.strip()


def extract_sql(model_output: Optional[str]) -> str:
    """
    Extract one SQL statement from model output.

    Args:
        model_output: Complete model reply (may be None or empty)

    Returns:
        Cleaned statement, or "" when no statement was found
    """
    if not model_output:
        return ""

    candidate = _find_candidate(model_output)
    if not candidate:
        return ""

    return _clean(candidate)
