"""
SQL Statement Classification.

Classifies an extracted statement by its leading keyword so the query loop
can decide whether it may run.

Recognised kinds:
- read   (leading SELECT)
- with   (leading WITH, i.e. a CTE)
- insert, update, delete
- unknown (anything else, including empty input)

Known weakness:
- Only the leading keyword is inspected. A WITH whose body modifies data,
  or a second statement after a semicolon, classifies by its first word.
  The read-only transaction in DatabaseClient is what stops those.

Usage:
    kind = classify_statement("WITH t AS (SELECT 1) SELECT * FROM t")
    is_permitted(kind)  # True
"""

import re
from typing import Callable, FrozenSet

from ..domain.base_enums import QueryKind, READ_ONLY_KINDS, MUTATING_KINDS


StatementClassifier = Callable[[str], QueryKind]

_LEADING_KEYWORD = re.compile(r"^(select|with|insert|update|delete)\b")

_KEYWORD_KINDS = {
    "select": QueryKind.READ,
    "with": QueryKind.WITH,
    "insert": QueryKind.INSERT,
    "update": QueryKind.UPDATE,
    "delete": QueryKind.DELETE,
}


def classify_statement(sql: str) -> QueryKind:
    """Classify a statement by its first keyword (case-insensitive)."""
    match = _LEADING_KEYWORD.match(sql.strip().lower())
    if not match:
        return QueryKind.UNKNOWN
    return _KEYWORD_KINDS[match.group(1)]


def is_mutating(kind: QueryKind) -> bool:
    return kind in MUTATING_KINDS


def is_permitted(kind: QueryKind, permitted: FrozenSet[QueryKind] = READ_ONLY_KINDS) -> bool:
    return kind in permitted
