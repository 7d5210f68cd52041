"""
Per-attempt state for the guarded query loop.

A GenerationAttempt lives for one iteration of the retry loop and is
discarded when the invocation ends; it exists for logging and for tests
that inspect how each attempt finished.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from .base_enums import AttemptOutcome, QueryKind


@dataclass
class GenerationAttempt:
    """
    Mutable record of one generate-extract-classify-execute iteration.
    """

    # 1-based attempt number
    index: int

    # Streamed reply
    fragments: List[str] = field(default_factory=list)

    # Extraction and classification
    sql: str = ""
    kind: Optional[QueryKind] = None

    # Execution
    outcome: AttemptOutcome = AttemptOutcome.PENDING
    execution_error: Optional[str] = None
    row_count: int = 0

    @property
    def raw_output(self) -> str:
        """Complete model reply accumulated so far."""
        return "".join(self.fragments)
