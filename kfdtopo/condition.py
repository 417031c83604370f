"""Comparison conditions used when waiting on values."""

from __future__ import annotations

import enum
import operator


class Condition(enum.IntEnum):
    """Comparison function; values match the SDMA and PM4 encodings."""

    LT = 1
    LTE = 2
    EQ = 3
    NE = 4
    GTE = 5
    GT = 6

    def evaluate(self, value: int, reference: int) -> bool:
        """Return whether ``value`` compared with ``reference`` holds."""
        return _OPERATORS[self](value, reference)


_OPERATORS = {
    Condition.LT: operator.lt,
    Condition.LTE: operator.le,
    Condition.EQ: operator.eq,
    Condition.NE: operator.ne,
    Condition.GTE: operator.ge,
    Condition.GT: operator.gt,
}