"""Small text and integer helpers used when reading sysfs files."""

from __future__ import annotations

import errno
import mmap
from functools import lru_cache

UINT64_MAX = (1 << 64) - 1
_DIGITS = frozenset("0123456789")


class KfdError(Exception):
    """Error carrying an errno-style code and a readable message."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return self.message


@lru_cache(maxsize=None)
def page_size() -> int:
    """Return the system page size in bytes."""
    return mmap.PAGESIZE


def align_up(value: int, alignment: int) -> int:
    """Round ``value`` up to a multiple of the power-of-two ``alignment``."""
    return (value + alignment - 1) & ~(alignment - 1)


def lo(value: int) -> int:
    """Return the low 32 bits of a 64-bit value."""
    return value & 0xFFFFFFFF


def hi(value: int) -> int:
    """Return the high 32 bits of a 64-bit value."""
    return (value >> 32) & 0xFFFFFFFF


def split(text: str, sep: str) -> tuple[str, str]:
    """Split at the first ``sep``; without one, the second part is empty."""
    first, found, second = text.partition(sep)
    return (first, second) if found else (text, "")


def consume_front(text: str, char: str) -> tuple[bool, str]:
    """Drop ``char`` from the front of ``text`` if present.

    Returns whether it was dropped and the remaining text.
    """
    if text and text[0] == char:
        return True, text[1:]
    return False, text


def consume_line(text: str) -> tuple[str, str]:
    """Return the text up to the next newline and what follows it."""
    line, found, rest = text.partition("\n")
    return (line, rest) if found else (text, "")


def consume_integer(text: str) -> tuple[int, str]:
    """Parse leading decimal digits as an unsigned 64-bit integer.

    Returns the value and the text after the digits. Raises ``KfdError``
    with ``EINVAL`` if no digit leads the text and ``ERANGE`` on overflow.
    """
    if not text or text[0] not in _DIGITS:
        raise KfdError(errno.EINVAL, f"expected digit in '{text}'")
    end = 0
    while end < len(text) and text[end] in _DIGITS:
        end += 1
    value = int(text[:end])
    if value > UINT64_MAX:
        raise KfdError(errno.ERANGE, f"integer overflow in '{text}'")
    return value, text[end:]