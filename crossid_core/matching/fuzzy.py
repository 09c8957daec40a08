"""
Fuzzy Matcher
=============

String and phone-number similarity primitives.
"""

from __future__ import annotations

import re
import threading
from typing import Optional

import numpy as np

_NON_DIGIT = re.compile(r"\D")
_PHONE_PUNCTUATION = re.compile(r"[()\- ]")

MIN_PHONE_DIGITS = 7
MAX_PHONE_DIGITS = 15


def levenshtein(a: str, b: str) -> int:
    """
    Edit distance between two strings.

    Unit cost for substitution, insertion, and deletion. Keeps one DP row
    of ``len(a) + 1`` cells and updates it per character of ``b`` with
    array operations; the insertion chain within a row is a running
    minimum over ``row[k] - k``.
    """
    if not a:
        return len(b)
    if not b:
        return len(a)

    a_codes = np.fromiter(map(ord, a), dtype=np.int64, count=len(a))
    cols = np.arange(len(a) + 1, dtype=np.int64)
    prev = cols.copy()

    for i, ch in enumerate(b, start=1):
        cost = (a_codes != ord(ch)).astype(np.int64)
        row = np.empty_like(prev)
        row[0] = i
        row[1:] = np.minimum(prev[:-1] + cost, prev[1:] + 1)
        prev = np.minimum.accumulate(row - cols) + cols

    return int(prev[-1])


def similarity(a: Optional[str], b: Optional[str]) -> float:
    """
    Normalized Levenshtein similarity in [0, 1].

    Inputs are case-folded and trimmed. Two empty strings are a vacuous
    match; a missing or one-sided empty value scores 0.
    """
    if a is None or b is None:
        return 0.0

    s1 = a.strip().casefold()
    s2 = b.strip().casefold()

    if not s1 and not s2:
        return 1.0
    if not s1 or not s2:
        return 0.0
    if s1 == s2:
        return 1.0

    distance = levenshtein(s1, s2)
    return 1.0 - distance / max(len(s1), len(s2))


def normalize_phone(phone: Optional[str]) -> str:
    """Strip everything but digits."""
    if not phone:
        return ""
    return _NON_DIGIT.sub("", phone)


def _strip_country_code(digits: str) -> str:
    if len(digits) == 11 and digits.startswith("1"):
        return digits[1:]
    return digits


def compare_phones(a: Optional[str], b: Optional[str]) -> float:
    """
    Compare two phone numbers written in any format.

    Returns:
        1.0 for identical digits, or for the same 10-digit number where
        one side carries a leading ``1`` and formatting punctuation;
        0.9 for a bare country-code difference or substring containment;
        0 when either number has fewer than 7 or more than 15 digits;
        otherwise the string similarity of the digit sequences.
    """
    if a is None or b is None:
        return 0.0

    d1 = normalize_phone(a)
    d2 = normalize_phone(b)

    for digits in (d1, d2):
        if not MIN_PHONE_DIGITS <= len(digits) <= MAX_PHONE_DIGITS:
            return 0.0

    if d1 == d2:
        return 1.0

    n1 = _strip_country_code(d1)
    n2 = _strip_country_code(d2)
    if n1 == n2 and len(n1) == 10:
        if _PHONE_PUNCTUATION.search(a) or _PHONE_PUNCTUATION.search(b):
            return 1.0
        return 0.9

    if d1 in d2 or d2 in d1:
        return 0.9

    return similarity(d1, d2)


def compare_accounts(a: Optional[str], b: Optional[str]) -> float:
    """Digit-only containment check between two account references."""
    d1 = normalize_phone(a)
    d2 = normalize_phone(b)
    if not d1 or not d2:
        return 0.0
    if d1 in d2 or d2 in d1:
        return 1.0
    return 0.0


class FuzzyMatcher:
    """
    Similarity primitives with a usage counter.

    The comparison functions are pure; the matcher only adds a
    thread-safe count of fuzzy comparisons for engine metrics.

    Example:
        >>> matcher = FuzzyMatcher()
        >>> matcher.similarity("Robert", "Roberto")
        0.857...
    """

    def __init__(self):
        self._comparisons = 0
        self._lock = threading.Lock()

    @property
    def comparisons(self) -> int:
        return self._comparisons

    def _count(self) -> None:
        with self._lock:
            self._comparisons += 1

    def similarity(self, a: Optional[str], b: Optional[str]) -> float:
        self._count()
        return similarity(a, b)

    def compare_phones(self, a: Optional[str], b: Optional[str]) -> float:
        self._count()
        return compare_phones(a, b)

    def compare_accounts(self, a: Optional[str], b: Optional[str]) -> float:
        self._count()
        return compare_accounts(a, b)

    levenshtein = staticmethod(levenshtein)
    normalize_phone = staticmethod(normalize_phone)

    def reset(self) -> None:
        with self._lock:
            self._comparisons = 0
