"""
Identity Matching Module
========================

Identity data, fuzzy matching primitives, and pairwise cross-validation.
"""

from crossid_core.matching.identity import Identity, SourceSet, SLOTS
from crossid_core.matching.fuzzy import (
    FuzzyMatcher,
    similarity,
    levenshtein,
    compare_phones,
    compare_accounts,
    normalize_phone,
)
from crossid_core.matching.cross_validator import CrossValidator, PairwiseScore

__all__ = [
    "Identity",
    "SourceSet",
    "SLOTS",
    "FuzzyMatcher",
    "similarity",
    "levenshtein",
    "compare_phones",
    "compare_accounts",
    "normalize_phone",
    "CrossValidator",
    "PairwiseScore",
]
