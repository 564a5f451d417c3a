"""
Similarity primitives shared by clustering and matching.

    - tokenize: lowercase, punctuation → space, whitespace split
    - jaccard:  set overlap on token sets
    - cosine:   vector similarity, pure Python
"""

import math
import re

# Punctuation and "_" (which \w would otherwise keep).
_NON_WORD = re.compile(r"[^\w\s]|_", re.UNICODE)


def tokenize(text: str | None) -> list[str]:
    """Split *text* into lowercase word tokens.

    >>> tokenize("Record attendance, daily!")
    ['record', 'attendance', 'daily']
    """
    if not text:
        return []
    return _NON_WORD.sub(" ", str(text).lower()).split()


def jaccard(a, b) -> float:
    """Jaccard similarity of two token collections (0.0 when both are empty)."""
    set_a, set_b = set(a), set(b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


def cosine(a: list[float], b: list[float]) -> float:
    """Cosine similarity between two vectors.

    Returns 0.0 for length mismatch or a zero-norm vector.
    """
    if len(a) != len(b) or not a:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)
