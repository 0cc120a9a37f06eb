"""Vector math used by thread routing.

Vectors are plain float sequences. Every function here degrades to a neutral
value (0.0 or an empty list) on empty, mismatched or zero-magnitude input so
that callers never have to guard against division by zero.
"""
from __future__ import annotations

import math
from typing import List, Sequence


def magnitude(v: Sequence[float]) -> float:
    return math.sqrt(sum(x * x for x in v))


def is_null(v: Sequence[float]) -> bool:
    """True when ``v`` is empty or has zero magnitude."""
    return len(v) == 0 or magnitude(v) == 0.0


def cosine(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of ``a`` and ``b``.

    Returns:
        float: Value in [-1, 1]; exactly 0.0 when either vector is empty, the
        lengths differ, or either magnitude is zero.
    """
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = 0.0
    na = 0.0
    nb = 0.0
    for x, y in zip(a, b):
        dot += x * y
        na += x * x
        nb += y * y
    if na == 0.0 or nb == 0.0:
        return 0.0
    sim = dot / (math.sqrt(na) * math.sqrt(nb))
    return max(-1.0, min(1.0, sim))


def average(*vectors: Sequence[float]) -> List[float]:
    """Element-wise mean of the vectors matching the first vector's dimension.

    Vectors of a different length are ignored. Returns an empty list when no
    vectors are given or the first one is empty.
    """
    if not vectors:
        return []
    dim = len(vectors[0])
    if dim == 0:
        return []
    sums = [0.0] * dim
    count = 0
    for v in vectors:
        if len(v) != dim:
            continue
        for i, x in enumerate(v):
            sums[i] += float(x)
        count += 1
    if count == 0:
        return []
    return [s / count for s in sums]
