"""Grade inference and ranking."""

from __future__ import annotations

import re
from typing import FrozenSet, Optional, Sequence, Tuple, Union

PREMIUM = "premium"
STANDARD = "standard"
MID = "mid"
LOW = "low"
GENERIC = "generic"

# (substring keywords, whole-token keywords, grade); most specific grade first.
GRADE_RULES: Sequence[Tuple[Tuple[str, ...], FrozenSet[str], str]] = (
    (("특상", "특등", "특품"), frozenset({"특", "premium", "special"}), PREMIUM),
    (("상품", "상등"), frozenset({"상", "standard", "high"}), STANDARD),
    (("중품", "중등"), frozenset({"중", "mid", "medium"}), MID),
    (("하품", "하등"), frozenset({"하", "low"}), LOW),
)

GRADE_RANK = {
    PREMIUM: 0,
    STANDARD: 1,
    MID: 2,
    LOW: 3,
    GENERIC: 4,
    "특상": 0,
    "상품": 1,
    "중품": 2,
    "하품": 3,
    "일반": 4,
}

_TOKEN_SPLIT = re.compile(r"[\s/(),\[\]·._-]+")


def match_grade(text: Optional[str]) -> Optional[str]:
    """Scan free text against GRADE_RULES and return the first hit."""
    if not text:
        return None
    lowered = text.strip().lower()
    tokens = {token for token in _TOKEN_SPLIT.split(lowered) if token}
    for keywords, exact, grade in GRADE_RULES:
        if any(keyword in lowered for keyword in keywords):
            return grade
        if tokens & exact:
            return grade
    return None


def classify(
    explicit_grade: Optional[str],
    auxiliary_text: Union[str, Sequence[str], None],
    product_name: Optional[str],
) -> str:
    if explicit_grade and explicit_grade.strip():
        return explicit_grade.strip()

    if product_name and "/" in product_name:
        suffix = product_name.rsplit("/", 1)[1].strip()
        if suffix:
            return suffix

    if isinstance(auxiliary_text, str):
        auxiliary_text = (auxiliary_text,)
    for text in auxiliary_text or ():
        grade = match_grade(text)
        if grade:
            return grade
    return GENERIC


def grade_rank(grade: Optional[str]) -> int:
    """Sort rank for a grade label, best first; unknown labels rank as generic."""
    if not grade:
        return GRADE_RANK[GENERIC]
    key = grade.strip().lower()
    if key in GRADE_RANK:
        return GRADE_RANK[key]
    inferred = match_grade(key)
    return GRADE_RANK[inferred] if inferred else GRADE_RANK[GENERIC]
