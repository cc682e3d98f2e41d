"""
Grade calculations: rounding policy, weight validation and weighted averages.

Rounding policy: grades are rounded half away from zero to one decimal place,
computed on the shortest decimal representation of the value. This keeps
boundary cases exact where binary floating point would not, e.g. 7.25 -> 7.3
and 7.15 -> 7.2 (``round(7.15, 1)`` gives 7.1).
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional, Sequence, Tuple, Union

Number = Union[int, float, Decimal]

GRADE_MIN = 0
GRADE_MAX = 10
REQUIRED_WEIGHT_TOTAL = 100

_ONE_DECIMAL = Decimal("0.1")


@dataclass(frozen=True)
class GradeEntry:
    grade: float
    weight: int


@dataclass(frozen=True)
class WeightValidation:
    is_valid: bool
    total: int
    difference: int

    def describe(self) -> Optional[str]:
        """Human-readable gap, or None when the weights are valid."""
        if self.is_valid:
            return None
        if self.difference > 0:
            return f"missing {self.difference}% to reach 100%, total {self.total}%"
        return f"exceeds by {-self.difference}%, total {self.total}%"


def _to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() gives the shortest repr, so 7.15 becomes Decimal("7.15") rather than 7.1499...
    return Decimal(str(value))


def round_grade(value: Number) -> float:
    """Round half away from zero to one decimal place."""
    return float(_to_decimal(value).quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP))


def validate_grade(value: Number) -> bool:
    try:
        return GRADE_MIN <= value <= GRADE_MAX
    except TypeError:
        return False


def validate_weights(weights: Iterable[int]) -> WeightValidation:
    total = sum(int(w) for w in weights)
    return WeightValidation(
        is_valid=total == REQUIRED_WEIGHT_TOTAL,
        total=total,
        difference=REQUIRED_WEIGHT_TOTAL - total,
    )


def _as_pair(entry) -> Tuple[Decimal, Decimal]:
    if isinstance(entry, GradeEntry):
        return _to_decimal(entry.grade), _to_decimal(entry.weight)
    if isinstance(entry, dict):
        return _to_decimal(entry["grade"]), _to_decimal(entry["weight"])
    grade, weight = entry
    return _to_decimal(grade), _to_decimal(weight)


def calculate_weighted_average(entries: Sequence) -> float:
    """
    Weighted average of ``(grade, weight)`` entries, rounded with round_grade.

    Entries may be GradeEntry instances, ``{"grade", "weight"}`` dicts or
    2-tuples. Returns 0.0 when there are no entries or the total weight is 0;
    callers that must tell "no data" apart from a real zero check for
    emptiness first.
    """
    pairs: List[Tuple[Decimal, Decimal]] = [_as_pair(e) for e in entries]
    if not pairs:
        return 0.0

    total_weight = sum((w for _, w in pairs), Decimal(0))
    if total_weight == 0:
        return 0.0

    weighted_sum = sum((g * w for g, w in pairs), Decimal(0))
    return round_grade(weighted_sum / total_weight)


def format_grade_for_display(value: Number) -> str:
    """Format with one decimal and a comma separator, e.g. 7.5 -> "7,5"."""
    rounded = _to_decimal(round_grade(value)).quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP)
    return f"{rounded}".replace(".", ",")


def parse_grade_from_display(text: str) -> float:
    """Parse a comma-decimal grade string; raises ValueError on garbage."""
    return float(text.strip().replace(",", "."))
