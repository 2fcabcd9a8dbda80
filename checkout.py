
# Dart values, checkout validation and checkout search.
# A checkout is 1-3 darts whose values sum to the remaining score and whose last dart is a double
# (D1-D20 or the bull, 50). A curated table of common finishes is consulted before searching.

import enum
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, List, Optional, Sequence, Union

BULL = 25
SEGMENTS = list(range(1, 21)) + [BULL]
MAX_DARTS = 3
MAX_CHECKOUT = 170

NOTATION_RE = re.compile(r"^([SDT])(\d+|BULL)$", re.IGNORECASE)


class InvalidDartError(ValueError):
    """Raised for an illegal segment/multiplier pair or an unrecognized notation."""


class Multiplier(enum.IntEnum):
    SINGLE = 1
    DOUBLE = 2
    TRIPLE = 3

    @property
    def letter(self) -> str:
        return self.name[0]

    @classmethod
    def coerce(cls, value) -> "Multiplier":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            letter = value.strip().upper()[:1]
            for m in cls:
                if m.letter == letter:
                    return m
            raise InvalidDartError(f"Invalid multiplier: {value}")
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            raise InvalidDartError(f"Invalid multiplier: {value}")


def dart_value(segment: int, multiplier) -> int:
    mult = Multiplier.coerce(multiplier)
    if segment not in SEGMENTS:
        raise InvalidDartError(f"Invalid dart segment: {segment}")
    if segment == BULL:
        if mult is Multiplier.TRIPLE:
            raise InvalidDartError("Invalid combination: triple bull does not exist")
        return 25 if mult is Multiplier.SINGLE else 50
    return segment * int(mult)


def format_notation(segment: int, multiplier) -> str:
    mult = Multiplier.coerce(multiplier)
    if segment == BULL:
        if mult is Multiplier.TRIPLE:
            raise InvalidDartError("Invalid combination: triple bull does not exist")
        return "DBull" if mult is Multiplier.DOUBLE else "SBull"
    return f"{mult.letter}{segment}"


def format_display(segment: int, multiplier) -> str:
    mult = Multiplier.coerce(multiplier)
    if segment == BULL:
        return "Bull" if mult is Multiplier.DOUBLE else "Outer Bull"
    return f"{mult.name.title()} {segment}"


@dataclass(frozen=True)
class DartThrow:
    segment: int
    multiplier: Multiplier

    def __post_init__(self):
        object.__setattr__(self, "multiplier", Multiplier.coerce(self.multiplier))
        # validates the pair
        dart_value(self.segment, self.multiplier)

    @property
    def value(self) -> int:
        return dart_value(self.segment, self.multiplier)

    @property
    def notation(self) -> str:
        return format_notation(self.segment, self.multiplier)

    @property
    def display(self) -> str:
        return format_display(self.segment, self.multiplier)

    @property
    def is_double(self) -> bool:
        return self.multiplier is Multiplier.DOUBLE

    def __str__(self):
        return self.notation


def parse_notation(code: str) -> DartThrow:
    """Parse S20 / D8 / T19 / SBull / DBull (case-insensitive) into a DartThrow."""
    match = NOTATION_RE.match((code or "").strip()) if isinstance(code, str) else None
    if not match:
        raise InvalidDartError(f"Unrecognized notation: {code!r}")
    letter, seg = match.groups()
    segment = BULL if seg.upper() == "BULL" else int(seg)
    return DartThrow(segment, Multiplier.coerce(letter))


def format_dart_value(value: int) -> str:
    """Label a raw point value the way the quiz shows canonical answers (Bull, D16, T19, 7...)."""
    if value == 50:
        return "Bull"
    if value == 25:
        return "Outer Bull"
    if 2 <= value <= 40 and value % 2 == 0:
        return f"D{value // 2}"
    if 3 <= value <= 60 and value % 3 == 0:
        return f"T{value // 3}"
    return str(value)


def format_answer(values: Iterable[int]) -> str:
    return ", ".join(format_dart_value(v) for v in values)


# Validation


@dataclass(frozen=True)
class CheckoutResult:
    valid: bool
    reason: Optional[str] = None

    def __bool__(self):
        return self.valid


ThrowLike = Union[DartThrow, str]


def validate_checkout(target_score: int, throws: Sequence[ThrowLike]) -> CheckoutResult:
    """
    Decide whether `throws` legally checks out `target_score`.
    Rules in order: 1-3 darts, exact total, last dart a double.
    Notation strings are parsed; a malformed one yields an invalid result, never an exception.
    """
    try:
        darts = [t if isinstance(t, DartThrow) else parse_notation(t) for t in throws]
    except InvalidDartError as e:
        return CheckoutResult(False, str(e))

    if not darts:
        return CheckoutResult(False, "No darts thrown")
    if len(darts) > MAX_DARTS:
        return CheckoutResult(False, f"Maximum {MAX_DARTS} darts allowed")

    total = sum(d.value for d in darts)
    if total != target_score:
        return CheckoutResult(False, f"Total {total} does not match target {target_score}")

    if not darts[-1].is_double:
        return CheckoutResult(False, "Must finish on a double")
    return CheckoutResult(True)


# Generation

# Professionally common finishes, consulted before searching.
COMMON_CHECKOUTS = {
    170: ["T20", "T20", "DBull"],
    167: ["T20", "T19", "DBull"],
    164: ["T20", "T18", "DBull"],
    161: ["T20", "T17", "DBull"],
    160: ["T20", "T20", "D20"],
    158: ["T20", "T20", "D19"],
    157: ["T20", "T19", "D20"],
    156: ["T20", "T20", "D18"],
    155: ["T20", "T19", "D19"],
    154: ["T20", "T18", "D20"],
    153: ["T20", "T19", "D18"],
    152: ["T20", "T20", "D16"],
    151: ["T20", "T17", "D20"],
    150: ["T20", "T18", "D18"],
    141: ["T20", "T19", "D12"],
    121: ["T20", "T11", "D14"],
    120: ["T20", "S20", "D20"],
    100: ["T20", "D20"],
    81: ["T19", "D12"],
    62: ["T10", "D16"],
    61: ["T15", "D8"],
    60: ["S20", "D20"],
    50: ["DBull"],
    40: ["D20"],
    36: ["D18"],
    32: ["D16"],
}

_NON_FINISHING = [
    DartThrow(seg, mult)
    for seg in SEGMENTS
    for mult in Multiplier
    if not (seg == BULL and mult is Multiplier.TRIPLE)
]
_FINISHING = [DartThrow(seg, Multiplier.DOUBLE) for seg in SEGMENTS]
FINISHING_VALUES = frozenset(d.value for d in _FINISHING)


def _search(remaining: int, used: tuple, darts_left: int, out: list) -> None:
    if darts_left == 1:
        for d in _FINISHING:
            if d.value == remaining:
                out.append(used + (d,))
        return
    for d in _NON_FINISHING:
        if d.value < remaining:
            _search(remaining - d.value, used + (d,), darts_left - 1, out)


@lru_cache(maxsize=256)
def _checkouts(target_score: int, max_darts: int) -> tuple:
    found: list = []
    if target_score <= 1 or target_score > MAX_CHECKOUT:
        return ()
    for n in range(1, min(max_darts, MAX_DARTS) + 1):
        _search(target_score, (), n, found)
    return tuple(found)


def generate_checkouts(target_score: int, max_darts: int = MAX_DARTS) -> List[List[DartThrow]]:
    """
    Every sequence of 1..max_darts darts summing to target_score and ending on a double,
    shortest sequences first. Empty when no checkout exists (<=1, >170, 169, ...).
    """
    if max_darts < 1:
        return []
    return [list(seq) for seq in _checkouts(int(target_score), int(max_darts))]


def minimum_darts(target_score: int) -> int:
    """Fewest darts needed to check out, 0 when there is no outshot."""
    found = _checkouts(int(target_score), MAX_DARTS)
    return len(found[0]) if found else 0


def recommended_checkout(target_score: int) -> Optional[List[DartThrow]]:
    if target_score in COMMON_CHECKOUTS:
        return [parse_notation(code) for code in COMMON_CHECKOUTS[target_score]]
    found = _checkouts(int(target_score), MAX_DARTS)
    return list(found[0]) if found else None


def find_checkout(score: int) -> Optional[List[str]]:
    """Recommended checkout as notation codes, or None."""
    darts = recommended_checkout(score)
    if darts is None:
        return None
    return [d.notation for d in darts]
