"""
Question code grammar.

Imported questions carry a short code that fixes their round and, for the
opening and finish rounds, who the question belongs to:

    KD{n}-...           opening, personal to seat n (1-4)
    DKA-...             opening, common (buzz) question
    VCNV-{1..4}         obstacle row n
    VCNV-OTT / OTT      obstacle centre tile
    VCNV... / CNV...    obstacle keyword (final guess)
    TT...               speed
    VD-20. / VD20.      finish pool, 20 points
    VD-30. / VD30.      finish pool, 30 points
    VD...               finish, value decided later

Codes are parsed once into a QuestionCode and never re-inspected as strings.
"""
import re
from dataclasses import dataclass
from enum import Enum as PyEnum
from typing import Optional

from olympia.exceptions import ValidationError
from olympia.orm.match import RoundType


class CodeVariant(str, PyEnum):
    OPENING_PERSONAL = "opening_personal"
    OPENING_COMMON = "opening_common"
    OBSTACLE_ROW = "obstacle_row"
    OBSTACLE_CENTER = "obstacle_center"
    OBSTACLE_KEYWORD = "obstacle_keyword"
    SPEED = "speed"
    FINISH = "finish"


VARIANT_ROUND = {
    CodeVariant.OPENING_PERSONAL: RoundType.OPENING,
    CodeVariant.OPENING_COMMON: RoundType.OPENING,
    CodeVariant.OBSTACLE_ROW: RoundType.OBSTACLE,
    CodeVariant.OBSTACLE_CENTER: RoundType.OBSTACLE,
    CodeVariant.OBSTACLE_KEYWORD: RoundType.OBSTACLE,
    CodeVariant.SPEED: RoundType.SPEED,
    CodeVariant.FINISH: RoundType.FINISH,
}

_OPENING_PERSONAL = re.compile(r"^KD(\d+)-")
_OBSTACLE_ROW = re.compile(r"^VCNV-(\d+)$")
_FINISH_VALUE = re.compile(r"^VD-?(20|30)\.")


@dataclass(frozen=True)
class QuestionCode:
    variant: CodeVariant
    raw: str
    seat: Optional[int] = None
    row: Optional[int] = None
    value: Optional[int] = None

    @property
    def round_type(self) -> RoundType:
        return VARIANT_ROUND[self.variant]

    @property
    def is_personal(self) -> bool:
        return self.variant == CodeVariant.OPENING_PERSONAL

    @property
    def is_opening_common(self) -> bool:
        return self.variant == CodeVariant.OPENING_COMMON

    @property
    def is_obstacle_tile(self) -> bool:
        """Rows 1-4 and the centre tile, the cells revealed on a correct final guess."""
        return self.variant in (CodeVariant.OBSTACLE_ROW, CodeVariant.OBSTACLE_CENTER)


def normalize_code(raw: Optional[str]) -> str:
    return (raw or "").strip().upper()


def parse_code(raw: Optional[str]) -> Optional[QuestionCode]:
    """Parse a question code. Returns None for empty or malformed codes."""
    code = normalize_code(raw)
    if not code:
        return None

    if code.startswith("DKA"):
        return QuestionCode(CodeVariant.OPENING_COMMON, code)

    if code.startswith("KD"):
        match = _OPENING_PERSONAL.match(code)
        if not match:
            return None
        seat = int(match.group(1))
        if not 1 <= seat <= 4:
            return None
        return QuestionCode(CodeVariant.OPENING_PERSONAL, code, seat=seat)

    if code in ("OTT", "VCNV-OTT"):
        return QuestionCode(CodeVariant.OBSTACLE_CENTER, code)

    if code.startswith("VCNV") or code.startswith("CNV"):
        match = _OBSTACLE_ROW.match(code)
        if match:
            row = int(match.group(1))
            if not 1 <= row <= 4:
                return None
            return QuestionCode(CodeVariant.OBSTACLE_ROW, code, row=row)
        return QuestionCode(CodeVariant.OBSTACLE_KEYWORD, code)

    if code.startswith("TT"):
        return QuestionCode(CodeVariant.SPEED, code)

    if code.startswith("VD"):
        match = _FINISH_VALUE.match(code)
        value = int(match.group(1)) if match else None
        return QuestionCode(CodeVariant.FINISH, code, value=value)

    return None


def require_code(raw: Optional[str]) -> QuestionCode:
    """Parse a code or raise ValidationError."""
    parsed = parse_code(raw)
    if parsed is None:
        raise ValidationError(
            f"Unrecognized question code '{raw}'. Codes must start with KD/DKA/VCNV/CNV/TT/VD."
        )
    return parsed


def finish_slot_range(seat: int) -> range:
    """Order indexes of the three finish-round slots owned by a seat."""
    start = (seat - 1) * 3 + 1
    return range(start, start + 3)
