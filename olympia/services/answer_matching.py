"""
Loose answer comparison used to auto-grade the speed round.

Two answers match when they are equal after folding case, stripping
Vietnamese diacritics (including đ -> d) and collapsing whitespace. The
expected answer may list accepted variants separated by ``|``, ``;`` or
newlines.
"""
import re
import unicodedata
from typing import List, Optional

_WHITESPACE = re.compile(r"\s+")
_VARIANT_SEPARATORS = re.compile(r"[|;\n]")


def normalize_answer(text: Optional[str]) -> str:
    decomposed = unicodedata.normalize("NFD", text or "")
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    stripped = stripped.replace("đ", "d").replace("Đ", "d")
    return _WHITESPACE.sub(" ", stripped.lower()).strip()


def expected_variants(answer_text: Optional[str]) -> List[str]:
    variants = [normalize_answer(part) for part in _VARIANT_SEPARATORS.split(answer_text or "")]
    return [variant for variant in variants if variant]


def is_loose_match(submitted: Optional[str], expected: Optional[str]) -> bool:
    candidate = normalize_answer(submitted)
    if not candidate:
        return False
    return candidate in expected_variants(expected)
