"""
noise.py

Synthetic OCR noise for extraction results.

The inference endpoint returns text that is usually much cleaner
than a real OCR engine would produce. This module degrades it so
the output looks like raw OCR:

1. Character pass - swap look-alike characters, drop or double glyphs
2. Formatting pass - break lines, lose spaces, add stray spaces
3. Record pass - apply the above to the fields of an ExtractedRecord

This file:
- Has no I/O and no external calls
- Never mutates the record it is given
- Uses the global random module unless a random.Random is passed in
"""

import random
import re
from typing import Dict, Iterable, Optional, Tuple

from rxscan.schemas.extraction import ExtractedRecord


# Per-character probability that some corruption is attempted
CHARACTER_ERROR_RATE = 0.15
# Inside the error branch, for characters with no look-alike
SKIP_PROBABILITY = 0.3
DUPLICATE_PROBABILITY = 0.2

LINE_BREAK_PROBABILITY = 0.10
SPACE_REMOVAL_PROBABILITY = 0.15
SPACE_INSERTION_PROBABILITY = 0.08

# Declared in order; a repeated source character keeps its LAST target.
OCR_CONFUSION_PAIRS: Tuple[Tuple[str, str], ...] = (
    # Number/letter confusions
    ("O", "0"), ("0", "O"),
    ("I", "1"), ("1", "I"),
    ("l", "1"), ("1", "l"),
    ("S", "5"), ("5", "S"),
    ("B", "8"), ("8", "B"),
    ("G", "6"), ("6", "G"),
    ("Z", "2"), ("2", "Z"),
    ("q", "9"), ("9", "q"),

    # Similar letter confusions
    ("m", "n"), ("n", "m"),
    ("u", "v"), ("v", "u"),
    ("c", "e"), ("e", "c"),
    ("a", "o"), ("o", "a"),
    ("h", "b"), ("b", "h"),
    ("p", "q"), ("q", "p"),
    ("r", "n"), ("n", "r"),
    ("f", "t"), ("t", "f"),
    ("i", "j"), ("j", "i"),

    # Case confusions
    ("C", "c"), ("c", "C"),
    ("P", "p"), ("p", "P"),
    ("K", "k"), ("k", "K"),
    ("V", "v"), ("v", "V"),
    ("W", "w"), ("w", "W"),
    ("X", "x"), ("x", "X"),
    ("Y", "y"), ("y", "Y"),
    ("Z", "z"), ("z", "Z"),
)

# Two words separated by whitespace. Words are ASCII word characters.
_WORD_PAIR = re.compile(r"([A-Za-z0-9_]+)\s+([A-Za-z0-9_]+)")
_WHITESPACE_RUN = re.compile(r"\s+")

_MEDICATION_FIELDS = ("name", "dosage", "frequency", "duration", "instructions")


def build_confusion_table(pairs: Iterable[Tuple[str, str]]) -> Dict[str, str]:
    """
    Build a character confusion table from (source, target) pairs.

    Pairs are inserted one by one, so when a source character
    appears more than once only the last target survives.
    For the default pairs that means e.g. "1" -> "l" and "n" -> "r".
    """
    table: Dict[str, str] = {}
    for source, target in pairs:
        table[source] = target
    return table


OCR_CONFUSION_TABLE = build_confusion_table(OCR_CONFUSION_PAIRS)


def _check_probability(name: str, value: float) -> float:
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be between 0 and 1, got {value}")
    return value


class OCRNoiseInjector:
    """
    OCRNoiseInjector turns clean extracted text into OCR-looking text.

    The defaults are the module constants above. Tests override
    them (error rate 0 or 1, a tiny confusion table) and pass a
    seeded random.Random to get repeatable output.
    """

    def __init__(
        self,
        error_rate: float = CHARACTER_ERROR_RATE,
        skip_probability: float = SKIP_PROBABILITY,
        duplicate_probability: float = DUPLICATE_PROBABILITY,
        line_break_probability: float = LINE_BREAK_PROBABILITY,
        space_removal_probability: float = SPACE_REMOVAL_PROBABILITY,
        space_insertion_probability: float = SPACE_INSERTION_PROBABILITY,
        confusion_table: Optional[Dict[str, str]] = None,
        rng: Optional[random.Random] = None
    ):
        self.error_rate = _check_probability("error_rate", error_rate)
        self.skip_probability = _check_probability("skip_probability", skip_probability)
        self.duplicate_probability = _check_probability(
            "duplicate_probability", duplicate_probability
        )
        self.line_break_probability = _check_probability(
            "line_break_probability", line_break_probability
        )
        self.space_removal_probability = _check_probability(
            "space_removal_probability", space_removal_probability
        )
        self.space_insertion_probability = _check_probability(
            "space_insertion_probability", space_insertion_probability
        )

        if confusion_table is None:
            confusion_table = OCR_CONFUSION_TABLE
        self.confusion_table = dict(confusion_table)

        # The random module itself has the same .random() interface
        self.rng = rng if rng is not None else random

    def introduce_ocr_errors(self, text: str) -> str:
        """
        Character pass.

        For each character, with probability error_rate:
        - substitute it if it has a look-alike in the table
        - otherwise drop it (skip_probability)
        - otherwise double it (duplicate_probability, a fresh draw)
        - otherwise keep it
        Order is never changed; characters are only dropped,
        doubled or substituted.
        """
        result = []
        for char in text:
            if self.rng.random() < self.error_rate:
                if char in self.confusion_table:
                    result.append(self.confusion_table[char])
                elif self.rng.random() < self.skip_probability:
                    # Missed glyph
                    continue
                elif self.rng.random() < self.duplicate_probability:
                    result.append(char + char)
                else:
                    result.append(char)
            else:
                result.append(char)
        return "".join(result)

    def add_formatting_issues(self, text: str) -> str:
        """
        Formatting pass, three sub-passes in this order:

        1. Line breaks between words (line_break_probability per pair)
        2. Whitespace runs removed (space_removal_probability per run)
        3. A space appended after a character (space_insertion_probability)

        Each sub-pass scans the output of the previous one.
        """

        def break_line(match):
            if self.rng.random() < self.line_break_probability:
                return f"{match.group(1)}\n{match.group(2)}"
            return match.group(0)

        def remove_space(match):
            if self.rng.random() < self.space_removal_probability:
                return ""
            return match.group(0)

        result = _WORD_PAIR.sub(break_line, text)
        result = _WHITESPACE_RUN.sub(remove_space, result)

        spaced = []
        for char in result:
            spaced.append(char)
            if self.rng.random() < self.space_insertion_probability:
                spaced.append(" ")
        return "".join(spaced)

    def corrupt_text(self, text: str) -> str:
        """Character pass followed by the formatting pass."""
        return self.add_formatting_issues(self.introduce_ocr_errors(text))

    def _corrupt_field(self, value: Optional[str]) -> Optional[str]:
        # None and "" stay exactly as they are
        if not value:
            return value
        return self.introduce_ocr_errors(value)

    def apply_to_record(self, record: ExtractedRecord) -> ExtractedRecord:
        """
        Apply noise to every field of an extraction result.

        - text: character pass + formatting pass
        - medication fields and doctor name: character pass only,
          and only when non-empty
        - prescription date: never touched

        Returns a new record; the one passed in is left as is.
        """
        medications = [
            medication.model_copy(
                update={
                    field: self._corrupt_field(getattr(medication, field))
                    for field in _MEDICATION_FIELDS
                }
            )
            for medication in record.medications
        ]

        return record.model_copy(
            update={
                "text": self.corrupt_text(record.text),
                "medications": medications,
                "doctor_name": self._corrupt_field(record.doctor_name),
            }
        )


# Shared default instance. It holds only constants, the randomness
# comes from the global random module.
_default_injector = OCRNoiseInjector()


def introduce_ocr_errors(text: str) -> str:
    return _default_injector.introduce_ocr_errors(text)


def add_formatting_issues(text: str) -> str:
    return _default_injector.add_formatting_issues(text)


def apply_ocr_noise(record: ExtractedRecord) -> ExtractedRecord:
    return _default_injector.apply_to_record(record)

