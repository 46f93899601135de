import random

import pytest

from rxscan.schemas.extraction import ExtractedRecord, Medication
from rxscan.services.noise import (
    OCR_CONFUSION_PAIRS,
    OCR_CONFUSION_TABLE,
    OCRNoiseInjector,
    add_formatting_issues,
    apply_ocr_noise,
    build_confusion_table,
    introduce_ocr_errors,
)


def quiet_injector(**overrides):
    """Injector with every probability at 0 unless overridden."""
    settings = dict(
        error_rate=0.0,
        skip_probability=0.0,
        duplicate_probability=0.0,
        line_break_probability=0.0,
        space_removal_probability=0.0,
        space_insertion_probability=0.0,
    )
    settings.update(overrides)
    return OCRNoiseInjector(**settings)


def strip_whitespace(text):
    return "".join(text.split())


# --- confusion table ---

def test_confusion_table_last_write_wins():
    """Repeated source characters keep only their final target."""
    assert OCR_CONFUSION_TABLE["1"] == "l"
    assert OCR_CONFUSION_TABLE["n"] == "r"
    assert OCR_CONFUSION_TABLE["Z"] == "z"
    assert OCR_CONFUSION_TABLE["q"] == "p"
    assert OCR_CONFUSION_TABLE["c"] == "C"
    assert OCR_CONFUSION_TABLE["v"] == "V"
    assert OCR_CONFUSION_TABLE["p"] == "P"
    # Keys declared once are untouched
    assert OCR_CONFUSION_TABLE["O"] == "0"
    assert OCR_CONFUSION_TABLE["I"] == "1"


def test_confusion_table_has_one_entry_per_source():
    sources = {source for source, _ in OCR_CONFUSION_PAIRS}
    assert set(OCR_CONFUSION_TABLE) == sources
    assert "%" not in OCR_CONFUSION_TABLE


def test_build_confusion_table_order_matters():
    assert build_confusion_table([("a", "b"), ("a", "c")]) == {"a": "c"}
    assert build_confusion_table([("a", "c"), ("a", "b")]) == {"a": "b"}


def test_invalid_probability_rejected():
    with pytest.raises(ValueError):
        OCRNoiseInjector(error_rate=1.5)
    with pytest.raises(ValueError):
        OCRNoiseInjector(space_insertion_probability=-0.1)


# --- character pass ---

def test_zero_error_rate_is_identity():
    injector = OCRNoiseInjector(error_rate=0.0)
    text = "Take 1 tablet twice daily"
    assert injector.introduce_ocr_errors(text) == text


def test_forced_error_rate_substitutes_every_mapped_character():
    injector = OCRNoiseInjector(error_rate=1.0, confusion_table={"1": "I"})
    assert injector.introduce_ocr_errors("11") == "II"


def test_forced_skip_drops_unmapped_characters():
    injector = quiet_injector(
        error_rate=1.0, skip_probability=1.0, confusion_table={"1": "I"}
    )
    assert injector.introduce_ocr_errors("a1b") == "I"


def test_forced_duplicate_doubles_unmapped_characters():
    injector = quiet_injector(
        error_rate=1.0, duplicate_probability=1.0, confusion_table={}
    )
    assert injector.introduce_ocr_errors("ab1") == "aabb11"


def test_error_branch_without_skip_or_duplicate_keeps_character():
    injector = quiet_injector(error_rate=1.0, confusion_table={})
    assert injector.introduce_ocr_errors("Rx 500mg") == "Rx 500mg"


def test_empty_input():
    assert introduce_ocr_errors("") == ""
    assert add_formatting_issues("") == ""
    assert OCRNoiseInjector().corrupt_text("") == ""


@pytest.mark.parametrize("text", [
    "a",
    "Amoxicillin 500mg three times daily for 7 days",
    "Dr. Sarah Johnson, MD\nRx: Ibuprofen 400 mg",
    "x" * 300,
])
def test_character_pass_length_bound(text):
    injector = OCRNoiseInjector(rng=random.Random(7))
    for _ in range(20):
        output = injector.introduce_ocr_errors(text)
        assert 0 <= len(output) <= 2 * len(text)


def test_same_seed_same_output():
    text = "Metformin 850mg twice daily with meals"
    first = OCRNoiseInjector(rng=random.Random(42)).corrupt_text(text)
    second = OCRNoiseInjector(rng=random.Random(42)).corrupt_text(text)
    assert first == second


def test_high_error_rate_changes_text():
    injector = OCRNoiseInjector(error_rate=1.0, rng=random.Random(1))
    # Every character here has a look-alike
    assert injector.introduce_ocr_errors("OIS") == "015"


# --- formatting pass ---

def test_formatting_pass_with_zero_probabilities_is_identity():
    text = "Paracetamol  500mg\tafter food"
    assert quiet_injector().add_formatting_issues(text) == text


def test_line_break_uses_non_overlapping_word_pairs():
    injector = quiet_injector(line_break_probability=1.0)
    # "take one" is matched, scanning resumes after "one"
    assert injector.add_formatting_issues("take one tablet") == "take\none tablet"
    assert injector.add_formatting_issues("take one tablet daily") == "take\none tablet\ndaily"


def test_space_removal_deletes_whole_runs():
    injector = quiet_injector(space_removal_probability=1.0)
    assert injector.add_formatting_issues("a  b\tc\n\nd") == "abcd"


def test_space_insertion_after_every_character():
    injector = quiet_injector(space_insertion_probability=1.0)
    assert injector.add_formatting_issues("a-1") == "a - 1 "


def test_line_breaks_then_removal_compound():
    injector = quiet_injector(line_break_probability=1.0, space_removal_probability=1.0)
    assert injector.add_formatting_issues("two tabs") == "twotabs"


def test_formatting_pass_never_adds_content():
    injector = OCRNoiseInjector(
        line_break_probability=0.5,
        space_removal_probability=0.5,
        space_insertion_probability=0.5,
        rng=random.Random(3),
    )
    text = injector.introduce_ocr_errors("Take 1 tablet of Aspirin 75mg once daily after lunch")
    formatted = injector.add_formatting_issues(text)
    assert strip_whitespace(formatted) == strip_whitespace(text)


# --- record pass ---

def test_record_fields_follow_field_rules():
    record = ExtractedRecord(
        text="Aspirin",
        medications=[Medication(name="Aspirin", dosage="", frequency=None)],
        doctor_name="Adams",
        prescription_date="A1",
    )
    injector = quiet_injector(error_rate=1.0, confusion_table={"A": "4"})

    noisy = injector.apply_to_record(record)

    assert noisy.text == "4spirin"
    assert noisy.medications[0].name == "4spirin"
    assert noisy.medications[0].dosage == ""
    assert noisy.medications[0].frequency is None
    assert noisy.medications[0].duration is None
    assert noisy.doctor_name == "4dams"
    assert noisy.prescription_date == "A1"


def test_record_input_is_not_mutated():
    record = ExtractedRecord(
        text="Aspirin 75mg",
        medications=[Medication(name="Aspirin")],
        doctor_name="Adams",
    )
    injector = quiet_injector(error_rate=1.0, confusion_table={"A": "4"})

    noisy = injector.apply_to_record(record)

    assert noisy is not record
    assert record.text == "Aspirin 75mg"
    assert record.medications[0].name == "Aspirin"
    assert record.doctor_name == "Adams"


def test_formatting_pass_only_applies_to_full_text():
    record = ExtractedRecord(
        text="ab",
        medications=[Medication(name="Ibuprofen", instructions="after food")],
        doctor_name="Dr Lee",
    )
    injector = quiet_injector(space_insertion_probability=1.0)

    noisy = injector.apply_to_record(record)

    assert noisy.text == "a b "
    assert noisy.medications[0].name == "Ibuprofen"
    assert noisy.medications[0].instructions == "after food"
    assert noisy.doctor_name == "Dr Lee"


def test_record_with_no_medications():
    record = ExtractedRecord(text="", doctor_name=None, prescription_date=None)
    noisy = OCRNoiseInjector(rng=random.Random(0)).apply_to_record(record)
    assert noisy.text == ""
    assert noisy.medications == []
    assert noisy.doctor_name is None
    assert noisy.prescription_date is None


def test_default_record_pass_keeps_absent_fields():
    record = ExtractedRecord(
        text="Rx",
        medications=[Medication(name=None, dosage=None)],
        doctor_name="",
        prescription_date="12/01/2024",
    )
    noisy = apply_ocr_noise(record)
    assert noisy.medications[0].name is None
    assert noisy.medications[0].dosage is None
    assert noisy.doctor_name == ""
    assert noisy.prescription_date == "12/01/2024"
