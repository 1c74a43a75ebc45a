"""
Unit tests for the increment engine.

Tests cover:
- Number successor with zero padding
- Letter successor with carry
- Validation and normalization
- Ordering consistent with increment order
- Prefix formatting
"""

import pytest

from sequencer.engine import (
    Sequence,
    SequenceType,
    compare_values,
    full_value,
    increment_letter,
    increment_number,
    increment_value,
    is_valid_value,
    next_full_value,
    normalize_value,
    split_stamped_value,
)
from sequencer.errors import ValidationError


class TestIncrementNumber:
    """Tests for number successors."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("0099", "0100"),
            ("5100", "5101"),
            ("0", "1"),
            ("9", "10"),
            ("99", "100"),
            ("0999", "1000"),
            ("0001", "0002"),
        ],
    )
    def test_increment(self, value, expected):
        """Width is preserved until the value overflows it."""
        assert increment_number(value) == expected

    def test_large_values(self):
        """Values beyond 64-bit range still increment."""
        assert increment_number("99999999999999999999") == "100000000000000000000"


class TestIncrementLetter:
    """Tests for letter successors."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("A", "B"),
            ("Y", "Z"),
            ("Z", "AA"),
            ("AZ", "BA"),
            ("ZZ", "AAA"),
            ("ABZ", "ACA"),
        ],
    )
    def test_increment(self, value, expected):
        assert increment_letter(value) == expected

    def test_lowercase_input_is_uppercased(self):
        assert increment_letter("az") == "BA"

    def test_dispatch_by_type(self):
        assert increment_value("Z", SequenceType.LETTER) == "AA"
        assert increment_value("09", SequenceType.NUMBER) == "10"


class TestValidation:
    """Tests for value validation and normalization."""

    def test_valid_values(self):
        assert is_valid_value("0099", SequenceType.NUMBER)
        assert is_valid_value("AB", SequenceType.LETTER)

    @pytest.mark.parametrize("value", ["", "12a", "-1", "1.5", " 12", "١٢"])
    def test_invalid_numbers(self, value):
        assert not is_valid_value(value, SequenceType.NUMBER)

    @pytest.mark.parametrize("value", ["", "A1", "ab", "Ä"])
    def test_invalid_letters(self, value):
        assert not is_valid_value(value, SequenceType.LETTER)

    def test_normalize_strips_and_uppercases(self):
        assert normalize_value("  0042 ", SequenceType.NUMBER) == "0042"
        assert normalize_value(" ab ", SequenceType.LETTER) == "AB"

    def test_normalize_rejects_malformed(self):
        with pytest.raises(ValidationError) as exc_info:
            normalize_value("12x", SequenceType.NUMBER, field_name="nextValue")

        assert exc_info.value.code == "VALIDATION_ERROR"
        assert exc_info.value.field_name == "nextValue"
        assert "digits" in exc_info.value.message


class TestCompareValues:
    """Tests for value ordering."""

    def test_numbers_compare_numerically(self):
        assert compare_values("0100", "99", SequenceType.NUMBER) > 0
        assert compare_values("0099", "99", SequenceType.NUMBER) == 0
        assert compare_values("5", "10", SequenceType.NUMBER) < 0

    def test_letters_compare_shortlex(self):
        """Longer letter values are always greater."""
        assert compare_values("Z", "AA", SequenceType.LETTER) < 0
        assert compare_values("AB", "AA", SequenceType.LETTER) > 0
        assert compare_values("ZZ", "AAA", SequenceType.LETTER) < 0

    def test_empty_orders_below_everything(self):
        assert compare_values("", "0", SequenceType.NUMBER) < 0
        assert compare_values("A", "", SequenceType.LETTER) > 0
        assert compare_values("", "", SequenceType.LETTER) == 0

    @pytest.mark.parametrize(
        "start,seq_type",
        [("0098", SequenceType.NUMBER), ("X", SequenceType.LETTER), ("AY", SequenceType.LETTER)],
    )
    def test_agrees_with_increment(self, start, seq_type):
        """Every successor compares greater than its predecessor."""
        value = start
        for _ in range(30):
            following = increment_value(value, seq_type)
            assert compare_values(following, value, seq_type) > 0
            value = following


class TestFormatting:
    """Tests for prefix formatting."""

    @pytest.fixture
    def sequence(self):
        return Sequence(
            id="seq_1",
            name="Invoice#",
            prefix="INV-",
            type=SequenceType.NUMBER,
            next_value="0099",
        )

    def test_full_value(self, sequence):
        assert full_value(sequence) == "INV-0099"

    def test_next_full_value(self, sequence):
        assert next_full_value(sequence) == "INV-0100"

    def test_split_stamped_value(self):
        assert split_stamped_value("INV-0099", "INV-") == "0099"
        assert split_stamped_value("PO-0099", "INV-") is None
        assert split_stamped_value("0099", "") == "0099"
