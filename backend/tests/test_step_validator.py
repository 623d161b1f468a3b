"""
Tests for step validation: normalization, outcomes, feedback hooks, hints.
"""
import sys
import os

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dinodivision.core.errors import StepValidationError
from dinodivision.models.domain import DivisionProblem, Step
from dinodivision.skills.long_division import solve_long_division
from dinodivision.skills.step_validator import (
    feedback_for,
    normalize_submission,
    validate_step,
)


def _steps_432_div_12():
    return solve_long_division(DivisionProblem("p", 432, 12, 36, 0, 3)).steps


def _validate(index, value):
    return validate_step(
        _steps_432_div_12(), index, value, divisor=12, initial_working_number=43
    )


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

class TestNormalize:
    @pytest.mark.parametrize("raw,expected", [
        ("7", 7), ("07", 7), (" 7 ", 7), ("7.", 7), ("-3", 3), ("1,024", 1024),
    ])
    def test_strips_non_digits(self, raw, expected):
        assert normalize_submission(raw) == expected

    @pytest.mark.parametrize("raw", ["", "   ", "abc", "-"])
    def test_nothing_numeric(self, raw):
        assert normalize_submission(raw) is None

    def test_non_numeric_submission_is_incorrect(self):
        result = _validate(0, "three")
        assert result.outcome == "incorrect"
        assert result.normalized_value is None
        assert result.hint == "Enter a whole number."


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------

class TestOutcomes:
    def test_correct_moves_focus(self):
        result = _validate(0, "03")
        assert result.outcome == "correct"
        assert result.is_correct
        assert result.focus_index == 1
        assert result.focus_step_id == "p:step:1:multiply-result"
        assert result.feedback.tone == "encouragement"

    def test_incorrect_keeps_focus(self):
        result = _validate(1, "35")
        assert result.outcome == "incorrect"
        assert not result.is_correct
        assert result.focus_index == 1
        assert result.feedback.tone == "retry"
        assert result.feedback.id == "dino-feedback:retry:multiply-result"

    def test_last_step_completes(self):
        result = _validate(6, "0")
        assert result.outcome == "complete"
        assert result.focus_index is None
        assert result.focus_step_id is None
        assert result.feedback.tone == "celebration"
        assert result.feedback.id == "dino-feedback:complete:problem"

    def test_feedback_lookup_is_pure(self):
        a = feedback_for("correct", "bring-down")
        b = feedback_for("correct", "bring-down")
        assert a == b
        assert a.message_key == "dino.feedback.correct.bring-down"


# ---------------------------------------------------------------------------
# Hints
# ---------------------------------------------------------------------------

class TestHints:
    def test_quotient_digit_too_large(self):
        assert _validate(0, "4").hint == "Too large: 12 × 4 is more than 43."

    def test_quotient_digit_too_small(self):
        assert _validate(0, "2").hint.startswith("Too small")

    def test_multiply_hint(self):
        assert _validate(1, "30").hint == "Multiply the divisor 12 by the quotient digit 3."

    def test_subtract_hint(self):
        assert _validate(2, "6").hint == "Subtract 36 from 43."

    def test_bring_down_hint(self):
        assert _validate(3, "7").hint == "Bring down the next digit (2) next to 7."

    def test_second_cycle_uses_brought_down_working_number(self):
        assert _validate(4, "7").hint == "Too large: 12 × 7 is more than 72."
        assert _validate(6, "1").hint == "Subtract 72 from 72."

    def test_correct_answers_carry_no_hint(self):
        assert _validate(2, "7").hint is None


# ---------------------------------------------------------------------------
# Fatal request errors
# ---------------------------------------------------------------------------

class TestRequestErrors:
    def test_empty_steps(self):
        with pytest.raises(StepValidationError):
            validate_step([], 0, "1")

    @pytest.mark.parametrize("index", [-1, 7, 100])
    def test_index_out_of_range(self, index):
        with pytest.raises(StepValidationError):
            validate_step(_steps_432_div_12(), index, "1")

    def test_non_integer_index(self):
        with pytest.raises(StepValidationError):
            validate_step(_steps_432_div_12(), True, "1")

    def test_non_string_submission(self):
        with pytest.raises(StepValidationError):
            validate_step(_steps_432_div_12(), 0, 3)

    def test_malformed_expected_value(self):
        steps = [Step(id="x", kind="quotient-digit", sequence_index=0,
                      expected_value="3a", digit_position=0)]
        with pytest.raises(StepValidationError):
            validate_step(steps, 0, "3")

    def test_is_a_value_error(self):
        with pytest.raises(ValueError):
            validate_step([], 0, "1")
