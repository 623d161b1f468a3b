"""
Tests for the long-division solver.

Worked examples are checked column by column; random problems check the
structural properties of the step sequence.
"""
import random
import sys
import os

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dinodivision.models.domain import DivisionProblem
from dinodivision.skills.long_division import solve_long_division
from dinodivision.skills.problem_generator import generate_problem
from dinodivision.skills.step_validator import validate_step


def _problem(dividend: int, divisor: int, pid: str = "p1") -> DivisionProblem:
    q, r = divmod(dividend, divisor)
    return DivisionProblem(pid, dividend, divisor, q, r, 1)


def _summary(solution):
    return [(s.kind, s.expected_value, s.digit_position) for s in solution.steps]


# ---------------------------------------------------------------------------
# Worked examples
# ---------------------------------------------------------------------------

class TestWorkedExamples:
    def test_432_div_12(self):
        sol = solve_long_division(_problem(432, 12))
        assert sol.quotient == 36
        assert sol.remainder == 0
        assert sol.initial_working_number == 43
        assert sol.quotient_digits == (3, 6)
        assert _summary(sol) == [
            ("quotient-digit", "3", 1),
            ("multiply-result", "36", 1),
            ("subtraction-result", "7", 1),
            ("bring-down", "72", 2),
            ("quotient-digit", "6", 2),
            ("multiply-result", "72", 2),
            ("subtraction-result", "0", 2),
        ]

    def test_84_div_4(self):
        sol = solve_long_division(_problem(84, 4))
        assert sol.quotient == 21
        assert sol.remainder == 0
        assert len(sol.quotient_digits) == 2
        assert sol.initial_working_number == 8
        assert [s.expected_value for s in sol.steps] == ["2", "8", "0", "4", "1", "4", "0"]

    def test_zero_quotient_digit_in_the_middle(self):
        sol = solve_long_division(_problem(1005, 5))
        assert sol.initial_working_number == 10
        assert sol.quotient_digits == (2, 0, 1)
        assert [s.expected_value for s in sol.steps] == [
            "2", "10", "0", "0", "0", "0", "0", "5", "1", "5", "0",
        ]

    def test_remainder_is_last_difference(self):
        sol = solve_long_division(_problem(97, 4))
        assert sol.quotient == 24
        assert sol.remainder == 1
        assert sol.steps[-1].kind == "subtraction-result"
        assert sol.steps[-1].expected_value == "1"

    def test_bring_down_carries_digit_and_working_number(self):
        sol = solve_long_division(_problem(432, 12))
        bring = sol.steps[3]
        assert bring.brought_down_digit == 2
        assert bring.working_number == 72
        assert "brought_down_digit" in bring.to_dict()
        assert "brought_down_digit" not in sol.steps[0].to_dict()

    def test_step_ids(self):
        sol = solve_long_division(_problem(432, 12, pid="division-1-abc123"))
        assert sol.steps[0].id == "division-1-abc123:step:0:quotient-digit"
        assert sol.steps[3].id == "division-1-abc123:step:3:bring-down"
        assert [s.sequence_index for s in sol.steps] == list(range(len(sol.steps)))


# ---------------------------------------------------------------------------
# Structural properties
# ---------------------------------------------------------------------------

class TestStepSequence:
    def test_length_is_4k_minus_1(self):
        rng = random.Random(11)
        for level in range(1, 6):
            for _ in range(40):
                sol = solve_long_division(generate_problem(level, rng=rng))
                k = len(sol.quotient_digits)
                assert len(sol.steps) == 4 * k - 1
                assert len(sol.cycles) == k

    def test_walking_every_step_completes_on_the_last(self):
        rng = random.Random(5)
        for _ in range(30):
            steps = solve_long_division(generate_problem(3, rng=rng)).steps
            for i, step in enumerate(steps):
                outcome = validate_step(steps, i, step.expected_value).outcome
                assert outcome == ("complete" if i == len(steps) - 1 else "correct")

    def test_deterministic(self):
        p = _problem(9876, 23)
        assert solve_long_division(p) == solve_long_division(p)

    def test_inconsistent_problem_rejected(self):
        p = _problem(432, 12)
        object.__setattr__(p, "quotient", 35)
        with pytest.raises(ValueError):
            solve_long_division(p)
