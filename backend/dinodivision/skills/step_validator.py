"""
Step validator — pure grading of one submitted value against the step in focus.

Normalization strips every non-digit character before comparing integer
values, so "07", " 7 " and "7." all grade the same as "7". A submission with
no digits at all is never correct.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal, Optional, Sequence

from dinodivision.core.errors import StepValidationError
from dinodivision.models.domain import Step

Outcome = Literal["correct", "incorrect", "complete"]
Tone = Literal["encouragement", "retry", "celebration"]

_NON_DIGITS = re.compile(r"\D")
_INTEGER = re.compile(r"^\d+$")

_TONE_BY_OUTCOME: dict[str, str] = {
    "correct": "encouragement",
    "incorrect": "retry",
    "complete": "celebration",
}

# (outcome, step_kind) -> message key
FEEDBACK_MESSAGE_KEYS: dict[tuple[str, str], str] = {
    ("correct", "quotient-digit"): "dino.feedback.correct.quotient-digit",
    ("correct", "multiply-result"): "dino.feedback.correct.multiply-result",
    ("correct", "subtraction-result"): "dino.feedback.correct.subtraction-result",
    ("correct", "bring-down"): "dino.feedback.correct.bring-down",
    ("incorrect", "quotient-digit"): "dino.feedback.retry.quotient-digit",
    ("incorrect", "multiply-result"): "dino.feedback.retry.multiply-result",
    ("incorrect", "subtraction-result"): "dino.feedback.retry.subtraction-result",
    ("incorrect", "bring-down"): "dino.feedback.retry.bring-down",
    ("complete", "quotient-digit"): "dino.feedback.complete.problem",
    ("complete", "multiply-result"): "dino.feedback.complete.problem",
    ("complete", "subtraction-result"): "dino.feedback.complete.problem",
    ("complete", "bring-down"): "dino.feedback.complete.problem",
}


@dataclass(frozen=True)
class FeedbackHook:
    id: str
    step_kind: str
    tone: Tone
    message_key: str


@dataclass(frozen=True)
class StepValidation:
    outcome: Outcome
    current_index: int
    current_step_id: str
    focus_index: Optional[int]
    focus_step_id: Optional[str]
    expected_value: str
    normalized_value: Optional[int]
    feedback: FeedbackHook
    hint: Optional[str] = None

    @property
    def is_correct(self) -> bool:
        return self.outcome != "incorrect"


def normalize_submission(raw: str) -> Optional[int]:
    """Strip non-digits; None when nothing numeric is left."""
    digits = _NON_DIGITS.sub("", raw)
    if not digits:
        return None
    return int(digits)


def feedback_for(outcome: str, step_kind: str) -> FeedbackHook:
    """Pure (outcome, step_kind) lookup."""
    key = FEEDBACK_MESSAGE_KEYS[(outcome, step_kind)]
    if outcome == "complete":
        hook_id = "dino-feedback:complete:problem"
    elif outcome == "correct":
        hook_id = f"dino-feedback:correct:{step_kind}"
    else:
        hook_id = f"dino-feedback:retry:{step_kind}"
    return FeedbackHook(
        id=hook_id,
        step_kind=step_kind,
        tone=_TONE_BY_OUTCOME[outcome],
        message_key=key,
    )


def _working_number(previous: Sequence[Step], initial: int | None) -> int | None:
    for step in reversed(previous):
        if step.kind == "bring-down":
            return step.working_number
    return initial


def build_hint(
    step: Step,
    previous: Sequence[Step],
    submitted: int | None,
    divisor: int | None = None,
    initial_working_number: int | None = None,
) -> str:
    """Hint for a wrong answer on `step`; `previous` are the steps before it."""
    if submitted is None:
        return "Enter a whole number."

    working = _working_number(previous, initial_working_number)
    last_value = previous[-1].expected_value if previous else "?"

    if step.kind == "quotient-digit":
        if divisor is None or working is None:
            return "Try a different quotient digit."
        if submitted > int(step.expected_value):
            return f"Too large: {divisor} × {submitted} is more than {working}."
        return (
            f"Too small: make {divisor} × digit as close to {working} "
            f"as you can without going over."
        )
    if step.kind == "multiply-result":
        return f"Multiply the divisor {divisor} by the quotient digit {last_value}."
    if step.kind == "subtraction-result":
        return f"Subtract {last_value} from {working}."
    return f"Bring down the next digit ({step.brought_down_digit}) next to {last_value}."


def validate_step(
    steps: Sequence[Step],
    current_index: int,
    submitted_value: str,
    divisor: int | None = None,
    initial_working_number: int | None = None,
) -> StepValidation:
    """
    Grade `submitted_value` against steps[current_index].

    Raises:
        StepValidationError: empty steps, index out of range, non-string
        submission, or a step whose expected value is not an integer string.
    """
    if not steps:
        raise StepValidationError("steps must include at least one long-division step")
    if isinstance(current_index, bool) or not isinstance(current_index, int):
        raise StepValidationError(f"current_index must be an integer, got {current_index!r}")
    if not 0 <= current_index < len(steps):
        raise StepValidationError(
            f"current_index {current_index} out of range for {len(steps)} steps"
        )
    if not isinstance(submitted_value, str):
        raise StepValidationError(
            f"submitted_value must be a string, got {type(submitted_value).__name__}"
        )

    step = steps[current_index]
    if not isinstance(step.expected_value, str) or not _INTEGER.match(step.expected_value):
        raise StepValidationError(
            f"steps[{current_index}].expected_value must be an integer string, "
            f"got {step.expected_value!r}"
        )

    expected = int(step.expected_value)
    normalized = normalize_submission(submitted_value)

    if normalized is None or normalized != expected:
        hint = build_hint(
            step,
            steps[:current_index],
            normalized,
            divisor=divisor,
            initial_working_number=initial_working_number,
        )
        return StepValidation(
            outcome="incorrect",
            current_index=current_index,
            current_step_id=step.id,
            focus_index=current_index,
            focus_step_id=step.id,
            expected_value=step.expected_value,
            normalized_value=normalized,
            feedback=feedback_for("incorrect", step.kind),
            hint=hint,
        )

    if current_index == len(steps) - 1:
        return StepValidation(
            outcome="complete",
            current_index=current_index,
            current_step_id=step.id,
            focus_index=None,
            focus_step_id=None,
            expected_value=step.expected_value,
            normalized_value=normalized,
            feedback=feedback_for("complete", step.kind),
        )

    next_step = steps[current_index + 1]
    return StepValidation(
        outcome="correct",
        current_index=current_index,
        current_step_id=step.id,
        focus_index=current_index + 1,
        focus_step_id=next_step.id,
        expected_value=step.expected_value,
        normalized_value=normalized,
        feedback=feedback_for("correct", step.kind),
    )
