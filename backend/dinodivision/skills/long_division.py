"""Long division ("bus stop") solver — expands a problem into ordered steps."""

from dinodivision.models.domain import (
    DivisionCycle,
    DivisionProblem,
    DivisionSolution,
    Step,
)


def _step_id(problem_id: str, sequence_index: int, kind: str) -> str:
    return f"{problem_id}:step:{sequence_index}:{kind}"


def _build_cycles(problem: DivisionProblem) -> tuple[int, list[DivisionCycle]]:
    digits = [int(c) for c in str(problem.dividend)]
    divisor = problem.divisor

    # Leading digits feed the first working number until it can be divided.
    position = 0
    working = digits[0]
    while working < divisor and position < len(digits) - 1:
        position += 1
        working = working * 10 + digits[position]
    initial = working

    cycles = []
    while True:
        q_digit = working // divisor
        product = q_digit * divisor
        difference = working - product

        if position < len(digits) - 1:
            brought_down = digits[position + 1]
            next_working = difference * 10 + brought_down
        else:
            brought_down = None
            next_working = None

        cycles.append(DivisionCycle(
            working_number=working,
            quotient_digit=q_digit,
            product=product,
            difference=difference,
            digit_position=position,
            brought_down_digit=brought_down,
            next_working_number=next_working,
        ))

        if next_working is None:
            break
        position += 1
        working = next_working

    return initial, cycles


def solve_long_division(problem: DivisionProblem) -> DivisionSolution:
    """
    Deterministically expand a DivisionProblem into its step sequence.

    For k quotient digits the sequence holds 4k - 1 steps: each cycle emits
    quotient-digit, multiply-result and subtraction-result, and every cycle
    except the last adds a bring-down.
    """
    initial, cycles = _build_cycles(problem)

    quotient_digits = tuple(c.quotient_digit for c in cycles)
    derived_quotient = int("".join(str(d) for d in quotient_digits))
    derived_remainder = cycles[-1].difference
    if derived_quotient != problem.quotient or derived_remainder != problem.remainder:
        raise ValueError(
            f"Problem {problem.id} is inconsistent with long division: "
            f"expected {problem.quotient} r{problem.remainder}, "
            f"worked {derived_quotient} r{derived_remainder}"
        )

    steps: list[Step] = []

    def emit(kind: str, value: int, position: int, **extra) -> None:
        index = len(steps)
        steps.append(Step(
            id=_step_id(problem.id, index, kind),
            kind=kind,
            sequence_index=index,
            expected_value=str(value),
            digit_position=position,
            **extra,
        ))

    for cycle in cycles:
        emit("quotient-digit", cycle.quotient_digit, cycle.digit_position)
        emit("multiply-result", cycle.product, cycle.digit_position)
        emit("subtraction-result", cycle.difference, cycle.digit_position)
        if cycle.next_working_number is not None:
            emit(
                "bring-down",
                cycle.next_working_number,
                cycle.digit_position + 1,
                brought_down_digit=cycle.brought_down_digit,
                working_number=cycle.next_working_number,
            )

    return DivisionSolution(
        problem_id=problem.id,
        dividend=problem.dividend,
        divisor=problem.divisor,
        quotient=derived_quotient,
        remainder=derived_remainder,
        initial_working_number=initial,
        quotient_digits=quotient_digits,
        cycles=tuple(cycles),
        steps=tuple(steps),
    )
