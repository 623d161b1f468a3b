"""
Division problem generator.

Builds a DivisionProblem whose dividend/divisor digit counts fall inside a
difficulty tier and whose remainder obeys a remainder policy:

  forbid  — remainder is always 0 (pick divisor, then quotient, multiply)
  require — remainder is always > 0
  allow   — whatever falls out of a random dividend

The random source is an injectable random.Random so tests and replays are
reproducible.
"""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass

from dinodivision.core.errors import ProblemGenerationError
from dinodivision.models.domain import REMAINDER_POLICIES, DivisionProblem

logger = logging.getLogger("dinodivision.problem_generator")

MAX_GENERATION_ATTEMPTS = 2000
_ID_SPACE = 36 ** 6


@dataclass(frozen=True)
class DifficultyTier:
    level: int
    label: str
    dividend_digits: tuple[int, int]
    divisor_digits: tuple[int, int]


DIFFICULTY_TIERS: tuple[DifficultyTier, ...] = (
    DifficultyTier(1, "2-digit ÷ 1-digit", (2, 2), (1, 1)),
    DifficultyTier(2, "2-3 digit ÷ 1-digit", (2, 3), (1, 1)),
    DifficultyTier(3, "3-4 digit ÷ 1-2 digit", (3, 4), (1, 2)),
    DifficultyTier(4, "4-digit ÷ 2-digit", (4, 4), (2, 2)),
    DifficultyTier(5, "4-5 digit ÷ 2-3 digit", (4, 5), (2, 3)),
)

# (minimum lifetime solved count, level), ascending
DIFFICULTY_PROGRESSION: tuple[tuple[int, int], ...] = (
    (0, 1),
    (5, 2),
    (12, 3),
    (20, 4),
    (35, 5),
)


def get_difficulty_tier(level: int) -> DifficultyTier:
    """Return the tier for a 1-based level; levels past the top clamp to it."""
    if not isinstance(level, int) or level < 1:
        raise ValueError(f"difficulty level must be a positive integer, got {level!r}")
    return DIFFICULTY_TIERS[min(level, len(DIFFICULTY_TIERS)) - 1]


def difficulty_level_for_solved_count(total_solved: int) -> int:
    if total_solved < 0:
        raise ValueError("total_solved must be non-negative")
    level = DIFFICULTY_PROGRESSION[0][1]
    for minimum, rule_level in DIFFICULTY_PROGRESSION:
        if total_solved < minimum:
            break
        level = rule_level
    return level


def digit_count(value: int) -> int:
    return len(str(abs(value)))


def _digit_bounds(digits: int) -> tuple[int, int]:
    low = 10 ** (digits - 1) if digits > 1 else 1
    return low, 10 ** digits - 1


def _problem_id(level: int, rng: random.Random) -> str:
    n = rng.randrange(_ID_SPACE)
    chars = "0123456789abcdefghijklmnopqrstuvwxyz"
    out = ""
    for _ in range(6):
        n, r = divmod(n, 36)
        out = chars[r] + out
    return f"division-{level}-{out}"


def _pick_exact(rng: random.Random, divisor: int, dividend_digits: int) -> tuple[int, int] | None:
    """Pick quotient so divisor*quotient stays inside the dividend digit range."""
    low, high = _digit_bounds(dividend_digits)
    # dividend > divisor means quotient >= 2 when there is no remainder
    q_low = max(2, -(-low // divisor))
    q_high = high // divisor
    if q_low > q_high:
        return None
    quotient = rng.randint(q_low, q_high)
    return divisor * quotient, quotient


def _pick_direct(rng: random.Random, divisor: int, dividend_digits: int, policy: str):
    low, high = _digit_bounds(dividend_digits)
    dividend = rng.randint(low, high)
    quotient, remainder = divmod(dividend, divisor)
    if quotient < 1 or dividend <= divisor:
        return None
    if policy == "require" and remainder == 0:
        return None
    return dividend, quotient, remainder


def generate_problem(
    level: int,
    remainder_policy: str = "allow",
    rng: random.Random | None = None,
    max_attempts: int = MAX_GENERATION_ATTEMPTS,
) -> DivisionProblem:
    """
    Generate one problem for a difficulty level.

    Raises:
        ValueError: unknown remainder policy or bad level.
        ProblemGenerationError: no valid combination within max_attempts.
    """
    if remainder_policy not in REMAINDER_POLICIES:
        raise ValueError(f"unknown remainder policy {remainder_policy!r}")
    if max_attempts < 1:
        raise ValueError("max_attempts must be positive")

    rng = rng or random.Random()
    tier = get_difficulty_tier(level)

    for attempt in range(max_attempts):
        dividend_digits = rng.randint(*tier.dividend_digits)
        divisor_digits = rng.randint(*tier.divisor_digits)
        d_low, d_high = _digit_bounds(divisor_digits)
        divisor = rng.randint(max(2, d_low), d_high)

        if remainder_policy == "forbid":
            picked = _pick_exact(rng, divisor, dividend_digits)
            if picked is None:
                continue
            dividend, quotient = picked
            remainder = 0
        else:
            picked = _pick_direct(rng, divisor, dividend_digits, remainder_policy)
            if picked is None:
                continue
            dividend, quotient, remainder = picked

        if attempt:
            logger.debug(
                "[problem_generator.generate_problem] level=%d policy=%s accepted after %d retries",
                tier.level, remainder_policy, attempt,
            )
        return DivisionProblem(
            id=_problem_id(tier.level, rng),
            dividend=dividend,
            divisor=divisor,
            quotient=quotient,
            remainder=remainder,
            difficulty_tier=tier.level,
        )

    raise ProblemGenerationError(
        f"Unable to generate a division problem for level {tier.level} "
        f"({remainder_policy}) after {max_attempts} attempts"
    )


def generate_problem_for_solved_count(
    total_solved: int,
    remainder_policy: str = "allow",
    rng: random.Random | None = None,
) -> DivisionProblem:
    return generate_problem(
        difficulty_level_for_solved_count(total_solved),
        remainder_policy=remainder_policy,
        rng=rng,
    )
