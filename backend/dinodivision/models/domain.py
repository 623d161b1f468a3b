"""
Core domain types for the long-division game loop.

Problems, steps and unlocked rewards are frozen; GameState is the one
mutable aggregate and is owned by the GameLoopOrchestrator.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Literal, Optional

StepKind = Literal["quotient-digit", "multiply-result", "subtraction-result", "bring-down"]
RemainderPolicy = Literal["forbid", "require", "allow"]

STEP_KINDS: tuple[str, ...] = (
    "quotient-digit",
    "multiply-result",
    "subtraction-result",
    "bring-down",
)
REMAINDER_POLICIES: tuple[str, ...] = ("forbid", "require", "allow")


@dataclass(frozen=True)
class DivisionProblem:
    id: str
    dividend: int
    divisor: int
    quotient: int
    remainder: int
    difficulty_tier: int

    def __post_init__(self):
        if self.divisor < 2:
            raise ValueError(f"divisor must be >= 2, got {self.divisor}")
        if self.dividend <= self.divisor:
            raise ValueError(
                f"dividend ({self.dividend}) must be greater than divisor ({self.divisor})"
            )
        if not 0 <= self.remainder < self.divisor:
            raise ValueError(f"remainder {self.remainder} out of range for divisor {self.divisor}")
        if self.dividend != self.divisor * self.quotient + self.remainder:
            raise ValueError(
                f"{self.dividend} != {self.divisor} * {self.quotient} + {self.remainder}"
            )

    @property
    def has_remainder(self) -> bool:
        return self.remainder > 0

    def to_dict(self) -> dict:
        return {**asdict(self), "has_remainder": self.has_remainder}


@dataclass(frozen=True)
class Step:
    id: str
    kind: StepKind
    sequence_index: int
    expected_value: str
    digit_position: int
    # bring-down only
    brought_down_digit: Optional[int] = None
    working_number: Optional[int] = None

    def to_dict(self) -> dict:
        out = asdict(self)
        if self.kind != "bring-down":
            out.pop("brought_down_digit")
            out.pop("working_number")
        return out


@dataclass(frozen=True)
class DivisionCycle:
    """One divide/multiply/subtract(/bring-down) round of the bus-stop method."""

    working_number: int
    quotient_digit: int
    product: int
    difference: int
    digit_position: int
    brought_down_digit: Optional[int] = None
    next_working_number: Optional[int] = None


@dataclass(frozen=True)
class DivisionSolution:
    problem_id: str
    dividend: int
    divisor: int
    quotient: int
    remainder: int
    initial_working_number: int
    quotient_digits: tuple[int, ...]
    cycles: tuple[DivisionCycle, ...]
    steps: tuple[Step, ...]


@dataclass(frozen=True)
class UnlockedReward:
    reward_id: str
    subject_name: str
    image_path: str
    earned_at: str
    milestone_solved_count: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SessionProgress:
    solved_problems: int = 0
    attempted_problems: int = 0


@dataclass
class LifetimeProgress:
    total_problems_solved: int = 0
    total_problems_attempted: int = 0
    current_difficulty_level: int = 1
    rewards_unlocked: int = 0


@dataclass
class Progress:
    session: SessionProgress = field(default_factory=SessionProgress)
    lifetime: LifetimeProgress = field(default_factory=LifetimeProgress)


@dataclass
class GameState:
    active_problem: Optional[DivisionProblem] = None
    steps: tuple[Step, ...] = ()
    active_step_index: Optional[int] = None
    revealed_step_count: int = 0
    progress: Progress = field(default_factory=Progress)
    unlocked_rewards: list[UnlockedReward] = field(default_factory=list)
    initial_working_number: Optional[int] = None

    @property
    def has_active_problem(self) -> bool:
        return self.active_step_index is not None

    @property
    def active_step(self) -> Optional[Step]:
        if self.active_step_index is None:
            return None
        return self.steps[self.active_step_index]

    def to_dict(self) -> dict:
        return {
            "active_problem": self.active_problem.to_dict() if self.active_problem else None,
            "steps": [s.to_dict() for s in self.steps],
            "active_step_index": self.active_step_index,
            "revealed_step_count": self.revealed_step_count,
            "initial_working_number": self.initial_working_number,
            "progress": asdict(self.progress),
            "unlocked_rewards": [r.to_dict() for r in self.unlocked_rewards],
        }
