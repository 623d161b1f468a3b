"""
Game loop orchestrator — advances problems, counts progress, unlocks rewards.

State machine per player:

    no-active-problem ──start──▶ active(step 0..N) ──incorrect──▶ (same step)
                                        │
                                     correct ──▶ active(step + 1)
                                        │
                                     complete ──▶ rewards resolved ──▶ active(next problem)

Transitions are synchronous and mutate the GameState passed in; callers must
serialize calls per player. Image generation is never awaited here: the
orchestrator only nudges the cache through the prefetch hook.
"""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from dinodivision.core.errors import NoActiveProblemError
from dinodivision.models.domain import (
    DivisionProblem,
    GameState,
    LifetimeProgress,
    Progress,
    SessionProgress,
    UnlockedReward,
)
from dinodivision.services.image_store import slugify
from dinodivision.services.reward_roster import (
    REWARD_INTERVAL,
    ROSTER,
    next_milestone_subject,
    resolve_milestones,
    should_prefetch,
)
from dinodivision.services.telemetry import emit_event
from dinodivision.skills.long_division import solve_long_division
from dinodivision.skills.problem_generator import (
    difficulty_level_for_solved_count,
    generate_problem,
)
from dinodivision.skills.step_validator import StepValidation, validate_step

logger = logging.getLogger("dinodivision.game_loop")

ProblemFactory = Callable[..., DivisionProblem]
PrefetchHook = Callable[[str], str]
Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def reward_id_for_milestone(milestone: int) -> str:
    return f"reward-{milestone}"


def reward_image_path(subject_name: str, url_prefix: str = "/rewards") -> str:
    return f"/{url_prefix.strip('/')}/{slugify(subject_name)}.png"


@dataclass(frozen=True)
class PrefetchRequest:
    subject_name: str
    status: str


@dataclass(frozen=True)
class ProblemStarted:
    state: GameState
    problem: DivisionProblem
    first_step_id: str
    prefetch: Optional[PrefetchRequest] = None


@dataclass(frozen=True)
class ProblemCompleted:
    problem: DivisionProblem
    total_problems_solved: int
    previous_difficulty_level: int
    difficulty_level: int
    unlocked_rewards: tuple[UnlockedReward, ...] = ()
    exhausted_milestones: tuple[int, ...] = ()

    @property
    def leveled_up(self) -> bool:
        return self.difficulty_level > self.previous_difficulty_level


@dataclass(frozen=True)
class StepInputResult:
    state: GameState
    validation: StepValidation
    completed: Optional[ProblemCompleted] = None
    next_problem: Optional[ProblemStarted] = None


@dataclass
class GameLoopOrchestrator:
    generator: ProblemFactory = generate_problem
    prefetch_hook: Optional[PrefetchHook] = None
    remainder_policy: str = "allow"
    rng: random.Random = field(default_factory=random.Random)
    clock: Clock = _utcnow
    reward_interval: int = REWARD_INTERVAL
    roster: tuple[str, ...] = ROSTER
    image_url_prefix: str = "/rewards"

    # ── state construction ────────────────────────────────────────────────

    def new_state(
        self,
        lifetime: Optional[LifetimeProgress] = None,
        unlocked_rewards: Optional[list[UnlockedReward]] = None,
    ) -> GameState:
        """Idle state for a fresh session on top of (possibly loaded) lifetime progress."""
        lifetime = lifetime or LifetimeProgress()
        lifetime.current_difficulty_level = max(
            lifetime.current_difficulty_level,
            difficulty_level_for_solved_count(lifetime.total_problems_solved),
        )
        return GameState(
            progress=Progress(session=SessionProgress(), lifetime=lifetime),
            unlocked_rewards=list(unlocked_rewards or []),
        )

    # ── transitions ──────────────────────────────────────────────────────

    def start_next_problem(self, state: GameState) -> ProblemStarted:
        """
        Generate, solve and activate the next problem.

        Raises:
            ProblemGenerationError: propagated from the generator.
        """
        lifetime = state.progress.lifetime
        level = lifetime.current_difficulty_level
        problem = self.generator(level, remainder_policy=self.remainder_policy, rng=self.rng)
        solution = solve_long_division(problem)

        state.active_problem = problem
        state.steps = solution.steps
        state.active_step_index = 0
        state.revealed_step_count = 0
        state.initial_working_number = solution.initial_working_number
        state.progress.session.attempted_problems += 1
        lifetime.total_problems_attempted += 1

        prefetch = self._maybe_prefetch(lifetime)

        emit_event(
            "problem_started",
            problem_id=problem.id,
            difficulty_level=level,
        )
        return ProblemStarted(
            state=state,
            problem=problem,
            first_step_id=solution.steps[0].id,
            prefetch=prefetch,
        )

    def apply_step_input(self, state: GameState, submitted_value: str) -> StepInputResult:
        """
        Grade one submission against the step in focus.

        Raises:
            NoActiveProblemError: no problem is in progress.
            StepValidationError: propagated from the validator.
        """
        if not state.has_active_problem or state.active_problem is None:
            raise NoActiveProblemError("No active problem; start a problem first")

        problem = state.active_problem
        validation = validate_step(
            state.steps,
            state.active_step_index,
            submitted_value,
            divisor=problem.divisor,
            initial_working_number=state.initial_working_number,
        )

        if validation.outcome == "incorrect":
            return StepInputResult(state=state, validation=validation)

        if validation.outcome == "correct":
            state.active_step_index = validation.focus_index
            state.revealed_step_count = max(state.revealed_step_count, validation.current_index + 1)
            return StepInputResult(state=state, validation=validation)

        state.revealed_step_count = len(state.steps)
        completed = self._complete(state, problem)
        next_problem = self.start_next_problem(state)
        return StepInputResult(
            state=state,
            validation=validation,
            completed=completed,
            next_problem=next_problem,
        )

    def skip_problem(self, state: GameState) -> ProblemStarted:
        """Abandon the active problem (the attempt stays counted) and start another."""
        if not state.has_active_problem or state.active_problem is None:
            raise NoActiveProblemError("No active problem to skip")
        logger.info("[game_loop.skip_problem] skipping %s", state.active_problem.id)
        return self.start_next_problem(state)

    # ── internals ────────────────────────────────────────────────────────

    def _complete(self, state: GameState, problem: DivisionProblem) -> ProblemCompleted:
        lifetime = state.progress.lifetime
        old_solved = lifetime.total_problems_solved
        state.progress.session.solved_problems += 1
        lifetime.total_problems_solved += 1
        new_solved = lifetime.total_problems_solved

        previous_level = lifetime.current_difficulty_level
        lifetime.current_difficulty_level = max(
            previous_level, difficulty_level_for_solved_count(new_solved)
        )

        unlocked: list[UnlockedReward] = []
        exhausted: list[int] = []
        earned_at = self.clock().isoformat()
        for resolved in resolve_milestones(old_solved, new_solved, self.reward_interval, self.roster):
            if resolved.status == "pool-exhausted":
                logger.info(
                    "[game_loop._complete] milestone %d is past the end of the roster",
                    resolved.milestone,
                )
                exhausted.append(resolved.milestone)
                continue
            reward = UnlockedReward(
                reward_id=reward_id_for_milestone(resolved.milestone),
                subject_name=resolved.subject_name,
                image_path=reward_image_path(resolved.subject_name, self.image_url_prefix),
                earned_at=earned_at,
                milestone_solved_count=resolved.solved_count,
            )
            state.unlocked_rewards.append(reward)
            lifetime.rewards_unlocked += 1
            unlocked.append(reward)
            emit_event(
                "reward_unlocked",
                problem_id=problem.id,
                subject_name=reward.subject_name,
                milestone=resolved.milestone,
            )

        emit_event(
            "problem_completed",
            problem_id=problem.id,
            difficulty_level=lifetime.current_difficulty_level,
            ok=True,
        )
        return ProblemCompleted(
            problem=problem,
            total_problems_solved=new_solved,
            previous_difficulty_level=previous_level,
            difficulty_level=lifetime.current_difficulty_level,
            unlocked_rewards=tuple(unlocked),
            exhausted_milestones=tuple(exhausted),
        )

    def _maybe_prefetch(self, lifetime: LifetimeProgress) -> Optional[PrefetchRequest]:
        if self.prefetch_hook is None:
            return None
        if not should_prefetch(lifetime.total_problems_attempted, self.reward_interval):
            return None
        subject = next_milestone_subject(
            lifetime.total_problems_solved, self.reward_interval, self.roster
        )
        if subject is None:
            return None
        try:
            status = self.prefetch_hook(subject)
        except Exception as e:
            # best-effort; rewards still generate on demand
            logger.warning("[game_loop._maybe_prefetch] %s: %s", subject, e, exc_info=True)
            status = "failed"
        return PrefetchRequest(subject_name=subject, status=status)

