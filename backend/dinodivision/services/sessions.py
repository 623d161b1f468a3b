"""
Player sessions — ties one GameState to one save file and one task queue.

The registry is in-memory and per process; a session lives from start/load
until end. GameSessionService is the seam the HTTP layer talks to.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from dinodivision.core.errors import SessionNotFoundError
from dinodivision.models.domain import GameState
from dinodivision.models.save_file import PlayerSaveFile
from dinodivision.services.game_loop import (
    GameLoopOrchestrator,
    ProblemStarted,
    StepInputResult,
    reward_image_path,
)
from dinodivision.services.reward_unlocks import (
    RewardFulfilment,
    RewardFulfilmentService,
    catch_up_rewards,
)
from dinodivision.services.save_store import (
    SaveStore,
    build_session_id,
    close_session,
    lifetime_from_save,
    new_save,
    open_session,
    rewards_from_save,
    save_file_name,
)
from dinodivision.services.serial_queue import SerialTaskQueue

logger = logging.getLogger("dinodivision.sessions")


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class PlayerSession:
    session_id: str
    player_name: str
    started_at: str
    state: GameState
    save: PlayerSaveFile
    queue: SerialTaskQueue
    fulfilments: dict[str, RewardFulfilment] = field(default_factory=dict)
    ended_at: Optional[str] = None

    @property
    def is_closed(self) -> bool:
        return self.ended_at is not None

    @property
    def save_file_name(self) -> str:
        return save_file_name(self.player_name)


class SessionRegistry:
    def __init__(self):
        self._sessions: dict[str, PlayerSession] = {}

    def add(self, session: PlayerSession) -> PlayerSession:
        self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> PlayerSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Unknown session: {session_id}")
        return session

    def remove(self, session_id: str) -> Optional[PlayerSession]:
        return self._sessions.pop(session_id, None)

    def sessions(self) -> list[PlayerSession]:
        return list(self._sessions.values())

    def clear(self) -> None:
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)


SESSION_REGISTRY = SessionRegistry()


def get_session_registry() -> SessionRegistry:
    return SESSION_REGISTRY


def require_player_name(player_name: str) -> str:
    name = " ".join((player_name or "").split())
    if not name:
        raise ValueError("Player name is required")
    # the save file name must be derivable
    save_file_name(name)
    return name


class GameSessionService:
    """
    Session lifecycle: start, load, input, skip, end.

    Methods that touch the save are async because save writes are queued on
    the session's SerialTaskQueue and need the running loop.
    """

    def __init__(
        self,
        orchestrator: GameLoopOrchestrator,
        saves: SaveStore,
        rewards: RewardFulfilmentService,
        registry: Optional[SessionRegistry] = None,
        clock: Callable[[], str] = _utcnow_iso,
    ):
        self.orchestrator = orchestrator
        self.saves = saves
        self.rewards = rewards
        self.registry = registry if registry is not None else get_session_registry()
        self.clock = clock

    # ── lifecycle ────────────────────────────────────────────────────────

    async def start_new(self, player_name: str) -> tuple[PlayerSession, ProblemStarted]:
        name = require_player_name(player_name)
        session = self._open(new_save(name))
        started = self.orchestrator.start_next_problem(session.state)
        self.rewards.enqueue_progress(session)
        logger.info("[sessions.start_new] %s started", session.session_id)
        return session, started

    async def load(self, save: PlayerSaveFile) -> tuple[PlayerSession, ProblemStarted]:
        """
        Resume from a save. Open session entries are closed, milestones the
        save has no reward for are re-derived and queued for fulfilment.

        Raises:
            ValueError: the save's player name yields no usable file name.
        """
        require_player_name(save.player_name)
        session = self._open(save)

        backlog = catch_up_rewards(
            session.state.unlocked_rewards,
            session.state.progress.lifetime.total_problems_solved,
            earned_at=session.started_at,
            image_path_for=lambda name: reward_image_path(
                name, self.orchestrator.image_url_prefix
            ),
            interval=self.orchestrator.reward_interval,
            roster=self.orchestrator.roster,
        )
        if backlog:
            logger.info(
                "[sessions.load] %s: catching up %d reward(s)", session.session_id, len(backlog)
            )
            session.state.unlocked_rewards.extend(backlog)
            session.state.unlocked_rewards.sort(key=lambda r: r.milestone_solved_count)
            session.state.progress.lifetime.rewards_unlocked = len(session.state.unlocked_rewards)

        started = self.orchestrator.start_next_problem(session.state)
        if backlog:
            self.rewards.enqueue_rewards(session, backlog)
        self.rewards.enqueue_progress(session)
        return session, started

    async def load_by_name(self, player_name: str) -> Optional[tuple[PlayerSession, ProblemStarted]]:
        """Load from the save directory; None when the player has no save."""
        save = self.saves.load(require_player_name(player_name))
        if save is None:
            return None
        return await self.load(save)

    async def submit(self, session_id: str, value: str) -> StepInputResult:
        session = self.get(session_id)
        result = self.orchestrator.apply_step_input(session.state, value)
        if result.completed is not None:
            self.rewards.enqueue_rewards(session, list(result.completed.unlocked_rewards))
            self.rewards.enqueue_progress(session)
        return result

    async def skip(self, session_id: str) -> ProblemStarted:
        session = self.get(session_id)
        started = self.orchestrator.skip_problem(session.state)
        self.rewards.enqueue_progress(session)
        return started

    async def end(self, session_id: str) -> PlayerSession:
        """Close the session, flush its queue and write the final save."""
        session = self.get(session_id)
        self.rewards.enqueue_progress(session)
        await session.queue.join()

        ended_at = self.clock()
        session.ended_at = ended_at
        session.save = close_session(session.save, session.session_id, ended_at)
        self.rewards.write_save(session)
        self.registry.remove(session_id)
        logger.info("[sessions.end] %s closed", session_id)
        return session

    async def retry_rewards(self, session_id: str) -> list[RewardFulfilment]:
        session = self.get(session_id)
        self.rewards.retry(session)
        return [
            session.fulfilments[r.reward_id]
            for r in self.rewards.missing_rewards(session)
            if r.reward_id in session.fulfilments
        ]

    def get(self, session_id: str) -> PlayerSession:
        return self.registry.get(session_id)

    # ── internals ────────────────────────────────────────────────────────

    def _open(self, save: PlayerSaveFile) -> PlayerSession:
        started_at = self.clock()
        session_id = build_session_id(save.player_name, started_at)
        save = open_session(save, session_id, started_at)
        state = self.orchestrator.new_state(
            lifetime_from_save(save),
            rewards_from_save(save, self.orchestrator.reward_interval),
        )
        session = PlayerSession(
            session_id=session_id,
            player_name=save.player_name,
            started_at=started_at,
            state=state,
            save=save,
            queue=SerialTaskQueue(name=session_id),
        )
        return self.registry.add(session)
