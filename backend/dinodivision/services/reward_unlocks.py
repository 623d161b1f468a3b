"""
Reward fulfilment — turns unlocked rewards into images and save-file entries.

Everything that touches a player's save runs on that session's
SerialTaskQueue, so rewards land in milestone order even when generations
finish out of order. A failed generation clears whatever is still queued
(later milestones must not overtake it), queues a plain progress write so
counters stay durable, and leaves the reward for retry().
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Literal, Optional

from dinodivision.core.errors import ImageGenerationError
from dinodivision.models.domain import UnlockedReward
from dinodivision.services.image_cache import ImageGenerationCache
from dinodivision.services.reward_roster import REWARD_INTERVAL, ROSTER, resolve_milestones
from dinodivision.services.save_store import (
    SaveStore,
    append_reward,
    apply_progress,
    has_reward,
)
from dinodivision.services.telemetry import emit_event

if TYPE_CHECKING:
    from dinodivision.services.sessions import PlayerSession

logger = logging.getLogger("dinodivision.reward_unlocks")

FulfilmentStatus = Literal["pending", "fulfilled", "failed", "skipped"]


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class RewardFulfilment:
    reward_id: str
    subject_name: str
    status: FulfilmentStatus
    image_path: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "rewardId": self.reward_id,
            "subjectName": self.subject_name,
            "status": self.status,
            "imagePath": self.image_path,
            "error": self.error,
        }


def catch_up_rewards(
    rewards: list[UnlockedReward],
    total_solved: int,
    earned_at: str,
    image_path_for: Callable[[str], str],
    interval: int = REWARD_INTERVAL,
    roster: tuple[str, ...] = ROSTER,
) -> list[UnlockedReward]:
    """
    Rewards for every milestone up to total_solved that `rewards` lacks.

    A save written while a generation was failing can carry solve counts past
    milestones it has no reward for; those are re-derived here.
    """
    have = {r.milestone_solved_count for r in rewards}
    out = []
    for resolved in resolve_milestones(0, total_solved, interval, roster):
        if resolved.status != "unlocked" or resolved.solved_count in have:
            continue
        out.append(UnlockedReward(
            reward_id=f"reward-{resolved.milestone}",
            subject_name=resolved.subject_name,
            image_path=image_path_for(resolved.subject_name),
            earned_at=earned_at,
            milestone_solved_count=resolved.solved_count,
        ))
    return out


class RewardFulfilmentService:
    def __init__(
        self,
        cache: ImageGenerationCache,
        saves: SaveStore,
        clock: Callable[[], str] = _utcnow_iso,
    ):
        self.cache = cache
        self.saves = saves
        self.clock = clock

    # ── queue producers ──────────────────────────────────────────────────

    def enqueue_rewards(
        self, session: "PlayerSession", rewards: list[UnlockedReward]
    ) -> list[asyncio.Future]:
        """
        Queue fulfilment for `rewards`. Earlier milestones still missing from
        the save (failed or blocked) are queued again ahead of them, so the
        save never gains a later milestone before an earlier one.
        """
        if not rewards:
            return []
        requested = {r.reward_id for r in rewards}
        first = min(r.milestone_solved_count for r in rewards)
        earlier = [
            r for r in self.missing_rewards(session)
            if r.reward_id not in requested
            and r.milestone_solved_count < first
            and not self._is_pending(session, r.reward_id)
        ]
        if earlier:
            logger.info(
                "[reward_unlocks.enqueue_rewards] %s: re-queueing %d earlier reward(s) first",
                session.session_id, len(earlier),
            )
        futures = []
        for reward in sorted([*earlier, *rewards], key=lambda r: r.milestone_solved_count):
            session.fulfilments[reward.reward_id] = RewardFulfilment(
                reward_id=reward.reward_id,
                subject_name=reward.subject_name,
                status="pending",
            )
            futures.append(session.queue.enqueue(
                lambda reward=reward: self._fulfil(session, reward)
            ))
        return futures

    def enqueue_progress(self, session: "PlayerSession") -> asyncio.Future:
        return session.queue.enqueue(lambda: self._persist(session))

    def missing_rewards(self, session: "PlayerSession") -> list[UnlockedReward]:
        """Unlocked in memory but not yet written to the save, in milestone order."""
        return [
            r for r in session.state.unlocked_rewards
            if not has_reward(session.save, r.milestone_solved_count)
        ]

    def retry(self, session: "PlayerSession") -> list[asyncio.Future]:
        """Re-queue every reward missing from the save, then a progress write."""
        pending = [
            r for r in self.missing_rewards(session)
            if not self._is_pending(session, r.reward_id)
        ]
        if not pending:
            return []
        logger.info(
            "[reward_unlocks.retry] %s: re-queueing %d reward(s)",
            session.session_id, len(pending),
        )
        futures = self.enqueue_rewards(session, pending)
        futures.append(self.enqueue_progress(session))
        return futures

    @staticmethod
    def _is_pending(session: "PlayerSession", reward_id: str) -> bool:
        fulfilment = session.fulfilments.get(reward_id)
        return fulfilment is not None and fulfilment.status == "pending"

    # ── queue tasks ──────────────────────────────────────────────────────

    async def _fulfil(self, session: "PlayerSession", reward: UnlockedReward) -> RewardFulfilment:
        if has_reward(session.save, reward.milestone_solved_count):
            result = RewardFulfilment(
                reward_id=reward.reward_id,
                subject_name=reward.subject_name,
                status="skipped",
                image_path=reward.image_path,
            )
            session.fulfilments[reward.reward_id] = result
            return result

        try:
            image = await self.cache.get(reward.subject_name)
        except ImageGenerationError as e:
            logger.warning(
                "[reward_unlocks._fulfil] %s: %s failed: %s",
                session.session_id, reward.reward_id, e, exc_info=True,
            )
            emit_event(
                "reward_generation_failed",
                session_id=session.session_id,
                subject_name=reward.subject_name,
                error_type=e.__class__.__name__,
                ok=False,
            )
            self._on_failure(session)
            result = RewardFulfilment(
                reward_id=reward.reward_id,
                subject_name=reward.subject_name,
                status="failed",
                error=str(e),
            )
            session.fulfilments[reward.reward_id] = result
            return result

        # the stored extension follows the provider's MIME type
        reward = replace(reward, image_path=image.file_path)
        session.state.unlocked_rewards = [
            reward if r.reward_id == reward.reward_id else r
            for r in session.state.unlocked_rewards
        ]
        session.save = append_reward(session.save, reward, self.clock())
        self.write_save(session)
        result = RewardFulfilment(
            reward_id=reward.reward_id,
            subject_name=reward.subject_name,
            status="fulfilled",
            image_path=image.image_path,
        )
        session.fulfilments[reward.reward_id] = result
        return result

    async def _persist(self, session: "PlayerSession") -> None:
        lifetime = session.state.progress.lifetime
        session.save = apply_progress(
            session.save,
            session.session_id,
            session.started_at,
            session.state.progress.session,
            lifetime,
            self.clock(),
        )
        self.write_save(session)

    def _on_failure(self, session: "PlayerSession") -> None:
        dropped = session.queue.clear()
        for fulfilment in list(session.fulfilments.values()):
            if fulfilment.status == "pending":
                session.fulfilments[fulfilment.reward_id] = RewardFulfilment(
                    reward_id=fulfilment.reward_id,
                    subject_name=fulfilment.subject_name,
                    status="failed",
                    error="blocked by an earlier reward that failed",
                )
        logger.info(
            "[reward_unlocks._on_failure] %s: dropped %d queued task(s)", session.session_id, dropped
        )
        self.enqueue_progress(session)

    def write_save(self, session: "PlayerSession") -> None:
        try:
            self.saves.write(session.save)
        except (OSError, ValueError) as e:
            # in-memory save stays authoritative; the next write retries
            logger.error("[reward_unlocks.write_save] %s: %s", session.session_id, e, exc_info=True)
