"""
Player save files — one JSON document per player.

Storage: <save_dir>/<player-slug>-save.json, written atomically as indented
JSON. The helpers below are pure transforms over PlayerSaveFile; only
SaveStore touches the disk.
"""

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Optional

from dinodivision.models.domain import LifetimeProgress, SessionProgress, UnlockedReward
from dinodivision.models.save_file import PlayerSaveFile, SavedReward, SessionRecord
from dinodivision.services.reward_roster import REWARD_INTERVAL

logger = logging.getLogger("dinodivision.save_store")

SAVE_SUFFIX = "-save.json"

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_NON_DIGITS = re.compile(r"\D+")


def save_file_name(player_name: str) -> str:
    """'  Rex - the Great ' -> 'rex-the-great-save.json'."""
    stem = _NON_ALNUM.sub("-", player_name.strip().lower()).strip("-")
    if not stem:
        raise ValueError(f"player name {player_name!r} does not produce a usable file name")
    return f"{stem}{SAVE_SUFFIX}"


def build_session_id(player_name: str, started_at: str) -> str:
    player = _NON_ALNUM.sub("-", player_name.strip().lower()).strip("-") or "player"
    stamp = _NON_DIGITS.sub("", started_at) or "session"
    return f"{player}-{stamp}"


def same_player(a: str, b: str) -> bool:
    return a.strip().lower() == b.strip().lower()


# ── pure transforms ──────────────────────────────────────────────────────


def new_save(player_name: str) -> PlayerSaveFile:
    return PlayerSaveFile(player_name=player_name)


def open_session(save: PlayerSaveFile, session_id: str, started_at: str) -> PlayerSaveFile:
    """Close any sessions still marked open, then append a fresh one."""
    history = [
        s if not s.is_open else s.model_copy(update={"ended_at": started_at})
        for s in save.session_history
    ]
    history.append(SessionRecord(session_id=session_id, started_at=started_at))
    return save.model_copy(update={
        "session_history": history,
        "sessions_played": save.sessions_played + 1,
        "updated_at": started_at,
    })


def close_session(save: PlayerSaveFile, session_id: str, ended_at: str) -> PlayerSaveFile:
    history = [
        s.model_copy(update={"ended_at": ended_at})
        if s.session_id == session_id and s.is_open else s
        for s in save.session_history
    ]
    return save.model_copy(update={"session_history": history, "updated_at": ended_at})


def apply_progress(
    save: PlayerSaveFile,
    session_id: str,
    started_at: str,
    session: SessionProgress,
    lifetime: LifetimeProgress,
    updated_at: str,
) -> PlayerSaveFile:
    """
    Fold in-memory progress into the save. Counters only ever grow, so a
    late write can never roll a newer one back.
    """
    history = list(save.session_history)
    for i, entry in enumerate(history):
        if entry.session_id == session_id:
            history[i] = entry.model_copy(update={
                "solved_problems": max(entry.solved_problems, session.solved_problems),
                "attempted_problems": max(entry.attempted_problems, session.attempted_problems),
            })
            break
    else:
        history.append(SessionRecord(
            session_id=session_id,
            started_at=started_at,
            solved_problems=session.solved_problems,
            attempted_problems=session.attempted_problems,
        ))

    return save.model_copy(update={
        "total_problems_solved": max(save.total_problems_solved, lifetime.total_problems_solved),
        "total_problems_attempted": max(
            save.total_problems_attempted, lifetime.total_problems_attempted
        ),
        "current_difficulty_level": max(
            save.current_difficulty_level, lifetime.current_difficulty_level
        ),
        "session_history": history,
        "updated_at": updated_at,
    })


def saved_reward(reward: UnlockedReward) -> SavedReward:
    return SavedReward(
        subject_name=reward.subject_name,
        image_path=reward.image_path,
        earned_at=reward.earned_at,
        milestone_solved_count=reward.milestone_solved_count,
    )


def has_reward(save: PlayerSaveFile, milestone_solved_count: int) -> bool:
    return any(r.milestone_solved_count == milestone_solved_count for r in save.unlocked_rewards)


def append_reward(save: PlayerSaveFile, reward: UnlockedReward, updated_at: str) -> PlayerSaveFile:
    """Add a reward once; the list stays in milestone order."""
    if has_reward(save, reward.milestone_solved_count):
        return save
    rewards = sorted(
        [*save.unlocked_rewards, saved_reward(reward)],
        key=lambda r: r.milestone_solved_count,
    )
    return save.model_copy(update={"unlocked_rewards": rewards, "updated_at": updated_at})


def lifetime_from_save(save: PlayerSaveFile) -> LifetimeProgress:
    return LifetimeProgress(
        total_problems_solved=save.total_problems_solved,
        total_problems_attempted=save.total_problems_attempted,
        current_difficulty_level=save.current_difficulty_level,
        rewards_unlocked=len(save.unlocked_rewards),
    )


def rewards_from_save(save: PlayerSaveFile, interval: int = REWARD_INTERVAL) -> list[UnlockedReward]:
    return [
        UnlockedReward(
            reward_id=f"reward-{r.milestone_solved_count // interval}",
            subject_name=r.subject_name,
            image_path=r.image_path,
            earned_at=r.earned_at,
            milestone_solved_count=r.milestone_solved_count,
        )
        for r in save.unlocked_rewards
    ]


# ── disk ─────────────────────────────────────────────────────────────────


class SaveStore:
    def __init__(self, root: str | Path):
        self.root = Path(root)

    def path_for(self, player_name: str) -> Path:
        return self.root / save_file_name(player_name)

    def exists(self, player_name: str) -> bool:
        return self.path_for(player_name).is_file()

    @staticmethod
    def parse(data: object) -> PlayerSaveFile:
        """
        Validate raw JSON data against the save schema.

        Raises:
            ValueError: data is not a valid save (pydantic's ValidationError
            is a ValueError).
        """
        if not isinstance(data, dict):
            raise ValueError("Save data must be a JSON object")
        return PlayerSaveFile.model_validate(data)

    def load(self, player_name: str) -> Optional[PlayerSaveFile]:
        """Load a player's save; None when there is no file yet."""
        path = self.path_for(player_name)
        if not path.exists():
            return None
        try:
            with open(path) as f:
                data = json.load(f)
        except json.JSONDecodeError as exc:
            logger.warning("[save_store.load] %s is not valid JSON: %s", path.name, exc)
            raise ValueError(f"{path.name} is not valid JSON") from exc
        return self.parse(data)

    def write(self, save: PlayerSaveFile) -> Path:
        """Write atomically: temp file in the same directory, then os.replace."""
        self.root.mkdir(parents=True, exist_ok=True)
        target = self.path_for(save.player_name)
        fd, tmp = tempfile.mkstemp(dir=self.root, prefix=".save.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(save.to_json_dict(), f, indent=2)
                f.write("\n")
            os.replace(tmp, target)
        except OSError:
            Path(tmp).unlink(missing_ok=True)
            raise
        logger.debug("[save_store.write] wrote %s", target.name)
        return target
