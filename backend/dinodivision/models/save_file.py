"""
Player save-file schema (JSON, camelCase on disk).

One file per player, e.g. `rex-save.json`:

    {
      "schemaVersion": 1,
      "playerName": "Rex",
      "totalProblemsSolved": 12,
      "totalProblemsAttempted": 14,
      "currentDifficultyLevel": 3,
      "sessionsPlayed": 2,
      "unlockedRewards": [{"subjectName": ..., "imagePath": ..., "earnedAt": ..., "milestoneSolvedCount": 5}],
      "sessionHistory": [{"sessionId": ..., "startedAt": ..., "endedAt": null, ...}],
      "updatedAt": "2026-01-01T10:00:00+00:00"
    }
"""
from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

SAVE_SCHEMA_VERSION = 1
MAX_DIFFICULTY_LEVEL = 5


def _check_iso(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    try:
        datetime.fromisoformat(value)
    except ValueError as e:
        raise ValueError(f"{value!r} is not an ISO-8601 timestamp") from e
    return value


class SaveModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class SavedReward(SaveModel):
    subject_name: str = Field(min_length=1)
    image_path: str
    earned_at: str
    milestone_solved_count: int = Field(ge=1)

    @field_validator("earned_at")
    @classmethod
    def check_timestamp(cls, v: str) -> str:
        return _check_iso(v)


class SessionRecord(SaveModel):
    session_id: str = Field(min_length=1)
    started_at: str
    ended_at: Optional[str] = None
    solved_problems: int = Field(default=0, ge=0)
    attempted_problems: int = Field(default=0, ge=0)

    @field_validator("started_at", "ended_at")
    @classmethod
    def check_timestamps(cls, v: Optional[str]) -> Optional[str]:
        return _check_iso(v)

    @property
    def is_open(self) -> bool:
        return self.ended_at is None


class PlayerSaveFile(SaveModel):
    schema_version: Literal[1] = SAVE_SCHEMA_VERSION
    player_name: str = Field(min_length=1)
    total_problems_solved: int = Field(default=0, ge=0)
    total_problems_attempted: int = Field(default=0, ge=0)
    current_difficulty_level: int = Field(default=1, ge=1, le=MAX_DIFFICULTY_LEVEL)
    sessions_played: int = Field(default=0, ge=0)
    unlocked_rewards: list[SavedReward] = Field(default_factory=list)
    session_history: list[SessionRecord] = Field(default_factory=list)
    updated_at: Optional[str] = None

    @field_validator("updated_at")
    @classmethod
    def check_timestamp(cls, v: Optional[str]) -> Optional[str]:
        return _check_iso(v)

    @field_validator("player_name")
    @classmethod
    def strip_player_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("playerName must be a non-empty string")
        return v

    @model_validator(mode="after")
    def backfill_attempted(self) -> "PlayerSaveFile":
        if self.total_problems_attempted < self.total_problems_solved:
            # older saves only tracked solves
            self.total_problems_attempted = self.total_problems_solved
        return self
