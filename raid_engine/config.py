from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass
class Settings:
    """
    Process-wide defaults, read from the environment once at startup.
    Per-raid values come from RaidConfig and fall back to these.
    """
    boss_turn_delay: float = 2.0
    turn_timeout: float = 30.0
    max_players: int = 4
    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000", "http://localhost:4000"])

    @classmethod
    def from_env(cls) -> "Settings":
        origins = os.environ.get("RAID_CORS_ORIGINS")
        base = cls()
        return cls(
            boss_turn_delay=_env_float("RAID_BOSS_TURN_DELAY", base.boss_turn_delay),
            turn_timeout=_env_float("RAID_TURN_TIMEOUT", base.turn_timeout),
            max_players=_env_int("RAID_MAX_PLAYERS", base.max_players),
            log_level=os.environ.get("RAID_LOG_LEVEL", base.log_level).upper(),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()] if origins else base.cors_origins,
        )


class RaidConfig(BaseModel):
    """Per-raid configuration, as carried by a createRaid action."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    raid_type: Literal["tcg-official"] = Field("tcg-official", alias="type")
    max_players: int = Field(4, alias="maxPlayers", ge=1, le=8)
    min_players: int = Field(1, alias="minPlayers", ge=1)
    layout: Literal["versus", "circular"] = "versus"
    max_kos: int = Field(4, alias="maxKOs", ge=1)
    max_cheer_cards: int = Field(3, alias="maxCheerCards", ge=0, le=5)
    boss: str = "mysterious_raid_boss"
    boss_level: Optional[int] = Field(None, alias="bossLevel", ge=1, le=3)
    boss_turn_delay: Optional[float] = Field(None, alias="bossTurnDelay", ge=0)
    turn_timeout: Optional[float] = Field(None, alias="turnTimeout", ge=0)
    seed: Optional[int] = None

    def resolved(self, settings: Settings) -> "RaidConfig":
        """Fill unset timing values from process settings."""
        updates: Dict[str, Any] = {}
        if self.boss_turn_delay is None:
            updates["boss_turn_delay"] = settings.boss_turn_delay
        if self.turn_timeout is None:
            updates["turn_timeout"] = settings.turn_timeout
        if self.max_players > settings.max_players:
            updates["max_players"] = settings.max_players
        if self.min_players > updates.get("max_players", self.max_players):
            updates["min_players"] = updates.get("max_players", self.max_players)
        return self.model_copy(update=updates) if updates else self

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)
