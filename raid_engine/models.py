from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


# Card statuses
ACTIVE = "active"
BENCHED = "benched"
KO = "ko"

# Player statuses
PLAYER_ACTIVE = "active"
SPECTATOR = "spectator"

# Card slots
SLOT_ACTIVE = "active"
SLOT_BENCH = "bench"

AOE = "all"

DEFAULT_ACTIVE_CARD = {
    "name": "Pikachu",
    "type": "lightning",
    "maxHP": 120,
    "attacks": [{"name": "Thunder Shock", "damage": 60}],
}

DEFAULT_BENCH_CARD = {
    "name": "Squirtle",
    "type": "water",
    "maxHP": 100,
    "attacks": [{"name": "Water Gun", "damage": 50}],
}


@dataclass
class Attack:
    name: str
    damage: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "damage": self.damage}


@dataclass
class Card:
    name: str
    type: Optional[str]
    max_hp: int
    current_hp: int
    attacks: List[Attack] = field(default_factory=list)
    status: str = BENCHED

    @classmethod
    def from_data(cls, data: Optional[Dict[str, Any]], fallback: Dict[str, Any], status: str) -> "Card":
        data = data if isinstance(data, dict) else {}
        max_hp = int(data.get("maxHP") or data.get("max_hp") or fallback["maxHP"])
        max_hp = max(1, max_hp)
        raw_attacks = data.get("attacks") or fallback["attacks"]
        attacks = [
            Attack(name=str(a.get("name") or "Attack"), damage=max(0, int(a.get("damage", 0) or 0)))
            for a in raw_attacks
            if isinstance(a, dict)
        ]
        return cls(
            name=str(data.get("name") or fallback["name"]),
            type=data.get("type") or fallback.get("type"),
            max_hp=max_hp,
            current_hp=max_hp,
            attacks=attacks,
            status=status,
        )

    @property
    def is_ko(self) -> bool:
        return self.status == KO

    @property
    def hp_fraction(self) -> float:
        return self.current_hp / self.max_hp if self.max_hp else 0.0

    def find_attack(self, name: Optional[str]) -> Optional[Attack]:
        if not name:
            return self.attacks[0] if self.attacks else None
        for attack in self.attacks:
            if attack.name == name:
                return attack
        return None

    def set_hp(self, value: int, *, live_status: str) -> None:
        """Clamp HP into [0, maxHP] and keep status in step (ko iff 0)."""
        self.current_hp = max(0, min(self.max_hp, int(value)))
        self.status = KO if self.current_hp == 0 else live_status

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "maxHP": self.max_hp,
            "currentHP": self.current_hp,
            "attacks": [a.to_dict() for a in self.attacks],
            "status": self.status,
        }


@dataclass
class Player:
    id: str
    username: str
    active: Card
    bench: Card
    status: str = PLAYER_ACTIVE
    ko_count: int = 0
    can_use_cheer: bool = False
    skipped_turns: int = 0
    joined_at: float = field(default_factory=time.time)
    left_at: Optional[float] = None

    @classmethod
    def from_data(cls, player_id: str, data: Optional[Dict[str, Any]]) -> "Player":
        data = data if isinstance(data, dict) else {}
        active_data = data.get("activeCard") or data.get("activePokemon")
        bench_data = data.get("benchCard") or data.get("benchPokemon")
        return cls(
            id=player_id,
            username=str(data.get("username") or "Anonymous"),
            active=Card.from_data(active_data, DEFAULT_ACTIVE_CARD, ACTIVE),
            bench=Card.from_data(bench_data, DEFAULT_BENCH_CARD, BENCHED),
        )

    @property
    def is_spectator(self) -> bool:
        return self.status == SPECTATOR

    @property
    def has_left(self) -> bool:
        return self.left_at is not None

    @property
    def all_knocked_out(self) -> bool:
        return self.active.is_ko and self.bench.is_ko

    @property
    def can_be_targeted(self) -> bool:
        return not self.is_spectator and not self.active.is_ko

    def card(self, slot: str) -> Card:
        if slot == SLOT_BENCH:
            return self.bench
        return self.active

    def swap_cards(self) -> None:
        self.active, self.bench = self.bench, self.active
        if not self.active.is_ko:
            self.active.status = ACTIVE
        if not self.bench.is_ko:
            self.bench.status = BENCHED

    def restore(self) -> None:
        self.active.set_hp(self.active.max_hp, live_status=ACTIVE)
        self.bench.set_hp(self.bench.max_hp, live_status=BENCHED)
        self.status = PLAYER_ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "status": self.status,
            "cards": {"active": self.active.to_dict(), "bench": self.bench.to_dict()},
            "koCount": self.ko_count,
            "canUseCheer": self.can_use_cheer,
            "skippedTurns": self.skipped_turns,
            "joinedAt": self.joined_at,
            "leftAt": self.left_at,
        }


@dataclass
class BossAttack:
    name: str
    damage: int
    targets: Union[int, str] = 1
    cooldown: int = 0
    heal: int = 0
    type: Optional[str] = None

    @property
    def is_aoe(self) -> bool:
        return self.targets == AOE

    @property
    def is_heal(self) -> bool:
        return self.heal > 0 or "heal" in self.name.lower()

    @property
    def is_shield(self) -> bool:
        return "shield" in self.name.lower()

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"name": self.name, "damage": self.damage, "targets": self.targets}
        if self.cooldown:
            out["cooldown"] = self.cooldown
        if self.heal:
            out["heal"] = self.heal
        if self.type:
            out["type"] = self.type
        return out


@dataclass
class Boss:
    name: str
    max_hp: int
    current_hp: int
    attacks: List[BossAttack]
    level: int = 1
    attacks_per_turn: int = 1

    @property
    def hp_fraction(self) -> float:
        return self.current_hp / self.max_hp if self.max_hp else 0.0

    @property
    def defeated(self) -> bool:
        return self.current_hp <= 0

    def take_damage(self, damage: int) -> int:
        before = self.current_hp
        self.current_hp = max(0, self.current_hp - max(0, int(damage)))
        return before - self.current_hp

    def heal(self, amount: int) -> int:
        before = self.current_hp
        self.current_hp = min(self.max_hp, self.current_hp + max(0, int(amount)))
        return self.current_hp - before

    def set_hp(self, value: int) -> None:
        self.current_hp = max(0, min(self.max_hp, int(value)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "maxHP": self.max_hp,
            "currentHP": self.current_hp,
            "hpPercent": round(self.hp_fraction * 100, 1),
            "attacks": [a.to_dict() for a in self.attacks],
            "level": self.level,
            "attacksPerTurn": self.attacks_per_turn,
        }


@dataclass
class SpectatorRecord:
    id: str
    username: str
    was_player: bool = True
    joined_at: float = field(default_factory=time.time)
    left_at: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "wasPlayer": self.was_player,
            "joinedAt": self.joined_at,
            "leftAt": self.left_at,
        }


@dataclass
class TurnRecord:
    round: int
    player_id: str
    action: str
    damage: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"round": self.round, "playerId": self.player_id, "action": self.action, "damage": self.damage}


@dataclass
class Position:
    owner_id: str
    angle: float
    x: float
    y: float

    def to_dict(self) -> Dict[str, Any]:
        return {"ownerId": self.owner_id, "angle": self.angle, "x": self.x, "y": self.y}
