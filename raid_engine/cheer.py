"""
Cheer cards: the five one-shot effects a knocked-out player can play from the sidelines.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict


DOUBLE_DAMAGE = "doubleDamage"
HEAL_ALL = "healAll"
FULL_HEAL = "fullHeal"
LIMIT_BOSS = "limitBoss"
DAMAGE_BOOST = "damageBoost"


@dataclass(frozen=True)
class CheerCard:
    number: int
    effect: str
    description: str
    amount: int = 0

    def to_dict(self) -> Dict[str, object]:
        out: Dict[str, object] = {"number": self.number, "effect": self.effect, "description": self.description}
        if self.amount:
            out["amount"] = self.amount
        return out


CHEER_CARDS: Dict[int, CheerCard] = {
    1: CheerCard(1, DOUBLE_DAMAGE, "Next attack deals double damage"),
    2: CheerCard(2, HEAL_ALL, "Heal 80 HP to all active cards", amount=80),
    3: CheerCard(3, FULL_HEAL, "Fully heal one active card"),
    4: CheerCard(4, LIMIT_BOSS, "Boss can only attack once next turn"),
    5: CheerCard(5, DAMAGE_BOOST, "All attacks deal +50 damage this turn", amount=50),
}


@dataclass
class CheerModifiers:
    """Pending cheer effects that shape upcoming damage and the next boss turn."""
    double_next_damage: bool = False
    damage_bonus: int = 0
    limit_boss_next_turn: bool = False

    def apply_to_player_damage(self, base: int) -> int:
        damage = base + self.damage_bonus
        if self.double_next_damage:
            damage *= 2
            self.double_next_damage = False
        return damage

    def end_player_round(self) -> None:
        # "this turn" boosts last until the boss acts
        self.damage_bonus = 0

    def consume_boss_limit(self) -> bool:
        limited = self.limit_boss_next_turn
        self.limit_boss_next_turn = False
        return limited

    def reset(self) -> None:
        self.double_next_damage = False
        self.damage_bonus = 0
        self.limit_boss_next_turn = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "doubleNextDamage": self.double_next_damage,
            "damageBonus": self.damage_bonus,
            "limitBossNextTurn": self.limit_boss_next_turn,
        }
