from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

from raid_engine.models import Boss, BossAttack, Player, TurnRecord


logger = logging.getLogger(__name__)

ENRAGE_THRESHOLD = 0.25
HEAL_THRESHOLD = 0.5
WEAK_HP_FRACTION = 0.3
HIGH_DAMAGE = 80
AGGRO_WINDOW = 3
DEFAULT_ATTACK_WEIGHT = 50

AOE_BONUS = 30
SINGLE_TARGET_BONUS = 20
FINISHER_BONUS = 25
HEAL_BONUS = 40
ENRAGE_DAMAGE_FACTOR = 0.3
REPEAT_PENALTY = 15

AGGRO_SCORE = 30
KO_SCORE = 40
WEAK_TARGET_SCORE = 20
TARGET_JITTER = 10.0
TYPE_SCORE = 15

DEFENSIVE_THRESHOLD = 0.3
WEAK_PARTY_FRACTION = 0.5
AGGRESSIVE_DAMAGE_FACTOR = 0.4
DEFENSIVE_BONUS = 30
PERSONALITY_DAMAGE_PERCENT = 110

ADAPTIVE = "adaptive"
AGGRESSIVE = "aggressive"
DEFENSIVE = "defensive"

# attacker type -> defender type -> multiplier; anything missing is 1.0
TYPE_CHART = {
    "fire": {"grass": 2.0, "water": 0.5},
    "water": {"fire": 2.0, "grass": 0.5},
    "grass": {"water": 2.0, "fire": 0.5},
    "electric": {"water": 2.0, "flying": 2.0},
}
TYPE_ALIASES = {"lightning": "electric"}


@dataclass(frozen=True)
class Personality:
    name: str
    aggressive: bool = False
    tactical: bool = False


PERSONALITIES = {
    1: Personality("Aggressive", aggressive=True),
    2: Personality("Tactical", tactical=True),
    3: Personality("Ruthless", aggressive=True, tactical=True),
}


def personality_for_level(level: int) -> Personality:
    return PERSONALITIES.get(level, PERSONALITIES[1])


def type_effectiveness(attack_type: Optional[str], defender_type: Optional[str]) -> float:
    attack_type = TYPE_ALIASES.get(attack_type, attack_type)
    defender_type = TYPE_ALIASES.get(defender_type, defender_type)
    return TYPE_CHART.get(attack_type, {}).get(defender_type, 1.0)


class RandomSource(Protocol):
    def random(self) -> float: ...
    def randrange(self, stop: int) -> int: ...


@dataclass
class BossAction:
    attack: BossAttack
    targets: List[str] = field(default_factory=list)
    reasoning: str = ""
    damage: Optional[int] = None

    def __post_init__(self) -> None:
        if self.damage is None:
            self.damage = self.attack.damage

    def attack_dict(self) -> Dict[str, Any]:
        out = self.attack.to_dict()
        out["damage"] = self.damage
        return out

    def to_dict(self) -> Dict[str, Any]:
        return {"attack": self.attack_dict(), "targets": list(self.targets), "reasoning": self.reasoning}


@dataclass
class BossMind:
    aggro_target: Optional[str] = None
    last_attack_used: Optional[str] = None
    consecutive_uses: int = 0
    health_threshold: float = 1.0
    enrage_mode: bool = False
    attack_pattern: str = ADAPTIVE
    turns_planned: int = 0
    last_used_turn: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "aggroTarget": self.aggro_target,
            "lastAttackUsed": self.last_attack_used,
            "consecutiveUses": self.consecutive_uses,
            "healthThreshold": round(self.health_threshold, 4),
            "enrageMode": self.enrage_mode,
            "attackPattern": self.attack_pattern,
        }


def difficulty_for_level(level: int) -> float:
    return min(0.2 + level * 0.2, 1.0)


def targetable(players: Sequence[Player]) -> List[Player]:
    return [p for p in players if p.can_be_targeted]


class BossAI:
    """
    Picks the boss's attack(s) and target(s) for one boss turn.

    Weighted ranking rather than a pure argmax: the difficulty (from the boss level)
    controls how far down the ranking a random pick may reach.
    """

    def __init__(self, level: int, rng: RandomSource):
        self.level = level
        self.difficulty = difficulty_for_level(level)
        self.personality = personality_for_level(level)
        self.rng = rng
        self.mind = BossMind()
        self.last_reasoning = ""

    # ----- state update -----

    def update_state(self, boss: Boss, players: Sequence[Player], history: Sequence[TurnRecord]) -> None:
        self.mind.health_threshold = boss.hp_fraction
        self.mind.enrage_mode = self.mind.health_threshold < ENRAGE_THRESHOLD
        self._update_aggro(players, history)
        self._adapt_strategy(players)

    def _adapt_strategy(self, players: Sequence[Player]) -> None:
        active = [p for p in players if not p.is_spectator]
        if self.mind.health_threshold < DEFENSIVE_THRESHOLD:
            pattern = DEFENSIVE
        elif active and all(p.active.hp_fraction < WEAK_PARTY_FRACTION for p in active):
            pattern = AGGRESSIVE
        else:
            pattern = ADAPTIVE
        if pattern != self.mind.attack_pattern:
            logger.debug("Boss strategy now %s", pattern)
        self.mind.attack_pattern = pattern

    def _update_aggro(self, players: Sequence[Player], history: Sequence[TurnRecord]) -> None:
        active_ids = {p.id for p in players if not p.is_spectator}
        if self.mind.aggro_target not in active_ids:
            self.mind.aggro_target = None

        totals: Dict[str, int] = {}
        for record in list(history)[-AGGRO_WINDOW:]:
            if record.player_id in active_ids and record.damage > 0:
                totals[record.player_id] = totals.get(record.player_id, 0) + record.damage
        if not totals:
            return
        best = max(totals.values())
        leaders = [pid for pid, dmg in totals.items() if dmg == best]
        if len(leaders) == 1 and leaders[0] != self.mind.aggro_target:
            self.mind.aggro_target = leaders[0]
            logger.debug("Aggro switched to %s", leaders[0])

    # ----- attack selection -----

    def can_use(self, attack: BossAttack) -> bool:
        if not attack.cooldown:
            return True
        last = self.mind.last_used_turn.get(attack.name)
        if last is None:
            return True
        return self.mind.turns_planned - last > attack.cooldown

    def wasted_heal(self, attack: BossAttack) -> bool:
        """A pure heal while the boss is untouched would do nothing."""
        return attack.is_heal and not attack.damage and self.mind.health_threshold >= 1.0

    def attack_weight(self, attack: BossAttack, players: Sequence[Player]) -> float:
        if self.wasted_heal(attack):
            return 0.0
        active = targetable(players)
        count = len(active)
        weight = float(attack.damage or DEFAULT_ATTACK_WEIGHT)

        if count >= 3 and attack.is_aoe:
            weight += AOE_BONUS
        if count == 1 and not attack.is_aoe:
            weight += SINGLE_TARGET_BONUS

        max_hp = sum(p.active.max_hp for p in active)
        avg_hp = sum(p.active.current_hp for p in active) / max_hp if max_hp else 0.0
        if avg_hp < WEAK_HP_FRACTION and attack.damage > HIGH_DAMAGE:
            weight += FINISHER_BONUS

        if attack.is_heal and self.mind.health_threshold < HEAL_THRESHOLD:
            weight += HEAL_BONUS

        if self.mind.enrage_mode:
            weight += attack.damage * ENRAGE_DAMAGE_FACTOR

        if self.mind.attack_pattern == AGGRESSIVE:
            weight += attack.damage * AGGRESSIVE_DAMAGE_FACTOR
        elif self.mind.attack_pattern == DEFENSIVE and (attack.is_heal or attack.is_shield):
            weight += DEFENSIVE_BONUS

        if self.mind.last_attack_used == attack.name:
            weight -= REPEAT_PENALTY * max(1, self.mind.consecutive_uses)

        return max(weight, 0.0)

    def _window_index(self, option_count: int, factor: float) -> int:
        window = min(option_count, max(1, math.ceil(option_count * factor)))
        return self.rng.randrange(window)

    def choose_attack(self, attacks: Sequence[BossAttack], players: Sequence[Player]) -> Optional[BossAttack]:
        usable = [a for a in attacks if self.can_use(a) and not self.wasted_heal(a)]
        if not usable:
            return None
        weighted = sorted(
            ((self.attack_weight(a, players), i, a) for i, a in enumerate(usable)),
            key=lambda item: (-item[0], item[1]),
        )
        idx = self._window_index(len(weighted), (1 - self.difficulty) * 0.5 + 0.5)
        chosen = weighted[idx][2]
        self.last_reasoning = self._explain(chosen, players)
        return chosen

    # ----- target selection -----

    def target_score(self, player: Player, attack: BossAttack) -> float:
        score = 0.0
        if player.id == self.mind.aggro_target:
            score += AGGRO_SCORE
        if attack.damage >= player.active.current_hp:
            score += KO_SCORE
        if player.active.hp_fraction < WEAK_HP_FRACTION:
            score += WEAK_TARGET_SCORE
        if attack.type and player.active.type:
            score += type_effectiveness(attack.type, player.active.type) * TYPE_SCORE
        score += self.rng.random() * TARGET_JITTER
        return score

    def select_targets(self, attack: BossAttack, players: Sequence[Player]) -> List[str]:
        candidates = targetable(players)
        if attack.is_heal and not attack.damage:
            return []
        if not candidates:
            return []
        if attack.is_aoe:
            return [p.id for p in candidates]

        scored = sorted(
            ((self.target_score(p, attack), i, p) for i, p in enumerate(candidates)),
            key=lambda item: (-item[0], item[1]),
        )
        count = min(int(attack.targets), len(scored))
        if count > 1:
            return [p.id for _, _, p in scored[:count]]
        idx = self._window_index(len(scored), 1 - self.difficulty * 0.5)
        return [scored[idx][2].id]

    # ----- full turn -----

    def plan_turn(
        self,
        boss: Boss,
        players: Sequence[Player],
        history: Sequence[TurnRecord],
        *,
        limited: bool = False,
    ) -> List[BossAction]:
        """
        Decide every boss action for this boss turn. Called once per boss-turn entry.
        `limited` (cheer card #4) caps the turn at a single single-target attack.
        """
        self.update_state(boss, players, history)
        self.mind.turns_planned += 1

        attacks = [a for a in boss.attacks if not (limited and a.is_aoe)]
        action_count = 1 if limited else boss.attacks_per_turn
        plan: List[BossAction] = []
        for _ in range(action_count):
            attack = self.choose_attack(attacks, players)
            if attack is None:
                break
            targets = self.select_targets(attack, players)
            if not targets and not attack.is_heal:
                break
            self._record_use(attack)
            plan.append(BossAction(
                attack=attack,
                targets=targets,
                reasoning=self.last_reasoning,
                damage=self.personal_damage(attack),
            ))

        logger.info(
            "Boss %s planned %s",
            boss.name,
            ", ".join(f"{a.attack.name}->{len(a.targets)}" for a in plan) or "no action",
        )
        return plan

    def personal_damage(self, attack: BossAttack) -> int:
        if self.personality.aggressive and attack.damage:
            return attack.damage * PERSONALITY_DAMAGE_PERCENT // 100
        return attack.damage

    def _record_use(self, attack: BossAttack) -> None:
        if self.mind.last_attack_used == attack.name:
            self.mind.consecutive_uses += 1
        else:
            self.mind.last_attack_used = attack.name
            self.mind.consecutive_uses = 1
        self.mind.last_used_turn[attack.name] = self.mind.turns_planned

    def _explain(self, attack: BossAttack, players: Sequence[Player]) -> str:
        reasons = []
        if len(targetable(players)) >= 3 and attack.is_aoe:
            reasons.append("Multiple targets available for AoE")
        if self.mind.health_threshold < WEAK_HP_FRACTION:
            reasons.append("Boss in critical health")
        if self.mind.aggro_target:
            reasons.append(f"High aggro on {self.mind.aggro_target}")
        if self.mind.enrage_mode:
            reasons.append("Enrage mode active")
        return ", ".join(reasons) or "Standard attack pattern"

    def reset(self) -> None:
        self.mind = BossMind()
        self.last_reasoning = ""
