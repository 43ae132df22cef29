"""
Combat resolution: player attacks, retreats, knockouts, spectator transition,
boss damage and cheer cards.

Each resolve_* function validates first and only then mutates the session, so a
rejected action leaves nothing half-applied. Results are plain dicts the session
turns into actionResult events.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from raid_engine.boss_ai import BossAction
from raid_engine.cheer import CHEER_CARDS, DAMAGE_BOOST, DOUBLE_DAMAGE, FULL_HEAL, HEAL_ALL, LIMIT_BOSS
from raid_engine.errors import (
    BenchUnavailable,
    CardKnockedOut,
    CheerExhausted,
    CheerUnavailable,
    InvalidAction,
    InvalidPhase,
    NotYourTurn,
    PlayerNotFound,
)
from raid_engine.models import ACTIVE, BENCHED, SLOT_ACTIVE, SPECTATOR, Player, SpectatorRecord, TurnRecord
from raid_engine.turns import BOSS_TURN, DEFEAT, PLAYING, VICTORY

if TYPE_CHECKING:
    from raid_engine.session import RaidSession


logger = logging.getLogger(__name__)

HISTORY_LIMIT = 20


def _require_playing(session: "RaidSession", what: str) -> None:
    if session.turns.phase != PLAYING:
        raise InvalidPhase(f"Cannot {what} during {session.turns.phase}", phase=session.turns.phase)


def _require_participant(player: Player, what: str) -> None:
    if player.status == SPECTATOR:
        raise CardKnockedOut(f"{player.username} is spectating and cannot {what}")


# ----- attacks -----

def resolve_attack(
    session: "RaidSession",
    player: Player,
    attack_name: Optional[str] = None,
    damage: Optional[int] = None,
) -> Dict[str, Any]:
    _require_playing(session, "attack")
    if not session.turns.is_players_turn(player.id):
        raise NotYourTurn("Not your turn!", currentTurn=session.turns.current_player_id)

    if player.active.is_ko and player.bench.is_ko:
        transition_to_spectator(session, player)
        check_loss(session)
        err = CardKnockedOut(f"{player.username} has no card left to attack with")
        err.state_changed = True
        raise err

    # The card that will attack after any auto-retreat.
    attacker = player.bench if player.active.is_ko else player.active
    attack = attacker.find_attack(attack_name)
    if damage is None:
        if attack is None:
            raise InvalidAction(f"{attacker.name} does not know {attack_name}", attackName=attack_name)
        base = attack.damage
    else:
        base = max(0, int(damage))
    label = attack.name if attack is not None else (attack_name or "Attack")

    auto_retreated = False
    if player.active.is_ko:
        player.swap_cards()
        player.active.status = ACTIVE
        auto_retreated = True
        logger.info("%s auto-retreated into %s", player.username, player.active.name)

    dealt = session.cheer.apply_to_player_damage(base)
    session.boss.take_damage(dealt)
    record_turn(session, player.id, "attack", dealt)

    message = f"{player.username}'s {player.active.name} used {label} for {dealt} damage!"
    result: Dict[str, Any] = {
        "success": True,
        "message": message,
        "damage": dealt,
        "attackName": label,
        "bossHP": session.boss.current_hp,
        "autoRetreated": auto_retreated,
    }

    if session.boss.defeated:
        result["victory"] = True
        result["message"] = message + " Boss defeated! Victory!"
        session.finish(VICTORY, "Boss defeated!")
        return result

    session.turns.advance()
    return result


def record_turn(session: "RaidSession", player_id: str, action: str, damage: int = 0) -> None:
    session.history.append(TurnRecord(round=session.turns.round, player_id=player_id, action=action, damage=damage))
    if len(session.history) > HISTORY_LIMIT:
        del session.history[: len(session.history) - HISTORY_LIMIT]


# ----- retreat -----

def resolve_retreat(session: "RaidSession", player: Player) -> Dict[str, Any]:
    _require_playing(session, "retreat")
    _require_participant(player, "retreat")
    if player.bench.is_ko:
        raise BenchUnavailable("Bench card is knocked out!")
    player.swap_cards()
    return {
        "success": True,
        "message": f"{player.username} retreated! {player.active.name} is now active.",
    }


# ----- knockouts -----

def resolve_knockout(session: "RaidSession", player: Player, slot: str = SLOT_ACTIVE) -> Dict[str, Any]:
    """
    Knock out one card. Counts the KO on the player and the raid, then moves the
    player to the spectators once both cards are down.
    """
    card = player.card(slot)
    if card.is_ko:
        return {"knockedOut": False, "cardName": card.name, "spectator": player.status == SPECTATOR}
    card.set_hp(0, live_status=card.status)
    player.ko_count += 1
    session.total_kos += 1
    logger.info("%s's %s was knocked out (%d/%d)", player.username, card.name, session.total_kos, session.max_kos)

    became_spectator = False
    if player.all_knocked_out:
        became_spectator = transition_to_spectator(session, player)
    return {"knockedOut": True, "cardName": card.name, "spectator": became_spectator or player.status == SPECTATOR}


def transition_to_spectator(session: "RaidSession", player: Player) -> bool:
    """Returns False when the player was already spectating (no-op)."""
    if player.status == SPECTATOR:
        return False
    player.status = SPECTATOR
    player.can_use_cheer = True
    session.spectators.append(SpectatorRecord(id=player.id, username=player.username, was_player=True))
    session.turns.remove(player.id)
    session.recompute_positions()
    logger.info("%s is now spectating", player.username)
    return True


def check_loss(session: "RaidSession") -> bool:
    if session.turns.is_terminal:
        return session.turns.phase == DEFEAT
    if session.total_kos >= session.max_kos:
        session.finish(DEFEAT, "Too many KOs!")
        return True
    if session.players and not any(not p.is_spectator for p in session.players.values()):
        session.finish(DEFEAT, "All players eliminated!")
        return True
    return False


def resolve_test_ko(session: "RaidSession", player: Player, slot: str) -> Dict[str, Any]:
    if session.turns.phase not in (PLAYING, BOSS_TURN):
        raise InvalidPhase(f"Cannot knock out cards during {session.turns.phase}", phase=session.turns.phase)
    card = player.card(slot)
    if card.is_ko:
        raise CardKnockedOut(f"{card.name} is already knocked out")
    ko = resolve_knockout(session, player, slot)
    defeat = check_loss(session)
    result: Dict[str, Any] = {
        "success": True,
        "message": f"{ko['cardName']} was knocked out!",
        "koCount": session.total_kos,
        "spectator": ko["spectator"],
    }
    if defeat:
        result["defeat"] = True
        result["message"] += " Too many KOs - Defeat!" if session.total_kos >= session.max_kos else " Defeat!"
    return result


# ----- boss damage -----

def apply_boss_action(session: "RaidSession", action: BossAction) -> List[Dict[str, Any]]:
    """
    Execute one planned boss attack. Targets that stopped being targetable since the
    plan was made (spectating, left, active card down) are skipped.
    """
    attack = action.attack
    hits: List[Dict[str, Any]] = []
    if attack.heal:
        healed = session.boss.heal(attack.heal)
        hits.append({"target": "boss", "healed": healed, "newHP": session.boss.current_hp})
    damage = action.damage or 0
    if not damage:
        return hits

    for player_id in action.targets:
        if session.turns.is_terminal:
            break
        player = session.players.get(player_id)
        if player is None or not player.can_be_targeted:
            continue
        card = player.active
        dealt = min(card.current_hp, damage)
        hit: Dict[str, Any] = {
            "playerId": player.id,
            "username": player.username,
            "cardName": card.name,
            "damage": dealt,
        }
        if card.current_hp - damage <= 0:
            ko = resolve_knockout(session, player, SLOT_ACTIVE)
            hit.update(knockedOut=True, spectator=ko["spectator"])
            check_loss(session)
        else:
            card.set_hp(card.current_hp - damage, live_status=card.status)
            hit["knockedOut"] = False
        hit["newHP"] = card.current_hp
        hits.append(hit)
    return hits


# ----- cheer cards -----

def resolve_cheer(
    session: "RaidSession",
    player: Player,
    card_number: int,
    target_player_id: Optional[str] = None,
) -> Dict[str, Any]:
    _require_playing(session, "play cheer cards")
    card = CHEER_CARDS.get(card_number)
    if card is None:
        raise InvalidAction(f"Invalid cheer card #{card_number}", cardNumber=card_number)
    if not player.can_use_cheer:
        raise CheerUnavailable("Cannot use cheer card now!")
    if len(session.cheer_cards_used) >= session.max_cheer_cards:
        raise CheerExhausted("Maximum cheer cards already used!")
    if card_number in session.cheer_cards_used:
        raise CheerExhausted(f"Cheer card #{card_number} was already used!", cardNumber=card_number)

    heal_target: Optional[Player] = None
    if card.effect == FULL_HEAL:
        heal_target = _full_heal_target(session, target_player_id)

    # validated; apply
    detail = ""
    if card.effect == DOUBLE_DAMAGE:
        session.cheer.double_next_damage = True
    elif card.effect == HEAL_ALL:
        healed = 0
        for p in session.players.values():
            if p.can_be_targeted:
                before = p.active.current_hp
                p.active.set_hp(before + card.amount, live_status=ACTIVE)
                healed += p.active.current_hp - before
        detail = f" ({healed} HP restored)"
    elif card.effect == FULL_HEAL and heal_target is not None:
        heal_target.active.set_hp(heal_target.active.max_hp, live_status=ACTIVE)
        detail = f" ({heal_target.username}'s {heal_target.active.name})"
    elif card.effect == LIMIT_BOSS:
        session.cheer.limit_boss_next_turn = True
    elif card.effect == DAMAGE_BOOST:
        session.cheer.damage_bonus += card.amount

    session.cheer_cards_used.append(card_number)
    player.can_use_cheer = False
    remaining = session.max_cheer_cards - len(session.cheer_cards_used)
    logger.info("%s played cheer card #%d (%d left)", player.username, card_number, remaining)
    return {
        "success": True,
        "message": f"{player.username} used Cheer Card #{card_number}: {card.description}!{detail}",
        "effect": card.to_dict(),
        "cheerCardsRemaining": remaining,
    }


def _full_heal_target(session: "RaidSession", target_player_id: Optional[str]) -> Player:
    if target_player_id is not None:
        target = session.players.get(target_player_id)
        if target is None:
            raise PlayerNotFound(f"Unknown player {target_player_id}", playerId=target_player_id)
        if not target.can_be_targeted:
            raise CardKnockedOut(f"{target.username}'s active card cannot be healed")
        return target
    candidates = [p for p in session.players.values() if p.can_be_targeted]
    if not candidates:
        raise CardKnockedOut("No active card to heal")
    return min(candidates, key=lambda p: p.active.hp_fraction)


# ----- debug helpers shared with raid_engine.debug -----

def set_card_hp(session: "RaidSession", player: Player, slot: str, value: int) -> Dict[str, Any]:
    """Set a card's HP, routing a drop to 0 through resolve_knockout so KO counters stay in step."""
    card = player.card(slot)
    live_status = ACTIVE if slot == SLOT_ACTIVE else BENCHED
    value = max(0, min(card.max_hp, int(value)))
    if value == 0:
        return resolve_knockout(session, player, slot)
    card.set_hp(value, live_status=live_status)
    return {"knockedOut": False, "cardName": card.name, "newHP": card.current_hp}
