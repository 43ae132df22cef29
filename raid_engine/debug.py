"""
Debug actions. Everything except toggleDebugMode needs the raid's debug flag,
and only the raid creator may flip that flag.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict

from raid_engine.combat import check_loss, resolve_knockout, set_card_hp
from raid_engine.errors import CardKnockedOut, DebugDisabled, InvalidAction, InvalidPhase
from raid_engine.geometry import BOSS_ID
from raid_engine.models import SLOT_ACTIVE, SLOT_BENCH
from raid_engine.turns import PLAYING, VICTORY

if TYPE_CHECKING:
    from raid_engine.session import RaidSession


logger = logging.getLogger(__name__)

HANDLED_TYPES = (
    "toggleDebugMode",
    "debugSetHP",
    "debugKillPlayer",
    "debugResurrectPlayer",
    "debugSkipTurn",
    "debugForceBossTurn",
    "debugResetRaid",
)


def handle(session: "RaidSession", player_id: str, action) -> Dict[str, Any]:
    if action.type == "toggleDebugMode":
        return toggle_debug_mode(session, player_id, action.enabled)
    if not session.debug_mode:
        raise DebugDisabled("Debug mode is not enabled for this raid")
    logger.warning("Debug action %s by %s in raid %s", action.type, player_id, session.id)

    if action.type == "debugSetHP":
        return set_hp(session, action.target, action.slot, action.value)
    if action.type == "debugKillPlayer":
        return kill_player(session, action.target_player_id)
    if action.type == "debugResurrectPlayer":
        return resurrect_player(session, action.target_player_id)
    if action.type == "debugSkipTurn":
        return skip_turn(session)
    if action.type == "debugForceBossTurn":
        return force_boss_turn(session)
    if action.type == "debugResetRaid":
        session.reset()
        return {"message": "Raid reset"}
    raise InvalidAction(f"Unhandled debug action {action.type}", actionType=action.type)


def toggle_debug_mode(session: "RaidSession", player_id: str, enabled=None) -> Dict[str, Any]:
    if player_id != session.creator_id:
        raise DebugDisabled("Only the raid creator can toggle debug mode")
    session.debug_mode = (not session.debug_mode) if enabled is None else bool(enabled)
    logger.info("Debug mode %s for raid %s", "on" if session.debug_mode else "off", session.id)
    return {"message": f"Debug mode {'enabled' if session.debug_mode else 'disabled'}", "debugMode": session.debug_mode}


def _target(session: "RaidSession", player_id: str):
    player = session.players.get(player_id)
    if player is None or player.has_left:
        raise InvalidAction(f"Unknown debug target {player_id}", target=player_id)
    return player


def set_hp(session: "RaidSession", target: str, slot: str, value: int) -> Dict[str, Any]:
    if target == BOSS_ID:
        if session.turns.is_terminal:
            raise InvalidPhase("Raid has already ended", phase=session.turns.phase)
        session.boss.set_hp(value)
        result: Dict[str, Any] = {"message": f"Boss HP set to {session.boss.current_hp}", "bossHP": session.boss.current_hp}
        if session.boss.defeated:
            session.finish(VICTORY, "Boss defeated!")
            result["victory"] = True
        return result

    player = _target(session, target)
    if player.is_spectator:
        raise CardKnockedOut(f"{player.username} is spectating; resurrect them first")
    card = player.card(slot)
    if card.is_ko and value > 0:
        raise CardKnockedOut(f"{card.name} is knocked out; resurrect the player first")

    outcome = set_card_hp(session, player, slot, value)
    result = {"message": f"{player.username}'s {card.name} HP set to {card.current_hp}", **outcome}
    if outcome.get("knockedOut"):
        result["defeat"] = check_loss(session)
    return result


def kill_player(session: "RaidSession", target_player_id: str) -> Dict[str, Any]:
    player = _target(session, target_player_id)
    if player.is_spectator:
        return {"message": f"{player.username} is already spectating"}
    for slot in (SLOT_ACTIVE, SLOT_BENCH):
        resolve_knockout(session, player, slot)
    defeat = check_loss(session)
    return {"message": f"{player.username} was eliminated", "defeat": defeat}


def resurrect_player(session: "RaidSession", target_player_id: str) -> Dict[str, Any]:
    if session.turns.is_terminal:
        raise InvalidPhase("Raid has already ended", phase=session.turns.phase)
    player = _target(session, target_player_id)
    was_spectator = player.is_spectator
    player.restore()
    player.can_use_cheer = False
    if was_spectator:
        session.spectators = [s for s in session.spectators if s.id != player.id]
        if session.turns.phase == PLAYING:
            session.turns.add(player.id)
        session.recompute_positions()
    logger.info("%s resurrected in raid %s", player.username, session.id)
    return {"message": f"{player.username} was resurrected", "wasSpectator": was_spectator}


def skip_turn(session: "RaidSession") -> Dict[str, Any]:
    current = session.turns.current_player_id
    if current is None:
        raise InvalidPhase("No player turn to skip", phase=session.turns.phase)
    session.turns.advance()
    return {"message": f"Skipped turn of {session.players[current].username}", "skippedPlayerId": current}


def force_boss_turn(session: "RaidSession") -> Dict[str, Any]:
    if session.turns.phase != PLAYING:
        raise InvalidPhase("Boss turn can only be forced during play", phase=session.turns.phase)
    session.turns.force_boss_turn()
    return {"message": "Boss turn forced"}
