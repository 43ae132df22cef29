"""
Outbound event builders.
Every event is a plain dict tagged with `type`; the session pushes them to its
buffer and listener, the transport decides how to ship them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional

from raid_engine.boss_ai import BossAction
from raid_engine.errors import RaidError
from raid_engine.models import Player
from raid_engine.turns import BOSS_TURN, PLAYING, VICTORY

if TYPE_CHECKING:
    from raid_engine.session import RaidSession


PLAYER_COLORS = ["#3498db", "#e74c3c", "#2ecc71", "#f39c12"]
BOSS_COLOR = "#e74c3c"


def player_color(index: int) -> str:
    return PLAYER_COLORS[index % len(PLAYER_COLORS)]


def build_turn_indicator(session: "RaidSession") -> Optional[Dict[str, Any]]:
    phase = session.turns.phase
    elements: List[Dict[str, Any]] = []
    if phase == PLAYING:
        current = session.turns.current_player_id
        roster = [p for p in session.players.values() if not p.is_spectator]
        for index, player in enumerate(roster):
            is_current = player.id == current
            elements.append({
                "type": "player",
                "id": player.id,
                "name": player.username,
                "status": "current" if is_current else "waiting",
                "color": player_color(index),
                "opacity": 1.0 if is_current else 0.5,
            })
    elif phase == BOSS_TURN:
        planned = len(session.pending_boss_plan)
        elements.append({
            "type": "boss",
            "id": "boss",
            "name": session.boss.name,
            "status": "current",
            "color": BOSS_COLOR,
            "attacksRemaining": planned,
            "maxAttacks": session.boss.attacks_per_turn,
        })
    else:
        return None
    return {"layout": "horizontal", "currentPhase": phase, "round": session.turns.round, "elements": elements}


def build_snapshot(session: "RaidSession") -> Dict[str, Any]:
    """Full raid state. Everything here is derived from the session itself."""
    return {
        "id": session.id,
        "raidType": session.config.raid_type,
        "config": session.config.to_dict(),
        "phase": session.turns.phase,
        "round": session.turns.round,
        "players": [p.to_dict() for p in session.players.values()],
        "boss": session.boss.to_dict(),
        "bossState": {**session.boss_ai.mind.to_dict(), "personality": session.boss_ai.personality.name},
        "turnOrder": list(session.turns.turn_order),
        "currentTurnPlayerId": session.turns.current_player_id,
        "totalKOs": session.total_kos,
        "maxKOs": session.max_kos,
        "cheerCardsUsed": list(session.cheer_cards_used),
        "maxCheerCards": session.max_cheer_cards,
        "cheerModifiers": session.cheer.to_dict(),
        "spectators": [s.to_dict() for s in session.spectators],
        "debugMode": session.debug_mode,
        "creatorId": session.creator_id,
        "turnHistory": [t.to_dict() for t in session.history],
        "positions": {
            "layout": session.config.layout,
            "players": [p.to_dict() for p in session.positions],
            "boss": session.boss_position.to_dict(),
        },
        "turnIndicator": build_turn_indicator(session),
        "endReason": session.end_reason,
        "createdAt": session.created_at,
    }


def build_raid_created(session: "RaidSession", player_id: str) -> Dict[str, Any]:
    return {
        "type": "raidCreated",
        "success": True,
        "raidId": session.id,
        "playerId": player_id,
        "raidState": build_snapshot(session),
    }


def build_player_joined(session: "RaidSession", player: Player) -> Dict[str, Any]:
    return {
        "type": "playerJoined",
        "raidId": session.id,
        "player": player.to_dict(),
        "playerCount": len(session.present_players()),
    }


def build_player_left(session: "RaidSession", player_id: str, username: str) -> Dict[str, Any]:
    return {
        "type": "playerLeft",
        "raidId": session.id,
        "playerId": player_id,
        "playerUsername": username,
        "playerCount": len(session.present_players()),
    }


def build_action_result(
    action_type: Optional[str],
    player_id: Optional[str],
    result: Optional[Dict[str, Any]] = None,
    error: Optional[RaidError] = None,
    raid_id: Optional[str] = None,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"type": "actionResult", "actionType": action_type, "playerId": player_id}
    if raid_id is not None:
        payload["raidId"] = raid_id
    if error is not None:
        payload.update(success=False, message=error.message, error=error.to_payload())
        return payload
    result = dict(result or {})
    result.setdefault("success", True)
    result.setdefault("message", "")
    payload.update(result)
    return payload


def build_game_state_update(session: "RaidSession") -> Dict[str, Any]:
    return {"type": "gameStateUpdate", "raidId": session.id, "snapshot": build_snapshot(session)}


def build_boss_action_completed(
    session: "RaidSession", action: BossAction, hits: List[Dict[str, Any]]
) -> Dict[str, Any]:
    return {
        "type": "bossActionCompleted",
        "raidId": session.id,
        "round": session.turns.round,
        "attack": action.attack_dict(),
        "targets": hits,
        "reasoning": action.reasoning,
        "bossHP": session.boss.current_hp,
    }


def build_raid_ended(session: "RaidSession", reason: str) -> Dict[str, Any]:
    phase = session.turns.phase
    return {
        "type": "raidEnded",
        "raidId": session.id,
        "victory": phase == VICTORY,
        "defeat": phase != VICTORY and session.turns.is_terminal,
        "phase": phase,
        "reason": reason,
    }


def build_turn_skipped(session: "RaidSession", player: Player) -> Dict[str, Any]:
    return {
        "type": "turnSkipped",
        "raidId": session.id,
        "playerId": player.id,
        "username": player.username,
        "skippedTurns": player.skipped_turns,
        "round": session.turns.round,
    }


def build_layout_updated(session: "RaidSession") -> Dict[str, Any]:
    return {
        "type": "layoutUpdated",
        "raidId": session.id,
        "layout": session.config.layout,
        "positions": [p.to_dict() for p in session.positions],
        "bossPosition": session.boss_position.to_dict(),
    }
