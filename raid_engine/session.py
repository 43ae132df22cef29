"""
One raid: roster, boss, counters and the turn state machine, run as an actor.

Every action and every deferred task for a raid runs under the session lock, so
nothing interleaves inside one raid. Events go to the session's buffer (drained
by the transport) and to an optional listener.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from raid_engine import debug, events
from raid_engine.actions import (
    CheerCardAction,
    CreateRaid,
    EndRaid,
    JoinRaid,
    KOTest,
    LeaveRaid,
    PlayerAttack,
    PlayerRetreat,
    SwitchLayout,
)
from raid_engine.boss_ai import BossAction, BossAI
from raid_engine.bosses import build_boss
from raid_engine.cheer import CheerModifiers
from raid_engine.combat import (
    apply_boss_action,
    check_loss,
    record_turn,
    resolve_attack,
    resolve_cheer,
    resolve_retreat,
    resolve_test_ko,
)
from raid_engine.config import RaidConfig
from raid_engine.errors import InvalidAction, InvalidPhase, PlayerNotFound, RaidError, RaidFull, RaidNotFound
from raid_engine.geometry import compute_positions
from raid_engine.models import SPECTATOR, Player, SpectatorRecord, TurnRecord
from raid_engine.scheduler import Scheduler, TaskHandle
from raid_engine.turns import BOSS_TURN, LOBBY, PLAYING, TurnManager


logger = logging.getLogger(__name__)

EVENT_BUFFER_LIMIT = 500

Listener = Callable[[Dict[str, Any]], None]
Resolver = Callable[[str], Optional["RaidSession"]]


class RaidSession:
    def __init__(
        self,
        raid_id: str,
        config: RaidConfig,
        scheduler: Scheduler,
        *,
        creator_id: Optional[str] = None,
        resolver: Optional[Resolver] = None,
        listener: Optional[Listener] = None,
    ):
        self.id = raid_id
        self.config = config
        self.scheduler = scheduler
        self.creator_id = creator_id
        self.resolver = resolver
        self.listener = listener
        self.lock = threading.RLock()
        self.created_at = time.time()

        self.events: List[Dict[str, Any]] = []
        self._batch: Optional[List[Dict[str, Any]]] = None
        self._pending_end: Optional[str] = None
        self.closed = False
        self.close_requested = False
        self._opened = False

        self.rng = random.Random(config.seed)
        self.boss = build_boss(config.boss, config.boss_level)
        self.boss_ai = BossAI(self.boss.level, self.rng)
        self.players: Dict[str, Player] = {}
        self.spectators: List[SpectatorRecord] = []
        self.history: List[TurnRecord] = []
        self.total_kos = 0
        self.cheer = CheerModifiers()
        self.cheer_cards_used: List[int] = []
        self.debug_mode = False
        self.end_reason: Optional[str] = None
        self.pending_boss_plan: List[BossAction] = []

        self.turns = TurnManager(
            self._defer,
            boss_turn_delay=config.boss_turn_delay or 0.0,
            turn_timeout=config.turn_timeout or 0.0,
        )
        self.turns.on_boss_turn_entry = self._plan_boss_turn
        self.turns.on_boss_turn_due = self._run_boss_turn
        self.turns.on_turn_timeout = self._skip_turn

        self.positions = []
        self.boss_position = None
        self.recompute_positions()

    # ----- derived -----

    @property
    def max_kos(self) -> int:
        return self.config.max_kos

    @property
    def max_cheer_cards(self) -> int:
        return self.config.max_cheer_cards

    @property
    def phase(self) -> str:
        return self.turns.phase

    def active_player_ids(self) -> List[str]:
        return [pid for pid, p in self.players.items() if not p.is_spectator]

    def present_players(self) -> List[Player]:
        return [p for p in self.players.values() if not p.has_left]

    def snapshot(self) -> Dict[str, Any]:
        with self.lock:
            return events.build_snapshot(self)

    def recompute_positions(self) -> None:
        self.positions, self.boss_position = compute_positions(self.active_player_ids(), self.config.layout)

    def player(self, player_id: str) -> Player:
        player = self.players.get(player_id)
        if player is None or player.has_left:
            raise PlayerNotFound(f"Player {player_id} is not in raid {self.id}", playerId=player_id)
        return player

    # ----- events -----

    def emit(self, event: Dict[str, Any]) -> None:
        event.setdefault("raidId", self.id)
        self.events.append(event)
        if len(self.events) > EVENT_BUFFER_LIMIT:
            del self.events[: len(self.events) - EVENT_BUFFER_LIMIT]
        if self._batch is not None:
            self._batch.append(event)
        if self.listener is not None:
            try:
                self.listener(event)
            except Exception:
                logger.exception("Event listener failed for raid %s", self.id)

    def drain_events(self) -> List[Dict[str, Any]]:
        with self.lock:
            evs = self.events[:]
            self.events = []
            return evs

    def _flush_end(self) -> None:
        if self._pending_end is not None:
            reason, self._pending_end = self._pending_end, None
            self.emit(events.build_raid_ended(self, reason))

    # ----- action boundary -----

    def step(self, player_id: str, action) -> List[Dict[str, Any]]:
        """
        Apply one validated action and return the events it produced.
        Rejections come back as an actionResult with success False.
        """
        with self.lock:
            self._batch = []
            try:
                if self.closed:
                    raise RaidNotFound(f"Raid {self.id} is closed", raidId=self.id)
                self._dispatch(player_id, action)
            except RaidError as err:
                logger.debug("Rejected %s from %s in %s: %s", action.type, player_id, self.id, err.message)
                self.emit(events.build_action_result(action.type, player_id, error=err))
                if err.state_changed:
                    self.emit(events.build_game_state_update(self))
            self._flush_end()
            batch, self._batch = self._batch, None
            return batch

    def _dispatch(self, player_id: str, action) -> None:
        if isinstance(action, CreateRaid):
            self._open(player_id, action)
            return
        if isinstance(action, JoinRaid):
            self.join(player_id, action.player_data.to_data())
            return
        if action.type in debug.HANDLED_TYPES:
            result = debug.handle(self, player_id, action)
        elif isinstance(action, LeaveRaid):
            result = self.leave(player_id)
        elif isinstance(action, EndRaid):
            result = self.end_by_request(player_id)
        elif isinstance(action, PlayerAttack):
            result = resolve_attack(self, self.player(player_id), action.attack_name, action.damage)
        elif isinstance(action, PlayerRetreat):
            result = resolve_retreat(self, self.player(player_id))
        elif isinstance(action, CheerCardAction):
            result = resolve_cheer(self, self.player(player_id), action.card_number, action.target_player_id)
        elif isinstance(action, KOTest):
            result = resolve_test_ko(self, self.player(player_id), action.card_slot)
        elif isinstance(action, SwitchLayout):
            result = self.switch_layout(action.layout)
        else:
            raise InvalidAction(f"{action.type} cannot be sent to an existing raid", actionType=action.type)

        self.emit(events.build_action_result(action.type, player_id, result))
        if isinstance(action, SwitchLayout):
            self.emit(events.build_layout_updated(self))
        self.emit(events.build_game_state_update(self))

    # ----- lifecycle -----

    def _open(self, player_id: str, action: CreateRaid) -> None:
        if self._opened:
            raise InvalidAction(f"Raid {self.id} already exists", raidId=self.id)
        self._opened = True
        if self.creator_id is None:
            self.creator_id = player_id
        logger.info("Raid %s created by %s (boss %s, layout %s)", self.id, player_id, self.boss.name, self.config.layout)
        if action.player_data is not None:
            self._add_player(player_id, action.player_data.to_data())
        self.emit(events.build_raid_created(self, player_id))
        if player_id in self.players:
            self.emit(events.build_player_joined(self, self.players[player_id]))
        self._maybe_start()
        self.emit(events.build_game_state_update(self))

    def join(self, player_id: str, player_data: Optional[Dict[str, Any]]) -> None:
        if self.turns.is_terminal:
            raise InvalidPhase(f"Raid {self.id} has already ended", phase=self.turns.phase)
        known = self.players.get(player_id)
        if known is not None and known.has_left:
            raise InvalidAction(f"{known.username} left this raid and cannot rejoin", playerId=player_id)
        if known is not None:
            raise InvalidAction(f"{known.username} is already in this raid", playerId=player_id)
        if len(self.present_players()) >= self.config.max_players:
            raise RaidFull("Raid is full", maxPlayers=self.config.max_players)

        player = self._add_player(player_id, player_data)
        self.emit(events.build_action_result("joinRaid", player_id, {"message": f"{player.username} joined the raid"}))
        self.emit(events.build_player_joined(self, player))
        self._maybe_start()
        self.emit(events.build_game_state_update(self))

    def _add_player(self, player_id: str, player_data: Optional[Dict[str, Any]]) -> Player:
        player = Player.from_data(player_id, player_data)
        self.players[player_id] = player
        if self.turns.phase == PLAYING:
            self.turns.add(player_id)
        self.recompute_positions()
        logger.info("%s joined raid %s (%d/%d)", player.username, self.id, len(self.players), self.config.max_players)
        return player

    def _maybe_start(self) -> None:
        if self.turns.phase == LOBBY and len(self.players) >= self.config.min_players:
            self.start()

    def start(self) -> None:
        ids = self.active_player_ids()
        if not ids:
            return
        logger.info("Raid %s starting with %d player(s)", self.id, len(ids))
        self.turns.start(ids)

    def leave(self, player_id: str) -> Dict[str, Any]:
        """
        Lobby players are dropped outright. Once the raid has started a departed
        player stays on the roster as a spectator so their KOs keep counting.
        """
        player = self.player(player_id)
        if self.turns.phase == LOBBY:
            del self.players[player_id]
        else:
            self._mark_departed(player)
        self.turns.remove(player_id)
        self.recompute_positions()
        logger.info("%s left raid %s", player.username, self.id)
        self.emit(events.build_player_left(self, player_id, player.username))
        if player_id == self.creator_id:
            self._hand_over_creator()

        if not self.present_players():
            self.close_requested = True
            self.turns.cancel_pending()
        elif self.turns.phase in (PLAYING, BOSS_TURN):
            check_loss(self)
        return {"message": f"{player.username} left the raid"}

    def _mark_departed(self, player: Player) -> None:
        player.left_at = time.time()
        player.can_use_cheer = False
        if not player.is_spectator:
            player.status = SPECTATOR
            self.spectators.append(SpectatorRecord(id=player.id, username=player.username, was_player=True))
        for record in self.spectators:
            if record.id == player.id:
                record.left_at = player.left_at

    def _hand_over_creator(self) -> None:
        remaining = self.present_players()
        self.creator_id = remaining[0].id if remaining else None
        if remaining:
            logger.info("Raid %s now led by %s", self.id, remaining[0].username)

    def end_by_request(self, player_id: str) -> Dict[str, Any]:
        if player_id != self.creator_id:
            raise InvalidAction("Only the raid creator can end the raid", playerId=player_id)
        self.turns.cancel_pending()
        self.close_requested = True
        self.end_reason = "Raid closed by its creator"
        if not self.turns.is_terminal:
            self._pending_end = self.end_reason
        logger.info("Raid %s closed by %s", self.id, player_id)
        return {"message": self.end_reason}

    def finish(self, phase: str, reason: str) -> None:
        if self.turns.is_terminal:
            return
        self.turns.end(phase)
        self.pending_boss_plan = []
        self.end_reason = reason
        self._pending_end = reason
        logger.info("Raid %s finished: %s (%s)", self.id, phase, reason)

    def switch_layout(self, layout: str) -> Dict[str, Any]:
        if self.turns.phase != LOBBY:
            raise InvalidPhase("Layout can only be changed in the lobby", phase=self.turns.phase)
        self.config.layout = layout
        self.recompute_positions()
        return {"message": f"Layout switched to {layout}", "layout": layout}

    def reset(self) -> None:
        """Put the raid back to a fresh lobby with the same roster, then restart if possible."""
        self.turns.reset()
        self.boss = build_boss(self.config.boss, self.config.boss_level)
        self.boss_ai.reset()
        self.players = {pid: p for pid, p in self.players.items() if not p.has_left}
        for player in self.players.values():
            player.restore()
            player.ko_count = 0
            player.can_use_cheer = False
            player.skipped_turns = 0
        self.spectators = []
        self.history = []
        self.total_kos = 0
        self.cheer.reset()
        self.cheer_cards_used = []
        self.pending_boss_plan = []
        self.end_reason = None
        self._pending_end = None
        self.recompute_positions()
        logger.info("Raid %s reset", self.id)
        self._maybe_start()

    def close(self) -> None:
        with self.lock:
            if self.closed:
                return
            self.closed = True
            self.turns.cancel_pending()
            logger.info("Raid %s closed", self.id)

    # ----- deferred work -----

    def _defer(self, delay: float, fn: Callable[[], bool]) -> TaskHandle:
        def run() -> None:
            with self.lock:
                if self.closed:
                    return
                if self.resolver is not None and self.resolver(self.id) is not self:
                    logger.error("Deferred task fired for raid %s, which the registry no longer holds", self.id)
                    return
                if not fn():
                    return
                self.emit(events.build_game_state_update(self))
                self._flush_end()

        return self.scheduler.call_later(delay, run)

    def _plan_boss_turn(self) -> None:
        limited = self.cheer.consume_boss_limit()
        self.cheer.end_player_round()
        self.pending_boss_plan = self.boss_ai.plan_turn(
            self.boss, list(self.players.values()), self.history, limited=limited
        )

    def _run_boss_turn(self) -> None:
        plan, self.pending_boss_plan = self.pending_boss_plan, []
        for action in plan:
            if self.turns.is_terminal:
                break
            hits = apply_boss_action(self, action)
            self.emit(events.build_boss_action_completed(self, action, hits))
        if self.turns.is_terminal:
            return
        if check_loss(self):
            return
        active = self.active_player_ids()
        if not active:
            # nobody left to take a turn; park the raid until someone joins
            self.turns.reset()
            return
        self.turns.finish_boss_turn(active)

    def _skip_turn(self, player_id: str) -> None:
        player = self.players.get(player_id)
        if player is None:
            return
        player.skipped_turns += 1
        record_turn(self, player_id, "timeout", 0)
        self.emit(events.build_turn_skipped(self, player))
