from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional

from raid_engine.scheduler import TaskHandle


logger = logging.getLogger(__name__)

LOBBY = "lobby"
PLAYING = "playing"
BOSS_TURN = "bossTurn"
VICTORY = "victory"
DEFEAT = "defeat"

PHASES = (LOBBY, PLAYING, BOSS_TURN, VICTORY, DEFEAT)
TERMINAL_PHASES = (VICTORY, DEFEAT)

Defer = Callable[[float, Callable[[], bool]], TaskHandle]


class TurnManager:
    """
    Phase state machine and per-round turn order.

    lobby -> playing -> bossTurn -> playing ... -> victory | defeat

    The boss turn and turn timeouts run as deferred tasks obtained from `defer`.
    Every task carries the generation it was scheduled in; end() and reset() bump
    the generation, so a task that outlives its turn does nothing.
    """

    def __init__(self, defer: Defer, *, boss_turn_delay: float = 2.0, turn_timeout: float = 0.0):
        self.defer = defer
        self.boss_turn_delay = boss_turn_delay
        self.turn_timeout = turn_timeout

        self.phase = LOBBY
        self.round = 0
        self.turn_order: List[str] = []
        self.index = 0
        self.generation = 0
        self._turn_serial = 0
        self._boss_task: Optional[TaskHandle] = None
        self._timeout_task: Optional[TaskHandle] = None

        # Hooks wired by the owning session.
        self.on_boss_turn_entry: Callable[[], None] = lambda: None
        self.on_boss_turn_due: Callable[[], None] = lambda: None
        self.on_turn_timeout: Callable[[str], None] = lambda player_id: None

    # ----- queries -----

    @property
    def current_player_id(self) -> Optional[str]:
        if self.phase != PLAYING or self.index >= len(self.turn_order):
            return None
        return self.turn_order[self.index]

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    @property
    def boss_turn_pending(self) -> bool:
        return self._boss_task is not None and not self._boss_task.cancelled

    def is_players_turn(self, player_id: str) -> bool:
        return self.phase == PLAYING and self.current_player_id == player_id

    # ----- transitions -----

    def start(self, player_ids: Iterable[str]) -> None:
        self.phase = PLAYING
        self.round = 1
        self.turn_order = list(player_ids)
        self.index = 0
        logger.info("Turn order set: %s", self.turn_order)
        self._begin_player_turn()

    def advance(self) -> None:
        """End the current player's turn and move to the next id, or into the boss turn."""
        if self.phase != PLAYING:
            return
        self.index += 1
        self._begin_player_turn()

    def force_boss_turn(self) -> None:
        if self.phase == PLAYING:
            self._begin_boss_turn()

    def finish_boss_turn(self, player_ids: Iterable[str]) -> None:
        if self.phase != BOSS_TURN:
            return
        self._boss_task = None
        self.round += 1
        self.phase = PLAYING
        self.turn_order = list(player_ids)
        self.index = 0
        logger.info("Round %d begins: %s", self.round, self.turn_order)
        self._begin_player_turn()

    def add(self, player_id: str) -> None:
        if player_id not in self.turn_order:
            self.turn_order.append(player_id)

    def remove(self, player_id: str) -> None:
        if player_id not in self.turn_order:
            return
        pos = self.turn_order.index(player_id)
        was_current = self.phase == PLAYING and pos == self.index
        del self.turn_order[pos]
        if self.phase == PLAYING and pos < self.index:
            self.index -= 1
        if was_current:
            # index now points at whoever followed the removed player
            self._begin_player_turn()

    def end(self, phase: str) -> None:
        self.cancel_pending()
        self.generation += 1
        self.phase = phase
        logger.info("Raid ended: %s (round %d)", phase, self.round)

    def reset(self) -> None:
        self.cancel_pending()
        self.generation += 1
        self.phase = LOBBY
        self.round = 0
        self.turn_order = []
        self.index = 0

    def cancel_pending(self) -> None:
        for task in (self._boss_task, self._timeout_task):
            if task is not None:
                task.cancel()
        self._boss_task = None
        self._timeout_task = None

    # ----- internals -----

    def _begin_player_turn(self) -> None:
        self._cancel_timeout()
        if self.index >= len(self.turn_order):
            self._begin_boss_turn()
            return
        self._turn_serial += 1
        if self.turn_timeout > 0:
            self._arm_timeout(self.turn_order[self.index])

    def _begin_boss_turn(self) -> None:
        self._cancel_timeout()
        self.phase = BOSS_TURN
        logger.debug("Boss turn, round %d", self.round)
        self.on_boss_turn_entry()
        if self.phase != BOSS_TURN:
            return
        generation = self.generation
        self._boss_task = self.defer(self.boss_turn_delay, lambda: self._fire_boss_turn(generation))

    def _fire_boss_turn(self, generation: int) -> bool:
        if generation != self.generation or self.phase != BOSS_TURN:
            return False
        self._boss_task = None
        self.on_boss_turn_due()
        return True

    def _arm_timeout(self, player_id: str) -> None:
        generation, serial = self.generation, self._turn_serial
        self._timeout_task = self.defer(
            self.turn_timeout, lambda: self._fire_timeout(generation, serial, player_id)
        )

    def _fire_timeout(self, generation: int, serial: int, player_id: str) -> bool:
        if generation != self.generation or serial != self._turn_serial:
            return False
        if self.current_player_id != player_id:
            return False
        self._timeout_task = None
        logger.info("Turn timed out for %s", player_id)
        self.on_turn_timeout(player_id)
        self.advance()
        return True

    def _cancel_timeout(self) -> None:
        if self._timeout_task is not None:
            self._timeout_task.cancel()
            self._timeout_task = None
