"""
Session registry: the only process-wide table of raids.

The registry lock only guards the dict. Session work always happens after the
registry lock is released, so the two locks are never held in the opposite order.
"""

from __future__ import annotations

import logging
import threading
import uuid
from typing import Any, Dict, List, Optional, Tuple

from raid_engine import events
from raid_engine.actions import CreateRaid, parse_action
from raid_engine.config import Settings
from raid_engine.errors import InvalidAction, RaidError, RaidNotFound
from raid_engine.scheduler import Scheduler, ThreadingScheduler
from raid_engine.session import Listener, RaidSession


logger = logging.getLogger(__name__)


def new_raid_id() -> str:
    return f"raid-{uuid.uuid4().hex[:8]}"


class RaidRegistry:
    def __init__(
        self,
        scheduler: Optional[Scheduler] = None,
        settings: Optional[Settings] = None,
        listener: Optional[Listener] = None,
    ):
        self.scheduler = scheduler if scheduler is not None else ThreadingScheduler()
        self.settings = settings if settings is not None else Settings()
        self.listener = listener
        self._lock = threading.Lock()
        self._raids: Dict[str, RaidSession] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._raids)

    def __contains__(self, raid_id: str) -> bool:
        with self._lock:
            return raid_id in self._raids

    # ----- table -----

    def lookup(self, raid_id: str) -> Optional[RaidSession]:
        with self._lock:
            return self._raids.get(raid_id)

    def get(self, raid_id: str) -> RaidSession:
        session = self.lookup(raid_id)
        if session is None:
            raise RaidNotFound(f"Raid {raid_id} not found", raidId=raid_id)
        return session

    def create(
        self, player_id: str, action: CreateRaid, raid_id: Optional[str] = None
    ) -> Tuple[RaidSession, List[Dict[str, Any]]]:
        config = action.config.resolved(self.settings)
        with self._lock:
            raid_id = raid_id or new_raid_id()
            if raid_id in self._raids:
                raise InvalidAction(f"Raid {raid_id} already exists", raidId=raid_id)
            session = RaidSession(
                raid_id,
                config,
                self.scheduler,
                creator_id=player_id,
                resolver=self.lookup,
                listener=self.listener,
            )
            self._raids[raid_id] = session
        return session, session.step(player_id, action)

    def destroy(self, raid_id: str) -> bool:
        with self._lock:
            session = self._raids.pop(raid_id, None)
        if session is None:
            return False
        session.close()
        logger.info("Raid %s destroyed (%d active)", raid_id, len(self))
        return True

    def list_raids(self) -> List[Dict[str, Any]]:
        with self._lock:
            sessions = list(self._raids.values())
        out = []
        for session in sessions:
            with session.lock:
                out.append({
                    "id": session.id,
                    "phase": session.phase,
                    "playerCount": len(session.present_players()),
                    "maxPlayers": session.config.max_players,
                    "layout": session.config.layout,
                    "boss": session.boss.name,
                    "createdAt": session.created_at,
                })
        return out

    # ----- actions -----

    def handle(self, raid_id: Optional[str], player_id: str, payload: Any) -> List[Dict[str, Any]]:
        """
        Route one raw action. Never raises RaidError; rejections come back as an
        actionResult event like any other outcome.
        """
        kind = payload.get("type") if isinstance(payload, dict) else None
        try:
            action = parse_action(payload)
            if isinstance(action, CreateRaid):
                _, evs = self.create(player_id, action, raid_id=raid_id)
                return evs
            if raid_id is None:
                raise RaidNotFound("No raid id given")
            session = self.get(raid_id)
        except RaidError as err:
            logger.debug("Rejected %s for raid %s: %s", kind, raid_id, err.message)
            return [events.build_action_result(kind, player_id, error=err, raid_id=raid_id)]

        evs = session.step(player_id, action)
        if session.close_requested:
            self.destroy(session.id)
        return evs

    def snapshot(self, raid_id: str) -> Dict[str, Any]:
        return self.get(raid_id).snapshot()

    def drain_events(self, raid_id: str) -> List[Dict[str, Any]]:
        session = self.lookup(raid_id)
        if session is None:
            return []
        return session.drain_events()

    def shutdown(self) -> None:
        with self._lock:
            sessions = list(self._raids.values())
            self._raids.clear()
        for session in sessions:
            session.close()
