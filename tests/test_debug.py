import sys
from pathlib import Path
import unittest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from raid_engine.actions import parse_action  # noqa: E402
from raid_engine.config import RaidConfig  # noqa: E402
from raid_engine.scheduler import ManualScheduler  # noqa: E402
from raid_engine.session import RaidSession  # noqa: E402


def make_raid(player_count=2, debug=True):
    data = {"bossTurnDelay": 2.0, "turnTimeout": 0, "seed": 11, "minPlayers": player_count}
    scheduler = ManualScheduler()
    session = RaidSession("raid-debug", RaidConfig.model_validate(data), scheduler, creator_id="p1")
    session.step("p1", parse_action({"type": "createRaid", "playerData": {"username": "Oak"}}))
    for i in range(2, player_count + 1):
        session.step(f"p{i}", parse_action({"type": "joinRaid", "playerData": {"username": f"Trainer{i}"}}))
    if debug:
        session.step("p1", parse_action({"type": "toggleDebugMode"}))
    return session, scheduler


def act(session, player_id, **action):
    return session.step(player_id, parse_action(action))


class TestDebugGate(unittest.TestCase):
    def test_debug_off_by_default(self):
        session, _ = make_raid(debug=False)
        self.assertFalse(session.debug_mode)
        evs = act(session, "p1", type="debugSkipTurn")
        self.assertEqual(evs[0]["error"]["code"], "DebugDisabled")
        self.assertEqual(session.turns.current_player_id, "p1")

    def test_only_creator_toggles(self):
        session, _ = make_raid(debug=False)
        evs = act(session, "p2", type="toggleDebugMode")
        self.assertEqual(evs[0]["error"]["code"], "DebugDisabled")
        self.assertFalse(session.debug_mode)
        evs = act(session, "p1", type="toggleDebugMode")
        self.assertTrue(evs[0]["debugMode"])
        evs = act(session, "p1", type="toggleDebugMode", enabled=True)
        self.assertTrue(session.debug_mode)
        act(session, "p1", type="toggleDebugMode")
        self.assertFalse(session.debug_mode)


class TestDebugActions(unittest.TestCase):
    def test_set_boss_hp_to_zero_wins(self):
        session, _ = make_raid()
        evs = act(session, "p2", type="debugSetHP", target="boss", value=0)
        self.assertTrue(evs[0]["victory"])
        self.assertEqual(session.phase, "victory")
        self.assertEqual(evs[-1]["type"], "raidEnded")

    def test_set_boss_hp_clamps(self):
        session, _ = make_raid()
        act(session, "p1", type="debugSetHP", target="boss", value=99999)
        self.assertEqual(session.boss.current_hp, session.boss.max_hp)

    def test_set_card_hp_to_zero_counts_ko(self):
        session, _ = make_raid()
        evs = act(session, "p1", type="debugSetHP", target="p2", slot="active", value=0)
        self.assertTrue(evs[0]["knockedOut"])
        self.assertEqual(session.players["p2"].ko_count, 1)
        self.assertEqual(session.total_kos, 1)

    def test_set_card_hp(self):
        session, _ = make_raid()
        act(session, "p1", type="debugSetHP", target="p2", slot="bench", value=40)
        card = session.players["p2"].bench
        self.assertEqual(card.current_hp, 40)
        self.assertEqual(card.status, "benched")

    def test_unknown_target(self):
        session, _ = make_raid()
        evs = act(session, "p1", type="debugSetHP", target="nobody", value=10)
        self.assertEqual(evs[0]["error"]["code"], "InvalidAction")

    def test_kill_then_resurrect(self):
        session, _ = make_raid()
        act(session, "p1", type="debugKillPlayer", targetPlayerId="p2")
        p2 = session.players["p2"]
        self.assertEqual(p2.status, "spectator")
        self.assertNotIn("p2", session.turns.turn_order)
        self.assertEqual(session.total_kos, 2)
        self.assertEqual(len(session.positions), 1)

        evs = act(session, "p1", type="debugResurrectPlayer", targetPlayerId="p2")
        self.assertTrue(evs[0]["wasSpectator"])
        self.assertEqual(p2.status, "active")
        self.assertEqual(p2.active.current_hp, p2.active.max_hp)
        self.assertFalse(p2.can_use_cheer)
        self.assertIn("p2", session.turns.turn_order)
        self.assertEqual(session.spectators, [])
        self.assertEqual(len(session.positions), 2)
        self.assertEqual(session.total_kos, 2)

    def test_skip_turn(self):
        session, _ = make_raid()
        evs = act(session, "p2", type="debugSkipTurn")
        self.assertEqual(evs[0]["skippedPlayerId"], "p1")
        self.assertEqual(session.turns.current_player_id, "p2")

    def test_force_boss_turn(self):
        session, scheduler = make_raid()
        act(session, "p1", type="debugForceBossTurn")
        self.assertEqual(session.phase, "bossTurn")
        self.assertTrue(session.pending_boss_plan)
        scheduler.advance(2.0)
        self.assertEqual(session.phase, "playing")
        self.assertEqual(session.turns.round, 2)

    def test_reset_restores_raid(self):
        session, scheduler = make_raid()
        act(session, "p1", type="playerAttack", damage=100)
        act(session, "p1", type="debugKillPlayer", targetPlayerId="p2")
        self.assertEqual(session.phase, "bossTurn")

        act(session, "p1", type="debugResetRaid")
        self.assertEqual(session.boss.current_hp, session.boss.max_hp)
        self.assertEqual(session.total_kos, 0)
        self.assertEqual(session.spectators, [])
        self.assertEqual(session.history, [])
        self.assertEqual(session.phase, "playing")
        self.assertEqual(session.turns.round, 1)
        self.assertEqual(session.turns.turn_order, ["p1", "p2"])

        seen = len([e for e in session.events if e["type"] == "bossActionCompleted"])
        scheduler.run_all()
        after = len([e for e in session.events if e["type"] == "bossActionCompleted"])
        self.assertEqual(seen, after)
        self.assertEqual(session.phase, "playing")


if __name__ == "__main__":
    unittest.main()
