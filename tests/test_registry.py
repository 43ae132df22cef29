import sys
from pathlib import Path
import unittest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from raid_engine.config import Settings  # noqa: E402
from raid_engine.registry import RaidRegistry  # noqa: E402
from raid_engine.scheduler import ManualScheduler  # noqa: E402


def make_registry(**settings):
    values = {"boss_turn_delay": 2.0, "turn_timeout": 0.0}
    values.update(settings)
    scheduler = ManualScheduler()
    return RaidRegistry(scheduler, Settings(**values)), scheduler


def create(registry, player_id="p1", raid_id=None, **extra):
    payload = {"type": "createRaid", "playerData": {"username": "Host"}}
    payload.update(extra)
    evs = registry.handle(raid_id, player_id, payload)
    return evs[0]["raidId"], evs


class TestLifecycle(unittest.TestCase):
    def test_create_registers_raid(self):
        registry, _ = make_registry()
        raid_id, evs = create(registry)
        self.assertTrue(raid_id.startswith("raid-"))
        self.assertIn(raid_id, registry)
        self.assertEqual(evs[0]["type"], "raidCreated")
        self.assertIn("playerJoined", [e["type"] for e in evs])
        self.assertEqual(registry.get(raid_id).creator_id, "p1")

    def test_create_with_explicit_id(self):
        registry, _ = make_registry()
        raid_id, _ = create(registry, raid_id="raid-abc")
        self.assertEqual(raid_id, "raid-abc")
        evs = registry.handle("raid-abc", "p2", {"type": "createRaid"})
        self.assertEqual(evs[0]["error"]["code"], "InvalidAction")
        self.assertEqual(len(registry), 1)

    def test_unknown_boss_not_registered(self):
        registry, _ = make_registry()
        evs = registry.handle(None, "p1", {"type": "createRaid", "config": {"boss": "missingno"}})
        self.assertFalse(evs[0]["success"])
        self.assertEqual(evs[0]["error"]["code"], "InvalidAction")
        self.assertEqual(len(registry), 0)

    def test_config_capped_by_settings(self):
        registry, _ = make_registry(max_players=2)
        raid_id, _ = create(registry, config={"maxPlayers": 4, "minPlayers": 3})
        config = registry.get(raid_id).config
        self.assertEqual(config.max_players, 2)
        self.assertEqual(config.min_players, 2)
        self.assertEqual(config.boss_turn_delay, 2.0)

    def test_last_player_leaving_destroys_raid(self):
        registry, scheduler = make_registry()
        raid_id, _ = create(registry)
        registry.handle(raid_id, "p1", {"type": "playerAttack", "damage": 10})
        evs = registry.handle(raid_id, "p1", {"type": "leaveRaid"})
        self.assertIn("playerLeft", [e["type"] for e in evs])
        self.assertNotIn(raid_id, registry)
        self.assertEqual(scheduler.run_all(), 0)

    def test_end_raid_creator_only(self):
        registry, _ = make_registry()
        raid_id, _ = create(registry)
        registry.handle(raid_id, "p2", {"type": "joinRaid", "playerData": {"username": "Guest"}})
        evs = registry.handle(raid_id, "p2", {"type": "endRaid"})
        self.assertEqual(evs[0]["error"]["code"], "InvalidAction")
        self.assertIn(raid_id, registry)

        evs = registry.handle(raid_id, "p1", {"type": "endRaid"})
        self.assertEqual(evs[-1]["type"], "raidEnded")
        self.assertNotIn(raid_id, registry)

    def test_destroy_unknown(self):
        registry, _ = make_registry()
        self.assertFalse(registry.destroy("raid-nope"))

    def test_shutdown_closes_everything(self):
        registry, scheduler = make_registry()
        raid_id, _ = create(registry)
        session = registry.get(raid_id)
        registry.handle(raid_id, "p1", {"type": "playerAttack", "damage": 10})
        registry.shutdown()
        self.assertEqual(len(registry), 0)
        self.assertTrue(session.closed)
        self.assertEqual(scheduler.pending, 0)


class TestRouting(unittest.TestCase):
    def test_unknown_raid(self):
        registry, _ = make_registry()
        evs = registry.handle("raid-missing", "p1", {"type": "playerAttack"})
        self.assertEqual(len(evs), 1)
        self.assertEqual(evs[0]["type"], "actionResult")
        self.assertEqual(evs[0]["error"]["code"], "RaidNotFound")
        self.assertEqual(evs[0]["raidId"], "raid-missing")

    def test_unknown_action_type(self):
        registry, _ = make_registry()
        raid_id, _ = create(registry)
        evs = registry.handle(raid_id, "p1", {"type": "useItem"})
        self.assertEqual(evs[0]["error"]["code"], "UnknownActionType")

    def test_malformed_action(self):
        registry, _ = make_registry()
        raid_id, _ = create(registry)
        evs = registry.handle(raid_id, "p1", {"type": "playerAttack", "damage": -5})
        self.assertEqual(evs[0]["error"]["code"], "InvalidAction")
        self.assertEqual(registry.get(raid_id).boss.current_hp, 1000)

    def test_join_full_raid(self):
        registry, _ = make_registry()
        raid_id, _ = create(registry, config={"maxPlayers": 1})
        evs = registry.handle(raid_id, "p2", {"type": "joinRaid"})
        self.assertEqual(evs[0]["error"]["code"], "RaidFull")

    def test_join_twice(self):
        registry, _ = make_registry()
        raid_id, _ = create(registry)
        evs = registry.handle(raid_id, "p1", {"type": "joinRaid"})
        self.assertEqual(evs[0]["error"]["code"], "InvalidAction")

    def test_join_mid_raid_takes_a_turn(self):
        registry, _ = make_registry()
        raid_id, _ = create(registry)
        evs = registry.handle(raid_id, "p2", {"type": "joinRaid", "playerData": {"username": "Late"}})
        self.assertTrue(evs[0]["success"])
        session = registry.get(raid_id)
        self.assertEqual(session.turns.turn_order, ["p1", "p2"])

    def test_join_after_victory(self):
        registry, _ = make_registry()
        raid_id, _ = create(registry)
        registry.handle(raid_id, "p1", {"type": "playerAttack", "damage": 1000})
        evs = registry.handle(raid_id, "p2", {"type": "joinRaid"})
        self.assertEqual(evs[0]["error"]["code"], "InvalidPhase")

    def test_list_and_drain(self):
        registry, scheduler = make_registry()
        raid_id, _ = create(registry)
        listed = registry.list_raids()
        self.assertEqual([r["id"] for r in listed], [raid_id])
        self.assertEqual(listed[0]["phase"], "playing")

        registry.handle(raid_id, "p1", {"type": "playerAttack", "damage": 10})
        scheduler.advance(2.0)
        drained = registry.drain_events(raid_id)
        types = [e["type"] for e in drained]
        self.assertIn("raidCreated", types)
        self.assertIn("bossActionCompleted", types)
        self.assertEqual(registry.drain_events(raid_id), [])
        self.assertEqual(registry.drain_events("raid-missing"), [])

    def test_listener_receives_deferred_events(self):
        seen = []
        scheduler = ManualScheduler()
        registry = RaidRegistry(scheduler, Settings(boss_turn_delay=1.0, turn_timeout=0.0), listener=seen.append)
        raid_id, _ = create(registry)
        registry.handle(raid_id, "p1", {"type": "playerAttack", "damage": 10})
        scheduler.advance(1.0)
        self.assertIn("bossActionCompleted", [e["type"] for e in seen])


if __name__ == "__main__":
    unittest.main()
