import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fastapi.testclient import TestClient  # noqa: E402

import server  # noqa: E402
from raid_engine.config import Settings  # noqa: E402
from raid_engine.registry import RaidRegistry  # noqa: E402
from raid_engine.scheduler import ManualScheduler  # noqa: E402


class TestRaidServer(unittest.TestCase):
    def setUp(self):
        settings = Settings(boss_turn_delay=2.0, turn_timeout=0.0)
        self.scheduler = ManualScheduler()
        self.registry = RaidRegistry(self.scheduler, settings)
        self.client = TestClient(server.create_app(self.registry, settings))

    def create_raid(self):
        res = self.client.post("/raids", json={"playerId": "p1", "playerData": {"username": "Red"}})
        self.assertEqual(res.status_code, 200)
        evs = res.json()
        self.assertEqual(evs[0]["type"], "raidCreated")
        return evs[0]["raidId"]

    def test_request_models_accept_camel_case(self):
        req = server.ActionRequest(playerId="p1", action={"type": "playerAttack"})
        self.assertEqual(req.player_id, "p1")

    def test_app_uses_the_given_registry(self):
        self.assertEqual(len(self.registry), 0)
        raid_id = self.create_raid()
        self.assertIs(self.client.app.state.registry, self.registry)
        self.assertEqual(self.registry.get(raid_id).creator_id, "p1")

    def test_create_attack_and_snapshot(self):
        raid_id = self.create_raid()
        res = self.client.post(f"/raids/{raid_id}/actions", json={"playerId": "p1", "action": {"type": "playerAttack"}})
        evs = res.json()
        self.assertTrue(evs[0]["success"])
        self.assertEqual(evs[0]["damage"], 60)

        state = self.client.get(f"/raids/{raid_id}").json()
        self.assertEqual(state["phase"], "bossTurn")
        self.assertEqual(state["boss"]["currentHP"], 940)
        self.assertEqual(state["turnIndicator"]["elements"][0]["type"], "boss")
        self.assertEqual(state["bossState"]["personality"], "Aggressive")
        self.assertEqual(state["bossState"]["attackPattern"], "adaptive")

    def test_rejection_is_a_result(self):
        raid_id = self.create_raid()
        res = self.client.post(f"/raids/{raid_id}/actions", json={"playerId": "p1", "action": {"type": "nap"}})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()[0]["error"]["code"], "UnknownActionType")

    def test_missing_raid(self):
        res = self.client.get("/raids/raid-missing")
        self.assertEqual(res.json()["ok"], False)
        self.assertEqual(res.json()["error"]["code"], "RaidNotFound")
        self.assertEqual(self.client.post("/raids/raid-missing/events").json(), [])

    def test_events_drain_after_boss_turn(self):
        raid_id = self.create_raid()
        self.client.post(f"/raids/{raid_id}/actions", json={"playerId": "p1", "action": {"type": "playerAttack"}})
        self.scheduler.advance(2.0)
        evs = self.client.post(f"/raids/{raid_id}/events").json()
        self.assertIn("bossActionCompleted", [e["type"] for e in evs])
        self.assertEqual(self.client.post(f"/raids/{raid_id}/events").json(), [])

    def test_list_raids(self):
        raid_id = self.create_raid()
        listed = self.client.get("/raids").json()
        self.assertEqual([r["id"] for r in listed], [raid_id])


if __name__ == "__main__":
    unittest.main()
