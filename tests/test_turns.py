import sys
from pathlib import Path
import unittest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from raid_engine.scheduler import ManualScheduler  # noqa: E402
from raid_engine.turns import BOSS_TURN, DEFEAT, LOBBY, PLAYING, TurnManager  # noqa: E402


class Recorder:
    def __init__(self, turns):
        self.calls = []
        turns.on_boss_turn_entry = lambda: self.calls.append(("entry",))
        turns.on_boss_turn_due = lambda: self.calls.append(("due",))
        turns.on_turn_timeout = lambda pid: self.calls.append(("timeout", pid))

    def count(self, name):
        return sum(1 for c in self.calls if c[0] == name)


def make_turns(timeout=0.0):
    scheduler = ManualScheduler()
    turns = TurnManager(scheduler.call_later, boss_turn_delay=2.0, turn_timeout=timeout)
    return turns, scheduler, Recorder(turns)


class TestTurnOrder(unittest.TestCase):
    def test_start_uses_join_order(self):
        turns, _, _ = make_turns()
        self.assertEqual(turns.phase, LOBBY)
        turns.start(["a", "b", "c"])
        self.assertEqual(turns.phase, PLAYING)
        self.assertEqual(turns.round, 1)
        self.assertEqual(turns.current_player_id, "a")
        self.assertTrue(turns.is_players_turn("a"))
        self.assertFalse(turns.is_players_turn("b"))

    def test_round_end_enters_boss_turn_once(self):
        turns, scheduler, rec = make_turns()
        turns.start(["a", "b"])
        turns.advance()
        self.assertEqual(turns.current_player_id, "b")
        turns.advance()
        self.assertEqual(turns.phase, BOSS_TURN)
        self.assertIsNone(turns.current_player_id)
        self.assertEqual(rec.count("entry"), 1)
        self.assertTrue(turns.boss_turn_pending)

        scheduler.advance(1.0)
        self.assertEqual(rec.count("due"), 0)
        scheduler.advance(1.0)
        self.assertEqual(rec.count("due"), 1)
        self.assertEqual(rec.count("entry"), 1)

    def test_finish_boss_turn_starts_next_round(self):
        turns, scheduler, _ = make_turns()
        turns.start(["a", "b"])
        turns.advance()
        turns.advance()
        scheduler.run_all()
        turns.finish_boss_turn(["b"])
        self.assertEqual(turns.phase, PLAYING)
        self.assertEqual(turns.round, 2)
        self.assertEqual(turns.turn_order, ["b"])
        self.assertEqual(turns.current_player_id, "b")

    def test_advance_ignored_outside_play(self):
        turns, _, rec = make_turns()
        turns.advance()
        self.assertEqual(turns.phase, LOBBY)
        turns.start(["a"])
        turns.advance()
        turns.advance()
        self.assertEqual(rec.count("entry"), 1)


class TestRemoval(unittest.TestCase):
    def test_removing_current_player_passes_turn(self):
        turns, _, _ = make_turns()
        turns.start(["a", "b", "c"])
        turns.remove("a")
        self.assertEqual(turns.turn_order, ["b", "c"])
        self.assertEqual(turns.current_player_id, "b")

    def test_removing_earlier_player_keeps_current(self):
        turns, _, _ = make_turns()
        turns.start(["a", "b", "c"])
        turns.advance()
        turns.remove("a")
        self.assertEqual(turns.current_player_id, "b")

    def test_removing_last_current_player_ends_round(self):
        turns, _, rec = make_turns()
        turns.start(["a", "b"])
        turns.advance()
        turns.remove("b")
        self.assertEqual(turns.phase, BOSS_TURN)
        self.assertEqual(rec.count("entry"), 1)

    def test_remove_unknown_is_noop(self):
        turns, _, _ = make_turns()
        turns.start(["a"])
        turns.remove("zzz")
        self.assertEqual(turns.turn_order, ["a"])


class TestDeferredTasks(unittest.TestCase):
    def test_end_cancels_boss_turn(self):
        turns, scheduler, rec = make_turns()
        turns.start(["a"])
        turns.advance()
        turns.end(DEFEAT)
        scheduler.run_all()
        self.assertEqual(rec.count("due"), 0)
        self.assertEqual(turns.phase, DEFEAT)
        self.assertTrue(turns.is_terminal)

    def test_reset_makes_pending_task_noop(self):
        turns, scheduler, rec = make_turns()
        turns.start(["a"])
        turns.advance()
        turns.reset()
        turns.start(["a"])
        scheduler.run_all()
        self.assertEqual(rec.count("due"), 0)
        self.assertEqual(turns.phase, PLAYING)

    def test_timeout_skips_player(self):
        turns, scheduler, rec = make_turns(timeout=5.0)
        turns.start(["a", "b"])
        scheduler.advance(5.0)
        self.assertIn(("timeout", "a"), rec.calls)
        self.assertEqual(turns.current_player_id, "b")

    def test_advance_cancels_timeout(self):
        turns, scheduler, rec = make_turns(timeout=5.0)
        turns.start(["a", "b"])
        scheduler.advance(3.0)
        turns.advance()
        scheduler.advance(3.0)
        self.assertEqual(rec.count("timeout"), 0)
        self.assertEqual(turns.current_player_id, "b")
        scheduler.advance(2.0)
        self.assertEqual(rec.calls[-2:], [("timeout", "b"), ("entry",)])

    def test_fired_tasks_report_whether_they_ran(self):
        scheduler = ManualScheduler()
        tasks = []

        def defer(delay, fn):
            tasks.append(fn)
            return scheduler.call_later(delay, fn)

        turns = TurnManager(defer, boss_turn_delay=2.0, turn_timeout=5.0)
        rec = Recorder(turns)
        turns.start(["a"])
        timeout = tasks[-1]
        turns.advance()
        boss_turn = tasks[-1]
        self.assertFalse(timeout())

        turns.reset()
        turns.start(["a"])
        self.assertFalse(boss_turn())
        self.assertEqual(rec.count("due"), 0)

        turns.advance()
        self.assertTrue(tasks[-1]())
        self.assertEqual(rec.count("due"), 1)

    def test_no_timeout_armed_when_disabled(self):
        turns, scheduler, _ = make_turns()
        turns.start(["a", "b"])
        self.assertEqual(scheduler.pending, 0)


if __name__ == "__main__":
    unittest.main()
