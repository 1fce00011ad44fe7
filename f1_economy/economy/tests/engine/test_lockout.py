"""
Unit tests for the lockout resolver.

Scenario: FP3 at T, qualifying at T+3h30, race at T+1 day.
"""

from datetime import timedelta

from django.test import SimpleTestCase

from economy.engine.lockout import lock_time_for, next_incomplete_race, resolve_lockout
from economy.engine.types import AdminOverride, RaceStatus
from economy.tests.helpers import FP3, make_race


class LockTimeTests(SimpleTestCase):
    """Tests for lock_time_for"""

    def test_conventional_weekend_locks_at_fp3(self):
        race = make_race()
        self.assertEqual(lock_time_for(race), FP3)

    def test_sprint_weekend_locks_at_sprint_qualifying(self):
        race = make_race(has_sprint=True)
        self.assertEqual(lock_time_for(race), race.schedule.sprint_qualifying)

    def test_falls_back_to_qualifying_without_fp3(self):
        race = make_race()
        race.schedule.fp3 = None
        self.assertEqual(lock_time_for(race), race.schedule.qualifying)

    def test_sprint_flag_without_sprint_qualifying_uses_fp3(self):
        race = make_race()
        race.has_sprint = True
        self.assertEqual(lock_time_for(race), FP3)


class NextRaceTests(SimpleTestCase):

    def test_lowest_incomplete_round_wins(self):
        races = [make_race('r3', 3), make_race('r1', 1), make_race('r2', 2)]
        self.assertEqual(next_incomplete_race(races, {'r1'}).id, 'r2')

    def test_cancelled_races_skipped(self):
        races = [make_race('r1', 1, status=RaceStatus.CANCELLED), make_race('r2', 2)]
        self.assertEqual(next_incomplete_race(races, set()).id, 'r2')

    def test_none_when_all_completed(self):
        self.assertIsNone(next_incomplete_race([make_race('r1', 1)], {'r1'}))


class ResolveLockoutTests(SimpleTestCase):
    """Tests for resolve_lockout"""

    def setUp(self):
        self.race = make_race()
        self.races = [self.race]

    def test_unlocked_before_fp3(self):
        info = resolve_lockout(self.races, set(), FP3 - timedelta(minutes=1))

        self.assertFalse(info.is_locked)
        self.assertFalse(info.captain_locked)
        self.assertIsNone(info.lock_reason)
        self.assertEqual(info.lock_time, FP3)
        self.assertEqual(info.next_race.id, 'r1')

    def test_locked_after_fp3_captain_still_open(self):
        info = resolve_lockout(self.races, set(), FP3 + timedelta(minutes=1))

        self.assertTrue(info.is_locked)
        self.assertFalse(info.captain_locked)
        self.assertEqual(info.lock_reason, "Teams locked for Monaco Grand Prix")

    def test_locked_exactly_at_lock_time(self):
        info = resolve_lockout(self.races, set(), FP3)
        self.assertTrue(info.is_locked)

    def test_captain_locked_after_race_start(self):
        race_start = self.race.schedule.race
        info = resolve_lockout(self.races, set(), race_start + timedelta(minutes=1))

        self.assertTrue(info.is_locked)
        self.assertTrue(info.captain_locked)
        self.assertEqual(info.race_start_time, race_start)

    def test_season_complete(self):
        info = resolve_lockout(self.races, {'r1'}, FP3 + timedelta(days=30))

        self.assertTrue(info.is_locked)
        self.assertTrue(info.captain_locked)
        self.assertEqual(info.lock_reason, "Season complete")
        self.assertIsNone(info.next_race)

    def test_admin_locked_override_before_season(self):
        info = resolve_lockout(self.races, set(), FP3 - timedelta(days=60), AdminOverride.LOCKED)

        self.assertTrue(info.is_locked)
        self.assertFalse(info.captain_locked)
        self.assertEqual(info.lock_reason, "Teams locked for Monaco Grand Prix (admin override)")

    def test_admin_unlocked_override_after_completion(self):
        info = resolve_lockout(self.races, {'r1'}, FP3 + timedelta(days=30), 'unlocked')

        self.assertFalse(info.is_locked)
        self.assertFalse(info.captain_locked)
        self.assertIsNone(info.lock_reason)

    def test_admin_unlocked_override_mid_weekend(self):
        info = resolve_lockout(
            self.races, set(), self.race.schedule.race + timedelta(hours=1), AdminOverride.UNLOCKED
        )

        self.assertFalse(info.is_locked)
        self.assertFalse(info.captain_locked)

    def test_completed_race_moves_to_next(self):
        next_race = make_race('r2', 2, name='Spanish Grand Prix', fp3=FP3 + timedelta(days=7))
        info = resolve_lockout(
            [self.race, next_race], {'r1'}, self.race.schedule.race + timedelta(hours=4)
        )

        self.assertFalse(info.is_locked)
        self.assertEqual(info.next_race.id, 'r2')

    def test_to_dict_is_json_ready(self):
        payload = resolve_lockout(self.races, set(), FP3).to_dict()

        self.assertEqual(payload['lock_time'], FP3.isoformat())
        self.assertEqual(payload['next_race']['name'], 'Monaco Grand Prix')
