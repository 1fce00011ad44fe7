"""
Tests for the auto-lock scheduler.

AutoLockSchedulerTests run against InMemoryStore. LockRaceTaskTests and
AutoLockFlowTests run under a Prefect test harness with fast task retries;
the flow function is called directly (.fn) against the test database with
the run logger patched out.

Race under test: qualifying at FP3 + 3h30, so a pass 30 minutes before
qualifying falls inside the default 60 minute horizon.
"""

import threading
from dataclasses import replace
from datetime import timedelta
from unittest import mock

from django.test import SimpleTestCase, TestCase

from economy.engine.config import DEFAULT_CONFIG
from economy.engine.ledger import BudgetLedger, TeamLockedError
from economy.engine.types import LockDeadline, RaceStatus
from economy.flows import auto_lock
from economy.flows.auto_lock import AutoLockScheduler, auto_lock_teams_flow
from economy.models import AutoLockRun, FantasyTeam, League, Race
from economy.storage.base import StoreError
from economy.storage.django_store import DjangoStore
from economy.tests.base import FastPrefectTasksMixin
from economy.tests.helpers import FP3, create_db_race, create_season, make_race, make_store, make_team


QUALIFYING = FP3 + timedelta(hours=3, minutes=30)
BEFORE_QUALIFYING = QUALIFYING - timedelta(minutes=30)


class AutoLockSchedulerTests(SimpleTestCase):

    def setUp(self):
        self.race = make_race()
        self.store = make_store(
            races=[self.race],
            teams=[
                make_team('t1'),
                make_team('t2'),
                make_team('t3'),
                make_team('t4', league_id='L-race'),
                make_team('t5', locked=True),
            ],
            lock_policies={'L-race': LockDeadline.RACE},
        )
        self.scheduler = AutoLockScheduler(self.store)

    def test_locks_teams_before_qualifying(self):
        summary = self.scheduler.run(now=BEFORE_QUALIFYING)

        self.assertEqual(summary['status'], 'complete')
        self.assertEqual(summary['races_selected'], 1)
        self.assertEqual(summary['teams_locked'], 3)
        self.assertEqual(summary['races'][0]['teams_skipped'], 1)

        for team_id in ['t1', 't2', 't3']:
            lock = self.store.get_team(team_id).lock
            self.assertTrue(lock.is_locked)
            self.assertFalse(lock.can_modify)
            self.assertEqual(lock.lock_reason, "Locked for Monaco Grand Prix qualifying")
            self.assertEqual(lock.next_unlock_time, self.race.schedule.race)

        self.assertFalse(self.store.get_team('t4').lock.is_locked)
        self.assertEqual(self.store.get_race('r1').status, RaceStatus.IN_PROGRESS)

    def test_already_locked_team_left_alone(self):
        self.scheduler.run(now=BEFORE_QUALIFYING)
        self.assertIsNone(self.store.get_team('t5').lock.lock_reason)

    def test_second_pass_writes_nothing(self):
        self.scheduler.run(now=BEFORE_QUALIFYING)
        writes = self.store.write_count

        summary = self.scheduler.run(now=BEFORE_QUALIFYING + timedelta(minutes=15))

        self.assertEqual(summary['races_selected'], 0)
        self.assertEqual(self.store.write_count, writes)

    def test_race_outside_horizon_not_selected(self):
        summary = self.scheduler.run(now=QUALIFYING - timedelta(hours=2))

        self.assertEqual(summary['races_selected'], 0)
        self.assertFalse(self.store.get_team('t1').lock.is_locked)
        self.assertEqual(self.store.get_race('r1').status, RaceStatus.UPCOMING)

    def test_race_after_qualifying_not_selected(self):
        summary = self.scheduler.run(now=QUALIFYING + timedelta(minutes=1))
        self.assertEqual(summary['races_selected'], 0)

    def test_cancelled_race_not_selected(self):
        self.store.update_race_status('r1', RaceStatus.CANCELLED)
        summary = self.scheduler.run(now=BEFORE_QUALIFYING)
        self.assertEqual(summary['races_selected'], 0)

    def test_writes_split_into_batches(self):
        store = make_store(races=[make_race()], teams=[make_team(f't{i}') for i in range(5)])
        scheduler = AutoLockScheduler(store, replace(DEFAULT_CONFIG, batch_op_limit=2))

        summary = scheduler.run(now=BEFORE_QUALIFYING)

        self.assertEqual(store.commits, [2, 2, 1])
        self.assertEqual(summary['batches_committed'], 3)
        self.assertEqual(summary['teams_locked'], 5)

    def test_failed_race_retried_on_next_pass(self):
        with mock.patch.object(self.store, 'commit_team_updates', side_effect=StoreError('write failed')):
            summary = self.scheduler.run(now=BEFORE_QUALIFYING)

        self.assertEqual(summary['status'], 'failed')
        self.assertEqual(summary['races_failed'], 1)
        self.assertEqual(summary['races'][0]['error'], 'write failed')
        self.assertEqual(self.store.get_race('r1').status, RaceStatus.UPCOMING)

        summary = self.scheduler.run(now=BEFORE_QUALIFYING + timedelta(minutes=15))

        self.assertEqual(summary['status'], 'complete')
        self.assertEqual(summary['teams_locked'], 3)

    def test_selection_error_propagates(self):
        with mock.patch.object(self.store, 'races_with_qualifying_between', side_effect=StoreError('down')):
            with self.assertRaises(StoreError):
                self.scheduler.run(now=BEFORE_QUALIFYING)

    def test_concurrent_passes_converge(self):
        schedulers = [AutoLockScheduler(self.store) for _ in range(2)]
        threads = [
            threading.Thread(target=scheduler.run, kwargs={'now': BEFORE_QUALIFYING})
            for scheduler in schedulers
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        for team_id in ['t1', 't2', 't3']:
            self.assertTrue(self.store.get_team(team_id).lock.is_locked)
        self.assertFalse(self.store.get_team('t4').lock.is_locked)
        self.assertEqual(self.store.get_race('r1').status, RaceStatus.IN_PROGRESS)

    def test_locked_teams_rejected_by_ledger(self):
        self.scheduler.run(now=BEFORE_QUALIFYING)

        with self.assertRaises(TeamLockedError) as ctx:
            BudgetLedger(self.store).purchase('t1', 'D01')
        self.assertIn('qualifying', str(ctx.exception))


class LockRaceTaskTests(FastPrefectTasksMixin, SimpleTestCase):
    """Tests for lock_race_task retries"""

    def setUp(self):
        super().setUp()
        self.store = make_store(races=[make_race()], teams=[make_team('t1'), make_team('t2')])
        self.scheduler = AutoLockScheduler(self.store)
        self.commit = self.store.commit_team_updates
        self.attempts = 0

    def run_pass(self):
        return self.scheduler.run(
            now=BEFORE_QUALIFYING,
            lock_race=lambda race: auto_lock.lock_race_task(self.scheduler, race),
        )

    def flaky_commit(self, updates):
        self.attempts += 1
        if self.attempts == 1:
            raise StoreError('connection reset')
        return self.commit(updates)

    def test_transient_commit_failure_retried_within_pass(self):
        with mock.patch.object(self.store, 'commit_team_updates', side_effect=self.flaky_commit):
            summary = self.run_pass()

        self.assertEqual(self.attempts, 2)
        self.assertEqual(summary['status'], 'complete')
        self.assertEqual(summary['teams_locked'], 2)
        self.assertTrue(self.store.get_team('t1').lock.is_locked)
        self.assertEqual(self.store.get_race('r1').status, RaceStatus.IN_PROGRESS)

    def test_race_failed_once_retries_exhausted(self):
        with mock.patch.object(self.store, 'commit_team_updates', side_effect=StoreError('down')) as commit:
            summary = self.run_pass()

        self.assertEqual(commit.call_count, 2)
        self.assertEqual(summary['status'], 'failed')
        self.assertEqual(self.store.get_race('r1').status, RaceStatus.UPCOMING)


@mock.patch('economy.flows.auto_lock.get_run_logger')
class AutoLockFlowTests(FastPrefectTasksMixin, TestCase):
    """Tests for auto_lock_teams_flow against the database"""

    def setUp(self):
        super().setUp()
        self.season = create_season()
        self.race = create_db_race(self.season, 1)
        store = DjangoStore()
        ledger = BudgetLedger(store)
        self.team = ledger.create_team('user-1', 'Box Box Box')
        self.race_league = League.objects.create(name='Late Lockers', lock_deadline=League.LOCK_AT_RACE)
        self.race_team = ledger.create_team('user-2', 'Undercut', league_id=str(self.race_league.pk))

    def run_flow(self, now, **kwargs):
        with mock.patch('economy.flows.auto_lock.dj_timezone.now', return_value=now):
            return auto_lock_teams_flow.fn(**kwargs)

    def test_flow_locks_and_records_run(self, mock_logger):
        summary = self.run_flow(BEFORE_QUALIFYING)

        self.assertEqual(summary['teams_locked'], 1)
        team = FantasyTeam.objects.get(pk=self.team.id)
        self.assertTrue(team.is_locked)
        self.assertEqual(team.lock_reason, "Locked for Monaco Grand Prix qualifying")
        self.assertFalse(FantasyTeam.objects.get(pk=self.race_team.id).is_locked)

        self.race.refresh_from_db()
        self.assertEqual(self.race.status, Race.STATUS_IN_PROGRESS)

        run = AutoLockRun.objects.get()
        self.assertEqual(run.status, AutoLockRun.STATUS_COMPLETE)
        self.assertEqual(run.teams_locked, 1)
        self.assertEqual(run.details['races'][0]['race_name'], 'Monaco Grand Prix')

    def test_flow_horizon_override(self, mock_logger):
        now = QUALIFYING - timedelta(hours=3)

        self.assertEqual(self.run_flow(now)['races_selected'], 0)
        self.assertEqual(self.run_flow(now, horizon_minutes=240)['races_selected'], 1)

    @mock.patch('economy.flows.auto_lock.send_auto_lock_notification')
    def test_flow_notifies_when_teams_locked(self, mock_notify, mock_logger):
        summary = self.run_flow(BEFORE_QUALIFYING, notify=True)
        mock_notify.assert_called_once_with(summary)

    @mock.patch('economy.flows.auto_lock.send_auto_lock_notification')
    def test_flow_quiet_when_nothing_to_do(self, mock_notify, mock_logger):
        self.run_flow(QUALIFYING - timedelta(days=2), notify=True)
        mock_notify.assert_not_called()
