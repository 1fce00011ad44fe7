"""
Auto-lock scheduler.

Locks every eligible team shortly before qualifying. Runs every
lock_interval_minutes (15) via the run_lock_scheduler command, or once via
auto_lock_teams.

Each pass:
    1. Select upcoming races whose qualifying starts within the horizon
    2. For each race, load all unlocked teams
    3. Bulk-read the lock policy of every league involved (one read)
    4. Lock teams whose league locks at qualifying (the default)
    5. Commit in batches of at most batch_op_limit writes
    6. Mark the race in_progress

The pass only ever moves is_locked from False to True and re-derives all
work from persisted state, so it is safe to re-run after a partial failure
or concurrently with another pass. Inside the flow each race is locked by a
retrying Prefect task; a race that still fails is left upcoming and picked
up again on the next pass.

Usage:
    # One pass against the database
    auto_lock_teams_flow()

    # Engine-level, any store
    AutoLockScheduler(InMemoryStore(...)).run(now=...)
"""

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from django.conf import settings
from django.utils import timezone as dj_timezone
from prefect import flow, get_run_logger, task
from prefect.cache_policies import NONE

from config.notifications import send_auto_lock_notification
from economy.conf import get_economy_config
from economy.engine.config import DEFAULT_CONFIG, EconomyConfig
from economy.engine.types import LockDeadline, Race, RaceStatus
from economy.models import AutoLockRun
from economy.storage.base import EconomyStore, TeamUpdate, batched
from economy.storage.django_store import DjangoStore


module_logger = logging.getLogger(__name__)


def qualifying_lock_reason(race: Race) -> str:
    return f"Locked for {race.name} qualifying"


class AutoLockScheduler:
    """
    Storage-agnostic auto-lock pass.

    Args:
        store: EconomyStore to read and write through
        config: Economy configuration (horizon, batch limit, default policy)
        clock: Callable returning the current aware datetime
        logger: Logger to report to (Prefect run logger inside flows)
    """

    def __init__(
        self,
        store: EconomyStore,
        config: EconomyConfig = DEFAULT_CONFIG,
        clock: Optional[Callable[[], datetime]] = None,
        logger=None,
    ):
        self.store = store
        self.config = config
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = logger or module_logger

    def select_races(self, now: datetime) -> List[Race]:
        return self.store.races_with_qualifying_between(
            now,
            now + self.config.lock_horizon,
            status=RaceStatus.UPCOMING,
        )

    def lock_race(self, race: Race) -> Dict:
        """Lock all eligible unlocked teams for one race and mark it in progress."""
        teams = self.store.find_unlocked_teams()
        league_ids = {team.league_id for team in teams if team.league_id}
        policies = self.store.get_lock_policies(league_ids) if league_ids else {}
        default_policy = LockDeadline(self.config.default_lock_deadline)

        updates = []
        skipped = 0
        for team in teams:
            policy = policies.get(team.league_id, default_policy)
            if policy != LockDeadline.QUALIFYING:
                skipped += 1
                continue
            updates.append(TeamUpdate(team.id, {
                'is_locked': True,
                'can_modify': False,
                'lock_reason': qualifying_lock_reason(race),
                'next_unlock_time': race.schedule.race,
            }))

        batches = 0
        for batch in batched(updates, self.config.batch_op_limit):
            self.store.commit_team_updates(batch)
            batches += 1
            self.logger.info(f"  Committed batch {batches} ({len(batch)} teams) for {race.name}")

        self.store.update_race_status(race.id, RaceStatus.IN_PROGRESS)

        return {
            'race_id': race.id,
            'race_name': race.name,
            'qualifying': race.schedule.qualifying.isoformat(),
            'teams_locked': len(updates),
            'teams_skipped': skipped,
            'batches': batches,
            'status': 'success',
        }

    def run(
        self,
        now: Optional[datetime] = None,
        lock_race: Optional[Callable[[Race], Dict]] = None,
    ) -> Dict:
        """
        Run one pass.

        Race selection errors propagate (the caller retries the whole pass);
        per-race errors are logged and counted. ``lock_race`` replaces
        self.lock_race, e.g. with a retrying Prefect task.

        Returns:
            Summary dict with counts and per-race results
        """
        now = now or self.clock()
        lock_race = lock_race or self.lock_race
        summary = {
            'run_at': now.isoformat(),
            'races_selected': 0,
            'races_locked': 0,
            'races_failed': 0,
            'teams_locked': 0,
            'batches_committed': 0,
            'races': [],
            'status': 'running',
        }

        races = self.select_races(now)
        summary['races_selected'] = len(races)
        if not races:
            self.logger.info("No races with qualifying in the lock window")
            summary['status'] = 'complete'
            return summary

        self.logger.info(f"📋 {len(races)} race(s) with qualifying in the lock window")

        for race in races:
            try:
                result = lock_race(race)
            except Exception as e:
                self.logger.error(f"❌ Failed to lock teams for {race.name}: {e}")
                summary['races_failed'] += 1
                summary['races'].append({
                    'race_id': race.id,
                    'race_name': race.name,
                    'status': 'failed',
                    'error': str(e),
                })
                continue

            summary['races_locked'] += 1
            summary['teams_locked'] += result['teams_locked']
            summary['batches_committed'] += result['batches']
            summary['races'].append(result)
            self.logger.info(f"✅ Locked {result['teams_locked']} teams for {race.name}")

        if summary['races_failed'] and summary['races_locked']:
            summary['status'] = 'partial'
        elif summary['races_failed']:
            summary['status'] = 'failed'
        else:
            summary['status'] = 'complete'
        return summary


@task(
    name="Lock Teams For Race",
    cache_policy=NONE,
    retries=settings.ECONOMY_TASK_RETRIES,
    retry_delay_seconds=settings.ECONOMY_TASK_RETRY_DELAY
)
def lock_race_task(scheduler: AutoLockScheduler, race: Race) -> Dict:
    """
    Lock one race's teams.

    A retry re-reads the unlocked teams, so batches committed by a failed
    attempt are not written again.
    """
    return scheduler.lock_race(race)


def _record_run(summary: Dict, started_at: datetime):
    AutoLockRun.objects.create(
        started_at=started_at,
        finished_at=dj_timezone.now(),
        status=summary['status'],
        races_selected=summary['races_selected'],
        teams_locked=summary['teams_locked'],
        batches_committed=summary['batches_committed'],
        races_failed=summary['races_failed'],
        details={'races': summary['races']},
    )


@flow(
    name="Auto Lock Teams",
    retries=settings.AUTO_LOCK_FLOW_RETRIES,
    retry_delay_seconds=settings.AUTO_LOCK_FLOW_RETRY_DELAY,
    timeout_seconds=settings.AUTO_LOCK_FLOW_TIMEOUT,
)
def auto_lock_teams_flow(notify: bool = False, horizon_minutes: Optional[int] = None) -> Dict:
    """
    Lock teams for races whose qualifying is about to start.

    Args:
        notify: If True, send a Slack summary when anything was locked or failed
        horizon_minutes: Override the lock horizon for this run

    Returns:
        Summary dict from AutoLockScheduler.run()
    """
    logger = get_run_logger()
    config = get_economy_config()
    if horizon_minutes is not None:
        config = replace(config, lock_horizon_minutes=horizon_minutes)

    started_at = dj_timezone.now()
    logger.info("=" * 80)
    logger.info(f"Auto-lock pass at {started_at:%Y-%m-%d %H:%M:%S} UTC")
    logger.info(f"Horizon: {config.lock_horizon_minutes} minutes, batch limit: {config.batch_op_limit}")
    logger.info("=" * 80)

    store = DjangoStore(batch_limit=config.batch_op_limit)
    scheduler = AutoLockScheduler(store, config, logger=logger)
    summary = scheduler.run(
        now=started_at,
        lock_race=lambda race: lock_race_task(scheduler, race),
    )

    _record_run(summary, started_at)

    logger.info(f"\nFinal Summary:")
    logger.info(f"  • Races selected: {summary['races_selected']}")
    logger.info(f"  • Races locked: {summary['races_locked']}")
    logger.info(f"  • Races failed: {summary['races_failed']}")
    logger.info(f"  • Teams locked: {summary['teams_locked']}")

    if notify and (summary['teams_locked'] or summary['races_failed']):
        send_auto_lock_notification(summary)

    return summary
