"""
Race completion processing.

Runs once per race when results are in:

1. **Assets**: record the weekend's points, add to season points and
   reprice (rolling average target, capped change, tier)
2. **Holdings**: accrue points (star holding x (1 + star_bonus)),
   increment races_held, refresh current price, add to team total
3. **Contracts**: release holdings whose contract has run its course at
   sale value (commission, no termination fee), banking their points and
   locking the asset out of that team for contract_lockout_races races
4. **Locks**: unlock race-locked teams; count down season locks and
   release the ones that reach zero
5. **Race**: mark completed

Resuming after a failure:
    Each step can be re-run. An asset whose history already holds this
    race is not repriced again, and a team whose settled_race_id is this
    race is not settled again. Team batches re-read every team under a row
    lock and write it back in the same commit, so trades that land while
    the race is being settled are kept.

A race that is already completed is skipped, so re-delivered triggers are
no-ops.

Usage:
    process_race_completion_flow(race_id='12', results={'VER': {'points': 25}})
"""

import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from django.conf import settings
from prefect import flow, get_run_logger, task
from prefect.cache_policies import NONE

from economy.conf import get_economy_config
from economy.engine import pricing
from economy.engine.config import DEFAULT_CONFIG, EconomyConfig
from economy.engine.ledger import release_expired_contracts
from economy.engine.types import Asset, EventScore, FantasyTeam, PointsEntry, Race, RaceStatus
from economy.storage.base import EconomyStore, batched
from economy.storage.django_store import DjangoStore


module_logger = logging.getLogger(__name__)


class RaceCompletionProcessor:

    def __init__(self, store: EconomyStore, config: EconomyConfig = DEFAULT_CONFIG, logger=None):
        self.store = store
        self.config = config
        self.logger = logger or module_logger

    def reprice_assets(self, race: Race, results: Dict[str, EventScore]) -> Tuple[Dict[str, Asset], int]:
        """
        Record points and reprice every asset in ``results``.

        Returns:
            (all assets by id after repricing, number repriced by this call)
        """
        assets = {asset.id: asset for asset in self.store.list_assets()}
        updated = []

        for asset_id, score in results.items():
            asset = assets.get(asset_id)
            if asset is None:
                self.logger.warning(f"⚠️  No asset {asset_id}, ignoring its result")
                continue
            if any(entry.race_id == race.id for entry in asset.history):
                continue

            entry = PointsEntry(
                points=score.total,
                round=race.round,
                is_sprint=race.has_sprint,
                race_id=race.id,
            )
            history = [e for e in asset.history if e.round != race.round]
            asset.history = pricing.recent_first([entry] + history)
            asset.season_points += score.total

            update = pricing.reprice(asset.history, asset.current_price, self.config)
            asset.previous_price = update.old_price
            asset.current_price = update.new_price
            asset.tier = update.tier
            updated.append(asset)

            if update.change:
                self.logger.info(
                    f"  {asset.id}: ${update.old_price} -> ${update.new_price} "
                    f"({update.change:+d}, tier {update.tier})"
                )

        self.store.save_assets(updated)
        return assets, len(updated)

    def settle_team(
        self,
        team: FantasyTeam,
        race: Race,
        results: Dict[str, EventScore],
        assets: Dict[str, Asset],
        completed_races: int,
    ) -> Optional[Dict]:
        """
        Apply one race to one team in place.

        Returns None when the team was already settled for ``race``.
        """
        if team.settled_race_id == race.id:
            return None

        star_multiplier = 1 + self.config.star_bonus
        points_earned = 0.0

        for holding in team.holdings:
            score = results.get(holding.asset_id)
            points = score.total if score else 0
            if team.star_asset_id == holding.asset_id:
                points *= star_multiplier
            holding.points_scored += points
            holding.races_held += 1
            if holding.asset_id in assets:
                holding.current_price = assets[holding.asset_id].current_price
            points_earned += points
        team.total_points += points_earned

        receipts = release_expired_contracts(team, completed_races, self.config)

        lock = team.lock
        if lock.is_season_locked:
            lock.season_lock_races_remaining = max(0, lock.season_lock_races_remaining - 1)
            if lock.season_lock_races_remaining == 0:
                lock.is_season_locked = False
        if not lock.is_season_locked:
            lock.is_locked = False
            lock.can_modify = True
            lock.lock_reason = None
            lock.next_unlock_time = None

        team.settled_race_id = race.id
        return {'points': points_earned, 'expired': [receipt.asset_id for receipt in receipts]}

    def settle_batch(
        self,
        team_ids: Sequence[str],
        race: Race,
        results: Dict[str, EventScore],
        assets: Dict[str, Asset],
        completed_races: int,
    ) -> Dict:
        """Settle up to batch_op_limit teams in one commit."""
        outcome = {'settled': 0, 'expired': 0}

        def settle(team: FantasyTeam) -> bool:
            result = self.settle_team(team, race, results, assets, completed_races)
            if result is None:
                return False
            outcome['settled'] += 1
            outcome['expired'] += len(result['expired'])
            return True

        self.store.update_teams(team_ids, settle)
        return outcome

    def process(
        self,
        race_id: str,
        results: Dict[str, EventScore],
        reprice: Optional[Callable] = None,
        settle_batch: Optional[Callable] = None,
    ) -> Dict:
        """
        Settle one race.

        ``reprice`` and ``settle_batch`` replace the steps of the same name,
        e.g. with retrying Prefect tasks.
        """
        reprice = reprice or self.reprice_assets
        settle_batch = settle_batch or self.settle_batch

        race = self.store.get_race(race_id)
        summary = {
            'race_id': race.id,
            'race_name': race.name,
            'assets_repriced': 0,
            'teams_settled': 0,
            'contracts_expired': 0,
            'batches_committed': 0,
            'status': 'running',
        }

        if race.status == RaceStatus.COMPLETED:
            self.logger.info(f"{race} already completed, skipping")
            summary['status'] = 'skipped'
            return summary

        assets, summary['assets_repriced'] = reprice(race, results)

        # Count this race as completed for contract lockouts
        completed_races = len(self.store.completed_race_ids() - {race.id}) + 1

        team_ids: List[str] = [team.id for team in self.store.list_teams()]
        for batch in batched(team_ids, self.config.batch_op_limit):
            outcome = settle_batch(batch, race, results, assets, completed_races)
            summary['teams_settled'] += outcome['settled']
            summary['contracts_expired'] += outcome['expired']
            summary['batches_committed'] += 1

        self.store.update_race_status(race.id, RaceStatus.COMPLETED)
        summary['status'] = 'complete'
        return summary


def process_race_completion(
    store: EconomyStore,
    race_id: str,
    results: Dict[str, EventScore],
    config: EconomyConfig = DEFAULT_CONFIG,
    logger=None,
) -> Dict:
    return RaceCompletionProcessor(store, config, logger=logger).process(race_id, results)


def parse_results(raw: Dict[str, Dict]) -> Dict[str, EventScore]:
    """
    Build EventScores from plain dicts.

    Each value may give 'points' directly or finishing 'position' /
    'sprint_position' to be converted with the scoring tables.
    """
    config = get_economy_config()
    results = {}
    for asset_id, row in raw.items():
        if row.get('points') is not None:
            points = float(row['points'])
        else:
            points = pricing.race_points(row.get('position'), config)
        if row.get('sprint_points') is not None:
            sprint = float(row['sprint_points'])
        else:
            sprint = pricing.sprint_points(row.get('sprint_position'), config)
        results[asset_id] = EventScore(points=points, sprint_points=sprint)
    return results


@task(
    name="Reprice Assets",
    cache_policy=NONE,
    retries=settings.ECONOMY_TASK_RETRIES,
    retry_delay_seconds=settings.ECONOMY_TASK_RETRY_DELAY
)
def reprice_assets_task(
    processor: RaceCompletionProcessor,
    race: Race,
    results: Dict[str, EventScore],
) -> Tuple[Dict[str, Asset], int]:
    return processor.reprice_assets(race, results)


@task(
    name="Settle Team Batch",
    cache_policy=NONE,
    retries=settings.ECONOMY_TASK_RETRIES,
    retry_delay_seconds=settings.ECONOMY_TASK_RETRY_DELAY
)
def settle_batch_task(
    processor: RaceCompletionProcessor,
    team_ids: Sequence[str],
    race: Race,
    results: Dict[str, EventScore],
    assets: Dict[str, Asset],
    completed_races: int,
) -> Dict:
    """Settle one batch; a failed commit is rolled back and retried from fresh reads."""
    return processor.settle_batch(team_ids, race, results, assets, completed_races)


@flow(name="Process Race Completion")
def process_race_completion_flow(race_id: str, results: Dict[str, Dict]) -> Dict:
    """
    Settle a completed race against the database.

    Args:
        race_id: Race primary key (as string)
        results: Asset code -> {'points'|'position', 'sprint_points'|'sprint_position'}

    Returns:
        Summary dict from RaceCompletionProcessor.process()
    """
    logger = get_run_logger()
    config = get_economy_config()

    logger.info("=" * 80)
    logger.info(f"Race completion - race {race_id} ({len(results)} results)")
    logger.info("=" * 80)

    store = DjangoStore(batch_limit=config.batch_op_limit)
    processor = RaceCompletionProcessor(store, config, logger=logger)
    summary = processor.process(
        race_id,
        parse_results(results),
        reprice=lambda race, scores: reprice_assets_task(processor, race, scores),
        settle_batch=lambda *args: settle_batch_task(processor, *args),
    )

    logger.info(f"\nFinal Summary:")
    logger.info(f"  • Assets repriced: {summary['assets_repriced']}")
    logger.info(f"  • Teams settled: {summary['teams_settled']}")
    logger.info(f"  • Contracts expired: {summary['contracts_expired']}")
    return summary
