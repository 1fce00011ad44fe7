from django.http import Http404, JsonResponse
from django.views.decorators.http import require_GET

from economy.conf import get_economy_config
from economy.engine import pricing
from economy.engine.ledger import BudgetLedger, lockout_provider_for
from economy.engine.types import AssetKind
from economy.storage.base import RecordNotFound
from economy.storage.django_store import DjangoStore


def _holding_payload(holding, star_asset_id):
    return {
        'asset_id': holding.asset_id,
        'kind': holding.kind.value,
        'purchase_price': holding.purchase_price,
        'current_price': holding.current_price,
        'points_scored': holding.points_scored,
        'races_held': holding.races_held,
        'contract_length': holding.contract_length,
        'races_remaining': holding.races_remaining,
        'is_star': holding.asset_id == star_asset_id,
    }


@require_GET
def lockout_status(request):
    """
    Current lock state for the active season.

    Resolved on every request from the calendar, completed races and the
    admin override.
    """
    info = lockout_provider_for(DjangoStore())()
    return JsonResponse(info.to_dict())


@require_GET
def team_detail(request, team_id):
    """Team roster, budget ledger, lock state and validation issues"""
    store = DjangoStore()
    try:
        team = store.get_team(team_id)
    except RecordNotFound:
        raise Http404(f"Team {team_id} not found")

    ledger = BudgetLedger(store, get_economy_config())
    validation = ledger.validate_team(team)

    return JsonResponse({
        'id': team.id,
        'name': team.name,
        'owner_id': team.owner_id,
        'league_id': team.league_id,
        'budget': team.budget,
        'total_spent': team.total_spent,
        'realized_adjustment': team.realized_adjustment,
        'team_value': team.team_value,
        'total_points': team.total_points,
        'banked_points': team.banked_points,
        'star_asset_id': team.star_asset_id,
        'drivers': [_holding_payload(h, team.star_asset_id) for h in team.drivers],
        'constructor': (
            _holding_payload(team.constructor, team.star_asset_id) if team.constructor else None
        ),
        'lock': {
            'is_locked': team.lock.is_locked,
            'can_modify': team.lock.can_modify,
            'lock_reason': team.lock.lock_reason,
            'next_unlock_time': (
                team.lock.next_unlock_time.isoformat() if team.lock.next_unlock_time else None
            ),
            'is_season_locked': team.lock.is_season_locked,
            'season_lock_races_remaining': team.lock.season_lock_races_remaining,
        },
        'is_complete': validation.is_valid,
        'issues': [{'code': i.code, 'message': i.message} for i in validation.issues],
    })


@require_GET
def asset_list(request):
    """
    Assets with price, tier and rolling average.

    Optional ?kind=driver|constructor filter.
    """
    kind = request.GET.get('kind')
    if kind and kind not in {k.value for k in AssetKind}:
        return JsonResponse({'error': f"Unknown kind '{kind}'"}, status=400)

    config = get_economy_config()
    assets = DjangoStore().list_assets(AssetKind(kind) if kind else None)
    assets.sort(key=lambda a: (-a.current_price, a.id))

    return JsonResponse({
        'assets': [
            {
                'id': asset.id,
                'name': asset.name,
                'kind': asset.kind.value,
                'price': asset.current_price,
                'price_change': asset.price_change,
                'tier': pricing.tier(asset.current_price, config),
                'season_points': asset.season_points,
                'rolling_average': round(
                    pricing.rolling_average_from_history(asset.history, config), 2
                ),
            }
            for asset in assets
        ]
    })
