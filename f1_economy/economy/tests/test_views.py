"""
Tests for the JSON read endpoints.
"""

from datetime import timedelta

from django.test import TestCase
from django.urls import reverse
from django.utils import timezone

from economy.engine.ledger import BudgetLedger
from economy.engine.types import AdminOverride
from economy.storage.django_store import DjangoStore
from economy.tests.helpers import create_db_race, create_season, default_assets


class LockoutStatusViewTests(TestCase):

    def setUp(self):
        self.store = DjangoStore()
        season = create_season(timezone.now().year)
        self.race = create_db_race(season, 1, fp3=timezone.now() + timedelta(days=2))

    def test_unlocked_before_weekend(self):
        response = self.client.get(reverse('lockout_status'))

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertFalse(data['is_locked'])
        self.assertEqual(data['next_race']['name'], 'Monaco Grand Prix')

    def test_admin_override_locks(self):
        self.store.set_admin_override(AdminOverride.LOCKED)

        data = self.client.get(reverse('lockout_status')).json()

        self.assertTrue(data['is_locked'])
        self.assertEqual(data['lock_reason'], 'Teams locked for Monaco Grand Prix (admin override)')

    def test_post_not_allowed(self):
        response = self.client.post(reverse('lockout_status'))
        self.assertEqual(response.status_code, 405)


class TeamDetailViewTests(TestCase):

    def setUp(self):
        store = DjangoStore()
        store.save_assets(default_assets())
        ledger = BudgetLedger(store)
        self.team = ledger.create_team('user-1', 'Box Box Box')
        ledger.purchase(self.team.id, 'D01')
        ledger.assign_star(self.team.id, 'D01')

    def test_team_payload(self):
        response = self.client.get(reverse('team_detail', args=[self.team.id]))

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['budget'], 900)
        self.assertEqual(data['total_spent'], 100)
        self.assertEqual(data['drivers'][0]['asset_id'], 'D01')
        self.assertTrue(data['drivers'][0]['is_star'])
        self.assertIsNone(data['constructor'])
        self.assertFalse(data['lock']['is_locked'])

    def test_incomplete_team_lists_issues(self):
        data = self.client.get(reverse('team_detail', args=[self.team.id])).json()

        self.assertFalse(data['is_complete'])
        codes = [issue['code'] for issue in data['issues']]
        self.assertIn('roster_size', codes)
        self.assertIn('missing_constructor', codes)

    def test_unknown_team(self):
        response = self.client.get(reverse('team_detail', args=['missing']))
        self.assertEqual(response.status_code, 404)


class AssetListViewTests(TestCase):

    def setUp(self):
        DjangoStore().save_assets(default_assets())

    def test_lists_assets_by_price(self):
        data = self.client.get(reverse('asset_list')).json()

        self.assertEqual(len(data['assets']), 14)
        self.assertEqual(data['assets'][0]['id'], 'C1')
        self.assertEqual(data['assets'][0]['tier'], 'B')

    def test_kind_filter(self):
        data = self.client.get(reverse('asset_list'), {'kind': 'constructor'}).json()
        self.assertEqual([a['id'] for a in data['assets']], ['C1', 'C2'])

    def test_unknown_kind(self):
        response = self.client.get(reverse('asset_list'), {'kind': 'engine'})
        self.assertEqual(response.status_code, 400)
